"""Relay bridge between the WhatsApp Cloud API and the Voiceflow dialogue runtime."""
