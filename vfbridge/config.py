"""Process configuration, loaded once at startup and injected downward."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from vfbridge.errors import ConfigError

# field name -> environment variable
REQUIRED_SETTINGS = {
    "whatsapp_token": "WHATSAPP_TOKEN",
    "verify_token": "WHATSAPP_VERIFY_TOKEN",
    "phone_number_id": "PHONE_NUMBER_ID",
    "voiceflow_api_key": "VOICEFLOW_API_KEY",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


class BridgeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    whatsapp_token: str = ""
    verify_token: str = ""
    phone_number_id: str = ""
    voiceflow_api_key: str = ""
    app_secret: str | None = None

    voiceflow_version_id: str = "production"
    voiceflow_runtime_url: str = "https://general-runtime.voiceflow.com"
    graph_api_base: str = "https://graph.facebook.com/v18.0"

    message_delay: float = Field(default=0.5, ge=0)
    dialogue_timeout: float = Field(default=10.0, gt=0)
    dialogue_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)

    accept_media: bool = True
    typing_indicator: bool = True
    max_message_age_seconds: int = Field(default=300, ge=0)
    sender_rate_limit: int = Field(default=30, ge=0)

    audit_log_path: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, strict: bool = True,
    ) -> BridgeConfig:
        """Build the config from environment variables.

        With ``strict`` (the default) a :class:`ConfigError` naming every
        missing required variable is raised.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            field: env.get(var, "") for field, var in REQUIRED_SETTINGS.items()
        }
        optional = {
            "app_secret": "WHATSAPP_APP_SECRET",
            "voiceflow_version_id": "VOICEFLOW_VERSION_ID",
            "voiceflow_runtime_url": "VOICEFLOW_RUNTIME_URL",
            "graph_api_base": "GRAPH_API_BASE",
            "message_delay": "MESSAGE_DELAY_SECONDS",
            "dialogue_timeout": "DIALOGUE_TIMEOUT_SECONDS",
            "dialogue_max_attempts": "DIALOGUE_MAX_ATTEMPTS",
            "retry_base_delay": "RETRY_BASE_DELAY_SECONDS",
            "max_message_age_seconds": "MAX_MESSAGE_AGE_SECONDS",
            "sender_rate_limit": "SENDER_RATE_LIMIT",
            "audit_log_path": "RELAY_AUDIT_LOG_PATH",
            "log_level": "LOG_LEVEL",
        }
        for field, var in optional.items():
            if env.get(var):
                values[field] = env[var]
        for field, var in (
            ("accept_media", "ACCEPT_MEDIA"),
            ("typing_indicator", "TYPING_INDICATOR"),
        ):
            if env.get(var):
                values[field] = env[var].strip().lower() in _TRUE_VALUES

        config = cls.model_validate(values)
        if strict:
            missing = config.missing_settings()
            if missing:
                raise ConfigError(missing)
        return config

    def missing_settings(self) -> list[str]:
        """Environment variable names of required settings that are blank."""
        return [
            var for field, var in REQUIRED_SETTINGS.items()
            if not getattr(self, field)
        ]
