"""Voiceflow dialogue runtime client.

Sends one user utterance per call to the ``/state/user/{id}/interact``
endpoint and returns the ordered trace list. Transient failures are
retried with backoff; when every attempt fails a fixed fallback reply is
returned instead of raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from vfbridge.dialogue.traces import parse_traces
from vfbridge.errors import (
    MalformedResponseError,
    RetryExhaustedError,
    TransientNetworkError,
)
from vfbridge.models import RelayEvent, RelayEventType, TextTrace, Trace
from vfbridge.retry import retry_async

if TYPE_CHECKING:
    from vfbridge.audit.logger import RelayAuditLogger
    from vfbridge.config import BridgeConfig

logger = logging.getLogger(__name__)

FALLBACK_GREETING = (
    "Hi! I'm having trouble reaching my assistant right now. "
    "Please try again in a moment, or type \"help\" to see what I can do."
)

EXCLUDED_TRACE_TYPES = ["block", "debug", "flow"]


def fallback_traces() -> list[Trace]:
    return [TextTrace(message=FALLBACK_GREETING)]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransientNetworkError | MalformedResponseError)


class DialogueClient:
    """Talks to the Voiceflow general runtime on behalf of one bridge."""

    def __init__(
        self,
        config: BridgeConfig,
        audit_logger: RelayAuditLogger | None = None,
    ) -> None:
        self._api_key = config.voiceflow_api_key
        self._version_id = config.voiceflow_version_id
        self._base_url = config.voiceflow_runtime_url.rstrip("/")
        self._timeout = config.dialogue_timeout
        self._max_attempts = config.dialogue_max_attempts
        self._base_delay = config.retry_base_delay
        self._audit = audit_logger

    def build_request(self, utterance: str) -> dict[str, Any]:
        return {
            "action": {"type": "text", "payload": utterance},
            "config": {
                "tts": False,
                "stripSSML": True,
                "stopAll": True,
                "excludeTypes": list(EXCLUDED_TRACE_TYPES),
            },
        }

    async def interact(self, sender_id: str, utterance: str) -> list[Trace]:
        """Run one dialogue turn. Never raises for backend failures."""
        try:
            raw = await retry_async(
                lambda: self._post_interact(sender_id, utterance),
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
                retryable=_is_retryable,
                description=f"Voiceflow interact for {sender_id}",
            )
        except RetryExhaustedError as exc:
            logger.error(
                "Voiceflow unavailable for %s, sending fallback reply: %s",
                sender_id, exc.last_error,
            )
            if self._audit:
                self._audit.log(RelayEvent(
                    event_type=RelayEventType.DIALOGUE_FALLBACK,
                    sender_id=sender_id,
                    action="interact",
                    result="failure",
                    details={"attempts": exc.attempts, "error": str(exc.last_error)},
                ))
            return fallback_traces()

        traces = parse_traces(raw)
        logger.info("Voiceflow returned %d traces for %s", len(traces), sender_id)
        return traces

    async def _post_interact(self, sender_id: str, utterance: str) -> list[Any]:
        url = f"{self._base_url}/state/user/{sender_id}/interact"
        headers = {
            "Authorization": self._api_key,
            "Content-Type": "application/json",
            "versionID": self._version_id,
        }

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    url,
                    json=self.build_request(utterance),
                    headers=headers,
                    timeout=self._timeout,
                )
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"Voiceflow request failed: {exc!r}") from exc

        if resp.status_code >= 300:
            raise TransientNetworkError(
                f"Voiceflow returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponseError("Voiceflow response is not JSON") from exc
        if not isinstance(data, list):
            raise MalformedResponseError(
                f"Voiceflow response is {type(data).__name__}, expected a trace array",
            )
        return data
