"""Exception taxonomy for the relay pipeline."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised at startup when required settings are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required settings: {', '.join(missing)}")


class SkippedInputError(Exception):
    """Inbound event produces no utterance; the caller skips it."""


class UnsupportedInputError(SkippedInputError):
    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Unsupported inbound message type: {kind}")


class EmptyInputError(SkippedInputError):
    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Empty {kind} message")


class TransientNetworkError(Exception):
    """Upstream unreachable, timed out, rate limited or returned 5xx."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(Exception):
    """Dialogue backend answered with something other than a trace array."""


class DeliveryError(Exception):
    """Outbound send rejected by the platform."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RetryExhaustedError(Exception):
    """All attempts of a retried operation failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
