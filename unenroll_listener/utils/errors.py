"""Exception types shared across the listener."""
from typing import Optional


class ConfigurationError(RuntimeError):
    """Required settings are missing or unusable."""


class MalformedPayloadError(ValueError):
    """Webhook body could not be parsed into an event."""


class EnrollmentError(RuntimeError):
    """LearnWorlds answered an enrollment call with a non-success status."""

    def __init__(self, status_code: int, body: Optional[str] = ""):
        self.status_code = status_code
        self.body = body or ""
        super().__init__(f"LearnWorlds error: {status_code} - {self.body}")
