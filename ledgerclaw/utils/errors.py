"""
Error taxonomy shared by the pipeline, the inference gateway and connectors.
"""


class LedgerClawError(Exception):
    """Base class for all LedgerClaw errors."""


class ConfigurationError(LedgerClawError):
    """Invalid or incomplete configuration. Terminal, never retried."""


class InferenceError(LedgerClawError):
    """Inference call failed and must not be retried (bad request, auth)."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class RetryableInferenceError(InferenceError):
    """Rate limit, server error or request timeout."""


class ProviderUnavailableError(InferenceError):
    """No working inference provider could be reached."""


class CheckpointExpiredError(LedgerClawError):
    """The connector no longer accepts the stored sync checkpoint."""


class DeliveryError(LedgerClawError):
    """The delivery channel refused or failed to send the briefing."""


class ResponseParseError(LedgerClawError):
    """Model output could not be parsed into the expected structure."""
