"""Error taxonomy for the orchestration layer.

Only ``ClientError`` and ``AllProvidersFailed`` ever reach an HTTP caller as
distinct statuses. Timeouts and provider errors are retried and, during
fan-out, absorbed per model. ``JudgeFailure`` is converted into a fallback
selection by the judge selector.
"""


class ArbiterError(Exception):
    """Base class for all arbiter errors."""


class ConfigurationError(ArbiterError):
    """Raised at startup when required configuration (credentials) is missing."""


class ClientError(ArbiterError):
    """The caller sent an unusable request (e.g. a blank prompt)."""


class ModelTimeout(ArbiterError):
    """A backend call exceeded its deadline."""

    def __init__(self, model: str, timeout: float):
        super().__init__(f"{model} timed out after {timeout:g}s")
        self.model = model
        self.timeout = timeout


class ProviderError(ArbiterError):
    """An upstream returned a non-success status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BadResponse(ProviderError):
    """An upstream answered successfully but without the expected text payload."""


class AllProvidersFailed(ArbiterError):
    """Fan-out produced zero usable candidates."""


class JudgeFailure(ArbiterError):
    """The judge call failed or its reply could not be parsed."""
