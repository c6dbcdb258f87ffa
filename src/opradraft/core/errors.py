"""Error taxonomy shared by the pipeline, the API, and the CLI.

Content that is found but fails confidence checks is NOT an error: discovery
reports it as ``DiscoveryResult(success=False, reasoning=[...])``.
"""


class OpraDraftError(Exception):
    """Base class for all domain errors. ``error_type`` is machine-readable."""

    error_type = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(OpraDraftError):
    """A referenced municipality, ordinance, or request does not exist."""

    error_type = "not_found"


class PreconditionFailedError(OpraDraftError):
    """The operation is not allowed in the current state (e.g. analyze before process)."""

    error_type = "precondition_failed"


class ProviderError(OpraDraftError):
    """A search, LLM, embedding, or storage backend failed after retries."""

    error_type = "provider_error"

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class MalformedInputError(OpraDraftError):
    """Input failed validation before any side effect was performed."""

    error_type = "malformed_input"
