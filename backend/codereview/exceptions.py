"""Exception hierarchy for the review pipeline."""


class ReviewError(Exception):
    """Base class for all errors raised by the code reviewer."""


class AnalysisValidationError(ReviewError):
    """The analysis request is missing data or points at something unusable."""


class ContentExtractionError(ReviewError):
    """The diff or file content could not be produced."""


class DocumentLoadError(ReviewError):
    """A single reference document could not be read."""


class AIProviderError(ReviewError):
    """A call to the AI provider failed.

    ``retryable`` tells the orchestrator whether trying the fallback model
    can help.
    """

    retryable = True

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AITimeoutError(AIProviderError):
    """No response within the time budget."""


class AIAuthError(AIProviderError):
    """Missing, invalid or unauthorized API key."""

    retryable = False


class AITransportError(AIProviderError):
    """Network failure or unexpected HTTP status."""


class AIMalformedResponseError(AIProviderError):
    """The provider answered with a payload we cannot read."""
