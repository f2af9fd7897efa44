"""Error taxonomy for the recommendation pipeline.

Every error carries the HTTP status the API layer should answer with and
a message that is shown to the caller as-is.
"""

from __future__ import annotations


class PipelineError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(PipelineError):
    """Missing or malformed request input."""

    status_code = 400


class ConfigurationError(PipelineError):
    """A required setting (API key, credentials) is absent."""


class UpstreamFetchError(PipelineError):
    """A market-data source failed, or all of them did."""


class RateLimited(PipelineError):
    """The generative API kept throttling after every retry."""


class UpstreamError(PipelineError):
    """The generative API answered with a non rate-limit error."""


class MalformedResponse(PipelineError):
    """The generative API answered without any extractable text."""


class MalformedModelOutput(PipelineError):
    pass


class NoJsonFound(MalformedModelOutput):
    pass


class MalformedJson(MalformedModelOutput):
    pass


class SchemaViolation(MalformedModelOutput):
    def __init__(self, field: str, detail: str):
        super().__init__(f"Invalid {field} received from AI: {detail}")
        self.field = field


class CacheError(PipelineError):
    """The recommendation store could not be read or written."""


class DeadlineExceeded(PipelineError):
    pass
