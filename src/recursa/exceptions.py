# src/recursa/exceptions.py
"""Exception hierarchy for Recursa.

Mandatory stages (chunking, relevance scoring, drill-down, synthesis) let
these propagate to the caller. Optional stages (knowledge graph, scratchpad,
fact verification) wrap their failures in OptionalStageFailure, which the
pipeline logs and records in the answer metadata instead of raising.
"""

from __future__ import annotations


class RecursaError(Exception):
    """Base class for all Recursa errors."""


class ConfigurationError(RecursaError):
    """Invalid configuration. Raised before any run starts.

    Attributes:
        suggestion: Optional hint on how to fix the configuration.
    """

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion


class EmptyDocumentError(RecursaError):
    """Raised when a document has no text to chunk."""


class GatewayError(RecursaError):
    """Base class for failures of a language-model call."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderUnavailableError(GatewayError):
    """The provider is not configured or cannot be reached. Triggers fallback."""


class TransientCallError(GatewayError):
    """Rate limit, timeout or temporary server/network failure. Retryable."""


class FatalCallError(GatewayError):
    """Authentication failure or malformed request. Never retried."""


class SchemaValidationError(GatewayError):
    """Structured output did not match the schema after a reinforced retry.

    Attributes:
        schema_name: Name of the pydantic schema that failed validation.
        raw_output: The last raw text returned by the provider.
    """

    def __init__(
        self,
        message: str,
        schema_name: str,
        raw_output: str = "",
        provider: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider)
        self.schema_name = schema_name
        self.raw_output = raw_output


class GatewayExhaustedError(GatewayError):
    """Every attempt (and the fallback, if any) failed.

    Attributes:
        attempts: Total number of provider attempts made.
        last_error: The error of the final attempt.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: BaseException | None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider)
        self.attempts = attempts
        self.last_error = last_error


class OptionalStageFailure(RecursaError):
    """An optional stage failed; the run continues with degraded confidence.

    Attributes:
        stage: Name of the stage ("knowledge_graph", "scratchpad", "fact_verification").
        cause: The underlying exception.
    """

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"Optional stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause
