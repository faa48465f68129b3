"""Typed errors raised across the consultation pipeline.

Routing and the orchestrator branch on these classes: transient generation
errors advance the fallback chain, everything else propagates.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tcmconsult.diagnostic.schema import ProcessingStep


class TcmConsultError(Exception):
    """Base class for all tcmconsult errors."""


class NoEligibleModelError(TcmConsultError):
    """No registered model satisfies the request's hard requirements."""

    def __init__(self, message: str, requirements: dict[str, Any] | None = None):
        super().__init__(message)
        self.requirements = requirements or {}


class GenerationError(TcmConsultError):
    """A generation backend call failed."""

    def __init__(self, message: str, model_id: str = ""):
        super().__init__(message)
        self.model_id = model_id


class GenerationTransientError(GenerationError):
    """Retryable failure: overload, quota, timeout, transport."""


class GenerationFatalError(GenerationError):
    """Non-retryable failure, or the whole fallback chain was exhausted."""

    def __init__(
        self,
        message: str,
        model_id: str = "",
        attempts: list[str] | None = None,
        retry_count: int = 0,
        elapsed_ms: float = 0.0,
    ):
        super().__init__(message, model_id=model_id)
        self.attempts = attempts or []
        self.retry_count = retry_count
        self.elapsed_ms = elapsed_ms


class CallerTimeoutError(TcmConsultError):
    """The caller's deadline elapsed. Never retried."""

    def __init__(self, message: str, steps: list[ProcessingStep] | None = None):
        super().__init__(message)
        self.steps = steps or []


class SafetyCheckInternalError(TcmConsultError):
    """A single safety checker failed internally."""

    def __init__(self, message: str, check: str = ""):
        super().__init__(message)
        self.check = check


class PipelineStageError(TcmConsultError):
    """A pipeline stage failed; carries the partial step trace."""

    def __init__(self, stage: str, steps: list[ProcessingStep], message: str = ""):
        super().__init__(message or f"Pipeline failed at stage {stage}")
        self.stage = stage
        self.steps = steps

    @property
    def classification(self) -> str:
        """Class name of the underlying cause, for user-facing reporting."""
        cause = self.__cause__
        return type(cause).__name__ if cause is not None else type(self).__name__


def classify_provider_error(err: BaseException) -> str:
    """Map a raw provider exception to a stable error code.

    Codes: API_KEY_LEAKED, API_KEY_INVALID, API_QUOTA_EXCEEDED,
    MODEL_NOT_FOUND, MODEL_OVERLOADED, TIMEOUT, UNKNOWN_ERROR.
    """
    err_str = str(err)
    lowered = err_str.lower()
    if "leaked" in lowered:
        return "API_KEY_LEAKED"
    if "API_KEY_INVALID" in err_str or "api key not valid" in lowered or "401" in err_str:
        return "API_KEY_INVALID"
    if "429" in err_str or "RESOURCE_EXHAUSTED" in err_str or "quota" in lowered:
        return "API_QUOTA_EXCEEDED"
    if "404" in err_str or "NOT_FOUND" in err_str:
        return "MODEL_NOT_FOUND"
    if (
        "503" in err_str
        or "UNAVAILABLE" in err_str
        or "Service Unavailable" in err_str
        or "high demand" in err_str
        or "overloaded" in lowered
    ):
        return "MODEL_OVERLOADED"
    if isinstance(err, TimeoutError) or "timed out" in lowered or "timeout" in lowered:
        return "TIMEOUT"
    return "UNKNOWN_ERROR"


FATAL_ERROR_CODES = frozenset({"API_KEY_LEAKED", "API_KEY_INVALID"})


def to_generation_error(err: Exception, model_id: str) -> GenerationError:
    """Wrap a provider exception in the matching typed generation error."""
    if isinstance(err, GenerationError):
        return err
    code = classify_provider_error(err)
    msg = f"{model_id}: {code}: {str(err)[:200]}"
    if code in FATAL_ERROR_CODES:
        return GenerationFatalError(msg, model_id=model_id)
    return GenerationTransientError(msg, model_id=model_id)
