"""
Error taxonomy for the Recipe Acquisition Pipeline.

Every error carries enough structure (code, message, suggestion, retryable
flag, HTTP status) for a caller to drive a recovery UI.
"""
from typing import Any, Dict, Optional


class RecipePipelineError(Exception):
    """Base class for all pipeline errors surfaced to callers."""

    code: str = "internal"
    status_code: int = 500
    retryable: bool = True
    allow_manual_edit: bool = False
    default_suggestion: Optional[str] = None

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        suggestion: Optional[str] = None,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        if status_code is not None:
            self.status_code = status_code
        self.suggestion = suggestion or self.default_suggestion

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API response."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "can_retry": self.retryable,
            "allow_manual_edit": self.allow_manual_edit,
            "suggestion": self.suggestion,
        }


# =========================================================================
# Network / fetch failures
# =========================================================================

class FetchError(RecipePipelineError):
    """Page could not be fetched (DNS, HTTP status, timeout, reset, bot wall)."""
    code = "fetch-failed"
    status_code = 502

    def __init__(self, message: str, http_status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.http_status = http_status


class InvalidUrlError(RecipePipelineError):
    code = "invalid-argument"
    status_code = 400
    retryable = False
    default_suggestion = "Check that the URL is correct and starts with http:// or https://"


# =========================================================================
# Extraction / validation failures
# =========================================================================

class RecipeValidationError(RecipePipelineError):
    """Extracted data cannot be promoted to a final recipe."""
    code = "invalid-recipe"
    status_code = 400
    retryable = False
    allow_manual_edit = True


class RecipeExtractionError(RecipePipelineError):
    """No strategy (scrapers or model) produced a usable recipe."""
    code = "not-found"
    status_code = 400
    retryable = False
    allow_manual_edit = True
    default_suggestion = (
        "Make sure the URL points to a recipe page with ingredients and "
        "instructions. You can also enter the recipe manually."
    )


class NotARecipeError(RecipeExtractionError):
    code = "not-recipe"


# =========================================================================
# Language model failures
# =========================================================================

class ModelResponseError(RecipePipelineError):
    """Model output was unparsable or had an invalid shape."""
    code = "model-response-invalid"
    status_code = 502


class ModelTimeoutError(RecipePipelineError):
    code = "deadline-exceeded"
    status_code = 504
    default_suggestion = "Try again in a few minutes"


class AIUnavailableError(RecipePipelineError):
    code = "failed-precondition"
    status_code = 503
    retryable = False


# =========================================================================
# Rate limiting
# =========================================================================

class RateLimitExceededError(RecipePipelineError):
    """Expected quota rejection, not a system failure."""
    code = "resource-exhausted"
    status_code = 429
    retryable = False

    def __init__(self, message: str, wait_minutes: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.wait_minutes = wait_minutes

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["wait_minutes"] = self.wait_minutes
        return data


class RateLimitContentionError(RecipePipelineError):
    """Concurrent writers kept invalidating the quota record."""
    code = "aborted"
    status_code = 503
    default_suggestion = "Please try again in a moment."
