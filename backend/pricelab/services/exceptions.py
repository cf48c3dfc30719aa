"""Error types raised by the learning services.

Each error carries a stable ``code`` and the HTTP status the API layer
answers with. Routes never build HTTPExceptions for these themselves; the
handler registered in ``pricelab.main`` converts them.

Usage:
    from pricelab.services.exceptions import NotFound

    if not experiment:
        raise NotFound("Experiment not found", details={"experiment_id": experiment_id})
"""
from contextlib import contextmanager
from typing import Any, Dict, Optional


class LearningError(Exception):
    """Base class for all errors surfaced by the learning services."""

    code = "learning_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidArgument(LearningError):
    """Request is well-formed but semantically unusable."""

    code = "invalid_argument"
    status_code = 400


class NotFound(LearningError):
    """Experiment, listing or job is absent or not owned by the caller."""

    code = "not_found"
    status_code = 404


class FailedPrecondition(LearningError):
    """Operation is not allowed in the resource's current state."""

    code = "failed_precondition"
    status_code = 409


class TooManyTrainingJobs(FailedPrecondition):
    """User already has the maximum number of training jobs running."""

    status_code = 429


class InternalError(LearningError):
    """Unexpected persistence or computation failure."""

    code = "internal"
    status_code = 500


class TrainingInterrupted(Exception):
    """A training run stopped early because it was cancelled or ran out of time."""

    def __init__(self, reason: str, episodes_completed: int = 0):
        super().__init__(f"Training {reason} after {episodes_completed} episodes")
        self.reason = reason
        self.episodes_completed = episodes_completed


@contextmanager
def internal_errors(logger, event: str, **context):
    """
    Re-raise unexpected failures as InternalError after logging them.

    LearningError subclasses pass through untouched.

    Usage:
        with internal_errors(logger, "experiment_start_failed", experiment_id=experiment_id):
            ...
    """
    try:
        yield
    except LearningError:
        raise
    except Exception as e:
        logger.error(event, error=str(e), error_type=type(e).__name__, **context)
        raise InternalError(
            "Unexpected failure while processing the request",
            details={key: str(value) for key, value in context.items()}
        ) from e
