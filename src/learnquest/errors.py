"""Domain error taxonomy.

HTTP mapping lives in ``learnquest.middleware.error_handler``:

- ``ValidationError``  -> 400, operation not attempted
- ``NotFoundError``    -> 404, no partial state change
- ``ConflictError``    -> 409, only surfaced once the single retry is spent
- ``UpstreamError``    -> 502, third-party service failed
- ``TelemetryError``   -> never surfaced; callers log and continue
"""

from __future__ import annotations


class LearnQuestError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LearnQuestError):
    """Missing or malformed input."""

    status_code = 400


class InvalidAmount(ValidationError):  # noqa: N818
    """Experience amount is not a positive integer."""


class NotFoundError(LearnQuestError):
    """A referenced user, topic, achievement or goal does not exist."""

    status_code = 404


class ConflictError(LearnQuestError):
    """Duplicate resource, or a concurrent update won the race."""

    status_code = 409


class UpstreamError(LearnQuestError):
    """An external service (e.g. the code-execution API) failed."""

    status_code = 502


class TelemetryError(LearnQuestError):
    """Best-effort audit write failed."""
