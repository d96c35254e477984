"""Domain exception taxonomy.

Services raise these; ``fitvibe.middleware.error_handler`` maps each one to an
HTTP status in a single place.
"""

from __future__ import annotations


class FitVibeError(Exception):
    """Base class for errors that carry an HTTP status."""

    status_code: int = 400

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class DomainValidationError(FitVibeError, ValueError):
    """Input that is well-formed but violates a business rule."""

    status_code = 400


class AuthenticationError(FitVibeError):
    status_code = 401


class PermissionDeniedError(FitVibeError):
    status_code = 403


class NotFoundError(FitVibeError):
    status_code = 404

    def __init__(self, resource: str, identifier: object = None) -> None:
        detail = f"{resource} not found" if identifier is None else f"{resource} {identifier} not found"
        super().__init__(detail)
        self.resource = resource


class ConflictError(FitVibeError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    """An activity session (or goal) was asked to move to a state it cannot reach."""

    def __init__(self, current: str, action: str, entity: str = "session") -> None:
        super().__init__(f"Cannot {action} a {entity} that is {current}")
        self.current = current
        self.action = action


class RateLimitedError(FitVibeError):
    status_code = 429

    def __init__(self, detail: str = "Too many requests", retry_after: int | None = None) -> None:
        super().__init__(detail)
        self.retry_after = retry_after
