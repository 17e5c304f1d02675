"""
Platform-wide exception hierarchy.

Services raise these types; ``workhub.utils.errors.register_error_handlers``
maps them to HTTP once for every blueprint.

Usage:
    from workhub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("Title is required", details={"title": "required"})
"""


class UnauthorizedError(Exception):
    """The caller is not authenticated (missing, invalid or unknown identity).

    Maps to HTTP 401.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """The caller is authenticated but the resolved role lacks the capability.

    Maps to HTTP 403.

    Args:
        message: Human-readable explanation.
        capability: Name of the capability that was checked, for logs.
    """

    def __init__(self, message: str = "Permission denied", capability: str | None = None) -> None:
        self.capability = capability
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Args:
        resource: Human-readable entity name (e.g. "Workspace", "Task").
        resource_id: The key that was looked up. Included in logs.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when the operation collides with current state.

    Covers duplicates (already a member) and state conflicts (sole owner
    removal, lost compare-and-swap). Maps to HTTP 409.
    """

    code = "ERR_CONFLICT_STATE"

    def __init__(self, message: str, resource: str | None = None) -> None:
        self.resource = resource
        super().__init__(message)


class DuplicateError(ConflictError):
    """A uniqueness rule would be violated."""

    code = "ERR_CONFLICT_DUPLICATE"


class AlreadyConsumedError(ConflictError):
    """The invite has already left ``pending`` (accepted, declined or expired)."""

    def __init__(self, status: str | None = None) -> None:
        self.status = status
        msg = "Invite has already been used"
        if status:
            msg += f" (status={status})"
        super().__init__(msg, resource="Invite")


class ExpiredError(Exception):
    """The invite's expiry has passed. Maps to HTTP 410."""

    def __init__(self, message: str = "Invite has expired") -> None:
        super().__init__(message)
