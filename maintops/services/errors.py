"""
Error taxonomy for the maintenance operations core.

Authorization and not-found errors are never retried. ConflictError is raised
for write-write conflicts and retried internally by ``run_atomic`` before it
ever reaches a caller.
"""


class CoreError(Exception):
    """Base class for every error the core raises on purpose."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class UnauthorizedError(CoreError):
    """No valid identity was presented."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ForbiddenError(CoreError):
    """The identity is valid but may not perform the action."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(CoreError):
    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class UnknownKeyError(CoreError):
    """The allocator was asked for a counter that must be provisioned first."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No counter provisioned for key {key!r}")


class ConflictError(CoreError):
    """A concurrent writer changed the data this unit of work read."""


class InvalidTransitionError(CoreError):
    def __init__(self, current_status, new_status):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Cannot move a work order from {current_status.value} to {new_status.value}"
        )
