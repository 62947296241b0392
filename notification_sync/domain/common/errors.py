"""Domain error types."""
from typing import Optional


class DomainError(Exception):
    """Base domain error."""
    pass


class NotFoundError(DomainError):
    """Resource not found."""
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} with id {identifier} not found")


class ValidationError(DomainError):
    """Request rejected before any I/O (e.g. empty batch)."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotInitializedError(DomainError):
    """Operation attempted before the notification manager is ready."""
    def __init__(self, component: str = "NotificationManager"):
        self.component = component
        super().__init__(f"{component} not initialized. Call initialize() first.")


class PermissionDeniedError(DomainError):
    """Push permission refused by the user. Non-fatal: token operations are skipped."""
    def __init__(self, status: str = "denied"):
        self.status = status
        super().__init__(f"Notification permission not granted ({status})")


class RemoteUnavailableError(DomainError):
    """Store or push provider unreachable; last known good state is retained."""
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{detail}")
