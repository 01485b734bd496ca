"""Domain-specific exceptions"""

from typing import Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Malformed or out-of-range input, or missing required remarks"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AuthorizationError(DomainException):
    """Actor role or data scope does not permit the requested action"""

    pass


class NotFoundError(DomainException):
    """Requested entity does not exist"""

    pass


class ConflictError(DomainException):
    """Application is mid-transition or changed underneath the caller"""

    pass


class InvalidTransitionError(ConflictError):
    """No transition exists for the action from the current status"""

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class ExternalGatewayError(DomainException):
    """Payment provider unreachable or returned a failure"""

    def __init__(self, message: str, gateway: Optional[str] = None):
        super().__init__(message)
        self.gateway = gateway


class FatalStoreError(DomainException):
    """Persistence layer unavailable; outcome of the write is unknown"""

    pass
