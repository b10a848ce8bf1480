from typing import Optional


class CareerLinkException(Exception):
    """Base exception for the application"""
    pass


class AuthenticationError(CareerLinkException):
    """Authentication related errors"""
    pass


class AuthorizationError(CareerLinkException):
    """Authorization related errors: caller is not an allowed party"""
    pass


class ValidationError(CareerLinkException):
    """Validation related errors"""
    pass


class NotFoundError(CareerLinkException):
    """Resource not found errors"""
    pass


class ConflictError(CareerLinkException):
    """Resource conflict errors

    ``blocking_id`` identifies the record that prevents the operation, when
    there is one (an existing live pair, or the candidate's active agent
    link); ``blocking_user_id`` names the person on the other side of it.
    """

    def __init__(
        self,
        message: str,
        blocking_id: Optional[object] = None,
        blocking_user_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.blocking_id = blocking_id
        self.blocking_user_id = blocking_user_id
