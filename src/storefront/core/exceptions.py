from typing import Optional, Dict, Any, List
import traceback
import sys


GENERIC_CONNECTION_MESSAGE = "Connection error"


class BaseAPIException(Exception):
    def __init__(self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None):
        self.message = message  # User-facing message
        self.internal_message = internal_message or message  # Internal/debug message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__.replace('Error', '').upper()
        self.details = details or {}

        # Capture stack trace for debugging
        self.traceback = traceback.format_exc() if sys.exc_info()[0] else None

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationError(BaseAPIException):
    """Raised when input is rejected before any network call"""

    def __init__(
        self,
        message: str = "Validation failed",
        field_errors: Optional[List[Dict[str, str]]] = None
    ):
        details = {"field_errors": field_errors} if field_errors else {}
        super().__init__(message, 400, "VALIDATION_ERROR", details)


class CartError(BaseAPIException):
    """Raised when a remote cart call fails.

    ``http_status`` is the status of the failed backend response, or None
    when the request never got one (timeout, DNS, offline).
    """

    def __init__(
        self,
        message: str = GENERIC_CONNECTION_MESSAGE,
        http_status: Optional[int] = None,
        operation: Optional[str] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if http_status is not None:
            details["backend_status"] = http_status
        self.http_status = http_status
        super().__init__(message, 502, "CART_ERROR", details)


class SessionStateError(BaseAPIException):
    """Raised when an identity transition is not allowed"""

    def __init__(self, message: str = "Invalid session transition"):
        super().__init__(message, 409, "SESSION_STATE_ERROR")


class ExternalServiceError(BaseAPIException):
    """Raised when external service calls fail"""

    def __init__(
        self,
        service_name: str,
        message: str = GENERIC_CONNECTION_MESSAGE,
        http_status: Optional[int] = None
    ):
        details = {"service": service_name}
        if http_status is not None:
            details["backend_status"] = http_status
        self.service_name = service_name
        self.http_status = http_status
        super().__init__(message, 503, "EXTERNAL_SERVICE_ERROR", details)


class MalformedResponseError(ExternalServiceError):
    """Raised when a 2xx payload does not match any known response shape"""

    def __init__(self, service_name: str, message: str = "Unexpected response format"):
        super().__init__(service_name, message)
        self.error_code = "MALFORMED_RESPONSE"


class DatabaseError(BaseAPIException):
    """Raised when client storage operations fail"""

    def __init__(self, message: str = "Storage operation failed", operation: Optional[str] = None):
        # Don't expose internal storage details to users
        user_message = "An internal error occurred. Please try again later."
        details = {"operation": operation} if operation else {}
        super().__init__(
            user_message,
            500,
            "DATABASE_ERROR",
            details,
            internal_message=message  # Keep original message for logging
        )
