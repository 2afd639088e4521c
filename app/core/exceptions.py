from typing import Any, Dict, List, Optional

class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )

class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED",
            details=details
        )

class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND"
        )

class InvalidStateError(AppException):
    """The appraisal's current status does not admit the requested operation."""
    def __init__(self, message: str, current_status: str, allowed_statuses: List[str]):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_STATE",
            details={"current_status": current_status, "allowed_statuses": allowed_statuses}
        )

class ValidationFailedError(AppException):
    def __init__(self, message: str = "Invalid payload", errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details={"errors": errors or []}
        )

class PreconditionFailedError(AppException):
    """A record the operation depends on is missing."""
    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=412,
            error_code="PRECONDITION_FAILED"
        )

class InvalidArgumentError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="INVALID_ARGUMENT",
            details=details
        )

class TransitionConflictError(AppException):
    """Another request changed the appraisal between our read and our write."""
    def __init__(self, message: str = "Appraisal was modified concurrently, retry the request"):
        super().__init__(
            message=message,
            status_code=409,
            error_code="TRANSITION_CONFLICT"
        )

class PersistenceError(AppException):
    def __init__(self, message: str = "Storage is currently unavailable"):
        super().__init__(
            message=message,
            status_code=503,
            error_code="PERSISTENCE_ERROR"
        )
