class AppError(Exception):
    """Base class for all application exceptions."""
    code = "APP_ERROR"

    def __init__(self, message: str, status_code: int = 500, details: dict = None, code: str | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if code is not None:
            self.code = code
        super().__init__(self.message)


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class BusinessRuleError(AppError):
    """Raised when a domain rule rejects the requested transition."""

    def __init__(self, code: str, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details, code=code)


class DuplicateRequestError(AppError):
    """Raised when an equivalent non-terminal request already exists."""
    code = "DUPLICATE_REQUEST"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class SchedulingConflictError(AppError):
    """Raised when a resource or teacher is already booked for the slot."""
    code = "SCHEDULE_CONFLICT"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)


class AccessDeniedError(AppError):
    """Raised when the caller does not own or is not assigned to the target."""
    code = "ACCESS_DENIED"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message, status_code=403, code=code)


class InvalidInputError(AppError):
    """Raised when a field required by the request type is missing."""
    code = "INVALID_INPUT"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)
