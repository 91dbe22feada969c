class AppError(Exception):
    """Base class for all application exceptions."""

    code = "app_error"

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised before any write when a routine request is structurally invalid.

    ``details`` maps field names to messages so callers can render field-level errors.
    """

    code = "validation_error"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=422, details=details)


class NotFoundError(AppError):
    """Raised when a clear targets an assignment or group that no longer exists."""

    code = "not_found"

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with id {resource_id} not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class AtomicityFailure(AppError):
    """Raised when a multi-record write failed and was rolled back as a whole."""

    code = "atomicity_failure"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)


class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""

    code = "configuration_error"

    def __init__(self, message: str):
        super().__init__(message, status_code=500)
