class ReplenishmentError(Exception):
    """Base exception for Picking Replenishment Scheduler errors."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the Picking Replenishment Scheduler"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        """String representation of the error."""
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class DatabaseError(ReplenishmentError):
    """Exception raised for database-related errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Database error"
        super().__init__(message, code, details)


class ValidationError(ReplenishmentError):
    """Exception raised for data validation errors."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Validation error"
        super().__init__(message, code, details)


class NotFoundError(ReplenishmentError):
    """Exception raised when a requested resource is not found."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Resource not found"
        super().__init__(message, code, details)


class SettingsUnavailable(ReplenishmentError):
    """Raised when a company's replenishment settings cannot be loaded."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Company settings unavailable"
        super().__init__(message, code, details)


class GatewayError(ReplenishmentError):
    """Exception raised for errors talking to the warehouse gateway."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Gateway error"
        super().__init__(message, code, details)


class GatewayFetchFailed(GatewayError):
    """Raised when the gateway cannot report stock for a branch."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Gateway stock fetch failed"
        super().__init__(message, code, details)


class GatewayDispatchFailed(GatewayError):
    """Raised when the gateway rejects or never receives a wave."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Gateway wave dispatch failed"
        super().__init__(message, code, details)


class PersistenceWriteFailed(DatabaseError):
    """Raised when a single row write fails."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Persistence write failed"
        super().__init__(message, code, details)


class WaveGenerationError(ReplenishmentError):
    """Exception raised when a wave cannot be built or stored."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Wave generation error"
        super().__init__(message, code, details)
