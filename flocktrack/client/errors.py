from __future__ import annotations

from typing import Optional


class ApiServiceError(Exception):
    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details


class AuthenticationError(ApiServiceError):
    def __init__(self, message: str = "Authentication failed - please log in again", details: Optional[str] = None):
        super().__init__(message, "AUTHENTICATION_FAILED", 401, details)


class NetworkError(ApiServiceError):
    def __init__(self, message: str = "Network request failed", status_code: int = 0, details: Optional[str] = None):
        super().__init__(message, "NETWORK_ERROR", status_code, details)


class ApiValidationError(ApiServiceError):
    def __init__(
        self,
        message: str = "Request validation failed",
        status_code: int = 400,
        field_errors: Optional[dict[str, str]] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message, "VALIDATION_ERROR", status_code, details)
        self.field_errors = field_errors or {}


class ServerError(ApiServiceError):
    def __init__(self, message: str = "Internal server error", status_code: int = 500, details: Optional[str] = None):
        super().__init__(message, "SERVER_ERROR", status_code, details)


ERROR_MESSAGES = {
    "AUTHENTICATION_FAILED": "Your session has expired. Please refresh to continue.",
    "NETWORK_ERROR": "Unable to connect to server. Please check your internet connection and try again.",
    "SERVER_ERROR": "Something went wrong on our end. Please try again shortly.",
}


def user_friendly_message(error: Exception) -> str:
    # Validation messages are already field-specific and meant for the user
    if isinstance(error, ApiValidationError):
        return error.message
    if isinstance(error, ApiServiceError):
        return ERROR_MESSAGES.get(error.code, error.message)
    return str(error) or "An unexpected error occurred"
