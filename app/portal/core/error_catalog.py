from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    INVALID_TOKEN = ErrorDefinition("INVALID_TOKEN", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    USER_INACTIVE = ErrorDefinition(
        "USER_INACTIVE",
        "User is inactive",
        status.HTTP_403_FORBIDDEN,
    )
    PERMISSION_DENIED = ErrorDefinition(
        "PERMISSION_DENIED",
        "Permission denied",
        status.HTTP_403_FORBIDDEN,
    )
    PROTECTED_ROLE = ErrorDefinition(
        "PROTECTED_ROLE",
        "Protected roles cannot be modified",
        status.HTTP_403_FORBIDDEN,
    )
    ROLE_NOT_FOUND = ErrorDefinition(
        "ROLE_NOT_FOUND",
        "Role not found",
        status.HTTP_404_NOT_FOUND,
    )
    USER_NOT_FOUND = ErrorDefinition(
        "USER_NOT_FOUND",
        "User not found",
        status.HTTP_404_NOT_FOUND,
    )
    ASSIGNMENT_NOT_FOUND = ErrorDefinition(
        "ASSIGNMENT_NOT_FOUND",
        "Role assignment not found",
        status.HTTP_404_NOT_FOUND,
    )
    ROLE_IN_USE = ErrorDefinition(
        "ROLE_IN_USE",
        "Cannot delete role with active assignments. Remove assignments first.",
        status.HTTP_400_BAD_REQUEST,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)
