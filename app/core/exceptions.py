from __future__ import annotations

from typing import Any


class ApiError(Exception):
    def __init__(
        self,
        message: str,
        code: str,
        http_status: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.details = details or {}


class AuthError(ApiError):
    def __init__(self) -> None:
        super().__init__(
            message="Authentication failed",
            code="AUTH_FAILED",
            http_status=401,
        )


class InsufficientRoleError(ApiError):
    def __init__(self, role: str = "admin") -> None:
        super().__init__(
            message=f"Role '{role}' required",
            code="ROLE_REQUIRED",
            http_status=403,
        )


class MalformedInputError(ApiError):
    def __init__(self, message: str, code: str = "SCHEMA_INVALID") -> None:
        super().__init__(message=message, code=code, http_status=400)


class NotFoundError(ApiError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_FOUND", http_status=404)


class ValidationFailedError(ApiError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_FAILED", http_status=422, details=details)


class ImportRolledBackError(ApiError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="IMPORT_ROLLED_BACK", http_status=409, details=details)


class BackupError(ApiError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="BACKUP_FAILED", http_status=500, details=details)


class RollbackError(ApiError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="ROLLBACK_FAILED", http_status=500, details=details)


class ExportFailedError(ApiError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="EXPORT_FAILED", http_status=500, details=details)


class AuditUnavailableError(ApiError):
    def __init__(self) -> None:
        super().__init__(
            message="Operation ledger unavailable",
            code="AUDIT_UNAVAILABLE",
            http_status=503,
        )


class InternalError(ApiError):
    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message=message, code="INTERNAL_ERROR", http_status=500)
