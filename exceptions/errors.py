"""
Custom exception classes for the application.

Row-level problems during an import (missing recipient, unresolved
locality, duplicates) are reported inside RowOutcome objects and never
raised. These exceptions cover request-level rejections and
infrastructure failures.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "TOO_MANY_ROWS")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# IMPORT REQUEST ERRORS
# ===================

class InvalidImportInputError(ValidationError):
    """Import request is missing rows or a usable mapping."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_INPUT",
            message=message,
            details=details
        )


class TooManyRowsError(ValidationError):
    """Import exceeds the per-run row ceiling."""

    def __init__(self, row_count: int, max_rows: int):
        super().__init__(
            code="TOO_MANY_ROWS",
            message=f"Maximum {max_rows} rows per import",
            details={"rows": row_count, "max_rows": max_rows}
        )


class MissingSenderError(ValidationError):
    """Commit called without a sender organization."""

    def __init__(self):
        super().__init__(
            code="MISSING_REMITENTE",
            message="remitente_org_id is required in defaults_chosen",
            details={"field": "remitente_org_id"}
        )


# ===================
# SPREADSHEET PARSER ERRORS
# ===================

class SpreadsheetParseError(ValidationError):
    """Uploaded spreadsheet could not be decoded."""

    def __init__(
        self,
        message: str,
        code: str = "INVALID_FILE",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            details=details
        )


# ===================
# RUN / TEMPLATE ERRORS
# ===================

class ImportRunNotFoundError(NotFoundError):
    """Import run expired or never existed."""

    def __init__(self, run_id: str):
        super().__init__(
            resource="Import run",
            identifier=run_id,
            code="IMPORT_RUN_NOT_FOUND"
        )


class ImportTemplateNotFoundError(NotFoundError):
    """Import template not found."""

    def __init__(self, template_id: str):
        super().__init__(
            resource="Import template",
            identifier=template_id,
            code="IMPORT_TEMPLATE_NOT_FOUND"
        )


# ===================
# COLLABORATOR ERRORS
# ===================

class CollaboratorTimeoutError(ExternalServiceError):
    """A collaborator call did not finish before its deadline."""

    def __init__(self, collaborator: str, timeout_seconds: float):
        super().__init__(
            service=collaborator,
            message=f"{collaborator} did not respond within {timeout_seconds}s",
            details={"timeout_seconds": timeout_seconds}
        )
