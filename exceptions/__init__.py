"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Import requests
    InvalidImportInputError,
    TooManyRowsError,
    MissingSenderError,

    # Spreadsheet parser
    SpreadsheetParseError,

    # Runs / templates
    ImportRunNotFoundError,
    ImportTemplateNotFoundError,

    # Collaborators
    CollaboratorTimeoutError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Import requests
    "InvalidImportInputError",
    "TooManyRowsError",
    "MissingSenderError",

    # Spreadsheet parser
    "SpreadsheetParseError",

    # Runs / templates
    "ImportRunNotFoundError",
    "ImportTemplateNotFoundError",

    # Collaborators
    "CollaboratorTimeoutError",
]
