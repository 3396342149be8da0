"""
Core Exceptions
================

Exception hierarchy for the ticket service.

Every error raised by the data-access layer derives from
``ApplicationException`` so the API layer can translate it into a status
code in a single place.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    status_code = 400


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConflictException(ApplicationException):
    """Raised when a write would violate a uniqueness rule."""

    status_code = 409


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ContextNotInitializedException(RepositoryException):
    """The database context has not been created yet."""

    status_code = 503

    def __init__(self, details: Optional[dict] = None):
        super().__init__("Failed to initialize the database context.", details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class AttachmentStorageException(ApplicationException):
    """Filesystem failure while reading or writing attachments."""
