"""
Core Module
============

Shared core utilities and abstractions used across the application.
"""

from ticket_manager.core.exceptions import (
    ApplicationException,
    AttachmentStorageException,
    ConfigurationException,
    ConflictException,
    ContextNotInitializedException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)

__all__ = [
    "ApplicationException",
    "AttachmentStorageException",
    "ConfigurationException",
    "ConflictException",
    "ContextNotInitializedException",
    "RepositoryException",
    "ResourceNotFoundException",
    "ValidationException",
]
