"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Each carries a stable ``code``
that the API layer maps onto an HTTP status.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class InternalException(ApplicationException):
    """Unexpected failure inside the pipeline."""


class RepositoryException(InternalException):
    """Persistence failure or broken storage invariant."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""

    code = "VALIDATION_ERROR"


class PermissionDeniedException(ApplicationException):
    """The acting user's role or tenant does not allow the operation."""

    code = "PERMISSION_DENIED"


class ConflictException(DomainException):
    """The operation conflicts with the current state of a resource."""

    code = "CONFLICT"


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    code = "NOT_FOUND"

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


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class UpstreamException(ApplicationException):
    """A source connector failed to deliver alerts."""

    code = "UPSTREAM_ERROR"

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)
