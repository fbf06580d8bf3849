"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from alert_triage.core.identity import Actor, SYSTEM_ACTOR_ID
from alert_triage.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    InternalException,
    ValidationException,
    PermissionDeniedException,
    ConflictException,
    ResourceNotFoundException,
    ConfigurationException,
    UpstreamException,
)

__all__ = [
    "Actor",
    "SYSTEM_ACTOR_ID",
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "InternalException",
    "ValidationException",
    "PermissionDeniedException",
    "ConflictException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "UpstreamException",
]
