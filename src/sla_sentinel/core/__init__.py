"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from sla_sentinel.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ExternalServiceException,
    PredictorUnavailable,
    PredictorRejected,
    MailDeliveryException,
    InsufficientTrainingData,
    InvalidTimeRepresentation,
    PersistenceFailure,
    DuplicateAlert,
    DependencyUnavailable,
    EvaluationTimeout,
    SyncAlreadyRunning,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ExternalServiceException",
    "PredictorUnavailable",
    "PredictorRejected",
    "MailDeliveryException",
    "InsufficientTrainingData",
    "InvalidTimeRepresentation",
    "PersistenceFailure",
    "DuplicateAlert",
    "DependencyUnavailable",
    "EvaluationTimeout",
    "SyncAlreadyRunning",
]
