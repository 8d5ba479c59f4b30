"""
Core Exceptions
===============

Every error the service raises on purpose derives from ApplicationException,
which carries a human message and a details dict for structured logs and
error bodies. The HTTP status for each family lives in
``shared/api/middleware.py``.

Families:
- DomainException: a value violates a domain rule
- ValidationException: caller input is unusable (HTTP 400)
- RepositoryException: the store failed or refused a write
- ExternalServiceException: the predictor or the mail server failed
- SyncAlreadyRunning: an alert sync overlapped a running one (HTTP 409)
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Root of the service's own errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """A domain rule was violated."""


class RepositoryException(ApplicationException):
    """Data access failed."""


class ValidationException(ApplicationException):
    """Input rejected before any work was done."""


class ResourceNotFoundException(ApplicationException):
    """Lookup by id found nothing, e.g. ``ResourceNotFoundException("Alert", 7)``."""

    def __init__(self, resource_type: str, resource_id: Optional[Any] = None, details: Optional[dict] = None):
        self.resource_type = resource_type
        self.resource_id = resource_id
        label = resource_type if resource_id is None else f"{resource_type} {resource_id}"
        super().__init__(f"{label} not found", details or {"resource": resource_type, "id": resource_id})


class ExternalServiceException(ApplicationException):
    """A remote collaborator failed; the message is prefixed with its name."""

    def __init__(self, service_name: str, message: str, details: Optional[dict] = None):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class PredictorUnavailable(ExternalServiceException):
    """Predictor could not be reached (network error, timeout, open circuit)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Predictor", message, details)


class PredictorRejected(ExternalServiceException):
    """Predictor answered with a non-2xx status or an unreadable body."""

    def __init__(
        self,
        status_code: int,
        body: str,
        details: Optional[dict] = None
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(
            "Predictor",
            f"rejected with status {status_code}",
            details or {"status_code": status_code, "body": body[:500]}
        )


class MailDeliveryException(ExternalServiceException):
    """The SMTP server refused the message or could not be reached."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Mail Transport", message, details)


class InsufficientTrainingData(ValidationException):
    """Not enough labeled history to retrain the predictor."""

    def __init__(self, sample_count: int, minimum: int):
        self.sample_count = sample_count
        self.minimum = minimum
        super().__init__(
            f"At least {minimum} labeled closed requests are required, found {sample_count}",
            {"sample_count": sample_count, "minimum": minimum}
        )


class InvalidTimeRepresentation(DomainException):
    """A time conversion received a value of the wrong kind."""


class PersistenceFailure(RepositoryException):
    """A single persistence operation failed."""


class DuplicateAlert(RepositoryException):
    """An open alert already exists for the same request and alert type."""


class DependencyUnavailable(ApplicationException):
    """A dependency required for a whole cycle could not be used."""

    def __init__(
        self,
        dependency: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.dependency = dependency
        super().__init__(f"{dependency} unavailable: {message}", details)


class EvaluationTimeout(ApplicationException):
    """An evaluation cycle exceeded its deadline."""


class SyncAlreadyRunning(ApplicationException):
    """An alert sync was requested while another one is still running."""

    def __init__(self, source: str):
        self.source = source
        super().__init__("An alert sync is already running", {"source": source})
