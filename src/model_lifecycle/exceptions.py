"""
Exception hierarchy for the model lifecycle manager.

Every error raised by the lifecycle layer derives from ``LifecycleError`` so
callers can catch the whole family at once, while still telling apart the
cases that call for different handling (train now, wait, retry later).
"""

from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Base exception for all lifecycle-related errors."""

    default_error_code = "LIFECYCLE_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}'"
            f")"
        )


class ConfigurationError(LifecycleError, ValueError):
    """A required setting is missing or malformed."""

    default_error_code = "CONFIGURATION_ERROR"


class InstanceNotFoundError(LifecycleError):
    """No instance exists under the requested name."""

    default_error_code = "NOT_FOUND"


class InstanceNotAvailableError(LifecycleError):
    """Instances exist under the name but none is Available or Training."""

    default_error_code = "NOT_AVAILABLE"


class RemoteServiceError(LifecycleError):
    """Transport or server-side failure reported by the training service."""

    default_error_code = "REMOTE_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)
        self.status_code = status_code
        self.payload = payload
        if status_code is not None:
            self.details.setdefault("status_code", status_code)
        if payload is not None:
            self.details.setdefault("payload", payload)


class QueryError(RemoteServiceError):
    """A classify or rank request against an instance failed."""

    default_error_code = "QUERY_ERROR"


class TrainingLaunchError(LifecycleError):
    """The training service refused to create a new instance."""

    default_error_code = "TRAINING_LAUNCH_ERROR"

    def __init__(
        self,
        message: str,
        payload: Any = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code, details)
        self.payload = payload
        if payload is not None:
            self.details.setdefault("payload", payload)


class TrainingFailedError(LifecycleError):
    """Training ended in a status other than Available."""

    default_error_code = "TRAINING_FAILED"

    def __init__(self, instance_id: str, status: Any, description: Optional[str] = None):
        message = f"Training of instance {instance_id} ended with status {status}"
        if description:
            message = f"{message}: {description}"
        super().__init__(message, details={"instance_id": instance_id, "status": str(status)})
        self.instance_id = instance_id
        self.status = status


class TrainingTimeoutError(LifecycleError):
    """Training did not finish within the configured maximum wait."""

    default_error_code = "TRAINING_TIMEOUT"


class RetentionError(LifecycleError):
    """Deleting an old instance during pruning failed."""

    default_error_code = "RETENTION_ERROR"

    def __init__(
        self,
        message: str,
        instance_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.instance_id = instance_id
        if instance_id is not None:
            self.details.setdefault("instance_id", instance_id)


class TrainingDataNotFoundError(LifecycleError):
    """No stored training data exists for the requested instance."""

    default_error_code = "TRAINING_DATA_NOT_FOUND"


class ClusterSetupError(LifecycleError):
    """A search cluster could not be created, prepared or used."""

    default_error_code = "CLUSTER_SETUP_ERROR"
