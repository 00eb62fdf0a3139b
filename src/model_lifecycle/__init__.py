"""
Model Lifecycle - Core Package

Keeps exactly one "current" trained model instance (a classifier or a
ranker) in sync with a remote training service.

This package provides:
- Backend abstraction layer for remote training services
- Service layer for instance resolution, training, monitoring and retention
- Database layer for training data persistence
"""

__version__ = "0.1.0"

from .backends import Instance, InstanceStatus
from .exceptions import LifecycleError

# Explicitly import subpackages so model_lifecycle.db, model_lifecycle.services,
# etc. are available as attributes
from . import backends
from . import db
from . import services
from . import utils

__all__ = [
    "Instance",
    "InstanceStatus",
    "LifecycleError",
    "backends",
    "db",
    "services",
    "utils",
]
