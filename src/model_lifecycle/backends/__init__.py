"""
Remote Training Service Abstraction Layer

This package provides a unified interface for the remote services that
train and host classifier and ranker instances, and for the search
clusters rankers score against.

All backends implement the RemoteResourceBackend interface and return
normalised Instance records.
"""

from .base import (
    BaseInstanceBackend,
    ClassifierBackend,
    ClusterBackend,
    Instance,
    InstanceStatus,
    RankerBackend,
    RemoteResourceBackend,
    TrainingJob,
)
from .classifier import HTTPClassifierBackend
from .cluster import HTTPClusterBackend
from .ranker import HTTPRankerBackend
from .factory import BackendFactory

__all__ = [
    "BaseInstanceBackend",
    "ClassifierBackend",
    "ClusterBackend",
    "RemoteResourceBackend",
    "RankerBackend",
    "Instance",
    "InstanceStatus",
    "TrainingJob",
    "HTTPClassifierBackend",
    "HTTPRankerBackend",
    "HTTPClusterBackend",
    "BackendFactory",
]
