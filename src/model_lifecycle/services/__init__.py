"""
Business Logic Layer (Services)

This package contains the services that manage the lifecycle of remote
model instances. Services sit between the backend layer (remote training
service calls) and callers such as the CLI or a chat bot.

Services handle:
- Resolving the single current instance for a logical name
- Launching training jobs from explicit or stored training data
- Polling in-flight training to completion
- Pruning old instances beyond a retention limit
- Persisting the data each instance was trained with
- Provisioning the search cluster rankers score against

All services are backend-agnostic and work with any BaseInstanceBackend.
"""

from .cluster_manager import ClusterManager, ClusterProvisioner
from .instance_cache import InstanceCache
from .launcher import TrainingLauncher
from .lifecycle_manager import (
    ClassifierManager,
    LifecycleManager,
    RankerManager,
    build_manager,
)
from .monitor import TrainingMonitor
from .resolver import InstanceResolver
from .retention import RetentionManager
from .training_data_store import TrainingDataStore
from .training_rows import (
    DatabaseTrainingRowSource,
    RankerTrainingRowSource,
    StaticTrainingRowSource,
    TrainingRowSource,
)

__all__ = [
    "InstanceCache",
    "InstanceResolver",
    "TrainingLauncher",
    "TrainingMonitor",
    "RetentionManager",
    "LifecycleManager",
    "ClassifierManager",
    "RankerManager",
    "ClusterManager",
    "ClusterProvisioner",
    "build_manager",
    "TrainingDataStore",
    "TrainingRowSource",
    "DatabaseTrainingRowSource",
    "RankerTrainingRowSource",
    "StaticTrainingRowSource",
]
