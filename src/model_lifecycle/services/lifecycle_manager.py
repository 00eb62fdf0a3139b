"""
Lifecycle Manager - keeps one current classifier or ranker in sync with the
remote training service.

The manager composes the resolver, launcher, monitor and retention manager
behind a small async API. It is generic over ``BaseInstanceBackend``, so the
same class drives classifiers and rankers.

Usage:
    from model_lifecycle.services import build_manager

    async with build_manager("classifier") as manager:
        instance = await manager.train_if_needed()
        if instance.is_training:
            instance = await manager.monitor_training(instance.id)
        result = await manager.process("Where is my order?")
"""

import asyncio
from typing import Any, Dict, List, Optional, Union

from ..backends.base import BaseInstanceBackend, Instance, InstanceStatus, RankerBackend
from ..backends.factory import BackendFactory
from ..config import Config, ManagerConfig, TrainingDataSource, config as default_config
from ..db.connection import DatabaseConnection
from ..db.models import SOURCE_LEARNED
from ..exceptions import ClusterSetupError, ConfigurationError, LifecycleError
from ..utils.csv_utils import decode_rows, group_by_label
from ..utils.logging_config import get_logger
from .cluster_manager import ClusterManager
from .instance_cache import InstanceCache
from .launcher import TrainingLauncher
from .monitor import SleepFunc, TrainingMonitor
from .resolver import InstanceResolver, check_statuses, list_named_instances
from .retention import RetentionManager
from .training_data_store import TrainingDataStore
from .training_rows import (
    DatabaseTrainingRowSource,
    RankerTrainingRowSource,
    TrainingRowSource,
)

logger = get_logger(__name__)

# Sort rank used by list_instances(): Available first, then Training, then the rest.
_LIST_ORDER = {
    InstanceStatus.AVAILABLE: 0,
    InstanceStatus.TRAINING: 1,
}


class LifecycleManager:
    """
    Facade over the instance lifecycle for one logical instance name.

    The manager owns its ``InstanceCache``; it does not own instances or
    training data records, which other managers sharing the name (for
    example a restarted process) may change at any time.
    """

    def __init__(
        self,
        backend: BaseInstanceBackend,
        manager_config: ManagerConfig,
        store: Optional[TrainingDataStore] = None,
        row_source: Optional[TrainingRowSource] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Args:
            backend: Remote training service backend
            manager_config: Lifecycle settings (name, retention, polling, ...)
            store: Training data persistence (optional; required by
                ``get_instance_data``)
            row_source: Rows to train from when no explicit data is given
            sleep: Coroutine used between status polls
        """
        if backend.kind != manager_config.kind:
            raise ConfigurationError(
                f"Backend kind {backend.kind!r} does not match manager kind "
                f"{manager_config.kind!r}"
            )
        self.backend = backend
        self.config = manager_config
        self.store = store
        self.cache = InstanceCache()

        self.retention = RetentionManager(backend, store)
        self.launcher = TrainingLauncher(
            backend, self.cache, manager_config, store=store, row_source=row_source
        )
        self.resolver = InstanceResolver(backend, self.cache, self.launcher)
        self.monitor = TrainingMonitor(
            backend, self.cache, self.retention, manager_config, sleep=sleep
        )

        logger.info(
            "Initialized %s (backend=%s, name=%s, max_instances=%d)",
            type(self).__name__,
            backend.get_backend_name(),
            manager_config.instance_name,
            manager_config.max_instances,
        )

    @property
    def instance_name(self) -> str:
        return self.config.instance_name

    @property
    def kind(self) -> str:
        return self.backend.kind

    async def train(self, training_data: Optional[TrainingDataSource] = None) -> Instance:
        """
        Create a new instance and start training it, even if others exist by name.

        The new instance can't be used until training completes; follow up
        with ``monitor_training(instance.id)``.
        """
        return await self.launcher.start(self.instance_name, training_data)

    async def train_if_needed(self) -> Instance:
        """Return the most recent Available or Training instance, else start one."""
        return await self.resolver.resolve(self.instance_name, do_not_train=False)

    async def monitor_training(self, instance_id: str) -> Instance:
        """Poll until *instance_id* is Available, then prune old instances."""
        return await self.monitor.monitor(instance_id)

    async def status(self, instance_id: Optional[str] = None) -> Instance:
        """
        Fresh status of *instance_id*, or of the current instance when omitted.

        Raises:
            InstanceNotFoundError / InstanceNotAvailableError: No id given and
                nothing usable under the name
        """
        if instance_id is None:
            current = await self.resolver.resolve(self.instance_name, do_not_train=True)
            instance_id = current.id
        return await self.backend.get_status(instance_id)

    async def list_instances(self) -> List[Instance]:
        """
        Every instance under the name, status-checked.

        Sorted Available first, then Training, then any other status; newest
        first within each group.
        """
        candidates = await list_named_instances(self.backend, self.instance_name)
        checked = await check_statuses(self.backend, candidates)
        newest_first = sorted(checked, key=lambda i: i.created_at, reverse=True)
        return sorted(newest_first, key=lambda i: _LIST_ORDER.get(i.status, 2))

    async def current(self) -> Instance:
        """The current instance, never starting a training job."""
        return await self.resolver.resolve(self.instance_name, do_not_train=True)

    async def process(self, text: str) -> Union[Dict[str, Any], Instance]:
        """
        Classify or rank *text* with the current instance.

        If the current instance is still training it is returned as-is
        instead of a result. Any failure clears the cached instance so the
        next call resolves it again.
        """
        try:
            instance = await self.resolver.resolve(self.instance_name)
            logger.info("Using %s %s", self.kind, instance.id)
            if instance.is_training:
                return instance
            return await self.backend.query(instance, text)
        except LifecycleError:
            self.cache.invalidate()
            raise

    async def get_instance_data(self, instance_id: str) -> Dict[str, List[str]]:
        """
        Data used to train *instance_id*, grouped as ``{label: [texts]}``.

        Raises:
            TrainingDataNotFoundError: Nothing stored for the instance
        """
        if self.store is None:
            raise ConfigurationError("No training data store configured")
        logger.debug("Requested data used to train %s with Id=%s", self.kind, instance_id)
        record = await self.store.get(instance_id)
        return group_by_label(decode_rows(record.trained_data))

    async def close(self) -> None:
        await self.backend.close()

    async def __aenter__(self) -> "LifecycleManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class ClassifierManager(LifecycleManager):
    """Lifecycle manager for text classifiers."""

    async def classify(self, text: str) -> Union[Dict[str, Any], Instance]:
        """Classification of *text* by the latest available classifier."""
        return await self.process(text)

    def get_auto_approve(self) -> bool:
        return self.config.auto_approve

    def set_auto_approve(self, value: Any) -> bool:
        """Turn auto-approval of learned feedback on or off; non-bools turn it off."""
        self.config.auto_approve = value if isinstance(value, bool) else False
        logger.info("Auto-approve for [%s] set to %s", self.instance_name, self.config.auto_approve)
        return self.config.auto_approve

    async def record_feedback(
        self,
        text: str,
        feedback_type: str = SOURCE_LEARNED,
        selected_class: Optional[str] = None,
    ) -> int:
        """
        Store user feedback on a classification of *text*.

        ``learned`` feedback with a *selected_class* becomes a training
        example, approved immediately when auto-approve is on so the next
        database-sourced training run picks it up. ``negative_fb`` is kept
        for review only.

        Returns:
            ID of the stored example

        Raises:
            ConfigurationError: No training data store configured
            ValueError: Unknown feedback type, or learned feedback without a class
        """
        if self.store is None:
            raise ConfigurationError("No training data store configured")
        return await self.store.record_feedback(
            text,
            feedback_type,
            label=selected_class,
            kind=self.kind,
            auto_approve=self.config.auto_approve,
        )


class RankerManager(LifecycleManager):
    """
    Lifecycle manager for learning-to-rank models.

    Rankers score documents held in a search cluster. When a
    ``ClusterManager`` is attached, the current READY cluster is selected on
    the backend before ranking or extracting training features.
    """

    def __init__(
        self,
        backend: RankerBackend,
        manager_config: ManagerConfig,
        store: Optional[TrainingDataStore] = None,
        row_source: Optional[TrainingRowSource] = None,
        sleep: SleepFunc = asyncio.sleep,
        clusters: Optional[ClusterManager] = None,
    ):
        super().__init__(backend, manager_config, store=store, row_source=row_source, sleep=sleep)
        self.clusters = clusters

    def _require_clusters(self) -> ClusterManager:
        if self.clusters is None:
            raise ConfigurationError("No cluster manager configured for this ranker")
        return self.clusters

    def _select(self, cluster: Instance) -> Instance:
        if cluster.is_available:
            self.backend.use_cluster(cluster.id)
        return cluster

    async def _attach_cluster(self) -> None:
        if self.clusters is None:
            return
        cluster = await self.clusters.get_cluster()
        if not cluster.is_available:
            raise ClusterSetupError(
                f"Search cluster {cluster.id} is still initializing",
                details={"cluster_id": cluster.id, "status": str(cluster.status)},
            )
        self.backend.use_cluster(cluster.id)

    async def setup_cluster(self) -> Instance:
        """Provision a new search cluster and select it once READY."""
        return self._select(await self._require_clusters().setup_cluster())

    async def setup_cluster_if_needed(self) -> Instance:
        """Find or provision the search cluster; select it when READY."""
        return self._select(await self._require_clusters().setup_if_needed())

    async def monitor_cluster(self, cluster_id: str) -> Instance:
        """Wait for a search cluster to become READY, then select it."""
        return self._select(await self._require_clusters().monitor_cluster(cluster_id))

    async def cluster_status(self, cluster_id: Optional[str] = None) -> Instance:
        return await self._require_clusters().cluster_status(cluster_id)

    async def list_clusters(self) -> List[Instance]:
        return await self._require_clusters().list_clusters()

    async def delete_cluster(self) -> Instance:
        """Delete the current search cluster."""
        cluster = await self._require_clusters().delete_cluster()
        if self.backend.cluster_id == cluster.id:
            self.backend.cluster_id = None
        return cluster

    async def train(self, training_data: Optional[TrainingDataSource] = None) -> Instance:
        if training_data is None and self.config.training_data is None:
            await self._attach_cluster()
        return await super().train(training_data)

    async def train_if_needed(self) -> Instance:
        if self.config.training_data is None:
            await self._attach_cluster()
        return await super().train_if_needed()

    async def process(self, text: str) -> Union[Dict[str, Any], Instance]:
        await self._attach_cluster()
        return await super().process(text)

    async def rank(self, query: str) -> Union[Dict[str, Any], Instance]:
        """Documents ranked for *query* by the latest available ranker."""
        return await self.process(query)

    async def close(self) -> None:
        await super().close()
        if self.clusters is not None:
            await self.clusters.close()


def build_manager(
    kind: str,
    app_config: Optional[Config] = None,
    db: Optional[DatabaseConnection] = None,
    backend: Optional[BaseInstanceBackend] = None,
    clusters: Optional[ClusterManager] = None,
    **overrides: Any,
) -> LifecycleManager:
    """
    Wire a manager from application configuration.

    Args:
        kind: 'classifier' or 'ranker'
        app_config: Config to read from (defaults to the global one)
        db: Database holding training data and examples; created from
            ``DATABASE_URL`` when omitted
        backend: Explicit backend; built by ``BackendFactory`` when omitted
        clusters: Explicit cluster manager (ranker only); built from the
            ranker service settings when the backend is built here
        **overrides: ManagerConfig fields that win over the environment

    Returns:
        ClassifierManager or RankerManager
    """
    app_config = app_config or default_config
    kind = kind.lower()
    manager_config = app_config.get_manager_config(kind, **overrides)

    if db is None:
        db = DatabaseConnection(app_config.database.connection_string)
        db.init_db()

    factory = BackendFactory(app_config)
    build_clusters = backend is None and clusters is None
    if backend is None:
        backend = factory.create_from_config(
            kind, collection_name=manager_config.collection_name
        )

    if kind == "ranker":
        if build_clusters:
            clusters = ClusterManager(
                factory.create_cluster_backend(),
                app_config.get_cluster_config(collection_name=manager_config.collection_name),
            )
        return RankerManager(
            backend,
            manager_config,
            store=TrainingDataStore(db),
            row_source=RankerTrainingRowSource(db),
            clusters=clusters,
        )
    return ClassifierManager(
        backend,
        manager_config,
        store=TrainingDataStore(db),
        row_source=DatabaseTrainingRowSource(db),
    )
