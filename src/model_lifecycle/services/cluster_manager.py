"""
Cluster Manager - provisions and tracks the search cluster that rankers
score against.

A cluster is resolved the same way as a model instance: the cached READY
cluster, else the newest READY cluster under the configured name, else the
newest one still initializing, else a newly provisioned one. Provisioning
creates the cluster, waits for it to become READY, then uploads the search
configuration, creates the collection and indexes the documents.

Usage:
    clusters = ClusterManager(HTTPClusterBackend(backend_config), config.get_cluster_config())
    cluster = await clusters.setup_if_needed()
    if cluster.is_training:
        cluster = await clusters.monitor_cluster(cluster.id)
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

from ..backends.base import ClusterBackend, Instance
from ..config import ClusterConfig
from ..exceptions import ClusterSetupError, RemoteServiceError
from ..utils.logging_config import get_logger
from .instance_cache import InstanceCache
from .monitor import SleepFunc, wait_while_training
from .resolver import InstanceResolver, list_named_instances

logger = get_logger(__name__)


def _load_documents(raw: str) -> List[Dict[str, Any]]:
    try:
        documents = json.loads(raw)
    except ValueError as e:
        raise ClusterSetupError(f"Documents file is not valid JSON: {e}") from e
    if not isinstance(documents, list) or not all(isinstance(d, dict) for d in documents):
        raise ClusterSetupError("Documents file must hold a JSON array of objects")
    return documents


def _setup_error(message: str, cluster: Instance, cause: RemoteServiceError) -> ClusterSetupError:
    logger.error("%s on cluster %s: %s", message, cluster.id, cause)
    return ClusterSetupError(f"{message}.", details={"cluster_id": cluster.id, "cause": str(cause)})


class ClusterProvisioner:
    """Creates a cluster and prepares its collection for ranking."""

    def __init__(
        self,
        backend: ClusterBackend,
        cache: InstanceCache,
        cluster_config: ClusterConfig,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.backend = backend
        self.cache = cache
        self.config = cluster_config
        self._sleep = sleep

    async def start(self, name: Optional[str] = None) -> Instance:
        """
        Provision a new cluster, unless one is already initializing here.

        Returns:
            The READY, fully prepared cluster, or the cluster already being
            initialized by this process

        Raises:
            ClusterSetupError: Missing inputs, or any provisioning step failed
            TrainingTimeoutError: The cluster did not become READY in time
        """
        name = name or self.config.cluster_name

        async with self.cache.launch_lock:
            if self.cache.in_progress is not None:
                logger.info(
                    "Cluster %s is already initializing; not creating another",
                    self.cache.in_progress.id,
                )
                return self.cache.in_progress

            config_zip, documents = self._read_inputs()
            try:
                cluster = await self.backend.create_cluster(name, self.config.cluster_size)
            except RemoteServiceError as e:
                logger.error("Error creating search cluster under [%s]: %s", name, e)
                raise ClusterSetupError(
                    "Error creating search cluster.", details={"name": name, "cause": str(e)}
                ) from e
            self.cache.in_progress = cluster
            logger.info("Created search cluster %s under [%s]", cluster.id, name)

        ready = await self.wait_until_ready(cluster.id)
        try:
            await self._prepare(ready, config_zip, documents)
        except ClusterSetupError:
            self.cache.invalidate()
            raise
        return ready

    async def wait_until_ready(self, cluster_id: str) -> Instance:
        """
        Poll *cluster_id* until it leaves NOT_AVAILABLE.

        Raises:
            ClusterSetupError: The cluster settled in a status other than READY
            TrainingTimeoutError: ``max_wait_seconds`` elapsed first
        """
        cluster = await wait_while_training(
            self.backend,
            cluster_id,
            self.config.poll_interval_seconds,
            self.config.max_wait_seconds,
            sleep=self._sleep,
        )
        if not cluster.is_available:
            if self.cache.in_progress is not None and self.cache.in_progress.id == cluster.id:
                self.cache.in_progress = None
            raise ClusterSetupError(
                f"Search cluster {cluster.id} ended with status {cluster.status}",
                details={"cluster_id": cluster.id, "status": str(cluster.status)},
            )
        self.cache.mark_available(cluster)
        return cluster

    def _read_inputs(self) -> Tuple[bytes, List[Dict[str, Any]]]:
        if self.config.config_zip_path is None:
            raise ClusterSetupError("No search configuration zip configured (RANKER_CONFIG_ZIP)")
        if self.config.documents_path is None:
            raise ClusterSetupError("failed to upload training documents: no documents found.")
        try:
            config_zip = self.config.config_zip_path.read_bytes()
            raw_documents = self.config.documents_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ClusterSetupError(f"Error reading cluster inputs: {e}") from e
        return config_zip, _load_documents(raw_documents)

    async def _prepare(
        self, cluster: Instance, config_zip: bytes, documents: List[Dict[str, Any]]
    ) -> None:
        config_name = self.config.config_name
        collection = self.config.collection_name
        try:
            await self.backend.upload_config(cluster.id, config_name, config_zip)
        except RemoteServiceError as e:
            raise _setup_error("Error uploading search configuration", cluster, e) from e
        try:
            await self.backend.create_collection(cluster.id, config_name, collection)
        except RemoteServiceError as e:
            raise _setup_error("Error creating collection", cluster, e) from e
        try:
            await self.backend.add_documents(cluster.id, collection, documents)
        except RemoteServiceError as e:
            raise _setup_error("Error uploading documents", cluster, e) from e
        logger.info(
            "Indexed %d documents into %s on cluster %s", len(documents), collection, cluster.id
        )


class ClusterManager:
    """Facade over the search cluster lifecycle for one cluster name."""

    def __init__(
        self,
        backend: ClusterBackend,
        cluster_config: ClusterConfig,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.backend = backend
        self.config = cluster_config
        self.cache = InstanceCache()
        self.provisioner = ClusterProvisioner(backend, self.cache, cluster_config, sleep=sleep)
        self.resolver = InstanceResolver(backend, self.cache, self.provisioner)

    @property
    def cluster_name(self) -> str:
        return self.config.cluster_name

    async def setup_cluster(self) -> Instance:
        """Provision a new cluster even if others exist under the name."""
        return await self.provisioner.start(self.cluster_name)

    async def setup_if_needed(self) -> Instance:
        """Return the newest READY or initializing cluster, else provision one."""
        return await self.resolver.resolve(self.cluster_name, do_not_train=False)

    async def get_cluster(self) -> Instance:
        """The current cluster, never provisioning one."""
        return await self.resolver.resolve(self.cluster_name, do_not_train=True)

    async def monitor_cluster(self, cluster_id: str) -> Instance:
        """Wait for *cluster_id* to become READY."""
        return await self.provisioner.wait_until_ready(cluster_id)

    async def cluster_status(self, cluster_id: Optional[str] = None) -> Instance:
        """Fresh status of *cluster_id*, or of the current cluster when omitted."""
        if cluster_id is None:
            cluster_id = (await self.get_cluster()).id
        return await self.backend.get_status(cluster_id)

    async def list_clusters(self) -> List[Instance]:
        """Clusters under the name, newest first, as listed by the service."""
        return await list_named_instances(self.backend, self.cluster_name)

    async def delete_cluster(self) -> Instance:
        """
        Delete the current cluster (READY, else initializing).

        Raises:
            InstanceNotFoundError / InstanceNotAvailableError: Nothing to delete
        """
        cluster = await self.get_cluster()
        await self.backend.delete_instance(cluster.id)
        self.cache.invalidate()
        self.cache.in_progress = None
        logger.info("Deleted search cluster %s under [%s]", cluster.id, self.cluster_name)
        return cluster

    async def close(self) -> None:
        await self.backend.close()
