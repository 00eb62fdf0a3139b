"""
Training Launcher - starts new training jobs on the remote service.

Training data is taken, in order of preference, from the data passed to
``start()``, from the manager's configured ``training_data`` (a blob, a
readable stream or a zero-argument callable), or from the configured
``TrainingRowSource`` encoded by the backend.
"""

import inspect
from typing import Any, Optional

from ..backends.base import BaseInstanceBackend, Instance, TrainingJob
from ..config import ManagerConfig, TrainingDataSource
from ..exceptions import RemoteServiceError, TrainingLaunchError
from ..utils.logging_config import get_logger
from .instance_cache import InstanceCache
from .training_data_store import TrainingDataStore
from .training_rows import TrainingRowSource

logger = get_logger(__name__)


def _as_text(blob: Any) -> str:
    """Materialise a blob or readable stream as text."""
    if hasattr(blob, "read"):
        blob = blob.read()
    if isinstance(blob, bytes):
        try:
            return blob.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TrainingLaunchError("Training data is not valid UTF-8") from e
    if isinstance(blob, str):
        return blob
    raise TrainingLaunchError(
        f"Unsupported training data type: {type(blob).__name__}"
    )


class TrainingLauncher:
    """Creates training jobs and records the data they were trained with."""

    def __init__(
        self,
        backend: BaseInstanceBackend,
        cache: InstanceCache,
        manager_config: ManagerConfig,
        store: Optional[TrainingDataStore] = None,
        row_source: Optional[TrainingRowSource] = None,
    ):
        """
        Args:
            backend: Remote training service backend
            cache: Cache of the owning manager
            manager_config: Instance name, language, save flag and default
                training data
            store: Where training data records are persisted (optional)
            row_source: Rows used when no explicit training data is given
        """
        self.backend = backend
        self.cache = cache
        self.config = manager_config
        self.store = store
        self.row_source = row_source

    async def start(
        self,
        name: Optional[str] = None,
        data_source: Optional[TrainingDataSource] = None,
    ) -> Instance:
        """
        Start training a new instance, unless one is already training here.

        Args:
            name: Logical name (defaults to the configured instance name)
            data_source: Explicit training data for this launch

        Returns:
            The newly created (Training) instance, or the one already in
            progress in this process

        Raises:
            TrainingLaunchError: No usable training data, or the service
                rejected the job
        """
        name = name or self.config.instance_name
        kind = self.backend.kind

        async with self.cache.launch_lock:
            if self.cache.in_progress is not None:
                logger.info(
                    "%s %s is already training; not starting another",
                    kind.capitalize(),
                    self.cache.in_progress.id,
                )
                return self.cache.in_progress

            data = await self._obtain_training_data(data_source)
            job = TrainingJob(
                name=name,
                data=data,
                language=self.config.language if kind == "classifier" else None,
            )

            try:
                instance = await self.backend.create_instance(job)
            except RemoteServiceError as e:
                logger.error("Error creating %s under [%s]: %s", kind, name, e)
                raise TrainingLaunchError(
                    f"Error creating {kind}.",
                    payload=e.payload if e.payload is not None else e.to_dict(),
                ) from e

            self.cache.in_progress = instance
            logger.info("Started training %s %s under [%s]", kind, instance.id, name)

        await self._save_training_data(instance, data)
        return instance

    async def _obtain_training_data(self, data_source: Optional[TrainingDataSource]) -> str:
        source = data_source if data_source is not None else self.config.training_data

        if source is not None:
            if callable(source):
                source = source()
                if inspect.isawaitable(source):
                    source = await source
            return _as_text(source)

        if self.row_source is None:
            raise TrainingLaunchError(
                f"No training data configured for {self.backend.kind} "
                f"[{self.config.instance_name}]"
            )

        rows = await self.row_source.get_training_rows()
        if not rows:
            raise TrainingLaunchError(
                f"Training row source returned no rows for {self.backend.kind} "
                f"[{self.config.instance_name}]"
            )

        try:
            return await self.backend.encode_training_rows(rows)
        except RemoteServiceError as e:
            logger.error("Error generating %s training data: %s", self.backend.kind, e)
            raise TrainingLaunchError(
                f"Error generating {self.backend.kind} training data.",
                payload=e.payload if e.payload is not None else e.to_dict(),
            ) from e

    async def _save_training_data(self, instance: Instance, data: str) -> None:
        if not self.config.save_training_data or self.store is None:
            return
        try:
            await self.store.save(instance, data)
        except Exception as e:  # noqa: BLE001 - persistence is best effort
            logger.error(
                "Error saving training data for %s %s: %s",
                instance.kind,
                instance.id,
                e,
                exc_info=True,
            )
