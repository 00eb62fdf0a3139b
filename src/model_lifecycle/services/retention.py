"""
Retention Manager - keeps at most ``max_instances`` instances per name.

The oldest instances beyond the limit are deleted one at a time, each
deletion followed by a fresh listing, so a partial failure leaves a
consistent state that a later call finishes cleaning up.
"""

from typing import List, Optional

from ..backends.base import BaseInstanceBackend
from ..exceptions import RemoteServiceError, RetentionError
from ..utils.logging_config import get_logger
from .resolver import list_named_instances
from .training_data_store import TrainingDataStore

logger = get_logger(__name__)


class RetentionManager:
    """Deletes old instances remotely and retires their training data."""

    def __init__(
        self,
        backend: BaseInstanceBackend,
        store: Optional[TrainingDataStore] = None,
    ):
        self.backend = backend
        self.store = store

    async def prune(self, name: str, max_instances: int) -> List[str]:
        """
        Delete the oldest instances under *name* until at most *max_instances* remain.

        Returns:
            Ids of the deleted instances, oldest first

        Raises:
            RetentionError: Listing or a remote deletion failed, or the
                service still lists an instance after deleting it
        """
        kind = self.backend.kind
        deleted: List[str] = []

        while True:
            try:
                instances = await list_named_instances(self.backend, name)
            except RemoteServiceError as e:
                raise RetentionError(f"Error listing {kind}s under [{name}]") from e

            if len(instances) <= max_instances:
                if deleted:
                    logger.info(
                        "Pruned %d %s(s) under [%s]; %d remain",
                        len(deleted),
                        kind,
                        name,
                        len(instances),
                    )
                return deleted

            oldest = instances[-1]
            if oldest.id in deleted:
                raise RetentionError(
                    f"{kind.capitalize()} {oldest.id} is still listed after deletion",
                    instance_id=oldest.id,
                )

            logger.debug("Deleting %s %s", kind, oldest.id)
            try:
                await self.backend.delete_instance(oldest.id)
            except RemoteServiceError as e:
                logger.error("Error deleting %s %s: %s", kind, oldest.id, e)
                raise RetentionError(
                    f"Error deleting {kind} {oldest.id}", instance_id=oldest.id
                ) from e

            deleted.append(oldest.id)
            logger.info("Deleted %s %s", kind, oldest.id)
            await self._retire_training_data(oldest.id)

    async def _retire_training_data(self, instance_id: str) -> None:
        if self.store is None:
            return
        try:
            if await self.store.mark_deleted(instance_id):
                logger.info("Deleted DB %s training data for %s", self.backend.kind, instance_id)
        except Exception as e:  # noqa: BLE001 - persistence is best effort
            logger.warning(
                "Couldn't delete DB doc with %s data for %s: %s",
                self.backend.kind,
                instance_id,
                e,
                exc_info=True,
            )
