"""
Training Data Store - async adapter over the training data repository.

The lifecycle services are coroutines; SQLAlchemy sessions are synchronous.
Each store call opens its own ``session_scope`` inside the event loop's
default executor so database I/O never blocks the loop.
"""

import asyncio
from typing import Callable, Optional, TypeVar

from ..backends.base import Instance
from ..db.connection import DatabaseConnection
from ..db.models import TrainingDataRecord
from ..db.training_data_repository import TrainingDataRepository
from ..exceptions import TrainingDataNotFoundError
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class TrainingDataStore:
    """Persists and retrieves the payload each instance was trained with."""

    def __init__(self, db: DatabaseConnection):
        """
        Args:
            db: Connection whose tables have been created (``db.init_db()``).
        """
        self.db = db

    async def _run(self, fn: Callable[[TrainingDataRepository], T]) -> T:
        def _in_session() -> T:
            with self.db.session_scope() as session:
                return fn(TrainingDataRepository(session))

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _in_session)

    async def save(self, instance: Instance, trained_data: str) -> TrainingDataRecord:
        """Upsert the training data record for *instance*."""
        record = await self._run(
            lambda repo: repo.create_or_update(
                instance.id, trained_data, kind=instance.kind
            )
        )
        logger.debug("Saved training data for %s %s", instance.kind, instance.id)
        return record

    async def get(self, instance_id: str) -> TrainingDataRecord:
        """
        Fetch the live record for *instance_id*.

        Raises:
            TrainingDataNotFoundError: If there is no live record
        """
        record: Optional[TrainingDataRecord] = await self._run(
            lambda repo: repo.get(instance_id)
        )
        if record is None:
            raise TrainingDataNotFoundError(
                f"No training data stored for instance {instance_id}",
                details={"instance_id": instance_id},
            )
        return record

    async def mark_deleted(self, instance_id: str) -> bool:
        """Soft-delete the record for *instance_id*; False if none was live."""
        return await self._run(lambda repo: repo.mark_deleted(instance_id))

    async def record_feedback(
        self,
        text: str,
        feedback_type: str,
        label: Optional[str] = None,
        kind: str = "classifier",
        auto_approve: bool = False,
    ) -> int:
        """Store classification feedback; see ``TrainingDataRepository.record_feedback``."""
        example_id = await self._run(
            lambda repo: repo.record_feedback(
                text, feedback_type, label=label, kind=kind, auto_approve=auto_approve
            )
        )
        logger.info("Recorded %s feedback %s for [%s]", feedback_type, example_id, label)
        return example_id

    async def approve_example(self, example_id: int, method: str = "manual") -> bool:
        """Approve a stored example for training; False if nothing changed."""
        return await self._run(lambda repo: repo.approve_example(example_id, method=method))
