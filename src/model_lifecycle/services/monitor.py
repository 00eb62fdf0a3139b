"""
Training Monitor - waits for an in-flight instance to reach a terminal state.

Polling is driven by ``tenacity``: the status check is retried while the
instance reports Training, with a fixed wait between checks. Errors from a
status check are never retried; they end the monitor call immediately.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    wait_fixed,
)

from ..backends.base import BaseInstanceBackend, Instance, RemoteResourceBackend
from ..config import ManagerConfig
from ..exceptions import RetentionError, TrainingFailedError, TrainingTimeoutError
from ..utils.logging_config import get_logger
from .instance_cache import InstanceCache
from .retention import RetentionManager

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _still_training(instance: Instance) -> bool:
    return instance.is_training


def _stop_strategy(poll_interval: float, max_wait: Optional[float]):
    if max_wait is None:
        return stop_never
    if poll_interval <= 0:
        return stop_after_delay(max_wait)
    return stop_after_attempt(int(max_wait // poll_interval) + 1)


async def wait_while_training(
    backend: RemoteResourceBackend,
    instance_id: str,
    poll_interval: float,
    max_wait: Optional[float] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> Instance:
    """
    Poll *instance_id* until it stops reporting Training.

    Returns:
        The first snapshot in any other status

    Raises:
        TrainingTimeoutError: *max_wait* elapsed first
        RemoteServiceError: A status check failed
    """
    kind = backend.kind

    async def _check() -> Instance:
        logger.info("Checking status of %s %s", kind, instance_id)
        instance = await backend.get_status(instance_id)
        logger.info("Status of %s %s is %s.", kind, instance_id, instance.status)
        return instance

    def _log_waiting(retry_state: RetryCallState) -> None:
        instance = retry_state.outcome.result()
        logger.info(
            "%s %s is not ready yet (%s min); checking again in %ss",
            kind.capitalize(),
            instance.id,
            instance.training_duration_minutes,
            poll_interval,
        )

    retrying = AsyncRetrying(
        retry=retry_if_result(_still_training),
        wait=wait_fixed(poll_interval),
        stop=_stop_strategy(poll_interval, max_wait),
        sleep=sleep,
        before_sleep=_log_waiting,
        reraise=True,
    )

    try:
        return await retrying(_check)
    except RetryError as e:
        raise TrainingTimeoutError(
            f"{kind.capitalize()} {instance_id} still not ready after {max_wait}s",
            details={"instance_id": instance_id},
        ) from e


class TrainingMonitor:
    """Polls one instance until it is Available (or fails)."""

    def __init__(
        self,
        backend: BaseInstanceBackend,
        cache: InstanceCache,
        retention: RetentionManager,
        manager_config: ManagerConfig,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Args:
            backend: Remote training service backend
            cache: Cache of the owning manager
            retention: Run once training completes
            manager_config: Poll interval, maximum wait, retention limit and
                retention failure policy
            sleep: Coroutine used to wait between polls (tests pass a fake)
        """
        self.backend = backend
        self.cache = cache
        self.retention = retention
        self.config = manager_config
        self._sleep = sleep

    async def monitor(self, instance_id: str) -> Instance:
        """
        Wait until *instance_id* finishes training.

        Returns:
            The Available instance (also cached as current)

        Raises:
            TrainingFailedError: Training ended in any other status
            TrainingTimeoutError: ``max_wait_seconds`` elapsed first
            RetentionError: Pruning failed and ``fail_on_retention_error`` is set
            RemoteServiceError: A status check failed
        """
        instance = await wait_while_training(
            self.backend,
            instance_id,
            self.config.poll_interval_seconds,
            self.config.max_wait_seconds,
            sleep=self._sleep,
        )

        if not instance.is_available:
            if self.cache.in_progress is not None and self.cache.in_progress.id == instance.id:
                self.cache.in_progress = None
            raise TrainingFailedError(instance.id, instance.status, instance.status_description)

        self.cache.mark_available(instance)
        await self._apply_retention(instance)
        return instance

    async def _apply_retention(self, instance: Instance) -> Optional[list]:
        name = instance.name or self.config.instance_name
        try:
            return await self.retention.prune(name, self.config.max_instances)
        except RetentionError as e:
            logger.error(
                "Error deleting old %ss after %s became available: %s",
                self.backend.kind,
                instance.id,
                e,
            )
            if self.config.fail_on_retention_error:
                raise
            return None
