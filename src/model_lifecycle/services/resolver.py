"""
Instance Resolver - decides which remote instance is "the" current one.

Resolution order for a logical name:
1. the cached Available instance, if any (no remote call);
2. the most recently created Available instance;
3. the most recently created Training instance;
4. a brand new training job (unless ``do_not_train`` is set).

Truth is always re-derived from the remote service's listing, so several
processes sharing one name converge on the same answer.
"""

import asyncio
from typing import List, Optional, Protocol

from ..backends.base import Instance, RemoteResourceBackend
from ..exceptions import InstanceNotAvailableError, InstanceNotFoundError
from ..utils.logging_config import get_logger
from .instance_cache import InstanceCache

logger = get_logger(__name__)


class Launcher(Protocol):
    """Anything that can start a new resource under a name."""

    async def start(self, name: Optional[str] = None) -> Instance:
        ...


async def list_named_instances(backend: RemoteResourceBackend, name: str) -> List[Instance]:
    """Instances called *name*, newest first."""
    instances = await backend.list_instances()
    named = [instance for instance in instances if instance.name == name]
    return sorted(named, key=lambda instance: instance.created_at, reverse=True)


async def check_statuses(
    backend: RemoteResourceBackend, instances: List[Instance]
) -> List[Instance]:
    """
    Refresh the status of every instance concurrently.

    The result is aligned with *instances*. The first failing status check
    aborts the whole batch with its error.
    """
    return list(
        await asyncio.gather(*(backend.get_status(instance.id) for instance in instances))
    )


class InstanceResolver:
    """Picks the single current instance for a name, training one if needed."""

    def __init__(
        self,
        backend: RemoteResourceBackend,
        cache: InstanceCache,
        launcher: Launcher,
    ):
        self.backend = backend
        self.cache = cache
        self.launcher = launcher

    async def resolve(self, name: str, do_not_train: bool = False) -> Instance:
        """
        Return the current instance for *name*.

        Args:
            name: Logical instance name
            do_not_train: Raise instead of starting a training job when
                nothing usable exists

        Returns:
            An Available instance, else a Training one, else a newly
            launched one

        Raises:
            InstanceNotFoundError: No instance under *name* and do_not_train
            InstanceNotAvailableError: None Available or Training and do_not_train
            RemoteServiceError: Listing or a status check failed
        """
        kind = self.backend.kind

        if self.cache.current is not None:
            logger.debug("Using cached %s %s", kind, self.cache.current.id)
            return self.cache.current

        candidates = await list_named_instances(self.backend, name)

        if not candidates:
            if do_not_train:
                raise InstanceNotFoundError(
                    f"No {kind}s found under [{name}]", details={"name": name}
                )
            logger.info(
                "No %ss found with name %s. Creating and training a new one.", kind, name
            )
            return await self.launcher.start(name)

        checked = await check_statuses(self.backend, candidates)

        training = None
        for instance in checked:
            if instance.is_available:
                self.cache.current = instance
                logger.info("Resolved %s %s (Available) for [%s]", kind, instance.id, name)
                return instance
            if instance.is_training and training is None:
                training = instance

        self.cache.in_progress = training
        if training is not None:
            logger.info(
                "No %s available under [%s]; %s %s is still training",
                kind,
                name,
                kind,
                training.id,
            )
            return training

        if do_not_train:
            raise InstanceNotAvailableError(
                f"No {kind}s available under [{name}]", details={"name": name}
            )
        logger.info(
            "No %ss with name %s are available or in training. Start training a new one.",
            kind,
            name,
        )
        return await self.launcher.start(name)
