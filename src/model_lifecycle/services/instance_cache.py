"""Process-local record of the current and in-flight instance for one manager."""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from ..backends.base import Instance


@dataclass
class InstanceCache:
    """
    State owned by exactly one ``LifecycleManager``.

    Attributes:
        current: Last instance resolved as Available; served without any
            remote call until invalidated.
        in_progress: Instance this process knows to be training; the
            launcher returns it instead of starting a duplicate job.
        launch_lock: Serialises the check-then-create section of the
            launcher within this process.
    """
    current: Optional[Instance] = None
    in_progress: Optional[Instance] = None
    launch_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def invalidate(self) -> None:
        """Forget the current instance so the next call re-resolves it."""
        self.current = None

    def mark_available(self, instance: Instance) -> None:
        self.current = instance
        self.in_progress = None
