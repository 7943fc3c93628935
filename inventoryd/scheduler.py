"""
Background refresh tasks.

The initial refresh fires once at startup. The periodic task sleeps first,
so its first tick never doubles up with the initial refresh. A failed tick is
logged by the service and retried on the next one.
"""

import asyncio
import logging
from typing import Optional

from .errors import InventoryError
from .service import NodeService

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Owns the daemon's background refresh tasks.

    Args:
        service: the node service to refresh
        interval_seconds: periodic refresh interval; 0 disables it
    """

    def __init__(self, service: NodeService, interval_seconds: float):
        self.service = service
        self.interval_seconds = interval_seconds
        self.initial_task: Optional[asyncio.Task] = None
        self.periodic_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Spawn the background tasks. Must be called from a running event loop."""
        if self.initial_task is not None:
            return
        self.initial_task = asyncio.create_task(self._initial(), name="inventoryd-initial-refresh")
        if self.interval_seconds > 0:
            self.periodic_task = asyncio.create_task(self._periodic(), name="inventoryd-periodic-refresh")
        else:
            logger.info("periodic refresh disabled")

    async def stop(self) -> None:
        """Cancel the background tasks and wait for them to finish."""
        tasks = [t for t in (self.initial_task, self.periodic_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _initial(self) -> None:
        try:
            await self.service.refresh("initial")
        except (InventoryError, OSError, ValueError) as exc:
            logger.warning("initial refresh failed: %s", exc)
        except Exception:
            logger.exception("unexpected error in initial refresh")

    async def _periodic(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.service.refresh("periodic")
            except (InventoryError, OSError, ValueError) as exc:
                logger.warning("periodic refresh failed, retrying next tick: %s", exc)
            except Exception:
                logger.exception("unexpected error in periodic refresh, retrying next tick")
