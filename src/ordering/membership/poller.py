"""Snapshot poller: refreshes cart and wishlist snapshots on a fixed interval.

The marketplace client polls ``GET /cart`` and ``GET /wishlist`` every
minute. A failed poll is logged and retried on the next tick; it never
touches the live intents.
"""

import asyncio

import structlog

from ordering.exceptions import NetworkError
from ordering.membership.dispatch import MembershipSync

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 60.0


class SnapshotPoller:
    def __init__(self, syncs: list[MembershipSync], interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self.syncs = list(syncs)
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> None:
        """Refresh every membership set once."""
        for sync in self.syncs:
            try:
                await sync.refresh()
            except NetworkError as exc:
                logger.warning("Snapshot refresh failed", kind=sync.kind.value, error=str(exc))

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.poll_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="snapshot-poller")
        logger.info("Snapshot poller started", interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Snapshot poller stopped")
