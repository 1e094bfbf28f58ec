"""Background cleanup of expired revocation entries and refresh records."""

import asyncio
from typing import Optional

import structlog

from taskauth.services.clock import Clock, SystemClock
from taskauth.services.revocation_index import RevocationIndex
from taskauth.services.user_store import UserStore

logger = structlog.get_logger(__name__)


class CredentialSweeper:
    """Periodically sweeps the revocation index and prunes refresh records."""

    def __init__(
        self,
        *,
        revocations: RevocationIndex,
        store: UserStore,
        interval_seconds: float = 60,
        clock: Optional[Clock] = None,
    ):
        self.revocations = revocations
        self.store = store
        self.interval_seconds = interval_seconds
        self.clock = clock or SystemClock()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def start(self):
        """Start the sweep loop as an asyncio background task."""
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("credential_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self):
        """Stop the sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("credential_sweeper_stopped")

    async def _sweep_loop(self):
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("credential_sweep_error", error=str(e))

    async def sweep_once(self) -> tuple[int, int]:
        """Run one sweep.

        Returns:
            Tuple of (revocation entries removed, refresh records pruned)
        """
        now = self.clock.now()
        swept = await self.revocations.sweep(now)
        pruned = await self.store.prune_expired_refresh(now)
        if swept or pruned:
            logger.info(
                "credential_sweep_completed",
                revocations_swept=swept,
                refresh_pruned=pruned,
            )
        return swept, pruned
