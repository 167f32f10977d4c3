# geo_sync_API/app/core/Sync/monitor.py
# Background re-evaluation of the reachability gate. A transition to online
# triggers a sync attempt so queued local changes go out without a manual run.
import asyncio
from typing import Callable, Optional

from loguru import logger

from .core import SyncManager


class ConnectivityMonitor:
    def __init__(self, manager: SyncManager, interval: float, sync_on_reconnect: bool = True):
        if not isinstance(manager, SyncManager):
            raise TypeError("manager must be a SyncManager object")
        self.manager = manager
        self.interval = interval
        self.sync_on_reconnect = sync_on_reconnect
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _on_change(self, online: bool):
        # Called from the worker thread running gate.refresh(), so a blocking cycle is fine here.
        if not online or not self.sync_on_reconnect:
            return
        report = self.manager.try_sync()
        if report is not None:
            logger.info(f"Sync after reconnect: pushed={report.pushed} applied={report.applied}")

    def check_once(self) -> bool:
        """Re-evaluates the gate once; listeners fire on a transition. Returns the current state."""
        return self.manager.context.gate.refresh()

    async def _run(self):
        while True:
            try:
                await asyncio.to_thread(self.check_once)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Connectivity check failed: {e}")
            await asyncio.sleep(self.interval)

    def start(self) -> bool:
        """Starts the check loop on the running event loop. Returns False when there is nothing to watch."""
        if self.is_running:
            return True
        gate = self.manager.context.gate
        if gate is None or not gate.has_remote:
            logger.info("Connectivity monitor not started: no remote API configured.")
            return False
        if self.interval <= 0:
            logger.info("Connectivity monitor disabled by configuration.")
            return False
        self._unsubscribe = gate.add_listener(self._on_change)
        self._task = asyncio.get_running_loop().create_task(self._run(), name="ConnectivityMonitor")
        logger.info(f"Connectivity monitor started (every {self.interval}s).")
        return True

    async def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.debug("Connectivity monitor cancelled.")
        self._task = None
