"""NetworkMonitor -- polls connectivity and reports restorations."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

RestoredCallback = Callable[[], Union[None, Awaitable[None]]]


class NetworkMonitor:
    """Periodically opens a TCP connection to a well-known host.

    Exactly one callback may be registered; it runs once per
    disconnected -> connected transition. The initial state is connected, so
    nothing fires at startup.
    """

    def __init__(
        self,
        host: str = "1.1.1.1",
        port: int = 53,
        interval: float = 5.0,
        probe_timeout: float = 3.0,
    ) -> None:
        self._host = host
        self._port = port
        self._interval = interval
        self._probe_timeout = probe_timeout
        self._callback: Optional[RestoredCallback] = None
        self._task: Optional[asyncio.Task[None]] = None
        self.is_connected = True

    def set_restored_callback(self, callback: RestoredCallback) -> None:
        """Register the restoration callback, replacing any previous one."""
        self._callback = callback

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="network-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def probe(self) -> bool:
        """Whether the check host accepts a connection right now."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port),
                timeout=self._probe_timeout,
            )
        except (OSError, asyncio.TimeoutError):
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True

    async def check(self) -> bool:
        """Probe once and fire the callback on restoration."""
        connected = await self.probe()
        was_connected, self.is_connected = self.is_connected, connected

        if connected and not was_connected:
            logger.info("Network restored")
            await self._notify()
        elif was_connected and not connected:
            logger.warning("Network lost (%s:%s unreachable)", self._host, self._port)
        return connected

    async def _notify(self) -> None:
        if self._callback is None:
            return
        result = self._callback()
        if asyncio.iscoroutine(result):
            await result

    async def _loop(self) -> None:
        while True:
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Network monitor error")
            await asyncio.sleep(self._interval)
