"""
Asyncio loop living in a daemon thread.

The UI thread never touches orchestrator state directly: coroutines go
through submit() and synchronous commands (remove, clear) through call(), so
every mutation of the task registry runs on the loop thread.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Coroutine, Optional

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """Owns one event loop and the thread running it."""

    def __init__(self, thread_hook: Optional[Callable[[threading.Thread], Any]] = None,
                 call_timeout: float = 10.0):
        self.loop = asyncio.new_event_loop()
        self.call_timeout = call_timeout
        self.thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        if thread_hook:
            thread_hook(self.thread)
        self.thread.start()

    def submit(self, coro: Coroutine[Any, Any, Any]):
        """Schedule a coroutine; returns a concurrent.futures.Future."""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(_log_future_error)
        return future

    def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a synchronous command on the loop thread and wait for its result."""
        async def command():
            return func(*args, **kwargs)
        return asyncio.run_coroutine_threadsafe(command(), self.loop).result(self.call_timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=self.call_timeout)
        if not self.thread.is_alive():
            self.loop.close()


def _log_future_error(future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"Background command failed: {future.exception()}")
