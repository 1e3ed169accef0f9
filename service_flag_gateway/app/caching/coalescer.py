"""
Per-key coalescing of in-flight async operations.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger


Operation = Callable[[], Awaitable[Any]]


class Coalescer:
    """Run at most one operation per key at a time.

    The first caller for a key starts the operation as a task and registers
    it; callers arriving while it runs share that task and its outcome,
    success or exception. The registration is removed when the task
    finishes, whatever the result. Registration happens synchronously on the
    event loop, so the check-and-set cannot interleave with another caller.

    Waiters are shielded from the task: a waiter that times out or is
    cancelled leaves the operation running for everyone else.
    """

    def __init__(self, on_join: Optional[Callable[[str], None]] = None):
        self._pending: Dict[str, "asyncio.Task[Any]"] = {}
        self._on_join = on_join
        self.logger = get_logger("flag_gateway.coalescer")

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def pending_count(self) -> int:
        return len(self._pending)

    def schedule(self, key: str, operation: Operation) -> "asyncio.Task[Any]":
        """Return the in-flight task for ``key``, starting ``operation`` if there is none."""
        task = self._pending.get(key)
        if task is not None:
            self.logger.debug("Joining in-flight operation", key=key)
            if self._on_join is not None:
                self._on_join(key)
            return task

        task = asyncio.ensure_future(operation())
        self._pending[key] = task
        task.add_done_callback(lambda finished, key=key: self._release(key, finished))
        return task

    async def run_exclusive(self, key: str, operation: Operation, timeout: Optional[float] = None) -> Any:
        """Await the shared outcome of ``operation`` for ``key``.

        ``timeout`` bounds only this caller's wait; asyncio.TimeoutError is
        raised to the caller while the operation keeps running.
        """
        task = self.schedule(key, operation)
        if timeout is None:
            return await asyncio.shield(task)
        return await asyncio.wait_for(asyncio.shield(task), timeout)

    def _release(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    async def close(self) -> None:
        """Cancel outstanding operations and wait for them to unwind."""
        tasks = list(self._pending.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.info("Cancelled in-flight operations", count=len(tasks))
        self._pending.clear()
