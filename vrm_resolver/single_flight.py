"""
Single-flight coordinator.

Collapses concurrent requests for the same key into one underlying call.
The first caller for a key starts the work as a background task; callers
arriving while it is in flight await the same future.

Lifecycle of a token:
    1. registered (synchronously, no await between check and insert)
    2. fn() runs; its result or exception is published to all waiters
    3. on_complete(result) runs (e.g. cache write)
    4. token released, even if fn or on_complete raised
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)


class SingleFlight:
    """Per-key in-flight deduplication on one event loop."""

    def __init__(self):
        self._flights: Dict[str, asyncio.Future] = {}
        self._tasks: Set[asyncio.Task] = set()

    def in_flight(self, key: str) -> bool:
        return key in self._flights

    @property
    def pending(self) -> int:
        return len(self._flights)

    async def do(
        self,
        key: str,
        fn: Callable[[], Awaitable[Any]],
        on_complete: Optional[Callable[[Any], Awaitable[None]]] = None,
    ) -> Any:
        """
        Run `fn` once per key, sharing its outcome with concurrent callers.

        Args:
            key: Deduplication key.
            fn: Coroutine factory performing the work.
            on_complete: Awaited with the result after waiters are released
                and before the token is dropped. Not called on failure.

        Returns:
            The result of `fn` (the same object for every caller).

        Raises:
            Whatever `fn` raised, re-raised in every waiting caller.
        """
        future = self._flights.get(key)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._flights[key] = future
            task = asyncio.create_task(self._run(key, future, fn, on_complete))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.info(f"Joining in-flight fetch for {key}")

        # Shield so a cancelled waiter does not cancel the shared work
        return await asyncio.shield(future)

    async def _run(self, key, future, fn, on_complete):
        try:
            try:
                result = await fn()
            except Exception as e:
                future.set_exception(e)
                return
            future.set_result(result)
            if on_complete is not None:
                try:
                    await on_complete(result)
                except Exception:
                    logger.exception(f"Completion hook failed for {key}")
        finally:
            if not future.done():
                future.cancel()
            # Retrieve the exception so an unobserved failure is not logged
            # as "never retrieved" when every waiter was cancelled.
            if future.done() and not future.cancelled():
                future.exception()
            self._flights.pop(key, None)

    async def drain(self):
        """Wait for every background flight (including completion hooks)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
