import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Set

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """
    Fire-and-forget publish. A failing or slow listener never blocks or fails
    the state transition that published the event.
    """

    def __init__(self):
        self._listeners: List[Callable[[str, Dict[str, Any]], Any]] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, callback: Callable[[str, Dict[str, Any]], Any]):
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[str, Dict[str, Any]], Any]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event_name, payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._on_done)
            except Exception:
                logger.exception("Event listener failed for %s", event_name)

    def _on_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Async event listener failed: %r", error)

    async def drain(self):
        """Wait for in-flight async listeners (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
