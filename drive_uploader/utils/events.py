from typing import Dict, List, Callable, Set
import asyncio
import logging
logger = logging.getLogger(__name__)


class EventEmitter:
    """Simple event emitter for upload events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)

    async def emit(self, event_name: str, *args, **kwargs):
        """Emit an event to all listeners."""
        if event_name not in self._listeners:
            return

        # Copy list to avoid modification during iteration
        for callback in self._listeners[event_name][:]:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(*args, **kwargs)
                else:
                    callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")

    def emit_soon(self, event_name: str, *args, **kwargs):
        """Schedule an event on the running loop without waiting for listeners."""
        if event_name not in self._listeners:
            return
        task = asyncio.get_running_loop().create_task(self.emit(event_name, *args, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
