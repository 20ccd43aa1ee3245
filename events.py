import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

DATA_UPDATED_EVENT = "training-data-updated"


class EventBus:
    """In-process publish/subscribe channel shared by the open views of a session."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Register ``callback`` for ``event`` and return a function that removes it."""
        self._listeners.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def emit(self, event: str, payload: Any = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("listener for %s failed", event)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))
