"""In-process event bridge for host-pushed notifications (gateway:*)."""
import logging
from typing import Any, Callable, Dict, List

from panelsync.cache.store import Subscription

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventBridge:
    """Named events → handlers. The desktop shell calls emit() as events arrive."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def listen(self, event: str, handler: Handler) -> Subscription:
        handlers = self._handlers.setdefault(event, [])
        handlers.append(handler)

        def _unlisten() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return Subscription(_unlisten)

    def emit(self, event: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every handler of ``event``. Returns handler count."""
        handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s raised", event)
        return len(handlers)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))
