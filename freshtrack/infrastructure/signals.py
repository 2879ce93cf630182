"""
Out-of-band signal channel.

Decouples whoever resolves an alert from whoever displays the alert count:
the resolver emits ``ALERT_ACKNOWLEDGED`` and every listener refreshes.
"""
import logging
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)

ALERT_ACKNOWLEDGED = "alert-acknowledged"

SignalHandler = Callable[[], None]


class SignalBus:
    """Named, argument-less signals with synchronous delivery."""

    def __init__(self):
        self._handlers: dict[str, list[SignalHandler]] = defaultdict(list)

    def subscribe(self, name: str, handler: SignalHandler) -> Callable[[], None]:
        """
        Listen for a signal.

        Args:
            name: Signal name
            handler: Called once per emission

        Returns:
            Function removing the handler; safe to call more than once
        """
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def emit(self, name: str) -> int:
        """
        Notify every handler of a signal.

        Returns:
            Number of handlers notified
        """
        handlers = list(self._handlers.get(name, []))
        for handler in handlers:
            try:
                handler()
            except Exception:
                logger.exception(f"Handler for signal '{name}' failed")
        logger.debug(f"Signal '{name}' delivered to {len(handlers)} handler(s)")
        return len(handlers)
