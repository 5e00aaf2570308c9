"""NotificationDispatcher — routes one-way notifications to subscribers.

Subscribers run synchronously on the dispatching task, in the order they
subscribed. Delivery is fail-fast: the first subscriber that raises stops
the dispatch and the error reaches the notifying caller.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

from mcpengine.protocol.errors import NotificationDeliveryError, UnsupportedNotificationError
from mcpengine.protocol.models import (
    LIST_CHANGED_METHODS,
    NOTIFY_CANCELLED,
    NOTIFY_INITIALIZED,
    NOTIFY_MESSAGE,
    NOTIFY_PROGRESS,
    CancelledParams,
    LoggingLevel,
    LoggingMessageParams,
    ProgressParams,
    ServerCapabilities,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, "dict[str, Any] | None"], None]
CapabilitySource = Callable[[], ServerCapabilities]


class NotificationDispatcher:
    """Maps notification methods to ordered subscriber lists.

    Usage::

        dispatcher = NotificationDispatcher()
        dispatcher.subscribe(NOTIFY_PROGRESS, lambda method, params: print(params))
        dispatcher.notify_progress("job-1", 50, total=100)

    ``notify_list_changed`` consults the bound capability source on every
    call, so toggling a flag takes effect without re-subscribing.
    """

    def __init__(self, capabilities: CapabilitySource | None = None) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, tuple[Subscriber, ...]] = {}
        self._capabilities: CapabilitySource = capabilities or ServerCapabilities

    def bind_capabilities(self, source: CapabilitySource) -> None:
        """Read server capabilities from *source* when gating notifications."""
        self._capabilities = source

    def subscribe(self, method: str, callback: Subscriber) -> None:
        """Append *callback* to the subscribers of *method*."""
        with self._lock:
            self._subscribers[method] = (*self._subscribers.get(method, ()), callback)

    def unsubscribe(self, method: str, callback: Subscriber) -> None:
        """Remove the first occurrence of *callback*; unknown callbacks are ignored."""
        with self._lock:
            current = list(self._subscribers.get(method, ()))
            if callback in current:
                current.remove(callback)
                self._subscribers[method] = tuple(current)

    def subscribers(self, method: str) -> tuple[Subscriber, ...]:
        return self._subscribers.get(method, ())

    def dispatch(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Invoke every subscriber of *method* with *params*, stopping at the first failure."""
        callbacks = self._subscribers.get(method, ())
        logger.debug("Dispatching %s to %d subscriber(s)", method, len(callbacks))
        for callback in callbacks:
            try:
                callback(method, params)
            except Exception as exc:
                raise NotificationDeliveryError(method, str(exc)) from exc

    # -- list changed -------------------------------------------------------

    def notify_list_changed(self, method: str) -> None:
        """Send a list-changed notification if the server advertised it.

        Unrecognised methods raise :class:`UnsupportedNotificationError`;
        recognised ones are a silent no-op when the matching capability
        flag is unset.
        """
        if method not in LIST_CHANGED_METHODS:
            raise UnsupportedNotificationError(method)
        if not self._capabilities().list_changed_enabled(method):
            logger.debug("Suppressed %s: capability not advertised", method)
            return
        self.dispatch(method, None)

    # -- unconditional helpers ----------------------------------------------

    def notify_progress(
        self,
        token: str | int,
        progress: float,
        total: float | None = None,
    ) -> None:
        params = ProgressParams(progress_token=token, progress=progress, total=total)
        self.dispatch(NOTIFY_PROGRESS, params.to_wire())

    def notify_logging_message(
        self,
        level: LoggingLevel | str,
        logger_name: str | None,
        data: Any,
    ) -> None:
        params = LoggingMessageParams(level=LoggingLevel(level), logger=logger_name or None, data=data)
        self.dispatch(NOTIFY_MESSAGE, params.to_wire())

    def notify_cancelled(self, request_id: str | int, reason: str | None = None) -> None:
        params = CancelledParams(request_id=request_id, reason=reason)
        self.dispatch(NOTIFY_CANCELLED, params.to_wire())

    def notify_initialized(self) -> None:
        self.dispatch(NOTIFY_INITIALIZED, None)
