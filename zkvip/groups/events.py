"""Change notification for GroupStore observers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class GroupEvent(Enum):
    AVAILABLE_CHANGED = "availableGroupsUpdated"
    JOINED_CHANGED = "groupsUpdated"


class ChangeNotifier:
    """
    Payload-free publish/subscribe owned by a single store.

    Subscribers re-read the store when called. subscribe() returns a
    disposer; calling it more than once is harmless.

    Example:
        >>> notifier = ChangeNotifier()
        >>> dispose = notifier.subscribe(GroupEvent.JOINED_CHANGED, refresh_view)
        >>> notifier.emit(GroupEvent.JOINED_CHANGED)
        >>> dispose()
    """

    def __init__(self) -> None:
        self._listeners: Dict[GroupEvent, List[Listener]] = {
            event: [] for event in GroupEvent
        }

    def subscribe(self, event: GroupEvent, listener: Listener) -> Callable[[], None]:
        if not isinstance(event, GroupEvent):
            raise TypeError("event must be GroupEvent")
        if not callable(listener):
            raise TypeError("listener must be callable")

        entry = _Subscription(listener)
        self._listeners[event].append(entry)

        def dispose() -> None:
            listeners = self._listeners[event]
            if entry in listeners:
                listeners.remove(entry)

        return dispose

    def subscriber_count(self, event: GroupEvent) -> int:
        return len(self._listeners[event])

    def emit(self, event: GroupEvent) -> None:
        # Snapshot: listeners may dispose themselves while being notified
        for entry in list(self._listeners[event]):
            try:
                entry.listener()
            except Exception:
                # The mutation is already persisted; keep notifying the rest
                logger.exception("Listener for %s failed", event.value)


class _Subscription:
    """Identity wrapper so the same callable can subscribe twice."""

    __slots__ = ("listener",)

    def __init__(self, listener: Listener) -> None:
        self.listener = listener
