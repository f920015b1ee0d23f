"""Synchronous multicast delivery of state change events."""

from __future__ import annotations

import logging
from typing import List

from .contracts import StateChangeEvent, StateChangeListener

logger = logging.getLogger(__name__)


class ListenerBus:
    """Deliver events to subscribers in registration order.

    A listener that raises is logged and skipped; remaining listeners still
    receive the event.
    """

    def __init__(self) -> None:
        self._listeners: List[StateChangeListener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: StateChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.debug(f"Listener {listener!r} was not registered")

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, event: StateChangeEvent) -> None:
        # copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"State change listener {listener!r} failed on {event.type} "
                    f"for workflow_id={event.current_state.workflow_id}"
                )
