"""In-process message bus used for single-process runs and tests."""

from __future__ import annotations

import copy
import logging
import threading
from collections import defaultdict
from typing import Any

from .errors import MessageBusError
from .interfaces import EnvelopeHandler, MessageBusPort

logger = logging.getLogger(__name__)


class InMemoryMessageBus(MessageBusPort):
    """Synchronous publish/subscribe bus keyed by logical channel name.

    Delivery happens on the publishing thread. Each handler receives its own
    deep copy of the envelope, and a failing handler never prevents delivery
    to the remaining subscribers.
    """

    def __init__(self):
        self._handlers: dict[str, list[EnvelopeHandler]] = defaultdict(list)
        self._published: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.RLock()
        self._closed = False

    def bus_publish(self, channel: str, envelope: dict[str, Any]) -> None:
        normalized_channel = self._validate_channel(channel)
        with self._lock:
            if self._closed:
                raise MessageBusError("bus is closed", subject=normalized_channel)
            self._published.append((normalized_channel, copy.deepcopy(envelope)))
            handlers = list(self._handlers.get(normalized_channel, ()))

        for handler in handlers:
            try:
                handler(copy.deepcopy(envelope))
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Subscriber on channel %s failed to handle envelope", normalized_channel)

    def bus_subscribe(self, channel: str, handler: EnvelopeHandler) -> None:
        normalized_channel = self._validate_channel(channel)
        if handler is None:
            raise ValueError("handler must not be None")
        with self._lock:
            if self._closed:
                raise MessageBusError("bus is closed", subject=normalized_channel)
            self._handlers[normalized_channel].append(handler)

    def bus_close(self) -> None:
        with self._lock:
            self._closed = True
            self._handlers.clear()

    def bus_published(self, channel: str | None = None) -> list[dict[str, Any]]:
        """Return envelopes published so far, optionally filtered by channel.

        Args:
            channel: Optional channel filter.

        Returns:
            list[dict[str, Any]]: Published envelopes in publish order.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        with self._lock:
            return [
                copy.deepcopy(envelope)
                for published_channel, envelope in self._published
                if channel is None or published_channel == channel
            ]

    @staticmethod
    def _validate_channel(channel: str) -> str:
        normalized_channel = channel.strip()
        if not normalized_channel:
            raise ValueError("channel must not be blank")
        return normalized_channel
