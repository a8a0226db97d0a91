"""Redis pub/sub message bus adapter."""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from typing import Any

import redis

from .errors import MessageBusError
from .interfaces import EnvelopeHandler, MessageBusPort

logger = logging.getLogger(__name__)


class RedisMessageBus(MessageBusPort):
    """Message bus backed by Redis pub/sub channels with JSON envelopes.

    One listener thread serves every subscribed channel of this process.
    Envelopes that are not valid JSON objects are dropped with a warning.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        channel_prefix: str = "city:",
        listener_sleep_seconds: float = 0.1,
    ):
        """Initialize Redis bus adapter.

        Args:
            redis_client: Connected Redis client.
            channel_prefix: Prefix applied to every logical channel name.
            listener_sleep_seconds: Poll sleep of the listener thread.

        Raises:
            ValueError: Raised when client or sleep values are invalid.
        """

        if redis_client is None:
            raise ValueError("redis_client must not be None")
        if listener_sleep_seconds <= 0:
            raise ValueError("listener_sleep_seconds must be > 0")

        self._redis_client = redis_client
        self._channel_prefix = channel_prefix
        self._listener_sleep_seconds = listener_sleep_seconds
        self._pubsub = redis_client.pubsub(ignore_subscribe_messages=True)
        self._handlers: dict[str, list[EnvelopeHandler]] = defaultdict(list)
        self._listener_thread = None
        self._lock = threading.RLock()

    @classmethod
    def bus_from_url(cls, redis_url: str) -> RedisMessageBus:
        """Create a bus from a Redis DSN.

        Args:
            redis_url: Redis connection URL.

        Returns:
            RedisMessageBus: Bus bound to a new Redis client.

        Raises:
            ValueError: Raised when the URL is blank.
        """

        if not redis_url.strip():
            raise ValueError("redis_url must not be blank")
        return cls(redis_client=redis.Redis.from_url(redis_url, decode_responses=True))

    def bus_publish(self, channel: str, envelope: dict[str, Any]) -> None:
        redis_channel = self._bus_channel_name(channel)
        try:
            self._redis_client.publish(redis_channel, json.dumps(envelope))
        except redis.RedisError as error:
            raise MessageBusError(f"failed to publish to {redis_channel}", subject=channel) from error

    def bus_subscribe(self, channel: str, handler: EnvelopeHandler) -> None:
        if handler is None:
            raise ValueError("handler must not be None")

        redis_channel = self._bus_channel_name(channel)
        with self._lock:
            is_new_channel = redis_channel not in self._handlers
            self._handlers[redis_channel].append(handler)
            if not is_new_channel:
                return
            try:
                self._pubsub.subscribe(**{redis_channel: self._bus_dispatch})
            except redis.RedisError as error:
                raise MessageBusError(f"failed to subscribe to {redis_channel}", subject=channel) from error
            if self._listener_thread is None:
                self._listener_thread = self._pubsub.run_in_thread(
                    sleep_time=self._listener_sleep_seconds,
                    daemon=True,
                )

    def bus_close(self) -> None:
        with self._lock:
            if self._listener_thread is not None:
                self._listener_thread.stop()
                self._listener_thread = None
            try:
                self._pubsub.close()
                self._redis_client.close()
            except redis.RedisError as error:
                raise MessageBusError("failed to close redis bus") from error

    def _bus_dispatch(self, raw_message: dict[str, Any]) -> None:
        redis_channel = raw_message.get("channel")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode("utf-8")

        try:
            envelope = json.loads(raw_message.get("data"))
        except (TypeError, ValueError):
            logger.warning("Dropping non-JSON message on channel %s", redis_channel)
            return
        if not isinstance(envelope, dict):
            logger.warning("Dropping non-object message on channel %s", redis_channel)
            return

        with self._lock:
            handlers = list(self._handlers.get(redis_channel, ()))
        for handler in handlers:
            try:
                handler(envelope)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Subscriber on channel %s failed to handle envelope", redis_channel)

    def _bus_channel_name(self, channel: str) -> str:
        normalized_channel = channel.strip()
        if not normalized_channel:
            raise ValueError("channel must not be blank")
        return f"{self._channel_prefix}{normalized_channel}"
