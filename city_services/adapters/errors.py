"""Project-native typed exceptions for adapter failures."""

from __future__ import annotations


class AdapterError(Exception):
    """Base exception for adapter-level failures.

    Attributes:
        subject: Department or channel the failure refers to.
    """

    def __init__(self, message: str, subject: str | None = None):
        super().__init__(message)
        self.subject = subject


class ProcessSpawnError(AdapterError, RuntimeError):
    """Department process could not be started."""


class MessageBusError(AdapterError, ConnectionError):
    """Transport-level failure while publishing or subscribing."""
