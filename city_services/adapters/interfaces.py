"""Typed interfaces for adapter-layer collaborators."""

from typing import Any, Callable, Protocol

EnvelopeHandler = Callable[[dict[str, Any]], None]


class MessageBusPort(Protocol):
    """Port definition for the publish/subscribe transport keyed by logical channel."""

    def bus_publish(self, channel: str, envelope: dict[str, Any]) -> None:
        """Publish one envelope to a logical channel.

        Args:
            channel: Logical channel name (usually the recipient service name).
            envelope: JSON-compatible message envelope.

        Raises:
            MessageBusError: Raised when the transport rejects the publish.
        """

    def bus_subscribe(self, channel: str, handler: EnvelopeHandler) -> None:
        """Register a handler for every envelope delivered on a channel.

        Args:
            channel: Logical channel name.
            handler: Callable invoked with each decoded envelope.

        Raises:
            MessageBusError: Raised when the subscription cannot be registered.
        """

    def bus_close(self) -> None:
        """Release transport resources.

        Raises:
            MessageBusError: Raised when shutdown fails.
        """


class ProcessLauncherPort(Protocol):
    """Port definition for the process-launch facility."""

    def launcher_spawn(self, department_name: str) -> Any:
        """Spawn one department process.

        Args:
            department_name: Logical department name.

        Returns:
            Any: Opaque process handle.

        Raises:
            ProcessSpawnError: Raised when the process cannot be started.
        """

    def launcher_is_alive(self, handle: Any) -> bool:
        """Return whether the process behind a handle is alive, without blocking.

        Args:
            handle: Opaque process handle.

        Returns:
            bool: `True` when the process is running.

        Raises:
            RuntimeError: Implementations do not raise for dead handles.
        """

    def launcher_terminate(self, handle: Any) -> None:
        """Terminate the process behind a handle, ignoring already-exited processes.

        Args:
            handle: Opaque process handle.

        Raises:
            RuntimeError: Implementations do not raise for dead handles.
        """


class DepartmentTemplateSourcePort(Protocol):
    """Port definition for the declarative department-template loader."""

    def template_list_department_names(self) -> tuple[str, ...]:
        """Return the names of every currently deployable department.

        Returns:
            tuple[str, ...]: Sorted unique department names.

        Raises:
            OSError: Raised when the template store cannot be read.
        """
