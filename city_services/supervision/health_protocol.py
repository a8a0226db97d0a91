"""Health-check request emission and asynchronous reply correlation."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping

from city_services.adapters import MessageBusError, MessageBusPort
from city_services.messages import (
    HealthCheckRequest,
    HealthStatusReply,
    MalformedMessageError,
    message_build_envelope,
    message_decode_envelope,
)

from .interfaces import HealthCheckSenderPort
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class HealthProtocol(HealthCheckSenderPort):
    """Issue health checks over the bus and route replies back to the supervisor.

    Requests are never retried individually: a missing reply is counted by the
    supervisor's silence window on a later tick.
    """

    _HEALTHY_STATUS = "healthy"

    def __init__(self, bus: MessageBusPort, supervisor: ProcessSupervisor, service_name: str):
        """Initialize health protocol.

        Args:
            bus: Message bus used for requests.
            supervisor: Supervisor owning department records.
            service_name: Logical name of the requesting service.

        Raises:
            ValueError: Raised when dependencies are invalid.
        """

        if bus is None:
            raise ValueError("bus must not be None")
        if supervisor is None:
            raise ValueError("supervisor must not be None")
        if not service_name.strip():
            raise ValueError("service_name must not be blank")

        self._bus = bus
        self._supervisor = supervisor
        self._service_name = service_name.strip()
        self._pending_checks: dict[str, str] = {}
        self._pending_lock = threading.Lock()

    def health_send_check(self, department_name: str) -> str | None:
        """Emit one health-check request and mark the record as awaiting a reply.

        Args:
            department_name: Logical department name.

        Returns:
            str | None: Check identifier, or `None` for untracked departments.

        Raises:
            RuntimeError: Transport failures are logged, not raised.
        """

        request = HealthCheckRequest(from_service=self._service_name, to_service=department_name)
        if not self._supervisor.supervisor_mark_health_requested(department_name):
            return None

        with self._pending_lock:
            for stale_check_id in [
                check_id for check_id, name in self._pending_checks.items() if name == department_name
            ]:
                del self._pending_checks[stale_check_id]
            self._pending_checks[request.check_id] = department_name

        envelope = message_build_envelope(request, sender=self._service_name, recipient=department_name)
        try:
            self._bus.bus_publish(department_name, envelope)
        except MessageBusError as error:
            logger.warning("Health check to %s not published: %s", department_name, error)
        else:
            logger.debug("Sent health check %s to %s", request.check_id, department_name)
        return request.check_id

    def health_on_reply(
        self,
        department_name: str,
        status: str,
        metrics: Mapping[str, Any] | None = None,
        check_id: str | None = None,
    ) -> bool:
        """Forward one health reply to the supervisor.

        Args:
            department_name: Department that replied.
            status: Reported status (`healthy`, `warning`, `critical`, `failed`).
            metrics: Optional reply metrics such as uptime and message count.
            check_id: Optional identifier of the answered request.

        Returns:
            bool: `False` when the reply was discarded for an unknown or permanently failed name.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        pending_name = None
        if check_id is not None:
            with self._pending_lock:
                pending_name = self._pending_checks.pop(check_id, None)
        resolved_name = department_name.strip() or pending_name or department_name

        accepted = self._supervisor.supervisor_record_health_reply(
            resolved_name,
            healthy=status == self._HEALTHY_STATUS,
            reported_status=status,
        )
        if accepted and metrics:
            logger.debug("Health reply from %s: status=%s metrics=%s", resolved_name, status, dict(metrics))
        return accepted

    def health_handle_envelope(self, envelope: Mapping[str, Any]) -> bool:
        """Decode a `HealthStatusReply` envelope and apply it.

        Args:
            envelope: Raw bus envelope.

        Returns:
            bool: Whether the reply was applied.

        Raises:
            MalformedMessageError: Raised when the envelope is not a valid health reply.
        """

        message_tag, message = message_decode_envelope(envelope)
        if not isinstance(message, HealthStatusReply):
            raise MalformedMessageError(f"expected HealthStatusReply, got {message_tag}", message_type=message_tag)
        return self.health_on_reply(
            department_name=message.service_name,
            status=message.status,
            metrics={"uptime_seconds": message.uptime_seconds, "message_count": message.message_count},
            check_id=message.check_id,
        )

    def health_pending_count(self) -> int:
        """Return the number of outstanding health-check requests."""

        with self._pending_lock:
            return len(self._pending_checks)
