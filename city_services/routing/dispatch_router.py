"""Dispatch-side routing of inbound calls to resolved, live departments."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping

from city_services.adapters import MessageBusError, MessageBusPort
from city_services.domain import ChangeNotification, ClockProvider, domain_utc_now
from city_services.messages import (
    DepartmentAnnouncement,
    DepartmentChangeNotification,
    EmergencyCall,
    MalformedMessageError,
    ServiceRequest,
    message_build_envelope,
    message_decode_envelope,
)

from .classifier import DepartmentClassifierPort, RuleTableDepartmentClassifier
from .table import RoutingTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingDispatch:
    """Call deferred until its department becomes available.

    Attributes:
        call: Deferred inbound call.
        department_name: Candidate department name before resolution.
        requested_name: Department requested from the council, the end of the redirection chain.
        requested_at: Time the department was requested.
        deadline: Time after which the call is reported undeliverable.
    """

    call: EmergencyCall
    department_name: str
    requested_name: str
    requested_at: datetime
    deadline: datetime


@dataclass(frozen=True)
class UndeliverableDispatch:
    """Deferred call that no department accepted within the bounded wait."""

    call_id: str
    department_name: str
    waited_seconds: float


class DispatchRouter:
    """Consumer-side router in front of department channels.

    Each inbound call is classified into candidate departments, every
    candidate is resolved through the local routing table, and live targets
    receive the call immediately. Missing departments are requested from the
    council and the call waits for an availability notification or timeout.
    """

    def __init__(
        self,
        bus: MessageBusPort,
        routing_table: RoutingTable,
        service_name: str,
        council_name: str,
        classifier: DepartmentClassifierPort | None = None,
        clock: ClockProvider | None = None,
        pending_timeout_seconds: float = 120.0,
        call_channel: str = "911",
    ):
        """Initialize dispatch router.

        Args:
            bus: Message bus used for forwarding and service requests.
            routing_table: Local routing table mirror.
            service_name: Logical name of the dispatch service.
            council_name: Channel of the council receiving service requests.
            classifier: Optional call classifier, defaults to the rule table.
            clock: Optional clock provider for virtual time.
            pending_timeout_seconds: Bounded wait for missing departments.
            call_channel: Channel on which inbound calls arrive.

        Raises:
            ValueError: Raised when dependencies or values are invalid.
        """

        if bus is None:
            raise ValueError("bus must not be None")
        if routing_table is None:
            raise ValueError("routing_table must not be None")
        if not service_name.strip():
            raise ValueError("service_name must not be blank")
        if not council_name.strip():
            raise ValueError("council_name must not be blank")
        if pending_timeout_seconds <= 0:
            raise ValueError("pending_timeout_seconds must be > 0")

        self._bus = bus
        self._routing_table = routing_table
        self._service_name = service_name.strip()
        self._council_name = council_name.strip()
        self._classifier = classifier or RuleTableDepartmentClassifier()
        self._clock = clock or domain_utc_now
        self._pending_timeout = timedelta(seconds=pending_timeout_seconds)
        self._call_channel = call_channel
        self._pending: dict[tuple[str, str], PendingDispatch] = {}
        self._dispatch_counts: Counter[str] = Counter()
        self._calls_received = 0
        self._undeliverable_count = 0
        self._lock = threading.RLock()

    def dispatch_subscribe(self) -> None:
        """Subscribe to the call channel and the router's own channel."""

        self._bus.bus_subscribe(self._call_channel, self.dispatch_handle_envelope)
        self._bus.bus_subscribe(self._service_name, self.dispatch_handle_envelope)

    def dispatch_route(self, call: EmergencyCall) -> list[str]:
        """Route one call to every live resolved department.

        Args:
            call: Inbound emergency call.

        Returns:
            list[str]: Departments that received the call immediately.

        Raises:
            RuntimeError: Transport failures are logged and the call is deferred.
        """

        with self._lock:
            self._calls_received += 1

        candidate_names = self._classifier.classifier_required_departments(call)
        dispatched_names: list[str] = []
        missing_names: list[tuple[str, str]] = []

        for candidate_name in candidate_names:
            resolved_name = self._routing_table.routing_resolve(candidate_name)
            if resolved_name != candidate_name:
                logger.info("Routing redirected: %s -> %s", candidate_name, resolved_name)

            if self._routing_table.routing_is_live(resolved_name):
                if resolved_name in dispatched_names:
                    continue
                if self._dispatch_forward(call, resolved_name):
                    dispatched_names.append(resolved_name)
                    continue
            missing_names.append((candidate_name, self._routing_table.routing_chain_end(candidate_name)))

        if missing_names:
            self._dispatch_defer(call, missing_names)
        return dispatched_names

    def dispatch_apply_change(self, change: ChangeNotification) -> list[str]:
        """Mirror one routing change and release deferred calls.

        Args:
            change: Routing change notification.

        Returns:
            list[str]: Call identifiers released by the change.

        Raises:
            ValueError: Raised when the change is invalid for the routing table.
        """

        self._routing_table.routing_apply(change)
        if change.emergency_types_affected:
            logger.info(
                "Routing change %s affects emergency types: %s",
                change.change_type,
                ", ".join(change.emergency_types_affected),
            )
        return self.dispatch_release_pending()

    def dispatch_handle_announcement(self, announcement: DepartmentAnnouncement) -> list[str]:
        """Apply a council announcement about a department launch outcome.

        Args:
            announcement: Department announcement.

        Returns:
            list[str]: Call identifiers released by the announcement.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        department_name = announcement.department_name
        if announcement.status in ("launched", "active"):
            if not self._routing_table.routing_is_live(department_name):
                logger.info("Department %s available (%s)", department_name, announcement.status)
            self._routing_table.routing_mark_live(department_name)
            return self.dispatch_release_pending()
        if announcement.status == "failed":
            self._routing_table.routing_mark_unavailable(department_name)
            logger.error("Council failed to provide %s: %s", department_name, announcement.description)
        else:
            logger.info("Council created department %s", department_name)
        return []

    def dispatch_release_pending(self) -> list[str]:
        """Forward deferred calls whose department now resolves to a live target."""

        with self._lock:
            pending_items = sorted(self._pending.items(), key=lambda item: item[1].requested_at)

        released_call_ids: list[str] = []
        for pending_key, pending_dispatch in pending_items:
            resolved_name = self._routing_table.routing_resolve(pending_dispatch.department_name)
            if not self._routing_table.routing_is_live(resolved_name):
                continue
            with self._lock:
                if self._pending.pop(pending_key, None) is None:
                    continue
            if self._dispatch_forward(pending_dispatch.call, resolved_name):
                released_call_ids.append(pending_dispatch.call.call_id)
                logger.info(
                    "Released deferred call %s to %s",
                    pending_dispatch.call.call_id,
                    resolved_name,
                )
            else:
                with self._lock:
                    self._pending.setdefault(pending_key, pending_dispatch)
        return released_call_ids

    def dispatch_expire_pending(self) -> list[UndeliverableDispatch]:
        """Report deferred calls whose bounded wait has elapsed.

        Returns:
            list[UndeliverableDispatch]: Calls reported undeliverable, oldest first.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        now = self._clock()
        expired: list[UndeliverableDispatch] = []
        with self._lock:
            for pending_key, pending_dispatch in sorted(self._pending.items(), key=lambda item: item[1].deadline):
                if now < pending_dispatch.deadline:
                    continue
                del self._pending[pending_key]
                self._undeliverable_count += 1
                expired.append(
                    UndeliverableDispatch(
                        call_id=pending_dispatch.call.call_id,
                        department_name=pending_dispatch.department_name,
                        waited_seconds=(now - pending_dispatch.requested_at).total_seconds(),
                    )
                )

        for undeliverable in expired:
            logger.error(
                "Call %s undeliverable: no %s available after %.0fs",
                undeliverable.call_id,
                undeliverable.department_name,
                undeliverable.waited_seconds,
            )
        return expired

    def dispatch_pending(self) -> list[PendingDispatch]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda pending_dispatch: pending_dispatch.requested_at)

    def dispatch_statistics(self) -> dict[str, Any]:
        """Return dispatch counters.

        Returns:
            dict[str, Any]: Calls received, per-department dispatches, pending and undeliverable counts.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        with self._lock:
            return {
                "calls_received": self._calls_received,
                "dispatches": dict(sorted(self._dispatch_counts.items())),
                "pending": len(self._pending),
                "undeliverable": self._undeliverable_count,
            }

    def dispatch_handle_envelope(self, envelope: Mapping[str, Any]) -> None:
        """Bus handler for calls, change notifications and announcements."""

        try:
            message_tag, message = message_decode_envelope(envelope)
        except MalformedMessageError as error:
            logger.warning("Dropping malformed message on dispatch channel: %s", error)
            return

        if isinstance(message, EmergencyCall):
            self.dispatch_route(message)
        elif isinstance(message, DepartmentChangeNotification):
            self.dispatch_apply_change(message.message_to_change())
        elif isinstance(message, DepartmentAnnouncement):
            self.dispatch_handle_announcement(message)
        else:
            logger.debug("Ignoring %s on dispatch channel", message_tag)

    def _dispatch_forward(self, call: EmergencyCall, department_name: str) -> bool:
        envelope = message_build_envelope(call, sender=self._service_name, recipient=department_name)
        try:
            self._bus.bus_publish(department_name, envelope)
        except MessageBusError as error:
            logger.warning("Failed to forward call %s to %s: %s", call.call_id, department_name, error)
            return False

        with self._lock:
            self._dispatch_counts[department_name] += 1
        logger.info("Forwarded call %s to %s", call.call_id, department_name)
        return True

    def _dispatch_defer(self, call: EmergencyCall, missing_names: list[tuple[str, str]]) -> None:
        now = self._clock()
        names_to_request: list[str] = []
        with self._lock:
            requested_names = {pending_dispatch.requested_name for pending_dispatch in self._pending.values()}
            for department_name, requested_name in missing_names:
                if requested_name not in requested_names:
                    requested_names.add(requested_name)
                    names_to_request.append(requested_name)
                self._pending[(call.call_id, department_name)] = PendingDispatch(
                    call=call,
                    department_name=department_name,
                    requested_name=requested_name,
                    requested_at=now,
                    deadline=now + self._pending_timeout,
                )

        logger.warning(
            "Missing departments for call %s: %s",
            call.call_id,
            ", ".join(department_name for department_name, _ in missing_names),
        )
        for department_name in names_to_request:
            readable_name = department_name.replace("_department", "").replace("_", " ")
            request = ServiceRequest(
                requesting_service=self._service_name,
                emergency_type=call.emergency_type,
                description=f"Need {readable_name} department to handle: {call.description}",
                urgency=call.severity or "high",
                department_needed=department_name,
                original_call_id=call.call_id,
                details={"reason": f"emergency requiring {readable_name} department"},
            )
            envelope = message_build_envelope(request, sender=self._service_name, recipient=self._council_name)
            try:
                self._bus.bus_publish(self._council_name, envelope)
            except MessageBusError as error:
                logger.warning("Service request for %s not published: %s", department_name, error)
                continue
            logger.info("Requested department %s from %s", department_name, self._council_name)
