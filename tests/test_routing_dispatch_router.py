"""Tests for call classification, deferral, release and expiry in the dispatch router."""

from __future__ import annotations

from city_services.adapters import InMemoryMessageBus
from city_services.domain import CHANGE_TYPE_CONSOLIDATED, CHANGE_TYPE_TERMINATED, ChangeNotification
from city_services.messages import (
    DepartmentAnnouncement,
    DepartmentChangeNotification,
    EmergencyCall,
    message_build_envelope,
)
from city_services.routing import DispatchRouter, RoutingTable, RuleTableDepartmentClassifier


def _build_router(manual_clock, live_names=()) -> tuple[InMemoryMessageBus, RoutingTable, DispatchRouter]:
    bus = InMemoryMessageBus()
    routing_table = RoutingTable(live_names=live_names)
    router = DispatchRouter(
        bus=bus,
        routing_table=routing_table,
        service_name="emergency_dispatch_center",
        council_name="city_council",
        clock=manual_clock,
        pending_timeout_seconds=120.0,
    )
    return bus, routing_table, router


def test_classifier_maps_types_keywords_and_escalations() -> None:
    classifier = RuleTableDepartmentClassifier()

    assert classifier.classifier_required_departments(EmergencyCall(emergency_type="fire")) == ["fire_department"]
    assert classifier.classifier_required_departments(
        EmergencyCall(emergency_type="infrastructure_emergency", description="Burst PIPE on Main street")
    ) == ["water_management_department"]
    assert classifier.classifier_required_departments(
        EmergencyCall(emergency_type="infrastructure", description="strange noise")
    ) == ["public_works_department"]
    assert classifier.classifier_required_departments(EmergencyCall(emergency_type="alien_landing")) == [
        "police_department"
    ]
    assert classifier.classifier_required_departments(
        EmergencyCall(emergency_type="accident", injuries_reported=True, severity="critical")
    ) == ["police_department", "fire_department"]
    assert classifier.classifier_required_departments(
        EmergencyCall(emergency_type="fire", requested_department=" water_department ")
    ) == ["water_department"]


def test_dispatch_forwards_call_to_live_resolved_department(manual_clock) -> None:
    bus, routing_table, router = _build_router(manual_clock, live_names=["water_utilities_department"])
    routing_table.routing_apply(
        ChangeNotification(
            change_id="c1",
            change_type=CHANGE_TYPE_CONSOLIDATED,
            affected_names=("water_department",),
            routing_changes={"water_department": "water_utilities_department"},
            new_name="water_utilities_department",
        )
    )
    call = EmergencyCall(call_id="call-1", emergency_type="water_emergency", description="flooded basement")

    dispatched_names = router.dispatch_route(call)

    assert dispatched_names == ["water_utilities_department"]
    forwarded = bus.bus_published("water_utilities_department")
    assert forwarded[0]["message_type"] == "EmergencyCall"
    assert forwarded[0]["payload"]["call_id"] == "call-1"
    assert router.dispatch_statistics() == {
        "calls_received": 1,
        "dispatches": {"water_utilities_department": 1},
        "pending": 0,
        "undeliverable": 0,
    }


def test_dispatch_defers_missing_department_and_requests_it_once(manual_clock) -> None:
    bus, _, router = _build_router(manual_clock)

    router.dispatch_route(EmergencyCall(call_id="call-1", emergency_type="fire"))
    router.dispatch_route(EmergencyCall(call_id="call-2", emergency_type="rescue"))

    requests = bus.bus_published("city_council")
    assert len(requests) == 1
    assert requests[0]["message_type"] == "ServiceRequest"
    assert requests[0]["payload"]["department_needed"] == "fire_department"
    assert requests[0]["payload"]["original_call_id"] == "call-1"
    assert [pending.call.call_id for pending in router.dispatch_pending()] == ["call-1", "call-2"]


def test_dispatch_releases_deferred_calls_when_department_is_launched(manual_clock) -> None:
    """Release deferred calls once the council announces the department.

    Returns:
        None: Assertions validate release after a launch announcement.

    Raises:
        AssertionError: Raised when deferred calls are not forwarded.
    """

    bus, _, router = _build_router(manual_clock)
    router.dispatch_subscribe()
    router.dispatch_route(EmergencyCall(call_id="call-1", emergency_type="fire"))

    announcement = DepartmentAnnouncement(department_name="fire_department", status="launched", process_id="4242")
    bus.bus_publish(
        "emergency_dispatch_center",
        message_build_envelope(announcement, sender="city_council", recipient="emergency_dispatch_center"),
    )

    assert router.dispatch_pending() == []
    forwarded = bus.bus_published("fire_department")
    assert [envelope["payload"]["call_id"] for envelope in forwarded] == ["call-1"]


def test_dispatch_releases_deferred_calls_on_created_change_notification(manual_clock) -> None:
    bus, _, router = _build_router(manual_clock)
    router.dispatch_subscribe()
    router.dispatch_route(EmergencyCall(call_id="call-1", emergency_type="parks_emergency"))

    notification = DepartmentChangeNotification(
        change_type="created",
        affected_departments=["parks_department"],
        new_department="parks_department",
    )
    bus.bus_publish(
        "emergency_dispatch_center",
        message_build_envelope(notification, sender="city_council", recipient="emergency_dispatch_center"),
    )

    assert router.dispatch_pending() == []
    assert len(bus.bus_published("parks_department")) == 1


def test_dispatch_reports_undeliverable_after_bounded_wait(manual_clock, caplog) -> None:
    _, _, router = _build_router(manual_clock)
    router.dispatch_route(EmergencyCall(call_id="call-1", emergency_type="sanitation_emergency"))

    manual_clock.clock_advance(119)
    assert router.dispatch_expire_pending() == []

    manual_clock.clock_advance(1)
    with caplog.at_level("ERROR", logger="city_services.routing.dispatch_router"):
        expired = router.dispatch_expire_pending()

    assert [(item.call_id, item.department_name, item.waited_seconds) for item in expired] == [
        ("call-1", "sanitation_department", 120.0)
    ]
    assert router.dispatch_pending() == []
    assert router.dispatch_statistics()["undeliverable"] == 1
    assert "undeliverable" in caplog.text


def test_dispatch_drops_malformed_envelopes(manual_clock, caplog) -> None:
    bus, _, router = _build_router(manual_clock)
    router.dispatch_subscribe()

    with caplog.at_level("WARNING", logger="city_services.routing.dispatch_router"):
        bus.bus_publish("911", {"message_type": "EmergencyCall", "payload": {"severity": "high"}})
        bus.bus_publish("911", {"message_type": "TeleportRequest", "payload": {}})

    assert router.dispatch_statistics()["calls_received"] == 0
    assert caplog.text.count("Dropping malformed message") == 2


def test_dispatch_requests_redirect_target_instead_of_retired_department(manual_clock) -> None:
    bus, routing_table, router = _build_router(manual_clock)
    router.dispatch_subscribe()
    routing_table.routing_apply(
        ChangeNotification(
            change_id="c-terminate",
            change_type=CHANGE_TYPE_TERMINATED,
            affected_names=("water_department",),
            routing_changes={"water_department": "public_works_department"},
            fallback_name="emergency_dispatch_center",
        )
    )

    dispatched_names = router.dispatch_route(EmergencyCall(call_id="call-1", emergency_type="water_emergency"))

    requests = bus.bus_published("city_council")
    assert dispatched_names == []
    assert [envelope["payload"]["department_needed"] for envelope in requests] == ["public_works_department"]
    pending = router.dispatch_pending()
    assert [(item.department_name, item.requested_name) for item in pending] == [
        ("water_department", "public_works_department")
    ]

    announcement = DepartmentAnnouncement(department_name="public_works_department", status="launched")
    bus.bus_publish(
        "emergency_dispatch_center",
        message_build_envelope(announcement, sender="city_council", recipient="emergency_dispatch_center"),
    )

    assert router.dispatch_pending() == []
    assert [envelope["payload"]["call_id"] for envelope in bus.bus_published("public_works_department")] == ["call-1"]


def test_dispatch_failed_announcement_removes_department_from_live_set(manual_clock) -> None:
    bus, routing_table, router = _build_router(manual_clock, live_names=["water_department"])
    router.dispatch_subscribe()

    announcement = DepartmentAnnouncement(department_name="water_department", status="failed")
    bus.bus_publish(
        "emergency_dispatch_center",
        message_build_envelope(announcement, sender="city_council", recipient="emergency_dispatch_center"),
    )
    dispatched_names = router.dispatch_route(EmergencyCall(call_id="call-1", emergency_type="water_emergency"))

    assert routing_table.routing_is_live("water_department") is False
    assert dispatched_names == []
    assert bus.bus_published("water_department") == []
