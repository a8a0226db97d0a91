"""Tests for health-check emission over the bus and reply correlation."""

from __future__ import annotations

import pytest

from city_services.adapters import InMemoryMessageBus
from city_services.domain import DEPARTMENT_STATUS_RUNNING, DEPARTMENT_STATUS_UNRESPONSIVE
from city_services.messages import HealthStatusReply, MalformedMessageError, ServiceRequest, message_build_envelope
from city_services.supervision import HealthProtocol, ProcessSupervisor, SupervisorConfig


def _build_protocol(fake_launcher, manual_clock) -> tuple[InMemoryMessageBus, ProcessSupervisor, HealthProtocol]:
    bus = InMemoryMessageBus()
    supervisor = ProcessSupervisor(launcher=fake_launcher, config=SupervisorConfig(), clock=manual_clock)
    protocol = HealthProtocol(bus=bus, supervisor=supervisor, service_name="city_council")
    supervisor.supervisor_bind_health_sender(protocol)
    return bus, supervisor, protocol


def test_health_protocol_tick_publishes_request_on_department_channel(fake_launcher, manual_clock) -> None:
    bus, supervisor, protocol = _build_protocol(fake_launcher, manual_clock)
    supervisor.supervisor_register("water_department")

    supervisor.supervisor_tick()

    published = bus.bus_published("water_department")
    assert len(published) == 1
    assert published[0]["message_type"] == "HealthCheckRequest"
    assert published[0]["sender"] == "city_council"
    assert published[0]["payload"]["from"] == "city_council"
    assert published[0]["payload"]["to"] == "water_department"
    assert protocol.health_pending_count() == 1


def test_health_protocol_reply_envelope_updates_supervisor(fake_launcher, manual_clock) -> None:
    bus, supervisor, protocol = _build_protocol(fake_launcher, manual_clock)
    supervisor.supervisor_register("water_department")
    supervisor.supervisor_tick()
    check_id = bus.bus_published("water_department")[0]["payload"]["check_id"]

    reply = HealthStatusReply(check_id=check_id, service_name="water_department", status="healthy", uptime_seconds=12.5)
    applied = protocol.health_handle_envelope(
        message_build_envelope(reply, sender="water_department", recipient="city_council")
    )

    assert applied is True
    assert protocol.health_pending_count() == 0
    snapshot = supervisor.supervisor_get("water_department")
    assert snapshot is not None
    assert snapshot.status == DEPARTMENT_STATUS_RUNNING


def test_health_protocol_non_healthy_status_counts_as_failure(fake_launcher, manual_clock) -> None:
    _, supervisor, protocol = _build_protocol(fake_launcher, manual_clock)
    supervisor.supervisor_register("water_department")
    protocol.health_on_reply("water_department", status="healthy")

    protocol.health_on_reply("water_department", status="warning")

    snapshot = supervisor.supervisor_get("water_department")
    assert snapshot is not None
    assert snapshot.health_failure_count == 1
    assert snapshot.status == DEPARTMENT_STATUS_UNRESPONSIVE
    assert snapshot.last_reported_status == "warning"


def test_health_protocol_skips_untracked_departments(fake_launcher, manual_clock) -> None:
    bus, _, protocol = _build_protocol(fake_launcher, manual_clock)

    assert protocol.health_send_check("ghost_department") is None
    assert bus.bus_published() == []
    assert protocol.health_on_reply("ghost_department", status="healthy") is False


def test_health_protocol_rejects_envelopes_that_are_not_health_replies(fake_launcher, manual_clock) -> None:
    _, _, protocol = _build_protocol(fake_launcher, manual_clock)
    request = ServiceRequest(requesting_service="emergency_dispatch_center", department_needed="water_department")

    with pytest.raises(MalformedMessageError):
        protocol.health_handle_envelope(
            message_build_envelope(request, sender="emergency_dispatch_center", recipient="city_council")
        )


def test_health_protocol_transport_failure_is_logged_not_raised(fake_launcher, manual_clock) -> None:
    bus, supervisor, protocol = _build_protocol(fake_launcher, manual_clock)
    supervisor.supervisor_register("water_department")
    bus.bus_close()

    check_id = protocol.health_send_check("water_department")

    assert check_id is not None
    snapshot = supervisor.supervisor_get("water_department")
    assert snapshot is not None
    assert snapshot.awaiting_response is True
