"""Integration tests for the council orchestrator over the in-memory bus."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from city_services.adapters import InMemoryMessageBus
from city_services.discovery import RegistryScanner
from city_services.domain import (
    DECISION_APPROVED,
    DECISION_REJECTED,
    DEPARTMENT_STATUS_PERMANENTLY_FAILED,
    DEPARTMENT_STATUS_RUNNING,
    ManualClock,
)
from city_services.governance import NotificationDispatcher, RecommendationEvaluator
from city_services.jobs import ManualTicker, OrchestratorConfig, OrchestratorLoop
from city_services.messages import (
    ConsolidationRecommendation,
    EmergencyCall,
    HealthCheckRequest,
    ServiceRequest,
    TerminationRecommendation,
    message_build_envelope,
    message_decode_envelope,
)
from city_services.routing import DispatchRouter, RoutingTable
from city_services.supervision import HealthProtocol, ProcessSupervisor, SupervisorConfig


class _DecisionLogStub:
    """Decision log stub capturing record calls."""

    def __init__(self, fail: bool = False):
        self.recorded: list[dict[str, object]] = []
        self._fail = fail

    def db_decision_record(self, decision, proposed_by, subject, change=None):
        """Capture one record call.

        Args:
            decision: Council decision.
            proposed_by: Proposing analyzer.
            subject: Decision subject.
            change: Optional change notification.

        Returns:
            dict[str, object]: Captured call payload.

        Raises:
            RuntimeError: Raised when the stub is configured to fail.
        """

        if self._fail:
            raise RuntimeError("failed to record council decision")
        call = {"decision": decision, "proposed_by": proposed_by, "subject": subject, "change": change}
        self.recorded.append(call)
        return call


@dataclass
class _Council:
    bus: InMemoryMessageBus
    clock: ManualClock
    template_source: object
    scanner: RegistryScanner
    supervisor: ProcessSupervisor
    health_protocol: HealthProtocol
    evaluator: RecommendationEvaluator
    routing_table: RoutingTable
    decision_log: _DecisionLogStub
    orchestrator: OrchestratorLoop


def _build_council(fake_launcher, manual_clock, template_source, decision_log=None) -> _Council:
    bus = InMemoryMessageBus()
    scanner = RegistryScanner(template_source=template_source)
    supervisor = ProcessSupervisor(launcher=fake_launcher, config=SupervisorConfig(), clock=manual_clock)
    health_protocol = HealthProtocol(bus=bus, supervisor=supervisor, service_name="city_council")
    supervisor.supervisor_bind_health_sender(health_protocol)
    evaluator = RecommendationEvaluator(clock=manual_clock)
    routing_table = RoutingTable()
    notifier = NotificationDispatcher(
        bus=bus,
        directory=supervisor,
        service_name="city_council",
        recipients=["emergency_dispatch_center"],
    )
    resolved_decision_log = decision_log or _DecisionLogStub()
    orchestrator = OrchestratorLoop(
        bus=bus,
        scanner=scanner,
        supervisor=supervisor,
        health_protocol=health_protocol,
        evaluator=evaluator,
        notifier=notifier,
        routing_table=routing_table,
        config=OrchestratorConfig(service_name="city_council"),
        clock=manual_clock,
        decision_log=resolved_decision_log,
    )
    orchestrator.orchestrator_start()
    return _Council(
        bus=bus,
        clock=manual_clock,
        template_source=template_source,
        scanner=scanner,
        supervisor=supervisor,
        health_protocol=health_protocol,
        evaluator=evaluator,
        routing_table=routing_table,
        decision_log=resolved_decision_log,
        orchestrator=orchestrator,
    )


def _reply_all_healthy(council: _Council) -> None:
    for department_name in council.supervisor.supervisor_tracked_names():
        council.health_protocol.health_on_reply(department_name, status="healthy")


def _send_to_council(council: _Council, message, sender: str = "doge") -> None:
    council.bus.bus_publish("city_council", message_build_envelope(message, sender=sender, recipient="city_council"))


def _messages_on(council: _Council, channel: str, message_type: str) -> list:
    return [
        message_decode_envelope(envelope)[1]
        for envelope in council.bus.bus_published(channel)
        if envelope["message_type"] == message_type
    ]


def test_orchestrator_cycle_registers_discovered_departments(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    template_source = template_source_factory(["water_department", "utilities_department", "parks_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)

    cycle_result = council.orchestrator.orchestrator_run_cycle()

    assert cycle_result.registered_names == ("parks_department", "utilities_department", "water_department")
    assert cycle_result.tick.checked_names == ("parks_department", "utilities_department", "water_department")
    assert council.routing_table.routing_live_names() == (
        "parks_department",
        "utilities_department",
        "water_department",
    )
    assert fake_launcher.spawn_counts == {"parks_department": 1, "utilities_department": 1, "water_department": 1}


def test_orchestrator_consolidation_redirects_both_departments_to_successor(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    """Approve a water/utilities consolidation and resolve both names to the successor.

    Returns:
        None: Assertions validate decision, routing and lifecycle effects.

    Raises:
        AssertionError: Raised when the consolidation is not applied.
    """

    template_source = template_source_factory(["water_department", "utilities_department", "parks_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.orchestrator.orchestrator_run_cycle()
    _reply_all_healthy(council)

    _send_to_council(
        council,
        ConsolidationRecommendation(
            recommendation_id="rec-1",
            proposed_name="water_utilities_department",
            departments_to_merge=["water_department", "utilities_department"],
            similarity_score=80,
            estimated_annual_savings=200000,
        ),
    )

    decision = council.evaluator.governance_get_decision("rec-1")
    assert decision is not None
    assert decision.outcome == DECISION_APPROVED
    assert council.routing_table.routing_resolve("water_department") == "water_utilities_department"
    assert council.routing_table.routing_resolve("utilities_department") == "water_utilities_department"

    council_decisions = _messages_on(council, "doge", "CouncilDecision")
    assert [message.decision for message in council_decisions] == [DECISION_APPROVED]
    assert council_decisions[0].effective_date == "2026-11-16"

    assert council.supervisor.supervisor_tracked_names() == ("parks_department", "water_utilities_department")
    assert "water_department#1" in fake_launcher.terminated_handles
    assert fake_launcher.spawn_counts["water_utilities_department"] == 1

    changes = _messages_on(council, "emergency_dispatch_center", "DepartmentChangeNotification")
    assert [change.change_type for change in changes] == ["consolidated"]

    assert council.decision_log.recorded[0]["subject"] == "water_utilities_department"
    assert council.decision_log.recorded[0]["change"] is not None

    cycle_result = council.orchestrator.orchestrator_run_cycle()

    assert cycle_result.registered_names == ()
    assert council.routing_table.routing_resolve("water_department") == "water_utilities_department"


def test_orchestrator_redelivered_recommendation_has_no_second_effect(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    template_source = template_source_factory(["water_department", "utilities_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.orchestrator.orchestrator_run_cycle()
    recommendation = ConsolidationRecommendation(
        recommendation_id="rec-1",
        proposed_name="water_utilities_department",
        departments_to_merge=["water_department", "utilities_department"],
        similarity_score=80,
        estimated_annual_savings=200000,
    )

    _send_to_council(council, recommendation)
    _send_to_council(council, recommendation)

    assert len(_messages_on(council, "doge", "CouncilDecision")) == 1
    assert len(_messages_on(council, "emergency_dispatch_center", "DepartmentChangeNotification")) == 1
    assert len(council.decision_log.recorded) == 1
    assert fake_launcher.spawn_counts["water_utilities_department"] == 1


def test_orchestrator_rejected_termination_changes_nothing(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    template_source = template_source_factory(["police_department", "parks_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.orchestrator.orchestrator_run_cycle()

    _send_to_council(
        council,
        TerminationRecommendation(recommendation_id="rec-9", department_name="police_department", termination_reason="redundant"),
        sender="doge_vsm",
    )

    decisions = _messages_on(council, "doge", "CouncilDecision")
    assert [message.decision for message in decisions] == [DECISION_REJECTED]
    assert council.supervisor.supervisor_tracked_names() == ("parks_department", "police_department")
    assert council.routing_table.routing_edges() == ()
    assert council.decision_log.recorded[0]["change"] is None


def test_orchestrator_approved_termination_retires_department_for_good(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    template_source = template_source_factory(["parks_department", "water_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.orchestrator.orchestrator_run_cycle()

    council.orchestrator.orchestrator_handle_recommendation(
        TerminationRecommendation(recommendation_id="rec-3", department_name="parks_department", termination_reason="obsolete")
    )
    cycle_result = council.orchestrator.orchestrator_run_cycle()

    assert cycle_result.registered_names == ()
    assert council.orchestrator.orchestrator_retired_names() == ("parks_department",)
    assert council.supervisor.supervisor_tracked_names() == ("water_department",)
    assert council.routing_table.routing_resolve("parks_department") == "emergency_dispatch_center"


def test_orchestrator_service_request_launches_or_reports(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    template_source = template_source_factory(["parks_department", "fire_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.scanner.registry_scan()
    council.supervisor.supervisor_register("parks_department")

    launched = council.orchestrator.orchestrator_handle_service_request(
        ServiceRequest(requesting_service="emergency_dispatch_center", department_needed="fire_department")
    )
    active = council.orchestrator.orchestrator_handle_service_request(
        ServiceRequest(requesting_service="emergency_dispatch_center", department_needed="parks_department")
    )
    missing = council.orchestrator.orchestrator_handle_service_request(
        ServiceRequest(requesting_service="emergency_dispatch_center", department_needed="dragon_department")
    )

    assert (launched, active, missing) == ("launched", "active", "failed")
    announcements = _messages_on(council, "emergency_dispatch_center", "DepartmentAnnouncement")
    assert [(message.department_name, message.status) for message in announcements] == [
        ("fire_department", "launched"),
        ("parks_department", "active"),
        ("dragon_department", "failed"),
    ]
    assert announcements[0].process_id == "fire_department#1"
    assert council.routing_table.routing_is_live("fire_department") is True


def test_orchestrator_announces_departments_once_they_run(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    template_source = template_source_factory(["water_department", "parks_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)

    first_cycle = council.orchestrator.orchestrator_run_cycle()
    _reply_all_healthy(council)
    second_cycle = council.orchestrator.orchestrator_run_cycle()
    third_cycle = council.orchestrator.orchestrator_run_cycle()

    assert first_cycle.announced_names == ()
    assert second_cycle.announced_names == ("parks_department", "water_department")
    assert third_cycle.announced_names == ()
    changes = _messages_on(council, "emergency_dispatch_center", "DepartmentChangeNotification")
    assert sorted(change.new_department for change in changes) == ["parks_department", "water_department"]


def test_orchestrator_requests_analysis_on_interval(fake_launcher, manual_clock, template_source_factory) -> None:
    template_source = template_source_factory(["a_department", "b_department", "c_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)

    first_cycle = council.orchestrator.orchestrator_run_cycle()
    second_cycle = council.orchestrator.orchestrator_run_cycle()
    manual_clock.clock_advance(300)
    third_cycle = council.orchestrator.orchestrator_run_cycle()

    assert (first_cycle.analysis_requested, second_cycle.analysis_requested, third_cycle.analysis_requested) == (
        True,
        False,
        True,
    )
    assert len(_messages_on(council, "doge", "DepartmentAnalysisRequest")) == 2
    assert len(_messages_on(council, "doge_vsm", "DepartmentAnalysisRequest")) == 2


def test_orchestrator_replies_to_council_health_checks(fake_launcher, manual_clock, template_source_factory) -> None:
    template_source = template_source_factory(["a_department", "b_department", "c_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.orchestrator.orchestrator_run_cycle()

    _send_to_council(council, HealthCheckRequest(from_service="city_monitor", to_service="city_council"), sender="city_monitor")

    replies = _messages_on(council, "city_monitor", "HealthStatusReply")
    assert len(replies) == 1
    assert replies[0].service_name == "city_council"
    assert replies[0].status == "warning"
    assert replies[0].details["departments"]["monitored"] == 3


def test_orchestrator_drops_malformed_messages(fake_launcher, manual_clock, template_source_factory, caplog) -> None:
    council = _build_council(fake_launcher, manual_clock, template_source_factory([]))

    with caplog.at_level("WARNING", logger="city_services.jobs.orchestrator"):
        council.bus.bus_publish("city_council", {"message_type": "ConsolidationRecommendation", "payload": {}})
        council.bus.bus_publish("city_council", {"payload": {"status": "healthy"}})

    assert caplog.text.count("Dropping malformed message") == 2
    assert council.evaluator.governance_decisions() == []


def test_orchestrator_cycle_survives_unreadable_registry(fake_launcher, manual_clock, template_source_factory) -> None:
    template_source = template_source_factory(["water_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    council.orchestrator.orchestrator_run_cycle()
    template_source.unreadable = True

    execution_result = council.orchestrator.job_execute("supervision_cycle")

    assert execution_result.status == "success"
    assert council.supervisor.supervisor_tracked_names() == ("water_department",)


def test_orchestrator_job_execute_reports_failure_and_rejects_unknown_jobs(
    fake_launcher, manual_clock, template_source_factory, monkeypatch
) -> None:
    council = _build_council(fake_launcher, manual_clock, template_source_factory(["water_department"]))

    def _raise_scan():
        raise RuntimeError("scanner crashed")

    monkeypatch.setattr(council.scanner, "registry_scan", _raise_scan)

    assert council.orchestrator.job_supported_names() == ("supervision_cycle",)
    assert council.orchestrator.job_execute("supervision_cycle").status == "failed"
    with pytest.raises(ValueError):
        council.orchestrator.job_execute("ingestion_run")


def test_orchestrator_run_forever_drains_and_terminates_on_exit(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    council = _build_council(fake_launcher, manual_clock, template_source_factory(["water_department", "parks_department"]))
    ticker = ManualTicker(ticks=2, clock=manual_clock)

    cycle_count = council.orchestrator.orchestrator_run_forever(ticker)

    assert cycle_count == 3
    assert ticker.waited_intervals == [30.0, 30.0]
    assert council.supervisor.supervisor_is_shutting_down() is True
    assert sorted(fake_launcher.terminated_handles) == ["parks_department#1", "water_department#1"]
    assert fake_launcher.alive_handles == set()


def test_orchestrator_shutdown_request_stops_loop_before_next_cycle(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    council = _build_council(fake_launcher, manual_clock, template_source_factory(["water_department"]))
    ticker = ManualTicker(ticks=10, clock=manual_clock)

    council.orchestrator.orchestrator_request_shutdown()
    cycle_count = council.orchestrator.orchestrator_run_forever(ticker)

    assert cycle_count == 0
    assert council.supervisor.supervisor_tracked_names() == ()
    assert council.supervisor.supervisor_names_with_status(DEPARTMENT_STATUS_RUNNING) == ()


def test_orchestrator_withdraws_permanently_failed_department_from_dispatch(
    fake_launcher, manual_clock, template_source_factory
) -> None:
    """Stop routing work to a department once its restart budget is exhausted.

    Returns:
        None: Assertions validate that the dispatch router defers instead of forwarding.

    Raises:
        AssertionError: Raised when the router keeps forwarding to the failed department.
    """

    template_source = template_source_factory(["water_department"])
    council = _build_council(fake_launcher, manual_clock, template_source)
    router = DispatchRouter(
        bus=council.bus,
        routing_table=RoutingTable(),
        service_name="emergency_dispatch_center",
        council_name="city_council",
        clock=manual_clock,
    )
    router.dispatch_subscribe()

    council.orchestrator.orchestrator_run_cycle()
    _reply_all_healthy(council)
    council.orchestrator.orchestrator_run_cycle()
    assert router.dispatch_route(EmergencyCall(call_id="call-before", emergency_type="water_emergency")) == [
        "water_department"
    ]

    fake_launcher.dead_on_spawn.add("water_department")
    fake_launcher.launcher_kill_department("water_department")
    for _ in range(30):
        council.orchestrator.orchestrator_run_cycle()
        if council.supervisor.supervisor_get("water_department").status == DEPARTMENT_STATUS_PERMANENTLY_FAILED:
            break

    dispatched_names = router.dispatch_route(EmergencyCall(call_id="call-after", emergency_type="water_emergency"))

    assert council.supervisor.supervisor_get("water_department").status == DEPARTMENT_STATUS_PERMANENTLY_FAILED
    assert dispatched_names == []
    assert [pending.call.call_id for pending in router.dispatch_pending()] == ["call-after"]
    forwarded_calls = _messages_on(council, "water_department", "EmergencyCall")
    assert [call.call_id for call in forwarded_calls] == ["call-before"]
    announcements = _messages_on(council, "emergency_dispatch_center", "DepartmentAnnouncement")
    assert [(message.department_name, message.status) for message in announcements] == [
        ("water_department", "failed"),
        ("water_department", "failed"),
    ]
