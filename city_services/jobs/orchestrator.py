"""Council orchestrator loop tying discovery, supervision and governance together."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from city_services.adapters import MessageBusError, MessageBusPort
from city_services.db import DecisionLogRepositoryPort
from city_services.discovery import RegistryScanner, RegistryScanResult
from city_services.domain import (
    DEPARTMENT_STATUS_RUNNING,
    RECOMMENDATION_TYPE_CONSOLIDATION,
    ChangeNotification,
    ClockProvider,
    Decision,
    domain_build_lifecycle_event,
    domain_utc_now,
)
from city_services.governance import NotificationDispatcher, Recommendation, RecommendationEvaluator
from city_services.messages import (
    BusMessage,
    ConsolidationRecommendation,
    CouncilDecision,
    DepartmentAnalysisRequest,
    DepartmentAnnouncement,
    HealthCheckRequest,
    HealthStatusReply,
    MalformedMessageError,
    ServiceRequest,
    TerminationRecommendation,
    message_build_envelope,
    message_decode_envelope,
)
from city_services.routing import DispatchRouter, RoutingTable, UndeliverableDispatch
from city_services.supervision import HealthProtocol, ProcessSupervisor, SupervisionTickResult

from .interfaces import JobExecutionResult, JobOrchestratorPort, TickerPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    """Configuration values for the council orchestrator.

    Attributes:
        service_name: Council channel name.
        supervision_interval_seconds: Delay between supervision cycles.
        analyzer_names: Channels receiving periodic analysis requests.
        analysis_interval_seconds: Minimum delay between analysis requests.
        analysis_min_departments: Department count required before analysis is requested.
        decision_effective_days: Days between a decision and its effective date.
    """

    service_name: str = "city_council"
    supervision_interval_seconds: float = 30.0
    analyzer_names: tuple[str, ...] = ("doge", "doge_vsm")
    analysis_interval_seconds: float = 300.0
    analysis_min_departments: int = 3
    decision_effective_days: int = 30


@dataclass(frozen=True)
class OrchestratorCycleResult:
    """Outcome of one orchestrator cycle.

    Attributes:
        scan: Registry scan result, `None` when the template store was unreadable.
        registered_names: Departments newly placed under supervision.
        tick: Supervision tick result.
        announced_names: Departments announced as available routing targets.
        analysis_requested: Whether analysis requests were sent this cycle.
        undeliverable: Deferred calls expired by the attached dispatch router.
        events: Structured lifecycle events captured during the cycle.
    """

    scan: RegistryScanResult | None
    registered_names: tuple[str, ...]
    tick: SupervisionTickResult
    announced_names: tuple[str, ...] = ()
    analysis_requested: bool = False
    undeliverable: tuple[UndeliverableDispatch, ...] = ()
    events: list[dict[str, object]] = field(default_factory=list)


class OrchestratorLoop(JobOrchestratorPort):
    """City council control loop.

    Every cycle scans the registry, registers new departments, runs one
    supervision tick, refreshes the routing live set and announces departments
    that became available. Inbound messages on the council channel are
    dispatched through a fixed handler table built at construction.
    """

    _CYCLE_JOB_NAME = "supervision_cycle"

    def __init__(
        self,
        bus: MessageBusPort,
        scanner: RegistryScanner,
        supervisor: ProcessSupervisor,
        health_protocol: HealthProtocol,
        evaluator: RecommendationEvaluator,
        notifier: NotificationDispatcher,
        routing_table: RoutingTable,
        config: OrchestratorConfig | None = None,
        clock: ClockProvider | None = None,
        decision_log: DecisionLogRepositoryPort | None = None,
        dispatch_router: DispatchRouter | None = None,
    ):
        """Initialize orchestrator dependencies.

        Args:
            bus: Message bus for the council channel.
            scanner: Registry scanner.
            supervisor: Process supervisor.
            health_protocol: Health-check protocol bound to the supervisor.
            evaluator: Recommendation evaluator.
            notifier: Change notification dispatcher.
            routing_table: Council-side routing table.
            config: Orchestrator configuration.
            clock: Optional clock provider for virtual time.
            decision_log: Optional persistent decision log.
            dispatch_router: Optional in-process dispatch router whose deferred calls are expired each cycle.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        resolved_config = config or OrchestratorConfig()
        if bus is None:
            raise ValueError("bus must not be None")
        if scanner is None:
            raise ValueError("scanner must not be None")
        if supervisor is None:
            raise ValueError("supervisor must not be None")
        if health_protocol is None:
            raise ValueError("health_protocol must not be None")
        if evaluator is None:
            raise ValueError("evaluator must not be None")
        if notifier is None:
            raise ValueError("notifier must not be None")
        if routing_table is None:
            raise ValueError("routing_table must not be None")
        if not resolved_config.service_name.strip():
            raise ValueError("config.service_name must not be blank")
        if resolved_config.supervision_interval_seconds <= 0:
            raise ValueError("config.supervision_interval_seconds must be > 0")

        self._bus = bus
        self._scanner = scanner
        self._supervisor = supervisor
        self._health_protocol = health_protocol
        self._evaluator = evaluator
        self._notifier = notifier
        self._routing_table = routing_table
        self._config = resolved_config
        self._clock = clock or domain_utc_now
        self._decision_log = decision_log
        self._dispatch_router = dispatch_router

        self._state_lock = threading.RLock()
        self._retired_names: set[str] = set()
        self._announced_names: set[str] = set()
        self._last_analysis_at: datetime | None = None
        self._started_at = self._clock()
        self._message_count = 0
        self._shutdown_requested = False
        self._ticker: TickerPort | None = None
        self._subscribed = False

        self._message_handlers: dict[type[BusMessage], Callable[[Any], None]] = {
            HealthStatusReply: self._orchestrator_on_health_reply,
            HealthCheckRequest: self.orchestrator_reply_self_health,
            ConsolidationRecommendation: self.orchestrator_handle_recommendation,
            TerminationRecommendation: self.orchestrator_handle_recommendation,
            ServiceRequest: self.orchestrator_handle_service_request,
        }

    def job_supported_names(self) -> tuple[str, ...]:
        return (self._CYCLE_JOB_NAME,)

    def job_execute(self, job_name: str) -> JobExecutionResult:
        """Run one orchestrator cycle as a named job.

        Args:
            job_name: Name of job to execute.

        Returns:
            JobExecutionResult: `success`, or `failed` when the cycle raised.

        Raises:
            ValueError: Raised when job name is unsupported.
        """

        normalized_job_name = job_name.strip()
        if normalized_job_name != self._CYCLE_JOB_NAME:
            raise ValueError(f"unsupported job_name={normalized_job_name}")

        try:
            self.orchestrator_run_cycle()
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Orchestrator cycle failed")
            return JobExecutionResult(job_name=normalized_job_name, status="failed")
        return JobExecutionResult(job_name=normalized_job_name, status="success")

    def orchestrator_start(self) -> None:
        """Subscribe the handler table to the council channel (idempotent)."""

        with self._state_lock:
            if self._subscribed:
                return
            self._subscribed = True
        self._bus.bus_subscribe(self._config.service_name, self.orchestrator_handle_envelope)
        logger.info("Council %s listening for messages", self._config.service_name)

    def orchestrator_run_cycle(self) -> OrchestratorCycleResult:
        """Run one orchestrator cycle.

        Returns:
            OrchestratorCycleResult: Scan, supervision and announcement outcome.

        Raises:
            RuntimeError: Raised by collaborators on unexpected failures.
        """

        events: list[dict[str, object]] = []
        scan_result: RegistryScanResult | None
        try:
            scan_result = self._scanner.registry_scan()
        except OSError as error:
            logger.warning("Department registry scan failed: %s", error)
            scan_result = None

        registered_names: list[str] = []
        if scan_result is not None and not self._supervisor.supervisor_is_shutting_down():
            tracked_names = set(self._supervisor.supervisor_tracked_names())
            with self._state_lock:
                retired_names = set(self._retired_names)
            for department_name in scan_result.department_names:
                if department_name in tracked_names or department_name in retired_names:
                    continue
                self._supervisor.supervisor_register(department_name)
                registered_names.append(department_name)
                events.append(domain_build_lifecycle_event(subject=department_name, event="registered", at=self._clock()))

        tick_result = self._supervisor.supervisor_tick()
        events.extend(tick_result.events)
        self._routing_table.routing_set_live_names(self._supervisor.supervisor_live_names())
        self._orchestrator_withdraw_failed(tick_result.permanently_failed_names)

        announced_names = self._orchestrator_announce_running()
        analysis_requested = self._orchestrator_maybe_request_analysis()

        undeliverable: tuple[UndeliverableDispatch, ...] = ()
        if self._dispatch_router is not None:
            undeliverable = tuple(self._dispatch_router.dispatch_expire_pending())

        return OrchestratorCycleResult(
            scan=scan_result,
            registered_names=tuple(registered_names),
            tick=tick_result,
            announced_names=announced_names,
            analysis_requested=analysis_requested,
            undeliverable=undeliverable,
            events=events,
        )

    def orchestrator_run_forever(self, ticker: TickerPort) -> int:
        """Run cycles on the ticker cadence until shutdown, then clean up processes.

        Args:
            ticker: Cadence source.

        Returns:
            int: Number of cycles executed.

        Raises:
            ValueError: Raised when ticker is None.
        """

        if ticker is None:
            raise ValueError("ticker must not be None")
        with self._state_lock:
            self._ticker = ticker
            shutdown_requested = self._shutdown_requested
        if shutdown_requested:
            ticker.ticker_stop()

        self.orchestrator_start()
        cycle_count = 0
        try:
            while not self._shutdown_requested:
                self.job_execute(self._CYCLE_JOB_NAME)
                cycle_count += 1
                if not ticker.ticker_wait(self._config.supervision_interval_seconds):
                    break
        finally:
            self._supervisor.supervisor_begin_shutdown()
            terminated_count = self._supervisor.supervisor_terminate_all()
            logger.info("Council stopped after %s cycle(s), terminated %s process(es)", cycle_count, terminated_count)
        return cycle_count

    def orchestrator_request_shutdown(self) -> None:
        """Stop issuing health checks and restarts and end the run loop."""

        with self._state_lock:
            self._shutdown_requested = True
            ticker = self._ticker
        self._supervisor.supervisor_begin_shutdown()
        if ticker is not None:
            ticker.ticker_stop()

    def orchestrator_handle_envelope(self, envelope: Mapping[str, Any]) -> None:
        """Bus handler for the council channel; malformed messages are dropped."""

        try:
            message_tag, message = message_decode_envelope(envelope)
        except MalformedMessageError as error:
            logger.warning("Dropping malformed message: %s", error)
            return

        with self._state_lock:
            self._message_count += 1

        handler = self._message_handlers.get(type(message))
        if handler is None:
            logger.warning("No council handler for message_type=%s", message_tag)
            return
        handler(message)

    def orchestrator_handle_recommendation(self, recommendation: Recommendation) -> Decision:
        """Decide one recommendation, reply to the proposer and apply approved changes.

        Args:
            recommendation: Consolidation or termination recommendation.

        Returns:
            Decision: Recorded decision (the original one for redeliveries).

        Raises:
            TypeError: Raised when the recommendation type is unsupported.
        """

        evaluation = self._evaluator.governance_evaluate(recommendation)
        decision = evaluation.decision
        if evaluation.duplicate:
            return decision

        logger.info(
            "Council decision %s for %s recommendation %s from %s",
            decision.outcome,
            decision.recommendation_type,
            decision.recommendation_id,
            recommendation.analyzed_by,
        )
        self._orchestrator_send_decision(decision, recommendation)

        change: ChangeNotification | None = None
        if decision.decision_is_approved():
            change = self._notifier.notification_broadcast(decision, recommendation)
            self._routing_table.routing_apply(change)
            self._orchestrator_implement_change(recommendation, change)

        self._orchestrator_record_decision(decision, recommendation, change)
        return decision

    def orchestrator_handle_service_request(self, request: ServiceRequest) -> str:
        """Launch a missing department if a template exists.

        Args:
            request: Service request from a routing-aware consumer.

        Returns:
            str: Announcement status sent back (`active`, `launched` or `failed`).

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        department_name = (request.department_needed or str(request.details.get("department_needed") or "")).strip()
        if not department_name:
            logger.warning("Service request from %s names no department", request.requesting_service)
            return "failed"

        if department_name in self._supervisor.supervisor_live_names():
            return self._orchestrator_announce(request.requesting_service, department_name, "active")
        if department_name in self._supervisor.supervisor_tracked_names():
            logger.warning(
                "Cannot provide %s requested by %s: permanently failed",
                department_name,
                request.requesting_service,
            )
            return self._orchestrator_announce(
                request.requesting_service,
                department_name,
                "failed",
                description=f"{department_name} permanently failed",
            )

        with self._state_lock:
            is_retired = department_name in self._retired_names
        if is_retired or not self._scanner.registry_has_template(department_name):
            logger.warning(
                "Cannot provide %s requested by %s: no deployable template",
                department_name,
                request.requesting_service,
            )
            return self._orchestrator_announce(
                request.requesting_service,
                department_name,
                "failed",
                description=f"No template available for {department_name}",
            )

        handle = self._supervisor.supervisor_register(department_name)
        if handle is None:
            return self._orchestrator_announce(
                request.requesting_service,
                department_name,
                "failed",
                description=f"Launch of {department_name} failed",
            )

        self._routing_table.routing_mark_live(department_name)
        process_id = getattr(handle, "pid", handle)
        return self._orchestrator_announce(
            request.requesting_service,
            department_name,
            "launched",
            process_id=str(process_id),
        )

    def orchestrator_reply_self_health(self, request: HealthCheckRequest) -> HealthStatusReply:
        """Answer a health check addressed to the council.

        Args:
            request: Incoming health check.

        Returns:
            HealthStatusReply: Published reply.

        Raises:
            RuntimeError: Transport failures are logged, not raised.
        """

        summary = self._supervisor.supervisor_health_summary()
        department_count = summary["monitored"]
        if department_count < 3:
            status = "critical"
        elif department_count <= 5:
            status = "warning"
        else:
            status = "healthy"

        with self._state_lock:
            message_count = self._message_count
        reply = HealthStatusReply(
            check_id=request.check_id,
            service_name=self._config.service_name,
            status=status,
            uptime_seconds=max(0.0, (self._clock() - self._started_at).total_seconds()),
            message_count=message_count,
            details={"departments": summary},
        )
        self._orchestrator_publish(request.from_service, reply)
        return reply

    def orchestrator_retired_names(self) -> tuple[str, ...]:
        with self._state_lock:
            return tuple(sorted(self._retired_names))

    def _orchestrator_on_health_reply(self, reply: HealthStatusReply) -> None:
        self._health_protocol.health_on_reply(
            department_name=reply.service_name,
            status=reply.status,
            metrics={"uptime_seconds": reply.uptime_seconds, "message_count": reply.message_count},
            check_id=reply.check_id,
        )

    def _orchestrator_implement_change(self, recommendation: Recommendation, change: ChangeNotification) -> None:
        """Retire replaced departments and launch a consolidated successor."""

        replaced_names = [name for name in change.affected_names if name != change.new_name]
        with self._state_lock:
            self._retired_names.update(replaced_names)
            self._announced_names.difference_update(replaced_names)
        for department_name in replaced_names:
            self._supervisor.supervisor_retire(department_name)

        if isinstance(recommendation, ConsolidationRecommendation) and change.new_name:
            with self._state_lock:
                self._retired_names.discard(change.new_name)
            if change.new_name not in self._supervisor.supervisor_tracked_names():
                self._supervisor.supervisor_register(change.new_name)

    def _orchestrator_send_decision(self, decision: Decision, recommendation: Recommendation) -> None:
        effective_date = (self._clock().date() + timedelta(days=self._config.decision_effective_days)).isoformat()
        message = CouncilDecision(
            recommendation_id=decision.recommendation_id,
            recommendation_type=decision.recommendation_type,
            decision=decision.outcome,
            decision_rationale=decision.rationale,
            effective_date=effective_date,
            decided_by=self._config.service_name,
        )
        self._orchestrator_publish(recommendation.analyzed_by, message)

    def _orchestrator_record_decision(
        self,
        decision: Decision,
        recommendation: Recommendation,
        change: ChangeNotification | None,
    ) -> None:
        if self._decision_log is None:
            return
        if decision.recommendation_type == RECOMMENDATION_TYPE_CONSOLIDATION:
            subject = recommendation.proposed_name
        else:
            subject = recommendation.department_name
        try:
            self._decision_log.db_decision_record(
                decision=decision,
                proposed_by=recommendation.analyzed_by,
                subject=subject,
                change=change,
            )
        except RuntimeError:
            logger.exception("Failed to persist decision for recommendation %s", decision.recommendation_id)

    def _orchestrator_announce_running(self) -> tuple[str, ...]:
        running_names = set(self._supervisor.supervisor_names_with_status(DEPARTMENT_STATUS_RUNNING))
        with self._state_lock:
            self._announced_names.intersection_update(running_names)
            new_names = sorted(running_names.difference(self._announced_names))
            self._announced_names.update(new_names)

        for department_name in new_names:
            self._notifier.notification_announce_created(department_name)
        return tuple(new_names)

    def _orchestrator_withdraw_failed(self, failed_names: tuple[str, ...]) -> None:
        with self._state_lock:
            self._announced_names.difference_update(failed_names)
        for department_name in failed_names:
            self._notifier.notification_announce_unavailable(
                department_name,
                description=f"{department_name} permanently failed after exhausting its restart budget",
            )

    def _orchestrator_maybe_request_analysis(self) -> bool:
        now = self._clock()
        department_names = self._supervisor.supervisor_live_names()
        with self._state_lock:
            if len(department_names) < self._config.analysis_min_departments:
                return False
            if (
                self._last_analysis_at is not None
                and (now - self._last_analysis_at).total_seconds() < self._config.analysis_interval_seconds
            ):
                return False
            self._last_analysis_at = now

        request = DepartmentAnalysisRequest(requested_by=self._config.service_name)
        for analyzer_name in self._config.analyzer_names:
            self._orchestrator_publish(analyzer_name, request)
        logger.info("Requested efficiency analysis of %s departments", len(department_names))
        return True

    def _orchestrator_announce(
        self,
        recipient: str,
        department_name: str,
        status: str,
        process_id: str | None = None,
        description: str | None = None,
    ) -> str:
        announcement = DepartmentAnnouncement(
            department_name=department_name,
            status=status,
            process_id=process_id,
            description=description,
        )
        self._orchestrator_publish(recipient, announcement)
        return status

    def _orchestrator_publish(self, recipient: str, message: BusMessage) -> None:
        envelope = message_build_envelope(message, sender=self._config.service_name, recipient=recipient)
        try:
            self._bus.bus_publish(recipient, envelope)
        except MessageBusError as error:
            logger.warning("Message %s to %s not published: %s", type(message).__name__, recipient, error)
