"""Runtime bootstrap wiring for startup validation and dependency assembly."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI

from city_services.adapters import (
    DirectoryTemplateSource,
    InMemoryMessageBus,
    MessageBusPort,
    RedisMessageBus,
    SubprocessProcessLauncher,
)
from city_services.api import create_api_application
from city_services.config import CitySettings, config_load_settings
from city_services.db import SQLAlchemyDatabaseHealthService, SQLAlchemyDecisionLogService, db_create_engine
from city_services.discovery import RegistryScanner
from city_services.governance import NotificationDispatcher, RecommendationEvaluator, governance_policy_from_settings
from city_services.jobs import OrchestratorConfig, OrchestratorLoop
from city_services.routing import DispatchRouter, RoutingTable
from city_services.supervision import HealthProtocol, ProcessSupervisor, SupervisorConfig


@dataclass(frozen=True)
class CouncilRuntime:
    """Fully wired council components shared by the CLI and API surfaces.

    Attributes:
        settings: Validated runtime settings.
        bus: Message bus implementation.
        supervisor: Process supervisor.
        routing_table: Council-side routing table.
        decision_log: Persistent decision log.
        orchestrator: Council control loop.
        dispatch_router: In-process dispatch router.
    """

    settings: CitySettings
    bus: MessageBusPort
    supervisor: ProcessSupervisor
    routing_table: RoutingTable
    decision_log: SQLAlchemyDecisionLogService
    orchestrator: OrchestratorLoop
    dispatch_router: DispatchRouter


def bootstrap_create_bus(settings: CitySettings) -> MessageBusPort:
    """Build the configured message bus.

    Args:
        settings: Validated runtime settings.

    Returns:
        MessageBusPort: In-memory or Redis-backed bus.

    Raises:
        MessageBusError: Raised when the Redis client cannot be created.
    """

    if settings.bus_backend == "redis":
        return RedisMessageBus.bus_from_url(settings.redis_url)
    return InMemoryMessageBus()


def bootstrap_create_runtime(settings: CitySettings | None = None) -> CouncilRuntime:
    """Assemble every council component after validating startup configuration.

    Args:
        settings: Optional pre-loaded settings, loaded from the environment when omitted.

    Returns:
        CouncilRuntime: Wired council components.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    engine = db_create_engine(database_url=resolved_settings.database_url)
    decision_log = SQLAlchemyDecisionLogService(engine=engine)
    bus = bootstrap_create_bus(resolved_settings)

    supervisor = ProcessSupervisor(
        launcher=SubprocessProcessLauncher(
            command_template=resolved_settings.department_launch_command,
            working_directory=resolved_settings.department_directory,
        ),
        config=SupervisorConfig(
            restart_failure_threshold=resolved_settings.restart_failure_threshold,
            max_restarts=resolved_settings.max_restarts,
            health_silence_window_seconds=resolved_settings.health_silence_window_seconds,
        ),
    )
    health_protocol = HealthProtocol(
        bus=bus,
        supervisor=supervisor,
        service_name=resolved_settings.council_service_name,
    )
    supervisor.supervisor_bind_health_sender(health_protocol)

    policy = governance_policy_from_settings(resolved_settings)
    routing_table = RoutingTable()
    notifier = NotificationDispatcher(
        bus=bus,
        directory=supervisor,
        service_name=resolved_settings.council_service_name,
        recipients=(resolved_settings.dispatch_center_name,),
        policy=policy,
        effective_immediately=resolved_settings.change_effective_immediately,
    )
    dispatch_router = DispatchRouter(
        bus=bus,
        routing_table=RoutingTable(),
        service_name=resolved_settings.dispatch_center_name,
        council_name=resolved_settings.council_service_name,
        pending_timeout_seconds=resolved_settings.dispatch_pending_timeout_seconds,
    )
    orchestrator = OrchestratorLoop(
        bus=bus,
        scanner=RegistryScanner(template_source=DirectoryTemplateSource(resolved_settings.department_directory)),
        supervisor=supervisor,
        health_protocol=health_protocol,
        evaluator=RecommendationEvaluator(policy=policy),
        notifier=notifier,
        routing_table=routing_table,
        config=OrchestratorConfig(
            service_name=resolved_settings.council_service_name,
            supervision_interval_seconds=resolved_settings.supervision_interval_seconds,
            analyzer_names=tuple(resolved_settings.analyzer_service_names),
            analysis_interval_seconds=resolved_settings.analysis_interval_seconds,
            analysis_min_departments=resolved_settings.analysis_min_departments,
        ),
        decision_log=decision_log,
        dispatch_router=dispatch_router,
    )
    return CouncilRuntime(
        settings=resolved_settings,
        bus=bus,
        supervisor=supervisor,
        routing_table=routing_table,
        decision_log=decision_log,
        orchestrator=orchestrator,
        dispatch_router=dispatch_router,
    )


def bootstrap_create_application(runtime: CouncilRuntime | None = None) -> FastAPI:
    """Assemble the inspection API for a council runtime.

    Args:
        runtime: Optional wired runtime, built from settings when omitted.

    Returns:
        FastAPI: Fully initialized FastAPI application instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_runtime = runtime or bootstrap_create_runtime()
    engine = db_create_engine(database_url=resolved_runtime.settings.database_url)
    return create_api_application(
        settings=resolved_runtime.settings,
        db_health_service=SQLAlchemyDatabaseHealthService(engine=engine),
        supervisor=resolved_runtime.supervisor,
        routing_table=resolved_runtime.routing_table,
        decision_log=resolved_runtime.decision_log,
    )
