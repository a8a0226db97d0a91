"""Process supervisor owning department lifecycle state, probes and bounded restarts."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from city_services.adapters import ProcessLauncherPort, ProcessSpawnError
from city_services.domain import (
    DEPARTMENT_STATUS_PERMANENTLY_FAILED,
    DEPARTMENT_STATUS_RESTARTING,
    DEPARTMENT_STATUS_RUNNING,
    DEPARTMENT_STATUS_STARTING,
    DEPARTMENT_STATUS_UNRESPONSIVE,
    ClockProvider,
    DepartmentRecord,
    DepartmentSnapshot,
    domain_build_lifecycle_event,
    domain_utc_now,
)

from .interfaces import HealthCheckSenderPort, SupervisionTickResult, SupervisorConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PlannedRestart:
    """Restart decided under the record lock and executed outside it."""

    department_name: str
    stale_handle: Any
    trigger: str


class ProcessSupervisor:
    """Own the lifecycle state of every running department process.

    All record mutation happens under one lock. Process spawns and kills run
    outside the lock so health-reply handlers never wait on a launcher call;
    their outcome is applied to the record afterwards and observed by the
    next tick.
    """

    def __init__(
        self,
        launcher: ProcessLauncherPort,
        config: SupervisorConfig | None = None,
        clock: ClockProvider | None = None,
        health_sender: HealthCheckSenderPort | None = None,
    ):
        """Initialize process supervisor.

        Args:
            launcher: Process-launch facility.
            config: Restart and health policy.
            clock: Optional clock provider for virtual time.
            health_sender: Optional health-check emitter, may be bound later.

        Raises:
            ValueError: Raised when launcher or policy values are invalid.
        """

        resolved_config = config or SupervisorConfig()
        if launcher is None:
            raise ValueError("launcher must not be None")
        if resolved_config.restart_failure_threshold < 1:
            raise ValueError("config.restart_failure_threshold must be >= 1")
        if resolved_config.max_restarts < 0:
            raise ValueError("config.max_restarts must be >= 0")
        if resolved_config.health_silence_window_seconds <= 0:
            raise ValueError("config.health_silence_window_seconds must be > 0")

        self._launcher = launcher
        self._config = resolved_config
        self._clock = clock or domain_utc_now
        self._health_sender = health_sender
        self._records: dict[str, DepartmentRecord] = {}
        self._records_lock = threading.RLock()
        self._shutting_down = False

    def supervisor_bind_health_sender(self, health_sender: HealthCheckSenderPort) -> None:
        """Bind the health-check emitter used by ticks.

        Args:
            health_sender: Health-check emitter.

        Raises:
            ValueError: Raised when health_sender is None.
        """

        if health_sender is None:
            raise ValueError("health_sender must not be None")
        self._health_sender = health_sender

    def supervisor_register(self, department_name: str) -> Any:
        """Start supervising one department and spawn its process.

        Registering a name that is already supervised returns the existing
        handle without spawning again. A spawn error leaves the record in
        `starting` without a handle; the next tick counts it as a dead process.

        Args:
            department_name: Logical department name.

        Returns:
            Any: Process handle, or `None` when spawning failed.

        Raises:
            ValueError: Raised when department_name is blank.
        """

        normalized_name = self._validate_name(department_name)
        with self._records_lock:
            existing_record = self._records.get(normalized_name)
            if existing_record is not None:
                return existing_record.process_handle
            now = self._clock()
            self._records[normalized_name] = DepartmentRecord(
                name=normalized_name,
                process_handle=None,
                status=DEPARTMENT_STATUS_STARTING,
                created_at=now,
            )

        try:
            handle = self._launcher.launcher_spawn(normalized_name)
        except ProcessSpawnError as error:
            logger.error("Failed to launch %s: %s", normalized_name, error)
            with self._records_lock:
                record = self._records.get(normalized_name)
                if record is not None:
                    record.last_failure = self._clock()
            return None

        with self._records_lock:
            record = self._records.get(normalized_name)
            if record is None:
                # Retired while the spawn was in flight.
                self._launcher.launcher_terminate(handle)
                return None
            record.process_handle = handle

        logger.info("Registered department %s for supervision", normalized_name)
        return handle

    def supervisor_probe_liveness(self, handle: Any) -> bool:
        """Probe process liveness without blocking.

        Args:
            handle: Opaque process handle.

        Returns:
            bool: `True` when the process is alive.

        Raises:
            RuntimeError: This method does not raise for dead handles.
        """

        if handle is None:
            return False
        return bool(self._launcher.launcher_is_alive(handle))

    def supervisor_request_health(self, department_name: str) -> str | None:
        """Ask the bound health sender to probe one department (fire-and-forget).

        Args:
            department_name: Logical department name.

        Returns:
            str | None: Check identifier, or `None` when no request was sent.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        if self._shutting_down:
            return None
        if self._health_sender is None:
            logger.warning("No health sender bound, skipping health check for %s", department_name)
            return None
        return self._health_sender.health_send_check(department_name)

    def supervisor_mark_health_requested(self, department_name: str) -> bool:
        """Record that a health-check request is outstanding for a department.

        Args:
            department_name: Logical department name.

        Returns:
            bool: `False` when the department is unknown or permanently failed.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        with self._records_lock:
            record = self._records.get(department_name)
            if record is None or record.status == DEPARTMENT_STATUS_PERMANENTLY_FAILED:
                return False
            record.last_health_request = self._clock()
            record.awaiting_response = True
            return True

    def supervisor_record_health_reply(
        self,
        department_name: str,
        healthy: bool,
        reported_status: str | None = None,
    ) -> bool:
        """Apply one health reply to the department record.

        A healthy reply from a live process confirms recovery: the record
        becomes `running` and every failure and restart counter resets. An
        explicit unhealthy reply counts toward the health-failure counter.

        Args:
            department_name: Logical department name.
            healthy: Whether the department reported itself healthy.
            reported_status: Raw status text from the reply.

        Returns:
            bool: `False` when the reply was discarded (unknown or permanently failed name).

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        with self._records_lock:
            record = self._records.get(department_name)
            if record is None or record.status == DEPARTMENT_STATUS_PERMANENTLY_FAILED:
                logger.debug("Discarding health reply for untracked department %s", department_name)
                return False

            now = self._clock()
            record.awaiting_response = False
            record.last_health_reply = now
            record.last_reported_status = reported_status

            if not healthy:
                record.health_failure_count += 1
                record.last_failure = now
                if record.status == DEPARTMENT_STATUS_RUNNING:
                    record.status = DEPARTMENT_STATUS_UNRESPONSIVE
                logger.warning(
                    "Department %s reported unhealthy status=%s (health failures: %s)",
                    department_name,
                    reported_status,
                    record.health_failure_count,
                )
                return True

            record.health_failure_count = 0
            if record.process_failure_count == 0 and record.status != DEPARTMENT_STATUS_RUNNING:
                previous_status = record.status
                record.status = DEPARTMENT_STATUS_RUNNING
                record.restart_count = 0
                logger.info("Department %s is running (was %s)", department_name, previous_status)
            return True

    def supervisor_tick(self) -> SupervisionTickResult:
        """Run one supervision cycle over every department not permanently failed.

        Returns:
            SupervisionTickResult: Health checks sent, restarts and demotions.

        Raises:
            RuntimeError: This method does not raise; launcher errors are counted.
        """

        events: list[dict[str, object]] = []
        planned_restarts: list[_PlannedRestart] = []
        demoted_handles: list[tuple[str, Any]] = []
        names_to_check: list[str] = []

        with self._records_lock:
            now = self._clock()
            for department_name in sorted(self._records):
                record = self._records[department_name]
                if record.status == DEPARTMENT_STATUS_PERMANENTLY_FAILED:
                    continue

                self._supervisor_update_failure_counters(record=record, now=now, events=events)

                trigger = self._supervisor_restart_trigger(record)
                if trigger is None:
                    if not record.awaiting_response and record.process_failure_count == 0:
                        names_to_check.append(department_name)
                    continue
                if self._shutting_down:
                    continue

                if record.restart_count >= self._config.max_restarts:
                    record.status = DEPARTMENT_STATUS_PERMANENTLY_FAILED
                    record.awaiting_response = False
                    demoted_handles.append((department_name, record.process_handle))
                    record.process_handle = None
                    logger.error(
                        "Department %s permanently failed after %s restart attempts",
                        department_name,
                        record.restart_count,
                    )
                    events.append(
                        domain_build_lifecycle_event(
                            subject=department_name,
                            event="permanently_failed",
                            details={"restart_count": record.restart_count, "trigger": trigger},
                            at=now,
                        )
                    )
                    continue

                record.status = DEPARTMENT_STATUS_RESTARTING
                planned_restarts.append(
                    _PlannedRestart(
                        department_name=department_name,
                        stale_handle=record.process_handle,
                        trigger=trigger,
                    )
                )

        for department_name, stale_handle in demoted_handles:
            self._supervisor_terminate_quietly(department_name, stale_handle)

        restarted_names: list[str] = []
        failed_restart_names: list[str] = []
        for planned_restart in planned_restarts:
            if self._supervisor_execute_restart(planned_restart=planned_restart, events=events):
                restarted_names.append(planned_restart.department_name)
            else:
                failed_restart_names.append(planned_restart.department_name)

        checked_names: list[str] = []
        for department_name in names_to_check:
            if self.supervisor_request_health(department_name) is not None:
                checked_names.append(department_name)

        return SupervisionTickResult(
            checked_names=tuple(checked_names),
            restarted_names=tuple(restarted_names),
            failed_restart_names=tuple(failed_restart_names),
            permanently_failed_names=tuple(name for name, _ in demoted_handles),
            events=events,
        )

    def supervisor_retire(self, department_name: str) -> bool:
        """Stop supervising a department removed by a routing change and kill its process.

        Args:
            department_name: Logical department name.

        Returns:
            bool: `True` when a record was removed.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        with self._records_lock:
            record = self._records.pop(department_name, None)
        if record is None:
            return False
        self._supervisor_terminate_quietly(department_name, record.process_handle)
        logger.info("Retired department %s", department_name)
        return True

    def supervisor_begin_shutdown(self) -> None:
        """Stop issuing health checks and restarts (graceful drain)."""

        with self._records_lock:
            self._shutting_down = True
        logger.info("Supervisor draining: no further health checks or restarts")

    def supervisor_terminate_all(self) -> int:
        """Synchronously terminate every held department process.

        Returns:
            int: Number of handles passed to the launcher.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        with self._records_lock:
            handles = [
                (record.name, record.process_handle)
                for record in self._records.values()
                if record.process_handle is not None
            ]
            for record in self._records.values():
                record.process_handle = None

        for department_name, handle in handles:
            self._supervisor_terminate_quietly(department_name, handle)
        return len(handles)

    def supervisor_is_shutting_down(self) -> bool:
        """Return whether graceful drain has started."""

        return self._shutting_down

    def supervisor_snapshot(self) -> list[DepartmentSnapshot]:
        """Return frozen copies of every record, ordered by name."""

        with self._records_lock:
            return [self._records[name].record_snapshot() for name in sorted(self._records)]

    def supervisor_get(self, department_name: str) -> DepartmentSnapshot | None:
        """Return a frozen copy of one record, or `None` when untracked."""

        with self._records_lock:
            record = self._records.get(department_name)
            return None if record is None else record.record_snapshot()

    def supervisor_tracked_names(self) -> tuple[str, ...]:
        """Return every tracked department name, permanently failed included."""

        with self._records_lock:
            return tuple(sorted(self._records))

    def supervisor_live_names(self) -> tuple[str, ...]:
        """Return tracked names that are valid routing targets (not permanently failed)."""

        with self._records_lock:
            return tuple(
                sorted(
                    name
                    for name, record in self._records.items()
                    if record.status != DEPARTMENT_STATUS_PERMANENTLY_FAILED
                )
            )

    def supervisor_names_with_status(self, status: str) -> tuple[str, ...]:
        """Return tracked names currently in one lifecycle status."""

        with self._records_lock:
            return tuple(sorted(name for name, record in self._records.items() if record.status == status))

    def supervisor_health_summary(self) -> dict[str, int]:
        """Count departments by health category.

        Returns:
            dict[str, int]: `healthy`, `warning`, `unhealthy` and `monitored` counts.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        healthy_count = 0
        warning_count = 0
        unhealthy_count = 0
        with self._records_lock:
            for record in self._records.values():
                if record.status == DEPARTMENT_STATUS_RUNNING and record.health_failure_count == 0:
                    healthy_count += 1
                elif record.status == DEPARTMENT_STATUS_PERMANENTLY_FAILED:
                    unhealthy_count += 1
                else:
                    warning_count += 1
            monitored_count = len(self._records)
        return {
            "healthy": healthy_count,
            "warning": warning_count,
            "unhealthy": unhealthy_count,
            "monitored": monitored_count,
        }

    def _supervisor_update_failure_counters(
        self,
        record: DepartmentRecord,
        now: datetime,
        events: list[dict[str, object]],
    ) -> None:
        """Apply the liveness probe and silence window to one record (lock held)."""

        record.last_process_check = now
        if not self.supervisor_probe_liveness(record.process_handle):
            record.process_failure_count += 1
            record.last_failure = now
            if record.status == DEPARTMENT_STATUS_RUNNING:
                record.status = DEPARTMENT_STATUS_UNRESPONSIVE
            logger.warning(
                "Department %s process not alive (process failures: %s)",
                record.name,
                record.process_failure_count,
            )
            events.append(
                domain_build_lifecycle_event(
                    subject=record.name,
                    event="process_dead",
                    details={"process_failure_count": record.process_failure_count},
                    at=now,
                )
            )
            return

        record.process_failure_count = 0
        if not record.awaiting_response or record.last_health_request is None:
            return

        silence_seconds = (now - record.last_health_request).total_seconds()
        if silence_seconds <= self._config.health_silence_window_seconds:
            return

        record.health_failure_count += 1
        record.awaiting_response = False
        record.last_failure = now
        if record.status == DEPARTMENT_STATUS_RUNNING:
            record.status = DEPARTMENT_STATUS_UNRESPONSIVE
        logger.warning(
            "No health reply from %s within %.0fs (health failures: %s)",
            record.name,
            self._config.health_silence_window_seconds,
            record.health_failure_count,
        )
        events.append(
            domain_build_lifecycle_event(
                subject=record.name,
                event="health_reply_missing",
                details={"health_failure_count": record.health_failure_count},
                at=now,
            )
        )

    def _supervisor_restart_trigger(self, record: DepartmentRecord) -> str | None:
        """Return which counter crossed the restart threshold, if any."""

        if record.process_failure_count >= self._config.restart_failure_threshold:
            return "process"
        if record.health_failure_count >= self._config.restart_failure_threshold:
            return "health"
        return None

    def _supervisor_execute_restart(
        self,
        planned_restart: _PlannedRestart,
        events: list[dict[str, object]],
    ) -> bool:
        """Kill the stale handle, spawn a fresh process and record the attempt."""

        department_name = planned_restart.department_name
        self._supervisor_terminate_quietly(department_name, planned_restart.stale_handle)

        spawn_error: ProcessSpawnError | None = None
        new_handle: Any = None
        try:
            new_handle = self._launcher.launcher_spawn(department_name)
        except ProcessSpawnError as error:
            spawn_error = error

        with self._records_lock:
            now = self._clock()
            record = self._records.get(department_name)
            if record is None:
                if new_handle is not None:
                    self._launcher.launcher_terminate(new_handle)
                return False

            record.restart_count += 1
            record.last_restart = now
            record.awaiting_response = False
            record.process_handle = new_handle

            if spawn_error is not None:
                record.last_failure = now
                logger.error(
                    "Restart %s/%s of %s failed: %s",
                    record.restart_count,
                    self._config.max_restarts,
                    department_name,
                    spawn_error,
                )
                events.append(
                    domain_build_lifecycle_event(
                        subject=department_name,
                        event="restart_failed",
                        details={"restart_count": record.restart_count, "error_message": str(spawn_error)},
                        at=now,
                    )
                )
                return False

            record.process_failure_count = 0
            record.health_failure_count = 0
            logger.info(
                "Restarted %s (%s trigger, attempt %s/%s)",
                department_name,
                planned_restart.trigger,
                record.restart_count,
                self._config.max_restarts,
            )
            events.append(
                domain_build_lifecycle_event(
                    subject=department_name,
                    event="restarted",
                    details={"restart_count": record.restart_count, "trigger": planned_restart.trigger},
                    at=now,
                )
            )
            return True

    def _supervisor_terminate_quietly(self, department_name: str, handle: Any) -> None:
        """Terminate a handle, logging instead of raising on launcher errors."""

        if handle is None:
            return
        try:
            self._launcher.launcher_terminate(handle)
        except (OSError, RuntimeError) as error:
            logger.warning("Failed to terminate %s: %s", department_name, error)

    @staticmethod
    def _validate_name(department_name: str) -> str:
        normalized_name = department_name.strip()
        if not normalized_name:
            raise ValueError("department_name must not be blank")
        return normalized_name
