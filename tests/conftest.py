"""Shared test doubles for supervision, orchestration and routing tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from city_services.adapters import ProcessSpawnError
from city_services.domain import ManualClock


class FakeProcessLauncher:
    """In-memory launcher whose processes live until a test kills them."""

    def __init__(self):
        self.spawn_counts: dict[str, int] = {}
        self.alive_handles: set[str] = set()
        self.terminated_handles: list[str] = []
        self.dead_on_spawn: set[str] = set()
        self.failing_spawns: set[str] = set()

    def launcher_spawn(self, department_name: str) -> Any:
        if department_name in self.failing_spawns:
            raise ProcessSpawnError(f"cannot launch {department_name}", subject=department_name)
        spawn_number = self.spawn_counts.get(department_name, 0) + 1
        self.spawn_counts[department_name] = spawn_number
        handle = f"{department_name}#{spawn_number}"
        if department_name not in self.dead_on_spawn:
            self.alive_handles.add(handle)
        return handle

    def launcher_is_alive(self, handle: Any) -> bool:
        return handle in self.alive_handles

    def launcher_terminate(self, handle: Any) -> None:
        self.alive_handles.discard(handle)
        self.terminated_handles.append(handle)

    def launcher_kill_department(self, department_name: str) -> None:
        """Simulate a crash of every live process of one department."""

        self.alive_handles = {handle for handle in self.alive_handles if not handle.startswith(f"{department_name}#")}


class StaticTemplateSource:
    """Template source returning a mutable list of department names."""

    def __init__(self, department_names: list[str]):
        self.department_names = list(department_names)
        self.unreadable = False

    def template_list_department_names(self) -> tuple[str, ...]:
        if self.unreadable:
            raise FileNotFoundError("template directory missing")
        return tuple(self.department_names)


@pytest.fixture
def fake_launcher() -> FakeProcessLauncher:
    return FakeProcessLauncher()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock(start=datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def template_source_factory():
    return StaticTemplateSource
