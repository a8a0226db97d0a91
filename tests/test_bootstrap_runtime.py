"""Tests for runtime wiring of the council components."""

from __future__ import annotations

from fastapi.testclient import TestClient

from city_services.adapters import InMemoryMessageBus
from city_services.bootstrap import bootstrap_create_application, bootstrap_create_runtime
from city_services.config import CitySettings


def _build_settings(tmp_path) -> CitySettings:
    return CitySettings(
        _env_file=None,
        environment_name="test",
        database_url=f"sqlite:///{tmp_path / 'council.db'}",
        department_directory=str(tmp_path),
    )


def test_bootstrap_runtime_wires_in_memory_bus_and_runs_empty_cycle(tmp_path) -> None:
    runtime = bootstrap_create_runtime(_build_settings(tmp_path))

    result = runtime.orchestrator.job_execute("supervision_cycle")

    assert isinstance(runtime.bus, InMemoryMessageBus)
    assert result.status == "success"
    assert runtime.supervisor.supervisor_tracked_names() == ()
    assert runtime.orchestrator.job_supported_names() == ("supervision_cycle",)


def test_bootstrap_application_reports_unmigrated_decision_log_as_degraded(tmp_path) -> None:
    runtime = bootstrap_create_runtime(_build_settings(tmp_path))
    client = TestClient(bootstrap_create_application(runtime))

    index_response = client.get("/")
    health_response = client.get("/health")

    assert index_response.json() == {"service": "city_council", "status": "ready", "environment": "test"}
    assert health_response.status_code == 503
    assert health_response.json()["database"] == "down"
