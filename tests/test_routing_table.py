"""Tests for routing change application, chain resolution and fallbacks."""

from __future__ import annotations

import pytest

from city_services.domain import (
    CHANGE_TYPE_CONSOLIDATED,
    CHANGE_TYPE_CREATED,
    CHANGE_TYPE_RENAMED,
    CHANGE_TYPE_TERMINATED,
    ChangeNotification,
    RoutingEntry,
)
from city_services.routing import RoutingTable


def _build_change(change_id: str, change_type: str, **values) -> ChangeNotification:
    return ChangeNotification(
        change_id=change_id,
        change_type=change_type,
        affected_names=tuple(values.pop("affected_names", ())),
        routing_changes=dict(values.pop("routing_changes", {})),
        **values,
    )


def test_routing_resolve_follows_multi_hop_chain() -> None:
    table = RoutingTable(live_names=["c_department"])
    table.routing_apply(_build_change("c1", CHANGE_TYPE_RENAMED, routing_changes={"a_department": "b_department"}, new_name="b_department"))
    table.routing_apply(_build_change("c2", CHANGE_TYPE_RENAMED, routing_changes={"b_department": "c_department"}, new_name="c_department"))

    assert table.routing_resolve("a_department") == "c_department"
    assert table.routing_resolve("b_department") == "c_department"
    assert table.routing_resolve("c_department") == "c_department"


def test_routing_resolve_terminates_on_cycle(caplog) -> None:
    """Resolve a two-node cycle without hanging.

    Returns:
        None: Assertions validate cycle-safe resolution.

    Raises:
        AssertionError: Raised when resolution does not stop inside the cycle.
    """

    table = RoutingTable()
    table.routing_apply(_build_change("c1", CHANGE_TYPE_TERMINATED, affected_names=["a"], routing_changes={"a": "b"}))
    table.routing_apply(_build_change("c2", CHANGE_TYPE_TERMINATED, affected_names=["b"], routing_changes={"b": "a"}))

    with caplog.at_level("WARNING", logger="city_services.routing.table"):
        resolved_a = table.routing_resolve("a")
        resolved_b = table.routing_resolve("b")

    assert resolved_a in {"a", "b"}
    assert resolved_b in {"a", "b"}
    assert resolved_a == "b"
    assert "Routing cycle detected" in caplog.text


def test_routing_apply_same_change_twice_is_idempotent() -> None:
    table = RoutingTable(live_names=["water_department", "utilities_department"])
    change = _build_change(
        "consolidate-1",
        CHANGE_TYPE_CONSOLIDATED,
        affected_names=["water_department", "utilities_department"],
        routing_changes={
            "water_department": "water_utilities_department",
            "utilities_department": "water_utilities_department",
        },
        new_name="water_utilities_department",
        fallback_name="emergency_dispatch_center",
    )
    names = ["water_department", "utilities_department", "water_utilities_department", "parks_department"]

    assert table.routing_apply(change) is True
    resolved_once = {name: table.routing_resolve(name) for name in names}
    edges_once = table.routing_edges()
    assert table.routing_apply(change) is False

    assert {name: table.routing_resolve(name) for name in names} == resolved_once
    assert table.routing_edges() == edges_once


def test_routing_reapplying_equal_change_with_new_id_keeps_resolution() -> None:
    table = RoutingTable(live_names=["public_works_department"])
    first_change = _build_change(
        "t1",
        CHANGE_TYPE_TERMINATED,
        affected_names=["parks_department"],
        routing_changes={"parks_department": "public_works_department"},
        fallback_name="emergency_dispatch_center",
    )
    second_change = _build_change(
        "t2",
        CHANGE_TYPE_TERMINATED,
        affected_names=["parks_department"],
        routing_changes={"parks_department": "public_works_department"},
        fallback_name="emergency_dispatch_center",
    )

    table.routing_apply(first_change)
    resolved_once = table.routing_resolve("parks_department")
    table.routing_apply(second_change)

    assert table.routing_resolve("parks_department") == resolved_once == "public_works_department"


def test_routing_fallback_wins_over_dead_target() -> None:
    table = RoutingTable(live_names=["public_works_department", "emergency_dispatch_center"])
    table.routing_apply(
        _build_change(
            "t1",
            CHANGE_TYPE_TERMINATED,
            affected_names=["parks_department"],
            routing_changes={"parks_department": "public_works_department"},
            fallback_name="emergency_dispatch_center",
        )
    )
    assert table.routing_resolve("parks_department") == "public_works_department"

    table.routing_mark_unavailable("public_works_department")

    assert table.routing_resolve("parks_department") == "emergency_dispatch_center"
    assert table.routing_chain_end("parks_department") == "public_works_department"


def test_routing_resolve_without_edge_or_fallback_returns_name() -> None:
    table = RoutingTable()

    assert table.routing_resolve("unknown_department") == "unknown_department"
    with pytest.raises(ValueError):
        table.routing_resolve("   ")


def test_routing_consolidation_records_fallback_for_successor_and_sources() -> None:
    table = RoutingTable(live_names=["water_department", "utilities_department"])
    table.routing_apply(
        _build_change(
            "c1",
            CHANGE_TYPE_CONSOLIDATED,
            affected_names=["water_department", "utilities_department"],
            routing_changes={
                "water_department": "water_utilities_department",
                "utilities_department": "water_utilities_department",
            },
            new_name="water_utilities_department",
            fallback_name="emergency_dispatch_center",
        )
    )

    assert table.routing_live_names() == ("water_utilities_department",)
    assert table.routing_resolve("water_department") == "water_utilities_department"
    assert {entry.name for entry in table.routing_fallbacks()} == {
        "utilities_department",
        "water_department",
        "water_utilities_department",
    }

    table.routing_mark_unavailable("water_utilities_department")

    assert table.routing_resolve("water_department") == "emergency_dispatch_center"


def test_routing_created_change_drops_stale_edge_and_marks_live() -> None:
    table = RoutingTable(live_names=["public_works_department"])
    table.routing_apply(
        _build_change(
            "t1",
            CHANGE_TYPE_TERMINATED,
            affected_names=["parks_department"],
            routing_changes={"parks_department": "public_works_department"},
        )
    )

    table.routing_apply(
        _build_change("r1", CHANGE_TYPE_CREATED, affected_names=["parks_department"], new_name="parks_department")
    )

    assert table.routing_resolve("parks_department") == "parks_department"
    assert table.routing_is_live("parks_department") is True
    assert table.routing_edges() == ()


def test_routing_rename_repoints_existing_edges_and_moves_liveness() -> None:
    table = RoutingTable(live_names=["public_works_department"])
    table.routing_apply(
        _build_change(
            "t1",
            CHANGE_TYPE_TERMINATED,
            affected_names=["parks_department"],
            routing_changes={"parks_department": "public_works_department"},
        )
    )

    table.routing_apply(
        _build_change(
            "n1",
            CHANGE_TYPE_RENAMED,
            affected_names=["public_works_department"],
            new_name="infrastructure_department",
        )
    )

    assert table.routing_edges() == (
        RoutingEntry(source_name="parks_department", target_name="infrastructure_department"),
        RoutingEntry(source_name="public_works_department", target_name="infrastructure_department"),
    )
    assert table.routing_live_names() == ("infrastructure_department",)
    assert table.routing_resolve("parks_department") == "infrastructure_department"


def test_routing_ignores_self_edges_and_rejects_unknown_change_types() -> None:
    table = RoutingTable()
    table.routing_apply(_build_change("t1", CHANGE_TYPE_TERMINATED, affected_names=["a"], routing_changes={"a": "a"}))

    assert table.routing_edges() == ()
    with pytest.raises(ValueError):
        table.routing_apply(_build_change("x1", "merged", routing_changes={"a": "b"}))
    with pytest.raises(ValueError):
        table.routing_apply(_build_change("x2", CHANGE_TYPE_CONSOLIDATED, routing_changes={"a": "b"}))
