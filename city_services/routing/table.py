"""Routing table with multi-hop resolution, fallbacks and cycle protection."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from city_services.domain import (
    CHANGE_TYPE_CONSOLIDATED,
    CHANGE_TYPE_CREATED,
    CHANGE_TYPE_RENAMED,
    CHANGE_TYPE_TERMINATED,
    ChangeNotification,
    FallbackEntry,
    RoutingEntry,
)

logger = logging.getLogger(__name__)


class RoutingTable:
    """Mutable mapping from logical department name to its current target.

    Edges are keyed by source name, so applying the same change twice leaves
    the table unchanged. The edge graph is never assumed to be acyclic.
    """

    def __init__(self, live_names: Iterable[str] = ()):
        """Initialize routing table.

        Args:
            live_names: Initially live department names.

        Raises:
            ValueError: Raised when a live name is blank.
        """

        self._edges: dict[str, str] = {}
        self._fallbacks: dict[str, str] = {}
        self._live_names: set[str] = {self._validate_name(name) for name in live_names}
        self._applied_change_ids: set[str] = set()
        self._lock = threading.RLock()

    def routing_apply(self, change: ChangeNotification) -> bool:
        """Merge one change notification into the table.

        Args:
            change: Routing change notification.

        Returns:
            bool: `False` when the change id was already applied.

        Raises:
            ValueError: Raised when the change type is unknown or required names are missing.
        """

        with self._lock:
            if change.change_id in self._applied_change_ids:
                logger.debug("Routing change %s already applied", change.change_id)
                return False

            if change.change_type == CHANGE_TYPE_CONSOLIDATED:
                self._routing_apply_consolidated(change)
            elif change.change_type == CHANGE_TYPE_TERMINATED:
                self._routing_apply_terminated(change)
            elif change.change_type == CHANGE_TYPE_CREATED:
                self._routing_apply_created(change)
            elif change.change_type == CHANGE_TYPE_RENAMED:
                self._routing_apply_renamed(change)
            else:
                raise ValueError(f"unsupported change_type={change.change_type}")

            self._applied_change_ids.add(change.change_id)

        logger.info(
            "Applied %s routing change %s (%s edge(s))",
            change.change_type,
            change.change_id,
            len(change.routing_changes),
        )
        return True

    def routing_resolve(self, name: str) -> str:
        """Resolve the department that should receive work addressed to `name`.

        Redirection chains are followed hop by hop. A cycle stops at the last
        name reached before re-entering it. When the final target is not live
        and a fallback exists for `name`, the fallback is returned.

        Args:
            name: Logical department name.

        Returns:
            str: Resolved department name, possibly `name` itself.

        Raises:
            ValueError: Raised when name is blank.
        """

        original_name = self._validate_name(name)
        with self._lock:
            current_name = self._routing_follow_edges(original_name)
            if current_name not in self._live_names:
                fallback_name = self._fallbacks.get(original_name)
                if fallback_name is not None:
                    return fallback_name
            return current_name

    def routing_chain_end(self, name: str) -> str:
        """Return the last hop of the redirection chain for `name`, ignoring fallbacks and liveness."""

        original_name = self._validate_name(name)
        with self._lock:
            return self._routing_follow_edges(original_name)

    def routing_set_live_names(self, names: Iterable[str]) -> None:
        """Replace the live department set."""

        normalized_names = {self._validate_name(name) for name in names}
        with self._lock:
            self._live_names = normalized_names

    def routing_mark_live(self, name: str) -> None:
        with self._lock:
            self._live_names.add(self._validate_name(name))

    def routing_mark_unavailable(self, name: str) -> None:
        with self._lock:
            self._live_names.discard(self._validate_name(name))

    def routing_is_live(self, name: str) -> bool:
        with self._lock:
            return name in self._live_names

    def routing_live_names(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._live_names))

    def routing_edges(self) -> tuple[RoutingEntry, ...]:
        """Return current edges ordered by source name."""

        with self._lock:
            return tuple(
                RoutingEntry(source_name=source_name, target_name=target_name)
                for source_name, target_name in sorted(self._edges.items())
            )

    def routing_fallbacks(self) -> tuple[FallbackEntry, ...]:
        """Return current fallbacks ordered by name."""

        with self._lock:
            return tuple(
                FallbackEntry(name=name, fallback_name=fallback_name)
                for name, fallback_name in sorted(self._fallbacks.items())
            )

    def _routing_follow_edges(self, original_name: str) -> str:
        visited: set[str] = set()
        current_name = original_name
        while current_name in self._edges and current_name not in visited:
            visited.add(current_name)
            next_name = self._edges[current_name]
            if next_name in visited:
                logger.warning(
                    "Routing cycle detected resolving %s: %s -> %s",
                    original_name,
                    current_name,
                    next_name,
                )
                break
            current_name = next_name
        return current_name

    def _routing_apply_consolidated(self, change: ChangeNotification) -> None:
        new_name = self._require_new_name(change)
        self._routing_merge_edges(change.routing_changes)
        for source_name in change.routing_changes:
            self._live_names.discard(source_name)
        self._live_names.add(new_name)
        if change.fallback_name:
            self._routing_set_fallback(new_name, change.fallback_name)
            for source_name in change.routing_changes:
                self._routing_set_fallback(source_name, change.fallback_name)

    def _routing_apply_terminated(self, change: ChangeNotification) -> None:
        self._routing_merge_edges(change.routing_changes)
        for terminated_name in change.affected_names:
            self._live_names.discard(terminated_name)
            if change.fallback_name:
                self._routing_set_fallback(terminated_name, change.fallback_name)

    def _routing_apply_created(self, change: ChangeNotification) -> None:
        new_name = self._require_new_name(change)
        self._edges.pop(new_name, None)
        self._live_names.add(new_name)
        if change.fallback_name:
            self._routing_set_fallback(new_name, change.fallback_name)

    def _routing_apply_renamed(self, change: ChangeNotification) -> None:
        new_name = self._require_new_name(change)
        renamed_pairs = dict(change.routing_changes)
        if not renamed_pairs:
            renamed_pairs = {old_name: new_name for old_name in change.affected_names}

        for old_name, target_name in renamed_pairs.items():
            for source_name, current_target in list(self._edges.items()):
                if current_target == old_name and source_name != target_name:
                    self._edges[source_name] = target_name
            self._routing_merge_edges({old_name: target_name})
            if old_name in self._live_names:
                self._live_names.discard(old_name)
                self._live_names.add(target_name)

    def _routing_merge_edges(self, routing_changes: dict[str, str]) -> None:
        for source_name, target_name in routing_changes.items():
            if source_name == target_name:
                logger.warning("Ignoring self-referencing routing edge for %s", source_name)
                continue
            self._edges[source_name] = target_name

    def _routing_set_fallback(self, name: str, fallback_name: str) -> None:
        if name == fallback_name:
            return
        self._fallbacks[name] = fallback_name

    @staticmethod
    def _require_new_name(change: ChangeNotification) -> str:
        if not change.new_name or not change.new_name.strip():
            raise ValueError(f"{change.change_type} change requires new_name")
        return change.new_name.strip()

    @staticmethod
    def _validate_name(name: str) -> str:
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("name must not be blank")
        return normalized_name
