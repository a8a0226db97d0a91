"""Turn approved decisions into routing change broadcasts."""

from __future__ import annotations

import logging
from typing import Iterable
from uuid import uuid4

from city_services.adapters import MessageBusError, MessageBusPort
from city_services.domain import (
    CHANGE_TYPE_CONSOLIDATED,
    CHANGE_TYPE_CREATED,
    CHANGE_TYPE_TERMINATED,
    DEPARTMENT_STATUS_PERMANENTLY_FAILED,
    ChangeNotification,
    Decision,
)
from city_services.messages import (
    ConsolidationRecommendation,
    DepartmentAnnouncement,
    DepartmentChangeNotification,
    TerminationRecommendation,
    message_build_envelope,
)

from .interfaces import DepartmentDirectoryPort
from .policy import GovernancePolicy

logger = logging.getLogger(__name__)

ROLLBACK_ACTION_RESTORE = "restore_department"


class NotificationDispatcher:
    """Build change notifications and publish them to routing-aware consumers."""

    def __init__(
        self,
        bus: MessageBusPort,
        directory: DepartmentDirectoryPort,
        service_name: str,
        recipients: Iterable[str],
        policy: GovernancePolicy | None = None,
        effective_immediately: bool = True,
    ):
        """Initialize notification dispatcher.

        Args:
            bus: Message bus used for broadcasts.
            directory: Source of live and permanently failed department names.
            service_name: Logical name of the initiating service.
            recipients: Channels of routing-aware consumers.
            policy: Governance policy with category rules.
            effective_immediately: Flag carried on every notification.

        Raises:
            ValueError: Raised when dependencies are invalid.
        """

        if bus is None:
            raise ValueError("bus must not be None")
        if directory is None:
            raise ValueError("directory must not be None")
        if not service_name.strip():
            raise ValueError("service_name must not be blank")
        normalized_recipients = tuple(recipient.strip() for recipient in recipients if recipient.strip())
        if not normalized_recipients:
            raise ValueError("recipients must not be empty")

        self._bus = bus
        self._directory = directory
        self._service_name = service_name.strip()
        self._recipients = normalized_recipients
        self._policy = policy or GovernancePolicy()
        self._effective_immediately = effective_immediately

    def notification_broadcast(
        self,
        decision: Decision,
        recommendation: ConsolidationRecommendation | TerminationRecommendation,
    ) -> ChangeNotification:
        """Build and publish the change notification for an approved decision.

        Args:
            decision: Approved decision.
            recommendation: Recommendation the decision applies to.

        Returns:
            ChangeNotification: Published notification.

        Raises:
            ValueError: Raised when the decision is not approved or does not match the recommendation.
            TypeError: Raised when the recommendation type is unsupported.
        """

        if not decision.decision_is_approved():
            raise ValueError(f"decision {decision.recommendation_id} is {decision.outcome}, not approved")
        if decision.recommendation_id != recommendation.recommendation_id:
            raise ValueError("decision and recommendation ids differ")

        if isinstance(recommendation, ConsolidationRecommendation):
            notification = self.notification_build_consolidation(recommendation)
        elif isinstance(recommendation, TerminationRecommendation):
            notification = self.notification_build_termination(recommendation)
        else:
            raise TypeError(f"unsupported recommendation type={type(recommendation).__name__}")

        self.notification_publish(notification)
        return notification

    def notification_build_consolidation(self, recommendation: ConsolidationRecommendation) -> ChangeNotification:
        """Build a consolidation notification routing every merged department to the successor."""

        live_names = set(self._directory.supervisor_live_names())
        proposed_name = recommendation.proposed_name.strip()

        routing_changes: dict[str, str] = {}
        for merged_name in recommendation.departments_to_merge:
            if merged_name == proposed_name:
                continue
            if merged_name not in live_names:
                logger.warning("Consolidation %s references unknown department %s", proposed_name, merged_name)
                continue
            routing_changes[merged_name] = proposed_name

        capabilities_mapping: dict[str, object] = {}
        if recommendation.unified_capabilities:
            capabilities_mapping = {
                merged_name: list(recommendation.unified_capabilities)
                for merged_name in recommendation.departments_to_merge
            }

        return ChangeNotification(
            change_id=uuid4().hex,
            change_type=CHANGE_TYPE_CONSOLIDATED,
            affected_names=tuple(recommendation.departments_to_merge),
            routing_changes=routing_changes,
            new_name=proposed_name,
            fallback_name=self._policy.dispatch_center_name,
            effective_immediately=self._effective_immediately,
            capabilities_mapping=capabilities_mapping,
            emergency_types_affected=self._policy.policy_emergency_types_for(recommendation.departments_to_merge),
            initiated_by=self._service_name,
        )

    def notification_build_termination(self, recommendation: TerminationRecommendation) -> ChangeNotification:
        """Build a termination notification routing the department to its category fallback."""

        department_name = recommendation.department_name.strip()
        routing_target = self._policy.policy_fallback_for(department_name)
        failed_names = set(self._directory.supervisor_names_with_status(DEPARTMENT_STATUS_PERMANENTLY_FAILED))
        if routing_target in failed_names:
            logger.warning(
                "Fallback %s for %s permanently failed, using %s",
                routing_target,
                department_name,
                self._policy.dispatch_center_name,
            )
            routing_target = self._policy.dispatch_center_name

        routing_changes: dict[str, str] = {}
        if department_name in set(self._directory.supervisor_live_names()):
            routing_changes[department_name] = routing_target
        else:
            logger.warning("Termination references unknown department %s", department_name)

        capabilities_mapping = {
            reassignment["service"]: reassignment["reassign_to"]
            for reassignment in recommendation.services_to_reassign
            if reassignment.get("service") and reassignment.get("reassign_to")
        }

        return ChangeNotification(
            change_id=uuid4().hex,
            change_type=CHANGE_TYPE_TERMINATED,
            affected_names=(department_name,),
            routing_changes=routing_changes,
            fallback_name=self._policy.dispatch_center_name,
            effective_immediately=self._effective_immediately,
            capabilities_mapping=capabilities_mapping,
            emergency_types_affected=self._policy.policy_emergency_types_for([department_name]),
            rollback_available=True,
            rollback_instructions={
                "action": ROLLBACK_ACTION_RESTORE,
                "department": department_name,
                "previous_target": routing_target,
            },
            initiated_by=self._service_name,
        )

    def notification_build_rollback(self, notification: ChangeNotification) -> ChangeNotification:
        """Build the `created` notification reversing a termination.

        Args:
            notification: Previously broadcast termination notification.

        Returns:
            ChangeNotification: Notification restoring the terminated department.

        Raises:
            ValueError: Raised when the notification cannot be rolled back.
        """

        instructions = notification.rollback_instructions or {}
        if not notification.rollback_available or instructions.get("action") != ROLLBACK_ACTION_RESTORE:
            raise ValueError(f"change {notification.change_id} is not reversible")
        department_name = str(instructions.get("department") or "").strip()
        if not department_name:
            raise ValueError(f"change {notification.change_id} rollback has no department")

        return ChangeNotification(
            change_id=uuid4().hex,
            change_type=CHANGE_TYPE_CREATED,
            affected_names=(department_name,),
            routing_changes={},
            new_name=department_name,
            effective_immediately=self._effective_immediately,
            emergency_types_affected=notification.emergency_types_affected,
            initiated_by=self._service_name,
        )

    def notification_announce_created(self, department_name: str) -> ChangeNotification:
        """Publish that a department is now available as a routing target."""

        normalized_name = department_name.strip()
        if not normalized_name:
            raise ValueError("department_name must not be blank")
        notification = ChangeNotification(
            change_id=uuid4().hex,
            change_type=CHANGE_TYPE_CREATED,
            affected_names=(normalized_name,),
            routing_changes={},
            new_name=normalized_name,
            effective_immediately=True,
            emergency_types_affected=self._policy.policy_emergency_types_for([normalized_name]),
            initiated_by=self._service_name,
        )
        self.notification_publish(notification)
        return notification

    def notification_announce_unavailable(self, department_name: str, description: str | None = None) -> int:
        """Publish that a department can no longer receive work.

        Args:
            department_name: Department excluded from routing.
            description: Optional reason included in the announcement.

        Returns:
            int: Number of recipients the announcement was published to.

        Raises:
            ValueError: Raised when department_name is blank.
        """

        normalized_name = department_name.strip()
        if not normalized_name:
            raise ValueError("department_name must not be blank")
        announcement = DepartmentAnnouncement(department_name=normalized_name, status="failed", description=description)
        delivered_count = 0
        for recipient in self._recipients:
            envelope = message_build_envelope(announcement, sender=self._service_name, recipient=recipient)
            try:
                self._bus.bus_publish(recipient, envelope)
            except MessageBusError as error:
                logger.warning("Unavailability of %s not delivered to %s: %s", normalized_name, recipient, error)
                continue
            delivered_count += 1
        return delivered_count

    def notification_publish(self, notification: ChangeNotification) -> int:
        """Publish one notification to every recipient.

        Args:
            notification: Notification to publish.

        Returns:
            int: Number of recipients the notification was published to.

        Raises:
            RuntimeError: Transport failures are logged per recipient.
        """

        message = DepartmentChangeNotification.message_from_change(notification)
        delivered_count = 0
        for recipient in self._recipients:
            envelope = message_build_envelope(message, sender=self._service_name, recipient=recipient)
            try:
                self._bus.bus_publish(recipient, envelope)
            except MessageBusError as error:
                logger.warning("Change %s not delivered to %s: %s", notification.change_id, recipient, error)
                continue
            delivered_count += 1

        logger.info(
            "Broadcast %s change %s to %s recipient(s)",
            notification.change_type,
            notification.change_id,
            delivered_count,
        )
        return delivered_count
