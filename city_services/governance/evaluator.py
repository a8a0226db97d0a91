"""Recommendation evaluation with a consume-once decision ledger."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from city_services.domain import (
    DECISION_APPROVED,
    DECISION_DEFERRED,
    DECISION_REJECTED,
    RECOMMENDATION_TYPE_CONSOLIDATION,
    RECOMMENDATION_TYPE_TERMINATION,
    ClockProvider,
    Decision,
    domain_utc_now,
)
from city_services.messages import ConsolidationRecommendation, TerminationRecommendation

from .policy import DECISION_RATIONALES, GovernancePolicy

logger = logging.getLogger(__name__)

Recommendation = ConsolidationRecommendation | TerminationRecommendation


@dataclass(frozen=True)
class EvaluationResult:
    """Decision plus whether it was replayed from the ledger.

    Attributes:
        decision: Recorded decision.
        duplicate: `True` when the recommendation id had already been decided.
    """

    decision: Decision
    duplicate: bool = False


class RecommendationEvaluator:
    """Apply the governance policy to analyzer recommendations.

    Each recommendation id is decided exactly once. Redelivery returns the
    recorded decision flagged as a duplicate so callers skip side effects.
    """

    def __init__(self, policy: GovernancePolicy | None = None, clock: ClockProvider | None = None):
        resolved_policy = policy or GovernancePolicy()
        if resolved_policy.approve_similarity < resolved_policy.defer_similarity:
            raise ValueError("policy.approve_similarity must be >= policy.defer_similarity")
        self._policy = resolved_policy
        self._clock = clock or domain_utc_now
        self._decisions: dict[str, Decision] = {}
        self._lock = threading.RLock()

    @property
    def policy(self) -> GovernancePolicy:
        return self._policy

    def governance_evaluate(self, recommendation: Recommendation) -> EvaluationResult:
        """Decide one recommendation.

        Args:
            recommendation: Consolidation or termination recommendation.

        Returns:
            EvaluationResult: Decision with duplicate flag.

        Raises:
            TypeError: Raised when the recommendation type is unsupported.
        """

        if not isinstance(recommendation, (ConsolidationRecommendation, TerminationRecommendation)):
            raise TypeError(f"unsupported recommendation type={type(recommendation).__name__}")

        with self._lock:
            recorded_decision = self._decisions.get(recommendation.recommendation_id)
            if recorded_decision is not None:
                logger.info(
                    "Recommendation %s already decided: %s",
                    recommendation.recommendation_id,
                    recorded_decision.outcome,
                )
                return EvaluationResult(decision=recorded_decision, duplicate=True)

            if isinstance(recommendation, ConsolidationRecommendation):
                recommendation_type = RECOMMENDATION_TYPE_CONSOLIDATION
                outcome = self.governance_decide_consolidation(recommendation)
            else:
                recommendation_type = RECOMMENDATION_TYPE_TERMINATION
                outcome = self.governance_decide_termination(recommendation)

            decision = Decision(
                recommendation_id=recommendation.recommendation_id,
                recommendation_type=recommendation_type,
                outcome=outcome,
                rationale=DECISION_RATIONALES[outcome],
                decided_at=self._clock(),
            )
            self._decisions[recommendation.recommendation_id] = decision
            return EvaluationResult(decision=decision)

    def governance_decide_consolidation(self, recommendation: ConsolidationRecommendation) -> str:
        """Return the outcome category for one consolidation (no ledger update)."""

        similarity_score = recommendation.similarity_score
        savings = recommendation.estimated_annual_savings
        if similarity_score is None:
            logger.info("Rejecting consolidation %s without similarity score", recommendation.proposed_name)
            return DECISION_REJECTED

        if similarity_score > self._policy.approve_similarity and savings is not None and savings > self._policy.min_savings:
            logger.info("Approving high-value consolidation: %s", recommendation.proposed_name)
            return DECISION_APPROVED
        if self._policy.defer_similarity < similarity_score <= self._policy.approve_similarity:
            logger.info("Deferring medium-similarity consolidation: %s", recommendation.proposed_name)
            return DECISION_DEFERRED
        logger.info("Rejecting consolidation: %s (similarity %s)", recommendation.proposed_name, similarity_score)
        return DECISION_REJECTED

    def governance_decide_termination(self, recommendation: TerminationRecommendation) -> str:
        """Return the outcome category for one termination (no ledger update)."""

        department_name = recommendation.department_name.lower()
        if any(protected_name in department_name for protected_name in self._policy.protected_departments):
            logger.warning("Rejecting termination of protected department: %s", recommendation.department_name)
            return DECISION_REJECTED
        if recommendation.termination_reason.strip().lower() in self._policy.approved_termination_reasons:
            logger.info(
                "Approving termination: %s (%s)",
                recommendation.department_name,
                recommendation.termination_reason,
            )
            return DECISION_APPROVED
        logger.info("Deferring termination for review: %s", recommendation.department_name)
        return DECISION_DEFERRED

    def governance_get_decision(self, recommendation_id: str) -> Decision | None:
        with self._lock:
            return self._decisions.get(recommendation_id)

    def governance_decisions(self) -> list[Decision]:
        """Return every recorded decision ordered by decision time."""

        with self._lock:
            return sorted(self._decisions.values(), key=lambda decision: decision.decided_at)
