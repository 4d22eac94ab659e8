"""
Decision Service — records pricing decisions against an ontology snapshot
and measures them once the outcome is known.

A decision record is append-mostly: everything but `outcome` is fixed at
creation, and `outcome` can be set exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pricing_council.analytics.common import mean
from pricing_council.errors import InvalidInputError, NotFoundError
from pricing_council.models.schemas import (
    DecisionOutcome,
    DecisionRecord,
    PricingOption,
    new_id,
    utcnow,
)
from pricing_council.persistence.document_store import DocumentStore
from pricing_council.persistence.snapshot_repository import SnapshotRepository

logger = logging.getLogger(__name__)

DECISION_COLLECTION = "decision_records"
OPTION_COLLECTION = "pricing_options"


def closeness(predicted: float, actual: float) -> float:
    """1.0 for an exact prediction, falling linearly to 0.0."""
    scale = max(abs(predicted), abs(actual))
    if scale == 0:
        return 1.0
    return max(0.0, 1.0 - abs(predicted - actual) / scale)


def accuracy_score(
    option: dict[str, Any] | None,
    actual_arr_change: float,
    actual_churn_change: float | None = None,
) -> float | None:
    """Mean closeness over ARR and, when measured, churn. None without a prediction."""
    if option is None:
        return None
    impact = option.get("impact") or {}
    scores = [closeness(float(impact.get("expected_arr_change", 0.0)), actual_arr_change)]
    if actual_churn_change is not None:
        scores.append(closeness(float(impact.get("expected_churn_increase", 0.0)), actual_churn_change))
    return round(mean(scores), 4)


class DecisionService:
    def __init__(self, store: DocumentStore, snapshots: SnapshotRepository):
        self._store = store
        self._snapshots = snapshots

    # ── Create ───────────────────────────────────────────

    @staticmethod
    def validate_request(
        question: str,
        options_considered: list[str],
        reasoning: str,
        chosen_option_id: str | None = None,
        decision_confidence: float | None = None,
    ) -> None:
        """Raise InvalidInputError for a decision that cannot be recorded."""
        if not question or not question.strip():
            raise InvalidInputError("Decision question is required")
        if not reasoning or not reasoning.strip():
            raise InvalidInputError("Decision reasoning is required")
        if chosen_option_id and chosen_option_id not in options_considered:
            raise InvalidInputError(
                f"Chosen option '{chosen_option_id}' is not among the options considered"
            )
        if decision_confidence is not None and not 0 <= decision_confidence <= 1:
            raise InvalidInputError("decision_confidence must be between 0 and 1")

    def create_decision(
        self,
        organization_id: str,
        question: str,
        options_considered: list[str],
        reasoning: str,
        chosen_option_id: str | None = None,
        options: list[PricingOption] | None = None,
        decided_by: str = "user",
        context: dict[str, Any] | None = None,
        decision_confidence: float | None = None,
    ) -> DecisionRecord:
        """
        Snapshot the ontology (with the considered options) and store the
        decision against that snapshot. Validation happens before any write.
        """
        self.validate_request(question, options_considered, reasoning, chosen_option_id, decision_confidence)

        # Snapshot trigger_details carry the record id
        record_id = new_id("dec")
        considered = [o for o in options or [] if o.id in options_considered]
        snapshot = self._snapshots.create_snapshot(
            organization_id,
            triggered_by="decision",
            description=f"Decision snapshot: {question.strip()[:80]}",
            trigger_details={
                "decision_record_id": record_id,
                "options_considered": options_considered,
                "chosen_option_id": chosen_option_id,
            },
            options=considered,
        )

        record = DecisionRecord(
            id=record_id,
            organization_id=organization_id,
            question=question.strip(),
            context=context or {},
            options_considered=options_considered,
            chosen_option_id=chosen_option_id,
            reasoning=reasoning.strip(),
            ontology_snapshot_id=snapshot.id,
            decided_by=decided_by,
            decision_confidence=decision_confidence,
        )

        for option in considered:
            self._store.insert(OPTION_COLLECTION, {
                **option.model_dump(),
                "organization_id": organization_id,
                "decision_record_id": record.id,
                "ontology_snapshot_id": snapshot.id,
                "promoted_at": utcnow(),
            })

        self._store.insert(DECISION_COLLECTION, record.model_dump())
        logger.info(
            f"[decision] {record.id} for {organization_id}: chose {chosen_option_id} "
            f"(snapshot v{snapshot.version})"
        )
        return record

    # ── Outcome ──────────────────────────────────────────

    def record_outcome(
        self,
        organization_id: str,
        decision_id: str,
        actual_arr_change: float,
        actual_churn_change: float | None = None,
        learnings: str = "",
    ) -> DecisionRecord:
        record = self.get_decision(organization_id, decision_id)
        if record.outcome is not None:
            raise InvalidInputError(f"Outcome for decision '{decision_id}' was already recorded")

        predicted: Optional[dict[str, Any]] = None
        if record.chosen_option_id:
            snapshot = self._snapshots.get_snapshot(organization_id, record.ontology_snapshot_id)
            predicted = snapshot.find_option(record.chosen_option_id)

        outcome = DecisionOutcome(
            actual_arr_change=actual_arr_change,
            actual_churn_change=actual_churn_change,
            accuracy_score=accuracy_score(predicted, actual_arr_change, actual_churn_change),
            learnings=learnings,
        )
        doc = self._store.update(
            DECISION_COLLECTION,
            {"organization_id": organization_id, "id": decision_id, "outcome": None},
            {"outcome": outcome.model_dump()},
        )
        if doc is None:
            raise InvalidInputError(f"Outcome for decision '{decision_id}' was already recorded")
        logger.info(f"[decision] outcome for {decision_id}: accuracy {outcome.accuracy_score}")
        return DecisionRecord(**doc)

    # ── Reads ────────────────────────────────────────────

    def get_decision(self, organization_id: str, decision_id: str) -> DecisionRecord:
        doc = self._store.find_one(DECISION_COLLECTION, {"organization_id": organization_id, "id": decision_id})
        if doc is None:
            raise NotFoundError(f"Decision '{decision_id}' not found")
        return DecisionRecord(**doc)

    def list_decisions(
        self,
        organization_id: str,
        include_outcomes: bool = True,
        limit: int = 50,
    ) -> list[DecisionRecord]:
        """Newest first."""
        docs = self._store.find(
            DECISION_COLLECTION,
            {"organization_id": organization_id},
            sort=[("created_at", -1)],
            limit=limit,
        )
        records = [DecisionRecord(**d) for d in docs]
        if not include_outcomes:
            records = [r.model_copy(update={"outcome": None}) for r in records]
        return records

    def get_decision_with_context(self, organization_id: str, decision_id: str) -> dict[str, Any]:
        record = self.get_decision(organization_id, decision_id)
        snapshot = self._snapshots.get_snapshot(organization_id, record.ontology_snapshot_id)
        chosen = snapshot.find_option(record.chosen_option_id) if record.chosen_option_id else None
        return {
            "decision": record.model_dump(mode="json"),
            "snapshot": snapshot.model_dump(mode="json"),
            "chosen_option": chosen,
        }

    def accuracy_stats(self, organization_id: str) -> dict[str, Any]:
        records = self.list_decisions(organization_id, limit=0)
        measured = [r for r in records if r.outcome is not None]
        scored = [r.outcome.accuracy_score for r in measured if r.outcome.accuracy_score is not None]
        return {
            "total_decisions": len(records),
            "measured_decisions": len(measured),
            "avg_accuracy": round(mean(scored), 4) if scored else None,
            "avg_arr_impact": round(mean([r.outcome.actual_arr_change for r in measured]), 2) if measured else None,
        }
