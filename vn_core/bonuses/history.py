# backend/vn_core/bonuses/history.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Sequence
from uuid import UUID

from django.db import IntegrityError, transaction

from vn_core.bonuses.errors import IntegrityViolation
from vn_core.bonuses.models import BonusDecision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecisionDraft:
    """A decision computed by the engine, not yet persisted."""
    rule_id: UUID
    bonus_code: str
    bonus_name: str
    calculated_points: int
    selected_service_code: str
    selection_reason: str
    calculation_details: Dict[str, Any] = field(default_factory=dict)


class BonusHistory:
    """
    Writes the decision set of a visit. The whole set is replaced
    (delete-then-insert), never diffed, so the stored rows always equal the
    latest evaluation.
    """

    @staticmethod
    @transaction.atomic
    def save(*, visit_id: UUID, decisions: Sequence[DecisionDraft]) -> list[BonusDecision]:
        codes = [d.bonus_code for d in decisions]
        duplicates = sorted({code for code in codes if codes.count(code) > 1})
        if duplicates:
            raise IntegrityViolation(
                f"duplicate bonus codes for one visit: {duplicates}",
                visit_id=visit_id,
                bonus_code=duplicates[0],
            )

        deleted, _ = BonusDecision.objects.filter(visit_id=visit_id).delete()

        rows = [
            BonusDecision(
                visit_id=visit_id,
                rule_id=d.rule_id,
                bonus_code=d.bonus_code,
                calculated_points=d.calculated_points,
                selected_service_code=d.selected_service_code,
                selection_reason=d.selection_reason,
                calculation_details=d.calculation_details,
            )
            for d in decisions
        ]
        try:
            created = BonusDecision.objects.bulk_create(rows)
        except IntegrityError as exc:
            raise IntegrityViolation(
                "bonus decision unique constraint violated after delete-then-insert",
                visit_id=visit_id,
                details={"db_error": str(exc)},
            ) from exc

        logger.debug("visit %s: replaced %d decision(s) with %d", visit_id, deleted, len(created))
        return created

    @staticmethod
    @transaction.atomic
    def clear(*, visit_id: UUID) -> int:
        deleted, _ = BonusDecision.objects.filter(visit_id=visit_id).delete()
        return deleted
