# backend/vn_core/bonuses/services.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, TypeVar
from uuid import UUID

from django.db import transaction
from django.utils import timezone

from vn_core.audit.services import AuditService
from vn_core.bonuses.conf import eligible_statuses, engine_setting
from vn_core.bonuses.context import MonthContextBuilder
from vn_core.bonuses.engine import BonusEngine
from vn_core.bonuses.errors import BonusEngineError, ConcurrencyError
from vn_core.bonuses.events import BonusEvent, publish
from vn_core.bonuses.history import BonusHistory
from vn_core.bonuses.ledger import MonthlyLedger
from vn_core.bonuses.locks import acquire_month_lock
from vn_core.bonuses.models import BonusDecision
from vn_core.visits.models import NursingVisit
from vn_core.visits.selectors import month_bounds, visits_for_month

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class VisitRecalculation:
    visit_id: UUID
    visit_date: Any
    bonus_codes: tuple[str, ...]
    total_points: int


@dataclass(frozen=True)
class RecalculationResult:
    patient_id: UUID
    facility_id: UUID
    year: int
    month: int
    visits: tuple[VisitRecalculation, ...]
    cleared_decisions: int = 0
    dry_run: bool = False

    @property
    def decision_count(self) -> int:
        return sum(len(v.bonus_codes) for v in self.visits)

    @property
    def total_points(self) -> int:
        return sum(v.total_points for v in self.visits)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": str(self.patient_id),
            "facility_id": str(self.facility_id),
            "year": self.year,
            "month": self.month,
            "visit_count": len(self.visits),
            "decision_count": self.decision_count,
            "total_points": self.total_points,
            "cleared_decisions": self.cleared_decisions,
            "dry_run": self.dry_run,
        }


def _with_lock_retries(fn: Callable[[], T], *, label: str) -> T:
    """
    Run fn in a fresh transaction; on ConcurrencyError start over (whole unit,
    never a partial retry) up to RECALC_LOCK_RETRIES more times.
    """
    retries = int(engine_setting("RECALC_LOCK_RETRIES"))
    delay = float(engine_setting("RECALC_LOCK_RETRY_DELAY"))

    attempt = 0
    while True:
        try:
            with transaction.atomic():
                return fn()
        except ConcurrencyError:
            if attempt >= retries:
                logger.warning("%s: lock still held after %d retries, giving up", label, retries)
                raise
            attempt += 1
            logger.info("%s: lock held, retry %d/%d in %.2fs", label, attempt, retries, delay)
            if delay:
                time.sleep(delay)


def _publish_visit_calculated(visit: NursingVisit, decisions: list[BonusDecision]) -> None:
    payload = {
        "visit_id": str(visit.id),
        "patient_id": str(visit.patient_id),
        "facility_id": str(visit.facility_id),
        "year": visit.visit_date.year,
        "month": visit.visit_date.month,
        "bonus_codes": [d.bonus_code for d in decisions],
        "total_points": sum(d.calculated_points for d in decisions),
    }
    transaction.on_commit(lambda: publish(BonusEvent.VISIT_CALCULATED, payload))


class BonusCalculationService:
    """
    Entry points of the bonus engine.

    - calculate_for_visit: on visit save, one visit against the persisted
      decisions of the rest of its month.
    - recalculate_month: receipt (re)generation, every eligible visit of a
      patient-month re-derived from scratch in billing order, in one
      transaction.
    """

    @staticmethod
    def calculate_for_visit(*, visit_id: UUID) -> list[BonusDecision]:
        """
        Returns the persisted decisions of the visit. Draft or deleted visits
        have their decisions cleared and get [].

        Both paths write the month's decision rows, so both run under the
        patient-month lock; eligibility is re-read once the lock is held.
        """
        visit = NursingVisit.objects.get(pk=visit_id)
        year, month = visit.visit_date.year, visit.visit_date.month

        def _calculate() -> list[BonusDecision]:
            acquire_month_lock(
                patient_id=visit.patient_id,
                facility_id=visit.facility_id,
                year=year,
                month=month,
            )
            current = NursingVisit.objects.select_related("patient", "nurse", "facility").get(pk=visit.id)

            if current.deleted_at is not None or current.status not in eligible_statuses():
                cleared = BonusHistory.clear(visit_id=current.id)
                if cleared:
                    logger.info(
                        "visit %s not eligible (%s); cleared %d decision(s)", current.id, current.status, cleared
                    )
                    _publish_visit_calculated(current, [])
                return []

            month_visits = list(
                visits_for_month(
                    patient_id=visit.patient_id,
                    facility_id=visit.facility_id,
                    year=year,
                    month=month,
                    statuses=eligible_statuses(),
                )
            )
            builder = MonthContextBuilder(month_visits=month_visits, is_receipt_recalculation=False)
            ledger = MonthlyLedger.from_history(visit_ids=[v.id for v in month_visits if v.id != visit.id])

            evaluation = BonusEngine.evaluate_visit(ctx=builder.build(current), ledger=ledger)
            saved = BonusHistory.save(visit_id=current.id, decisions=evaluation.decisions)
            _publish_visit_calculated(current, saved)
            return saved

        try:
            return _with_lock_retries(_calculate, label=f"visit {visit.id}")
        except BonusEngineError as exc:
            exc.attach(visit_id=visit.id)
            logger.error("bonus calculation failed: %s", exc)
            raise

    @staticmethod
    def recalculate_month(
        *,
        patient_id: UUID,
        facility_id: UUID,
        year: int,
        month: int,
        dry_run: bool = False,
    ) -> RecalculationResult:
        """
        Whole month or nothing. dry_run computes and rolls back, leaving the
        stored decisions untouched.
        """
        label = f"patient {patient_id} {year}-{month:02d}"

        def _recalculate() -> RecalculationResult:
            result = BonusCalculationService.recalculate_month_in_transaction(
                patient_id=patient_id,
                facility_id=facility_id,
                year=year,
                month=month,
            )
            if dry_run:
                transaction.set_rollback(True)
                return replace(result, dry_run=True)
            return result

        try:
            result = _with_lock_retries(_recalculate, label=label)
        except BonusEngineError as exc:
            logger.error("recalculation of %s rolled back: %s", label, exc)
            raise

        logger.info(
            "recalculated %s: %d visit(s), %d decision(s), %d points%s",
            label,
            len(result.visits),
            result.decision_count,
            result.total_points,
            " (dry run)" if dry_run else "",
        )
        return result

    @staticmethod
    def recalculate_month_in_transaction(
        *,
        patient_id: UUID,
        facility_id: UUID,
        year: int,
        month: int,
    ) -> RecalculationResult:
        """
        The month loop itself. The caller owns the transaction: this refuses to
        run in autocommit so a failure can never leave half a month written.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("recalculate_month_in_transaction() must run inside transaction.atomic()")

        lock = acquire_month_lock(patient_id=patient_id, facility_id=facility_id, year=year, month=month)

        visits = list(
            visits_for_month(
                patient_id=patient_id,
                facility_id=facility_id,
                year=year,
                month=month,
                statuses=eligible_statuses(),
            )
        )

        # decisions left on visits that stopped being eligible (draft again, deleted)
        first, last = month_bounds(year, month)
        cleared, _ = (
            BonusDecision.objects.filter(
                visit__patient_id=patient_id,
                visit__facility_id=facility_id,
                visit__visit_date__gte=first,
                visit__visit_date__lte=last,
            )
            .exclude(visit_id__in=[v.id for v in visits])
            .delete()
        )

        builder = MonthContextBuilder(month_visits=visits, is_receipt_recalculation=True)
        ledger = MonthlyLedger()
        results: list[VisitRecalculation] = []

        for visit in visits:
            evaluation = BonusEngine.evaluate_visit(ctx=builder.build(visit), ledger=ledger)
            BonusHistory.save(visit_id=visit.id, decisions=evaluation.decisions)
            ledger.record(visit.id, evaluation.applied_codes)
            results.append(
                VisitRecalculation(
                    visit_id=visit.id,
                    visit_date=visit.visit_date,
                    bonus_codes=tuple(evaluation.applied_codes),
                    total_points=evaluation.total_points,
                )
            )

        lock.last_recalculated_at = timezone.now()
        lock.save(update_fields=["last_recalculated_at"])

        result = RecalculationResult(
            patient_id=patient_id,
            facility_id=facility_id,
            year=year,
            month=month,
            visits=tuple(results),
            cleared_decisions=cleared,
        )

        payload = result.as_dict()
        AuditService.log(
            event_code=BonusEvent.MONTH_RECALCULATED.value,
            entity_type="Patient",
            entity_id=patient_id,
            facility_id=facility_id,
            metadata=payload,
        )
        transaction.on_commit(lambda: publish(BonusEvent.MONTH_RECALCULATED, payload))
        return result


calculate_for_visit = BonusCalculationService.calculate_for_visit
recalculate_month = BonusCalculationService.recalculate_month

