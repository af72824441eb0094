# backend/vn_core/bonuses/selectors.py
from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from django.db.models import Count, F, QuerySet, Sum

from vn_core.bonuses.conf import eligible_statuses
from vn_core.bonuses.models import BonusDecision
from vn_core.visits.selectors import month_bounds


def decisions_for_visit(*, visit_id: UUID) -> QuerySet[BonusDecision]:
    return (
        BonusDecision.objects.filter(visit_id=visit_id)
        .select_related("rule")
        .order_by("rule__display_order", "bonus_code")
    )


def decisions_for_month(
    *,
    patient_id: UUID,
    facility_id: UUID,
    year: int,
    month: int,
    bonus_code: str | None = None,
) -> QuerySet[BonusDecision]:
    """
    Decisions feeding the receipt of one patient-month. Only eligible visits
    (completed/reviewed, not deleted) count.
    """
    first, last = month_bounds(year, month)
    qs = (
        BonusDecision.objects.filter(
            visit__patient_id=patient_id,
            visit__facility_id=facility_id,
            visit__visit_date__gte=first,
            visit__visit_date__lte=last,
            visit__status__in=list(eligible_statuses()),
            visit__deleted_at__isnull=True,
        )
        .select_related("rule", "visit")
        .order_by(
            "visit__visit_date",
            F("visit__start_time").asc(nulls_last=True),
            "visit__created_at",
            "visit_id",
            "bonus_code",
        )
    )
    if bonus_code:
        qs = qs.filter(bonus_code=bonus_code)
    return qs


def monthly_points_summary(*, patient_id: UUID, facility_id: UUID, year: int, month: int) -> Dict[str, Any]:
    """
    Receipt aggregation: per (bonus_code, service code) counts and points.
    """
    rows = (
        decisions_for_month(patient_id=patient_id, facility_id=facility_id, year=year, month=month)
        .order_by()
        .values("bonus_code", "selected_service_code")
        .annotate(count=Count("id"), total_points=Sum("calculated_points"))
        .order_by("bonus_code", "selected_service_code")
    )
    items = [
        {
            "bonus_code": r["bonus_code"],
            "service_code": r["selected_service_code"],
            "count": r["count"],
            "total_points": r["total_points"] or 0,
        }
        for r in rows
    ]
    return {
        "patient_id": str(patient_id),
        "facility_id": str(facility_id),
        "year": year,
        "month": month,
        "total_points": sum(i["total_points"] for i in items),
        "items": items,
    }
