# backend/vn_core/visits/selectors.py
from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable
from uuid import UUID

from django.db.models import F, QuerySet

from vn_core.visits.models import NursingVisit


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def eligible_visits_qs(*, statuses: Iterable[str]) -> QuerySet[NursingVisit]:
    """
    Visits that count for billing: finished (per statuses) and not soft-deleted.
    """
    return NursingVisit.objects.filter(status__in=list(statuses), deleted_at__isnull=True)


def visits_for_month(
    *,
    patient_id: UUID,
    facility_id: UUID,
    year: int,
    month: int,
    statuses: Iterable[str],
) -> QuerySet[NursingVisit]:
    """
    Eligible visits of one patient-month at one facility, in billing order:
    visit_date, start_time (no start time sorts last), then created_at / id
    so that same-day ties are stable across runs.
    """
    first, last = month_bounds(year, month)
    return (
        eligible_visits_qs(statuses=statuses)
        .filter(
            patient_id=patient_id,
            facility_id=facility_id,
            visit_date__gte=first,
            visit_date__lte=last,
        )
        .select_related("patient", "nurse", "facility")
        .order_by(
            "visit_date",
            F("start_time").asc(nulls_last=True),
            "created_at",
            "id",
        )
    )


def same_building_visit_count(
    *,
    facility_id: UUID,
    building_id: UUID,
    visit_date: date,
    statuses: Iterable[str],
) -> int:
    return (
        eligible_visits_qs(statuses=statuses)
        .filter(facility_id=facility_id, visit_date=visit_date, patient__building_id=building_id)
        .values("patient_id")
        .distinct()
        .count()
    )


def terminal_care_visit_dates(
    *,
    patient_id: UUID,
    window_start: date,
    window_end: date,
    statuses: Iterable[str],
) -> list[date]:
    """
    One entry per terminal-care visit in the window (same-day visits repeat).
    """
    return list(
        eligible_visits_qs(statuses=statuses)
        .filter(
            patient_id=patient_id,
            is_terminal_care=True,
            visit_date__gte=window_start,
            visit_date__lte=window_end,
        )
        .order_by("visit_date")
        .values_list("visit_date", flat=True)
    )
