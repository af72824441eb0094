# backend/vn_core/bonuses/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Sequence
from uuid import UUID

from django.db.models import Q
from django.utils import timezone

from vn_core.bonuses.conditions import MAX_TERMINAL_WINDOW_DAYS
from vn_core.bonuses.conf import eligible_statuses
from vn_core.patients.models import SpecialManagementDefinition
from vn_core.visits import selectors as visit_selectors
from vn_core.visits.models import NursingVisit

logger = logging.getLogger(__name__)

# Special-management tier I definition type per patient insurance (特別管理加算 I)
TIER_1_DEFINITION_TYPE = {"medical": "medical_5000", "care": "care_500"}


def time_band_for_hour(hour: int) -> str:
    """
    Facility-local hour -> band.
    early_morning 6-8, daytime 8-18, night 18-22, late_night 22-6.
    """
    if 6 <= hour < 8:
        return "early_morning"
    if 8 <= hour < 18:
        return "daytime"
    if 18 <= hour < 22:
        return "night"
    return "late_night"


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything a rule may look at for one visit. Built fresh per visit,
    never persisted.
    """
    # visit identity
    visit_id: UUID
    patient_id: UUID
    facility_id: UUID
    visit_date: date
    start_time: datetime | None
    end_time: datetime | None
    insurance_type: str

    # record flags
    is_discharge_date: bool = False
    is_first_visit_of_plan: bool = False
    is_terminal_care: bool = False
    has_collaboration_record: bool = False
    is_second_visit: bool = False

    emergency_visit_reason: str = ""
    multiple_visit_reason: str = ""
    long_visit_reason: str = ""
    specialist_care_type: str = ""

    # patient
    patient_age: int | None = None
    special_management_types: tuple[str, ...] = ()
    special_management_start: date | None = None
    special_management_end: date | None = None
    special_management_tier: int | None = None
    death_date: date | None = None
    death_place_code: str = ""
    building_id: UUID | None = None
    same_building_patient_count: int = 0

    # nurse
    nurse_id: UUID | None = None
    nurse_certifications: tuple[str, ...] = ()

    # facility
    has_24h_support_system: bool = False
    has_24h_support_system_enhanced: bool = False
    has_emergency_support_system: bool = False
    has_emergency_support_system_enhanced: bool = False
    burden_reduction_measures: tuple[str, ...] = ()

    # derived counters (from the month's billing order)
    daily_visit_ordinal: int = 1
    monthly_emergency_ordinal: int = 0
    terminal_care_visit_dates: tuple[date, ...] = ()

    # control flags (set by the builder, never by the caller)
    is_receipt_recalculation: bool = False
    is_first_record_of_month: bool = False

    @property
    def duration_minutes(self) -> int | None:
        if self.start_time is None or self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def local_start_hour(self) -> int | None:
        if self.start_time is None:
            return None
        start = self.start_time
        if timezone.is_aware(start):
            start = timezone.localtime(start)
        return start.hour

    @property
    def time_band(self) -> str | None:
        hour = self.local_start_hour
        return None if hour is None else time_band_for_hour(hour)

    @property
    def has_building(self) -> bool:
        return self.building_id is not None

    @property
    def is_first_visit_of_month(self) -> bool:
        return self.is_first_record_of_month

    @property
    def special_management_active(self) -> bool:
        if not self.special_management_types:
            return False
        if self.special_management_start and self.visit_date < self.special_management_start:
            return False
        if self.special_management_end and self.visit_date > self.special_management_end:
            return False
        return True

    def terminal_care_visit_count(self, window_days: int) -> int:
        """Terminal-care visits from visit_date - window_days up to visit_date."""
        window_start = self.visit_date - timedelta(days=window_days)
        return sum(1 for d in self.terminal_care_visit_dates if window_start <= d <= self.visit_date)


def special_management_tier(
    *,
    facility_id: UUID,
    insurance_type: str,
    categories: Iterable[str],
) -> int | None:
    """
    1 when an active definition of the patient's categories carries the tier-I
    type for the patient's insurance (medical_5000 / care_500), otherwise 2.
    No categories -> None. Categories without a definition -> 2.
    """
    categories = [c for c in categories if c]
    if not categories:
        return None

    types = set(
        SpecialManagementDefinition.objects.filter(
            Q(facility_id=facility_id) | Q(facility__isnull=True),
            category__in=categories,
            is_active=True,
        ).values_list("insurance_type", flat=True)
    )
    if not types:
        logger.debug("no special-management definitions for %s, defaulting to tier 2", categories)
        return 2
    return 1 if TIER_1_DEFINITION_TYPE.get(insurance_type) in types else 2


class MonthContextBuilder:
    """
    Builds EvaluationContexts for the visits of one patient-month.

    month_visits must be the eligible visits in billing order
    (visits.selectors.visits_for_month); ordinals and the first-of-month flag
    are positions in that order, not in evaluation order.
    """

    def __init__(self, *, month_visits: Sequence[NursingVisit], is_receipt_recalculation: bool):
        self.is_receipt_recalculation = is_receipt_recalculation
        self._visits = list(month_visits)
        self._positions = {v.id: i for i, v in enumerate(self._visits)}
        self._tiers: dict[UUID, int | None] = {}

        self._daily_ordinals: dict[UUID, int] = {}
        self._emergency_ordinals: dict[UUID, int] = {}
        per_day: dict[date, int] = {}
        emergencies = 0
        for v in self._visits:
            per_day[v.visit_date] = per_day.get(v.visit_date, 0) + 1
            self._daily_ordinals[v.id] = per_day[v.visit_date]
            if (v.emergency_visit_reason or "").strip():
                emergencies += 1
            self._emergency_ordinals[v.id] = emergencies

    @property
    def visits(self) -> list[NursingVisit]:
        return list(self._visits)

    def is_first_record(self, visit: NursingVisit) -> bool:
        return self._positions.get(visit.id) == 0

    def _tier_for(self, visit: NursingVisit) -> int | None:
        patient = visit.patient
        if patient.id not in self._tiers:
            self._tiers[patient.id] = special_management_tier(
                facility_id=visit.facility_id,
                insurance_type=patient.insurance_type,
                categories=patient.special_management_types or [],
            )
        return self._tiers[patient.id]

    def build(self, visit: NursingVisit) -> EvaluationContext:
        patient = visit.patient
        facility = visit.facility
        nurse = visit.nurse
        statuses = eligible_statuses()

        same_building = 0
        if patient.building_id:
            same_building = visit_selectors.same_building_visit_count(
                facility_id=visit.facility_id,
                building_id=patient.building_id,
                visit_date=visit.visit_date,
                statuses=statuses,
            )

        terminal_dates: tuple[date, ...] = ()
        if patient.death_date and patient.death_date == visit.visit_date:
            terminal_dates = tuple(
                visit_selectors.terminal_care_visit_dates(
                    patient_id=patient.id,
                    window_start=visit.visit_date - timedelta(days=MAX_TERMINAL_WINDOW_DAYS),
                    window_end=visit.visit_date,
                    statuses=statuses,
                )
            )

        if visit.id not in self._positions:
            logger.debug("visit %s is not part of the month order; ordinals default to 1/0", visit.id)

        return EvaluationContext(
            visit_id=visit.id,
            patient_id=patient.id,
            facility_id=visit.facility_id,
            visit_date=visit.visit_date,
            start_time=visit.start_time,
            end_time=visit.end_time,
            insurance_type=patient.insurance_type,
            is_discharge_date=visit.is_discharge_date,
            is_first_visit_of_plan=visit.is_first_visit_of_plan,
            is_terminal_care=visit.is_terminal_care,
            has_collaboration_record=visit.has_collaboration_record,
            is_second_visit=visit.is_second_visit,
            emergency_visit_reason=visit.emergency_visit_reason or "",
            multiple_visit_reason=visit.multiple_visit_reason or "",
            long_visit_reason=visit.long_visit_reason or "",
            specialist_care_type=visit.specialist_care_type or "",
            patient_age=patient.age_on(visit.visit_date),
            special_management_types=tuple(patient.special_management_types or ()),
            special_management_start=patient.special_management_start_date,
            special_management_end=patient.special_management_end_date,
            special_management_tier=self._tier_for(visit),
            death_date=patient.death_date,
            death_place_code=patient.death_place_code or "",
            building_id=patient.building_id,
            same_building_patient_count=same_building,
            nurse_id=nurse.id if nurse else None,
            nurse_certifications=tuple(nurse.specialist_certifications or ()) if nurse else (),
            has_24h_support_system=facility.has_24h_support_system,
            has_24h_support_system_enhanced=facility.has_24h_support_system_enhanced,
            has_emergency_support_system=facility.has_emergency_support_system,
            has_emergency_support_system_enhanced=facility.has_emergency_support_system_enhanced,
            burden_reduction_measures=tuple(facility.burden_reduction_measures or ()),
            daily_visit_ordinal=self._daily_ordinals.get(visit.id, 1),
            monthly_emergency_ordinal=self._emergency_ordinals.get(visit.id, 0),
            terminal_care_visit_dates=terminal_dates,
            is_receipt_recalculation=self.is_receipt_recalculation,
            is_first_record_of_month=self.is_first_record(visit),
        )
