# backend/vn_core/bonuses/models.py
from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q

from vn_core.common.models import TimeStampedModel
from vn_core.patients.models import InsuranceType


class PointsType(models.TextChoices):
    FIXED = "fixed", "Fixed"
    CONDITIONAL = "conditional", "Conditional"


class BonusRule(TimeStampedModel):
    """
    Bonus master row (加算マスタ), one version of one bonus_code.

    - facility=None is the global/default rule; a facility row with the same
      bonus_code shadows it for that facility (even when inactive).
    - predefined_conditions: ordered list of {"pattern", "value"?, "operator"?},
      all must pass.
    - branch: {"kind": ...} deriving the branch key shared by service code
      selection and conditional points.
    - service_codes: branch key -> service code ("default" as fallback).
    - points_config: branch key -> points (points_type=conditional).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    facility = models.ForeignKey(
        "facilities.Facility",
        on_delete=models.PROTECT,
        related_name="bonus_rules",
        null=True,
        blank=True,
    )

    bonus_code = models.CharField(max_length=128, db_index=True)
    bonus_name = models.CharField(max_length=255)
    insurance_type = models.CharField(max_length=16, choices=InsuranceType.choices, db_index=True)
    version = models.CharField(max_length=32, blank=True, default="")

    valid_from = models.DateField()
    valid_to = models.DateField(null=True, blank=True)

    points_type = models.CharField(max_length=16, choices=PointsType.choices, default=PointsType.FIXED)
    fixed_points = models.IntegerField(null=True, blank=True)
    points_config = models.JSONField(default=dict, blank=True)

    predefined_conditions = models.JSONField(default=list, blank=True)
    branch = models.JSONField(default=dict, blank=True)
    service_codes = models.JSONField(default=dict, blank=True)

    can_combine_with = models.JSONField(default=list, blank=True)
    cannot_combine_with = models.JSONField(default=list, blank=True)

    requirements_description = models.TextField(blank=True, default="")

    is_active = models.BooleanField(default=True)
    display_order = models.IntegerField(default=999)

    class Meta:
        db_table = "bonuses_bonus_rule"
        constraints = [
            models.UniqueConstraint(
                fields=["facility", "bonus_code", "valid_from"],
                name="uq_bonus_rule_facility_code_from",
            ),
            models.UniqueConstraint(
                fields=["bonus_code", "valid_from"],
                condition=Q(facility__isnull=True),
                name="uq_bonus_rule_global_code_from",
            ),
        ]
        indexes = [
            models.Index(fields=["insurance_type", "is_active", "valid_from"]),
            models.Index(fields=["facility", "bonus_code"]),
        ]

    @property
    def is_global(self) -> bool:
        return self.facility_id is None

    def __str__(self) -> str:
        scope = "global" if self.is_global else str(self.facility_id)
        return f"{self.bonus_code} [{scope}] {self.valid_from}"


class BonusDecision(models.Model):
    """
    Persisted bonus decision (加算計算履歴) for one visit and one bonus code.
    Replaced as a whole set whenever the visit is re-evaluated.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    visit = models.ForeignKey(
        "visits.NursingVisit",
        on_delete=models.CASCADE,
        related_name="bonus_decisions",
    )
    rule = models.ForeignKey(BonusRule, on_delete=models.PROTECT, related_name="decisions")

    bonus_code = models.CharField(max_length=128, db_index=True)
    calculated_points = models.IntegerField()
    selected_service_code = models.CharField(max_length=32, blank=True, default="")
    selection_reason = models.TextField(blank=True, default="")
    calculation_details = models.JSONField(default=dict)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "bonuses_bonus_decision"
        constraints = [
            models.UniqueConstraint(fields=["visit", "bonus_code"], name="uq_bonus_decision_visit_code"),
        ]
        indexes = [
            models.Index(fields=["bonus_code", "visit"]),
        ]

    def __str__(self) -> str:
        return f"{self.bonus_code}={self.calculated_points} ({self.visit_id})"


class RecalculationLock(models.Model):
    """
    Serialisation point for month recalculation. The row is locked with
    SELECT ... FOR UPDATE NOWAIT for the lifetime of the outer transaction.
    """
    patient = models.ForeignKey("patients.Patient", on_delete=models.CASCADE, related_name="+")
    facility = models.ForeignKey("facilities.Facility", on_delete=models.CASCADE, related_name="+")
    year = models.PositiveSmallIntegerField()
    month = models.PositiveSmallIntegerField()

    last_recalculated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "bonuses_recalculation_lock"
        constraints = [
            models.UniqueConstraint(
                fields=["patient", "facility", "year", "month"],
                name="uq_recalc_lock_patient_month",
            ),
        ]
