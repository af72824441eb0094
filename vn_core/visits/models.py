# backend/vn_core/visits/models.py
from __future__ import annotations

from django.db import models

from vn_core.common.models import FacilityScopedModel
from vn_core.facilities.models import Nurse
from vn_core.patients.models import Patient


class VisitStatus(models.TextChoices):
    DRAFT = "draft", "下書き"
    COMPLETED = "completed", "完了"
    REVIEWED = "reviewed", "確認済み"


class NursingVisit(FacilityScopedModel):
    """
    One home visit (訪問看護記録). Bonus decisions hang off this row.
    Soft-deleted visits keep their row with deleted_at set.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="visits")
    nurse = models.ForeignKey(
        Nurse,
        on_delete=models.PROTECT,
        related_name="visits",
        null=True,
        blank=True,
    )

    status = models.CharField(max_length=16, choices=VisitStatus.choices, default=VisitStatus.DRAFT, db_index=True)

    visit_date = models.DateField(db_index=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)

    # Record flags used by bonus conditions
    is_second_visit = models.BooleanField(default=False)
    is_discharge_date = models.BooleanField(default=False)
    is_first_visit_of_plan = models.BooleanField(default=False)
    has_collaboration_record = models.BooleanField(default=False)
    is_terminal_care = models.BooleanField(default=False)

    emergency_visit_reason = models.TextField(blank=True, default="")
    multiple_visit_reason = models.TextField(blank=True, default="")
    long_visit_reason = models.TextField(blank=True, default="")

    # e.g. "palliative_care", "pressure_ulcer"
    specialist_care_type = models.CharField(max_length=64, blank=True, default="")

    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "visits_nursing_visit"
        indexes = [
            models.Index(fields=["facility", "patient", "visit_date"]),
            models.Index(fields=["patient", "visit_date", "status"]),
        ]

    def __str__(self) -> str:
        return f"Visit({self.patient_id}, {self.visit_date}, {self.status})"
