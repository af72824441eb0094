# backend/vn_core/patients/models.py
from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q

from vn_core.common.models import FacilityScopedModel


class InsuranceType(models.TextChoices):
    MEDICAL = "medical", "医療保険"
    CARE = "care", "介護保険"


class Patient(FacilityScopedModel):
    """
    Home-visit patient. Only the attributes the bonus engine reads live here;
    the rest of the chart is owned by the records module.
    """
    patient_number = models.CharField(max_length=64)
    last_name = models.CharField(max_length=128)
    first_name = models.CharField(max_length=128)
    date_of_birth = models.DateField(null=True, blank=True)

    insurance_type = models.CharField(
        max_length=16,
        choices=InsuranceType.choices,
        default=InsuranceType.MEDICAL,
    )

    # 同一建物 grouping
    building_id = models.UUIDField(null=True, blank=True, db_index=True)

    # 特別管理 (categories + validity window, end=None means ongoing)
    special_management_types = models.JSONField(default=list, blank=True)
    special_management_start_date = models.DateField(null=True, blank=True)
    special_management_end_date = models.DateField(null=True, blank=True)

    # Terminal care
    death_date = models.DateField(null=True, blank=True)
    # 別表16: "01" home, "16" nursing home etc.
    death_place_code = models.CharField(max_length=8, blank=True, default="")

    class Meta:
        db_table = "patients_patient"
        constraints = [
            models.UniqueConstraint(
                fields=["facility", "patient_number"],
                name="uq_patient_facility_number",
            ),
        ]
        indexes = [
            models.Index(fields=["facility", "last_name"]),
        ]

    @property
    def full_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()

    def age_on(self, day) -> int | None:
        if not self.date_of_birth:
            return None
        dob = self.date_of_birth
        return day.year - dob.year - ((day.month, day.day) < (dob.month, dob.day))

    def __str__(self) -> str:
        return f"{self.full_name} ({self.patient_number})"


class SpecialManagementInsuranceType(models.TextChoices):
    MEDICAL_5000 = "medical_5000", "医療 5000円"
    MEDICAL_2500 = "medical_2500", "医療 2500円"
    CARE_500 = "care_500", "介護 500単位"
    CARE_250 = "care_250", "介護 250単位"


class SpecialManagementDefinition(models.Model):
    """
    Special-management category master (特別管理).
    facility=None means the definition is shared by every facility.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    facility = models.ForeignKey(
        "facilities.Facility",
        on_delete=models.PROTECT,
        related_name="special_management_definitions",
        null=True,
        blank=True,
    )
    category = models.CharField(max_length=50, db_index=True)
    display_name = models.CharField(max_length=100)
    insurance_type = models.CharField(max_length=16, choices=SpecialManagementInsuranceType.choices)
    monthly_points = models.PositiveIntegerField(default=0)
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "patients_special_management_definition"
        constraints = [
            models.UniqueConstraint(
                fields=["facility", "category"],
                name="uq_special_mgmt_facility_category",
            ),
            models.UniqueConstraint(
                fields=["category"],
                condition=Q(facility__isnull=True),
                name="uq_special_mgmt_global_category",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.category})"
