# backend/vn_core/facilities/models.py
from __future__ import annotations

import uuid

from django.db import models


class Facility(models.Model):
    """
    A visiting-nurse station (訪問看護ステーション).

    The support-system flags are the facility-level 体制 registrations that
    gate the 24h / emergency bonuses.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Core identity
    name = models.CharField(max_length=255)
    code = models.SlugField(max_length=64, unique=True)

    # Support-system registrations (体制届出)
    has_24h_support_system = models.BooleanField(default=False)
    has_24h_support_system_enhanced = models.BooleanField(default=False)
    has_emergency_support_system = models.BooleanField(default=False)
    has_emergency_support_system_enhanced = models.BooleanField(default=False)

    # 看護業務の負担軽減の取組 (list of measure codes)
    burden_reduction_measures = models.JSONField(default=list, blank=True)

    # Lifecycle
    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "facilities_facility"
        indexes = [
            models.Index(fields=["is_active"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class Nurse(models.Model):
    """
    Visiting nurse. Certifications drive the specialist-management bonus.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    facility = models.ForeignKey(Facility, on_delete=models.PROTECT, related_name="nurses")
    full_name = models.CharField(max_length=255)

    # e.g. ["緩和ケア", "褥瘡ケア"]
    specialist_certifications = models.JSONField(default=list, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "facilities_nurse"
        indexes = [
            models.Index(fields=["facility", "is_active"]),
        ]

    def __str__(self) -> str:
        return self.full_name
