# backend/vn_core/common/models.py
from __future__ import annotations

import uuid
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class FacilityScopedModel(TimeStampedModel):
    """
    Rows owned by one visiting-nurse station (facility).
    UUID primary key so ids are safe to expose in receipts and audit trails.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    facility = models.ForeignKey(
        "facilities.Facility",
        on_delete=models.PROTECT,
        related_name="+",
    )

    class Meta:
        abstract = True
