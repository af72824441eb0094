# backend/vn_core/audit/models.py
import uuid

from django.db import models


class AuditEvent(models.Model):
    """
    Immutable audit record. Receipt confirmation relies on this to show
    when and why bonus decisions were re-derived.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    facility_id = models.UUIDField(db_index=True)

    event_code = models.CharField(max_length=128, db_index=True)  # e.g. "bonus.month_recalculated"
    entity_type = models.CharField(max_length=128, db_index=True)  # e.g. "Patient"
    entity_id = models.UUIDField(db_index=True)

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)
    metadata = models.JSONField(default=dict)

    class Meta:
        db_table = "audit_audit_event"
        indexes = [
            models.Index(fields=["facility_id", "occurred_at"]),
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["facility_id", "event_code"]),
        ]
