# backend/vn_core/audit/admin.py
from __future__ import annotations

from django.contrib import admin

from vn_core.audit.models import AuditEvent


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ("occurred_at", "event_code", "entity_type", "entity_id", "facility_id")
    list_filter = ("event_code", "entity_type")
    search_fields = ("event_code", "entity_id")
    readonly_fields = ("id", "facility_id", "event_code", "entity_type", "entity_id", "occurred_at", "metadata")
