# backend/vn_core/visits/admin.py
from __future__ import annotations

from django.contrib import admin

from vn_core.visits.models import NursingVisit


@admin.register(NursingVisit)
class NursingVisitAdmin(admin.ModelAdmin):
    list_display = ("visit_date", "patient", "facility", "status", "start_time", "end_time", "deleted_at")
    list_filter = ("status", "facility", "is_discharge_date", "is_terminal_care")
    search_fields = ("patient__patient_number", "patient__last_name")
    readonly_fields = ("id", "created_at", "updated_at")
    date_hierarchy = "visit_date"
