# backend/vn_core/patients/admin.py
from __future__ import annotations

from django.contrib import admin

from vn_core.patients.models import Patient, SpecialManagementDefinition


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("patient_number", "last_name", "first_name", "insurance_type", "facility")
    list_filter = ("insurance_type", "facility")
    search_fields = ("patient_number", "last_name", "first_name")
    readonly_fields = ("id", "created_at", "updated_at")


@admin.register(SpecialManagementDefinition)
class SpecialManagementDefinitionAdmin(admin.ModelAdmin):
    list_display = ("category", "display_name", "insurance_type", "monthly_points", "facility", "is_active")
    list_filter = ("insurance_type", "is_active")
    search_fields = ("category", "display_name")
