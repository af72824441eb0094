# backend/vn_core/facilities/admin.py
from __future__ import annotations

from django.contrib import admin

from vn_core.facilities.models import Facility, Nurse


@admin.register(Facility)
class FacilityAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "code",
        "has_24h_support_system",
        "has_24h_support_system_enhanced",
        "has_emergency_support_system",
        "has_emergency_support_system_enhanced",
        "is_active",
        "updated_at",
    )
    list_filter = ("is_active", "has_24h_support_system", "has_emergency_support_system")
    search_fields = ("name", "code")
    readonly_fields = ("id", "created_at", "updated_at")
    ordering = ("name",)


@admin.register(Nurse)
class NurseAdmin(admin.ModelAdmin):
    list_display = ("full_name", "facility", "is_active")
    list_filter = ("is_active", "facility")
    search_fields = ("full_name",)
