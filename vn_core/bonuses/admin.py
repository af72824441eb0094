# backend/vn_core/bonuses/admin.py
from __future__ import annotations

from django.contrib import admin
from django.contrib.admin import widgets
from django.db import models

from vn_core.bonuses.models import BonusDecision, BonusRule, RecalculationLock


@admin.register(BonusRule)
class BonusRuleAdmin(admin.ModelAdmin):
    list_display = (
        "bonus_code",
        "bonus_name",
        "insurance_type",
        "facility",
        "valid_from",
        "valid_to",
        "points_type",
        "fixed_points",
        "is_active",
        "display_order",
    )
    list_filter = ("is_active", "insurance_type", "points_type", "facility")
    search_fields = ("bonus_code", "bonus_name", "requirements_description")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("display_order", "bonus_code", "valid_from")

    # Make JSON config editable comfortably
    formfield_overrides = {
        models.JSONField: {"widget": widgets.AdminTextareaWidget(attrs={"rows": 10, "cols": 120})},
    }

    fieldsets = (
        ("Identity", {"fields": ("bonus_code", "bonus_name", "insurance_type", "facility", "version", "is_active")}),
        ("Validity", {"fields": ("valid_from", "valid_to", "display_order")}),
        ("Points", {"fields": ("points_type", "fixed_points", "points_config")}),
        ("Conditions", {"fields": ("predefined_conditions", "branch", "service_codes")}),
        ("Combination", {"fields": ("can_combine_with", "cannot_combine_with")}),
        ("Details", {"fields": ("requirements_description",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(BonusDecision)
class BonusDecisionAdmin(admin.ModelAdmin):
    list_display = ("bonus_code", "visit", "calculated_points", "selected_service_code", "created_at")
    list_filter = ("bonus_code",)
    search_fields = ("bonus_code", "selected_service_code", "visit__id")
    readonly_fields = (
        "visit",
        "rule",
        "bonus_code",
        "calculated_points",
        "selected_service_code",
        "selection_reason",
        "calculation_details",
        "created_at",
    )

    # Decisions are only written by the engine
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(RecalculationLock)
class RecalculationLockAdmin(admin.ModelAdmin):
    list_display = ("patient", "facility", "year", "month", "last_recalculated_at")
    list_filter = ("year", "month")
    readonly_fields = ("patient", "facility", "year", "month", "last_recalculated_at")
