# backend/vn_core/bonuses/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from vn_core.bonuses.models import BonusDecision


class BonusDecisionSerializer(serializers.ModelSerializer):
    visit_date = serializers.DateField(source="visit.visit_date", read_only=True)
    bonus_name = serializers.CharField(source="rule.bonus_name", read_only=True)

    class Meta:
        model = BonusDecision
        fields = [
            "id",
            "visit",
            "visit_date",
            "rule",
            "bonus_code",
            "bonus_name",
            "calculated_points",
            "selected_service_code",
            "selection_reason",
            "calculation_details",
            "created_at",
        ]
        read_only_fields = fields


class MonthQuerySerializer(serializers.Serializer):
    patient = serializers.UUIDField()
    facility = serializers.UUIDField()
    year = serializers.IntegerField(min_value=2000, max_value=2100)
    month = serializers.IntegerField(min_value=1, max_value=12)


class DecisionListQuerySerializer(serializers.Serializer):
    """
    Either visit=<uuid>, or patient + facility + year + month.
    """
    visit = serializers.UUIDField(required=False)
    patient = serializers.UUIDField(required=False)
    facility = serializers.UUIDField(required=False)
    year = serializers.IntegerField(required=False, min_value=2000, max_value=2100)
    month = serializers.IntegerField(required=False, min_value=1, max_value=12)
    bonus_code = serializers.CharField(required=False, allow_blank=False)

    def validate(self, attrs):
        if attrs.get("visit"):
            return attrs
        missing = [k for k in ("patient", "facility", "year", "month") if attrs.get(k) is None]
        if missing:
            raise serializers.ValidationError(
                {k: "Required unless visit is given." for k in missing}
            )
        return attrs


class RecalculateMonthSerializer(MonthQuerySerializer):
    dry_run = serializers.BooleanField(required=False, default=False)


class VisitRecalculationSerializer(serializers.Serializer):
    visit_id = serializers.UUIDField()
    visit_date = serializers.DateField()
    bonus_codes = serializers.ListField(child=serializers.CharField())
    total_points = serializers.IntegerField()


class RecalculationResultSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    facility_id = serializers.UUIDField()
    year = serializers.IntegerField()
    month = serializers.IntegerField()
    visits = VisitRecalculationSerializer(many=True)
    decision_count = serializers.IntegerField()
    total_points = serializers.IntegerField()
    cleared_decisions = serializers.IntegerField()
    dry_run = serializers.BooleanField()


class MonthlySummaryItemSerializer(serializers.Serializer):
    bonus_code = serializers.CharField()
    service_code = serializers.CharField(allow_blank=True)
    count = serializers.IntegerField()
    total_points = serializers.IntegerField()


class MonthlySummarySerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    facility_id = serializers.UUIDField()
    year = serializers.IntegerField()
    month = serializers.IntegerField()
    total_points = serializers.IntegerField()
    items = MonthlySummaryItemSerializer(many=True)
