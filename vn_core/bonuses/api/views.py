# backend/vn_core/bonuses/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.exceptions import NotFound
from rest_framework.response import Response
from rest_framework.views import APIView

from vn_core.bonuses.api.pagination import DecisionPagination
from vn_core.bonuses.api.serializers import (
    BonusDecisionSerializer,
    DecisionListQuerySerializer,
    MonthQuerySerializer,
    MonthlySummarySerializer,
    RecalculateMonthSerializer,
    RecalculationResultSerializer,
)
from vn_core.bonuses.selectors import decisions_for_month, decisions_for_visit, monthly_points_summary
from vn_core.bonuses.services import BonusCalculationService
from vn_core.visits.models import NursingVisit


class VisitBonusCalculateView(APIView):
    """
    POST /visits/<visit_id>/bonuses/calculate/
    Re-evaluates one visit (called when a visit record is saved).
    """

    @extend_schema(
        tags=["Bonuses"],
        request=None,
        responses={200: BonusDecisionSerializer(many=True)},
    )
    def post(self, request, visit_id: UUID):
        try:
            BonusCalculationService.calculate_for_visit(visit_id=visit_id)
        except NursingVisit.DoesNotExist:
            raise NotFound("Visit not found.")

        qs = decisions_for_visit(visit_id=visit_id)
        return Response(BonusDecisionSerializer(qs, many=True).data, status=status.HTTP_200_OK)


class RecalculateMonthView(APIView):
    """
    POST /bonuses/recalculate-month/
    Re-derives every decision of a patient-month (receipt confirmation).
    """

    @extend_schema(
        tags=["Bonuses"],
        request=RecalculateMonthSerializer,
        responses={200: RecalculationResultSerializer},
    )
    def post(self, request):
        ser = RecalculateMonthSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        result = BonusCalculationService.recalculate_month(
            patient_id=data["patient"],
            facility_id=data["facility"],
            year=data["year"],
            month=data["month"],
            dry_run=data["dry_run"],
        )

        payload = {
            **result.as_dict(),
            "visits": [
                {
                    "visit_id": v.visit_id,
                    "visit_date": v.visit_date,
                    "bonus_codes": list(v.bonus_codes),
                    "total_points": v.total_points,
                }
                for v in result.visits
            ],
        }
        return Response(RecalculationResultSerializer(payload).data, status=status.HTTP_200_OK)


class BonusDecisionListView(APIView):
    """
    GET /bonuses/decisions/?visit=<uuid>
    GET /bonuses/decisions/?patient=&facility=&year=&month=[&bonus_code=]
    """

    pagination_class = DecisionPagination

    @extend_schema(
        tags=["Bonuses"],
        responses={200: BonusDecisionSerializer(many=True)},
        parameters=[
            OpenApiParameter(name="visit", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="facility", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="year", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="month", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="bonus_code", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
    )
    def get(self, request):
        ser = DecisionListQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        q = ser.validated_data

        if q.get("visit"):
            qs = decisions_for_visit(visit_id=q["visit"])
            if q.get("bonus_code"):
                qs = qs.filter(bonus_code=q["bonus_code"])
        else:
            qs = decisions_for_month(
                patient_id=q["patient"],
                facility_id=q["facility"],
                year=q["year"],
                month=q["month"],
                bonus_code=q.get("bonus_code"),
            )

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(qs, request, view=self)
        return paginator.get_paginated_response(BonusDecisionSerializer(page, many=True).data)


class MonthlySummaryView(APIView):
    """
    GET /bonuses/monthly-summary/?patient=&facility=&year=&month=
    Points per bonus / service code for the receipt.
    """

    @extend_schema(
        tags=["Bonuses"],
        responses={200: MonthlySummarySerializer},
        parameters=[
            OpenApiParameter(name="patient", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="facility", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="year", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=True),
            OpenApiParameter(name="month", type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=True),
        ],
    )
    def get(self, request):
        ser = MonthQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        q = ser.validated_data

        summary = monthly_points_summary(
            patient_id=q["patient"],
            facility_id=q["facility"],
            year=q["year"],
            month=q["month"],
        )
        return Response(MonthlySummarySerializer(summary).data, status=status.HTTP_200_OK)
