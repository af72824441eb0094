# backend/vn_core/bonuses/api/pagination.py
from __future__ import annotations

from django.db.models import Sum
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DecisionPagination(PageNumberPagination):
    """
    { count, total_points, next, previous, results }

    total_points sums the whole filtered set, not just the page, so a receipt
    screen can show the month total next to the first page.
    """

    page_size = 100
    page_size_query_param = "page_size"
    max_page_size = 500

    def paginate_queryset(self, queryset, request, view=None):
        self.total_points = queryset.aggregate(total=Sum("calculated_points"))["total"] or 0
        return super().paginate_queryset(queryset, request, view=view)

    def get_paginated_response(self, data):
        return Response(
            {
                "count": self.page.paginator.count,
                "total_points": self.total_points,
                "next": self.get_next_link(),
                "previous": self.get_previous_link(),
                "results": data,
            }
        )

    def get_paginated_response_schema(self, schema):
        response_schema = super().get_paginated_response_schema(schema)
        response_schema["properties"]["total_points"] = {"type": "integer", "example": 652}
        return response_schema
