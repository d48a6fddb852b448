"""HTTP endpoints for customer lookup."""
from __future__ import annotations

from asgiref.sync import async_to_sync
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.request import Request
from rest_framework.response import Response

from dashboard.access import CollectorContext, collector_endpoint

from .search import CustomerSearch
from .serializers import (
    ListingRequestSerializer,
    MaskedCustomerSerializer,
    SearchRequestSerializer,
    SearchResultSerializer,
    UserStatsSerializer,
)


@api_view(["GET"])
@collector_endpoint
def customer_search(request: Request, context: CollectorContext) -> Response:
    params = SearchRequestSerializer(data=request.query_params)
    params.is_valid(raise_exception=True)

    lookup = CustomerSearch(context.store, context.roles)
    outcome = async_to_sync(lookup.search)(params.validated_data["q"])
    return Response(
        {
            "results": SearchResultSerializer(outcome.results, many=True).data,
            "degraded": outcome.degraded,
            "error": outcome.error,
        }
    )


@api_view(["GET"])
@collector_endpoint
def customer_list(request: Request, context: CollectorContext) -> Response:
    """Customer-facing users for the users page, contact details masked."""

    params = ListingRequestSerializer(data=request.query_params)
    params.is_valid(raise_exception=True)
    filters = params.validated_data

    lookup = CustomerSearch(context.store, context.roles)
    result = async_to_sync(lookup.list_customers)(
        term=filters["q"],
        role=filters["role"],
        status=filters["status"],
        limit=filters["limit"],
    )
    if not result.ok:
        return Response(
            {"results": [], "detail": f"Customers unavailable: {result.error}"},
            status=status.HTTP_200_OK,
        )
    return Response({"results": MaskedCustomerSerializer(result.data, many=True).data})


@api_view(["GET"])
@collector_endpoint
def customer_stats(_: Request, context: CollectorContext) -> Response:
    lookup = CustomerSearch(context.store, context.roles)
    result = async_to_sync(lookup.user_stats)()
    if not result.ok:
        return Response(
            {"total": 0, "byRole": {}, "byStatus": {}, "detail": f"Stats unavailable: {result.error}"},
            status=status.HTTP_200_OK,
        )
    return Response(UserStatsSerializer(result.data).data)
