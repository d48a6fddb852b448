"""HTTP endpoints for the collector dashboard."""
from __future__ import annotations

from asgiref.sync import async_to_sync
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.request import Request
from rest_framework.response import Response

from .access import CollectorContext, collector_endpoint
from .aggregator import DashboardAggregator
from .serializers import DashboardStatsSerializer, PickupHistorySerializer


@api_view(["GET"])
def health(_: Request) -> Response:
    """Expose a ready signal for load balancers."""

    return Response({"status": "ok"})


@api_view(["GET"])
@collector_endpoint
def dashboard(_: Request, context: CollectorContext) -> Response:
    """Headline statistics, recent pickups and open requests for the actor."""

    aggregator = DashboardAggregator(context.store, context.roles)
    stats = async_to_sync(aggregator.load_dashboard)(context.session)
    return Response(DashboardStatsSerializer(stats).data)


@api_view(["GET"])
@collector_endpoint
def pickups(_: Request, context: CollectorContext) -> Response:
    """Every pickup the actor collected or created."""

    aggregator = DashboardAggregator(context.store, context.roles)
    result = async_to_sync(aggregator.load_pickups)(context.session)
    if not result.ok:
        return Response(
            {"results": [], "detail": f"Pickups unavailable: {result.error}"},
            status=status.HTTP_200_OK,
        )
    return Response({"results": PickupHistorySerializer(result.data, many=True).data})
