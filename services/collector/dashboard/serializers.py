"""Serializers for dashboard payloads."""
from __future__ import annotations

from rest_framework import serializers

from customers.serializers import CustomerSerializer


class PickupSummarySerializer(serializers.Serializer):
    id = serializers.CharField()
    customer = serializers.CharField()
    address = serializers.CharField(allow_blank=True)
    time = serializers.CharField(allow_blank=True)
    status = serializers.CharField(allow_blank=True)
    rawStatus = serializers.CharField(source="raw_status", allow_blank=True)
    totalKg = serializers.FloatField(source="total_kg", allow_null=True)


class PickupHistorySerializer(PickupSummarySerializer):
    totalValue = serializers.FloatField(source="total_value")
    points = serializers.FloatField()
    startedAt = serializers.CharField(source="started_at", allow_null=True)


class DashboardStatsSerializer(serializers.Serializer):
    state = serializers.CharField(source="state.value")
    collectorName = serializers.CharField(source="collector_name")
    collectorRole = serializers.CharField(source="collector_role")
    todayPickups = serializers.IntegerField(source="today_pickups")
    totalCustomers = serializers.IntegerField(source="total_customers")
    collectionRate = serializers.FloatField(source="collection_rate")
    walletBalance = serializers.FloatField(source="wallet_balance")
    totalWeight = serializers.FloatField(source="total_weight")
    recentPickups = PickupSummarySerializer(source="recent_pickups", many=True)
    pickupRequests = PickupSummarySerializer(source="pickup_requests", many=True)
    customers = CustomerSerializer(many=True)
