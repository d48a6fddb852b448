"""Serializers for customer payloads."""
from __future__ import annotations

from typing import Optional

from rest_framework import serializers

from datastore.serializers import USER_STATUS_CHOICES


def mask_email(email: Optional[str]) -> str:
    """``jane.doe@example.com`` -> ``j******e@example.com``."""

    if not email:
        return ""
    local, _, domain = str(email).partition("@")
    if not domain:
        return "***"
    if len(local) <= 2:
        return (local[:1] or "*") + "*@" + domain
    return local[0] + "*" * max(len(local) - 2, 3) + local[-1] + "@" + domain


class CustomerSerializer(serializers.Serializer):
    id = serializers.CharField()
    first_name = serializers.CharField(allow_null=True)
    last_name = serializers.CharField(allow_null=True)
    full_name = serializers.CharField(allow_null=True)
    display_name = serializers.CharField()
    email = serializers.CharField(allow_null=True)
    phone = serializers.CharField(allow_null=True)
    role_id = serializers.CharField(allow_null=True)
    role = serializers.CharField(source="role_name", allow_null=True)
    status = serializers.CharField()
    address = serializers.CharField()
    has_address = serializers.BooleanField()
    created_at = serializers.DateTimeField(allow_null=True)


class MaskedCustomerSerializer(CustomerSerializer):
    """Listing variant that hides contact details."""

    email = serializers.SerializerMethodField()
    address = serializers.SerializerMethodField()

    def get_email(self, obj) -> str:
        return mask_email(obj.email)

    def get_address(self, obj) -> str:
        if not obj.has_address:
            return obj.address
        return "".join("*" if char.isalnum() else char for char in obj.address)


class SearchResultSerializer(serializers.Serializer):
    customer = CustomerSerializer(source="record")
    exact = serializers.BooleanField(source="is_exact")


class SearchRequestSerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)


class ListingRequestSerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, default="")
    role = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(
        choices=USER_STATUS_CHOICES,
        required=False,
        default="active",
    )
    limit = serializers.IntegerField(required=False, min_value=1, max_value=100, default=20)


class UserStatsSerializer(serializers.Serializer):
    total = serializers.IntegerField()
    byRole = serializers.DictField(source="by_role", child=serializers.IntegerField())
    byStatus = serializers.DictField(source="by_status", child=serializers.IntegerField())
