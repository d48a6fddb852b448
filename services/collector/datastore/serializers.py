"""Validation of rows read from the store."""
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

USER_STATUS_CHOICES = [
    ("active", "Active"),
    ("inactive", "Inactive"),
    ("suspended", "Suspended"),
]


def _optional_text() -> serializers.CharField:
    return serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class RoleRowSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()


class UserRowSerializer(serializers.Serializer):
    id = serializers.CharField()
    first_name = _optional_text()
    last_name = _optional_text()
    full_name = _optional_text()
    email = _optional_text()
    phone = _optional_text()
    role_id = _optional_text()
    status = serializers.ChoiceField(choices=USER_STATUS_CHOICES, required=False, default="active")
    street_addr = _optional_text()
    subdivision = _optional_text()
    suburb = _optional_text()
    city = _optional_text()
    postal_code = _optional_text()
    township_id = _optional_text()
    created_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    updated_at = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def to_internal_value(self, data: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        """Pull the joined role name out of ``roles``/``role`` relations."""

        internal = super().to_internal_value(data)
        role_name = None
        for key in ("roles", "role"):
            relation = data.get(key) if isinstance(data, dict) else None
            if isinstance(relation, dict) and relation.get("name"):
                role_name = str(relation["name"])
                break
        internal["role_name"] = role_name
        return internal


class CollectionRowSerializer(serializers.Serializer):
    id = serializers.CharField()
    collector_id = _optional_text()
    created_by = _optional_text()
    customer_id = _optional_text()
    customer_name = _optional_text()
    customer_email = _optional_text()
    pickup_address = _optional_text()
    status = serializers.CharField(required=False, allow_blank=True, default="")
    total_weight_kg = serializers.FloatField(required=False, allow_null=True, default=None)
    total_value = serializers.FloatField(required=False, allow_null=True, default=None)
    actual_time = _optional_text()
    actual_date = _optional_text()
    created_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
