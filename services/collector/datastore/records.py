"""Typed records for rows read from the store."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from .serializers import CollectionRowSerializer, RoleRowSerializer, UserRowSerializer


class RecordError(ValueError):
    """A store row did not have the expected shape."""


def _validated(serializer_class: Any, row: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(row, dict):
        raise RecordError(f"expected an object, got {type(row).__name__}")
    serializer = serializer_class(data=row)
    if not serializer.is_valid():
        raise RecordError(f"row {row.get('id')!r} rejected: {dict(serializer.errors)}")
    return dict(serializer.validated_data)


@dataclass(frozen=True)
class RoleRecord:
    id: str
    name: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RoleRecord":
        data = _validated(RoleRowSerializer, row)
        return cls(id=data["id"], name=data["name"])


@dataclass(frozen=True)
class UserRecord:
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    status: str = "active"
    street_addr: Optional[str] = None
    subdivision: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    township_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserRecord":
        return cls(**_validated(UserRowSerializer, row))

    def with_role(self, role_name: Optional[str]) -> "UserRecord":
        return replace(self, role_name=role_name)

    @property
    def display_name(self) -> str:
        """First and last name, else full name, else the email's local part."""

        first_last = f"{self.first_name or ''} {self.last_name or ''}".strip()
        if first_last:
            return first_last
        if self.full_name and self.full_name.strip():
            return self.full_name.strip()
        if self.email:
            return self.email.split("@")[0]
        return "Customer"

    @property
    def address(self) -> str:
        parts = [
            part
            for part in (self.street_addr, self.subdivision, self.suburb, self.city, self.postal_code)
            if part
        ]
        return ", ".join(parts) if parts else "Address not provided"

    @property
    def has_address(self) -> bool:
        return bool(self.street_addr and self.city)


@dataclass(frozen=True)
class CollectionRecord:
    id: str
    collector_id: Optional[str] = None
    created_by: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    pickup_address: Optional[str] = None
    status: str = ""
    total_weight_kg: Optional[float] = None
    total_value: Optional[float] = None
    actual_time: Optional[str] = None
    actual_date: Optional[str] = None
    created_at: Optional[datetime] = None

    SUCCESSFUL_STATUSES = frozenset({"approved", "completed"})

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CollectionRecord":
        return cls(**_validated(CollectionRowSerializer, row))

    @property
    def is_successful(self) -> bool:
        return self.status in self.SUCCESSFUL_STATUSES

    @property
    def weight(self) -> float:
        return self.total_weight_kg or 0.0

    @property
    def value(self) -> float:
        return self.total_value or 0.0
