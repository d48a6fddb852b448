"""Role name resolution."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from datastore.client import TableQuery
from datastore.guarded import guarded
from datastore.records import RecordError, RoleRecord, UserRecord

logger = logging.getLogger(__name__)

CUSTOMER_ROLE_NAMES = ("resident", "customer", "member", "user")
DEFAULT_ACTOR_ROLE = "collector"
ROLE_LOOKUP_LIMIT = 1000

# Store primary keys are UUIDs; role names never contain a hyphen.
IDENTIFIER_SEPARATOR = "-"


def looks_like_identifier(role_ref: str) -> bool:
    return IDENTIFIER_SEPARATOR in role_ref


def is_customer_role(role_name: Optional[str]) -> bool:
    return (role_name or "").strip().lower() in CUSTOMER_ROLE_NAMES


def _parse_roles(rows: Iterable[Dict[str, Any]]) -> List[RoleRecord]:
    roles = []
    for row in rows:
        try:
            roles.append(RoleRecord.from_row(row))
        except RecordError as exc:
            logger.warning("Dropping roles row: %s", exc)
    return roles


class RoleResolver:
    """Maps role references to canonical role names.

    The id->name cache is shared by everything using one resolver. Concurrent
    refreshes write the same mapping, so no locking is needed.
    """

    def __init__(self, store: Any, timeout: Optional[float] = None) -> None:
        self.store = store
        self.timeout = timeout
        self._names_by_id: Dict[str, str] = {}

    def _remember(self, roles: Iterable[RoleRecord]) -> None:
        for role in roles:
            self._names_by_id[role.id] = role.name.strip().lower()

    async def resolve_role_name(self, role_ref: Optional[str], default: str = DEFAULT_ACTOR_ROLE) -> str:
        """Return the role name ``role_ref`` refers to, or ``default``.

        A reference without a hyphen is already a name. Anything else is looked
        up by id; a failed lookup or an unknown id yields ``default``.
        """

        ref = str(role_ref or "").strip()
        if ref and not looks_like_identifier(ref):
            return ref.lower()
        if not ref:
            return default
        if ref in self._names_by_id:
            return self._names_by_id[ref]

        if not await self.load_roles():
            logger.warning("Role lookup failed, using %r", default)
            return default
        name = self._names_by_id.get(ref)
        if name is None:
            logger.warning("Unknown role id %s, using %r", ref, default)
            return default
        return name

    async def load_roles(self) -> bool:
        """Refresh the id->name cache from the roles table."""

        query = TableQuery("roles", "id,name").limit(ROLE_LOOKUP_LIMIT)
        result = await guarded(self.store.select(query), self.timeout)
        if not result.ok:
            logger.warning("Roles table unavailable: %s", result.error)
            return False
        self._remember(_parse_roles(result.data or []))
        return True

    async def _customer_role(self, name: str) -> Optional[RoleRecord]:
        query = TableQuery("roles", "id,name").ilike("name", name).limit(1)
        result = await guarded(self.store.select(query), self.timeout)
        if not result.ok:
            logger.warning("Lookup of role %r failed: %s", name, result.error)
            return None
        roles = _parse_roles(result.data or [])
        return roles[0] if roles else None

    async def customer_roles(self) -> List[RoleRecord]:
        """The customer-facing roles that exist; misses are omitted."""

        found = await asyncio.gather(*(self._customer_role(name) for name in CUSTOMER_ROLE_NAMES))
        roles = [role for role in found if role is not None]
        self._remember(roles)
        return roles

    async def customer_role_ids(self) -> List[str]:
        return [role.id for role in await self.customer_roles()]

    def role_name_for(self, record: UserRecord) -> Optional[str]:
        if record.role_name:
            return record.role_name.strip().lower()
        ref = (record.role_id or "").strip()
        if ref and not looks_like_identifier(ref):
            return ref.lower()
        return self._names_by_id.get(ref)

    def normalize(self, records: Iterable[UserRecord]) -> List[UserRecord]:
        """Annotate records with the role names known to this resolver."""

        return [record.with_role(self.role_name_for(record)) for record in records]
