"""The acting collector, passed explicitly to everything that needs it."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from customers.roles import DEFAULT_ACTOR_ROLE, RoleResolver
from datastore.client import TableQuery
from datastore.guarded import guarded
from datastore.records import RecordError, UserRecord

logger = logging.getLogger(__name__)

COLLECTOR_ROLES = frozenset({"collector", "admin"})


@dataclass(frozen=True)
class CollectorSession:
    actor_id: str
    role: str = DEFAULT_ACTOR_ROLE
    profile: Optional[UserRecord] = None

    @property
    def display_name(self) -> str:
        profile = self.profile
        if profile is None:
            return "User"
        if profile.first_name and profile.last_name:
            return f"{profile.first_name} {profile.last_name}"
        if profile.first_name:
            return profile.first_name
        if profile.email:
            return profile.email.split("@")[0]
        return "User"

    @property
    def may_collect(self) -> bool:
        return self.role in COLLECTOR_ROLES


async def load_session(store: Any, roles: RoleResolver, actor_id: str) -> CollectorSession:
    """Build the session for ``actor_id``.

    A missing or unreadable profile still yields a session with the default
    role, so an unreachable users table never locks a collector out.
    """

    query = (
        TableQuery("users", "id,email,first_name,last_name,phone,role_id,status")
        .eq("id", actor_id)
        .limit(1)
    )
    result = await guarded(store.select(query))
    if not result.ok or not result.data:
        logger.warning("Profile for %s unavailable: %s", actor_id, result.error or "not found")
        return CollectorSession(actor_id=actor_id)

    try:
        profile = UserRecord.from_row(result.data[0])
    except RecordError as exc:
        logger.warning("Profile for %s rejected: %s", actor_id, exc)
        return CollectorSession(actor_id=actor_id)

    role = await roles.resolve_role_name(profile.role_name or profile.role_id)
    return CollectorSession(actor_id=actor_id, role=role, profile=profile)
