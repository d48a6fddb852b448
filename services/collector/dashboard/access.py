"""Per-request collector context for the HTTP endpoints."""
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable

from asgiref.sync import async_to_sync
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from customers.roles import RoleResolver
from datastore.client import get_store

from .session import CollectorSession, load_session

ACTOR_HEADER = "X-Actor-Id"


@dataclass(frozen=True)
class CollectorContext:
    store: Any
    roles: RoleResolver
    session: CollectorSession


def collector_endpoint(view: Callable[..., Response]) -> Callable[..., Response]:
    """Resolve the acting collector before calling ``view``.

    The view receives a ``CollectorContext`` after the request. Requests
    without an actor are rejected, as are actors whose role may not collect.
    """

    @wraps(view)
    def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
        actor_id = request.headers.get(ACTOR_HEADER, "").strip()
        if not actor_id:
            return Response(
                {"detail": f"Missing {ACTOR_HEADER} header."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        store = get_store()
        roles = RoleResolver(store)
        session = async_to_sync(load_session)(store, roles, actor_id)
        if not session.may_collect:
            return Response(
                {"detail": f"Role {session.role!r} may not use collector endpoints."},
                status=status.HTTP_403_FORBIDDEN,
            )
        return view(request, CollectorContext(store, roles, session), *args, **kwargs)

    return wrapper
