"""
trustcota/security.py

Role-based access control for the JSON API.

Key rules:
- The client is never trusted; every route declares the capability it needs.
- POLICY is the single table of capability -> roles. Adding a rule means adding
  a row here, never an ad-hoc role check in a route.
- The acting user's row is re-read from storage on every gated call, so role
  changes and deactivation take effect immediately (no stale session data).

Decorators:
- require_capability("suppliers.manage")
- require_owner_or_capability("requests.edit", owner_getter)
  owner_getter receives the view kwargs and returns the owning user id.

IMPORTANT:
- Decorators preserve wrapped function metadata (functools.wraps) to avoid
  Flask endpoint collisions.
- Unknown capability names fail at import time (KeyError).
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, FrozenSet, Optional

from flask import g
from flask_login import current_user

from .errors import AuthenticationError, AuthorizationError, NotFoundError
from .models import ROLE_ADMIN, ROLE_APPROVER, ROLE_BUYER, ROLE_REQUESTER, User
from .storage import get_storage

ALL_ROLES: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_REQUESTER, ROLE_BUYER, ROLE_APPROVER})
ADMIN_ONLY: FrozenSet[str] = frozenset({ROLE_ADMIN})
BUYERS: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_BUYER})
APPROVERS: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_APPROVER})
STAFF: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_BUYER, ROLE_APPROVER})

POLICY: Dict[str, FrozenSet[str]] = {
    # read access
    "dashboard.view": ALL_ROLES,
    "products.view": ALL_ROLES,
    "categories.view": ALL_ROLES,
    "requests.view": ALL_ROLES,
    "orders.view": ALL_ROLES,
    "suppliers.view": BUYERS,
    "audit.view": APPROVERS,
    "ai.view": ADMIN_ONLY,
    # catalog maintenance
    "suppliers.manage": ADMIN_ONLY,
    "products.manage": ADMIN_ONLY,
    "categories.manage": ADMIN_ONLY,
    "users.manage": ADMIN_ONLY,
    # workflow
    "requests.create": ALL_ROLES,
    "requests.edit": STAFF,
    "requests.cancel": ADMIN_ONLY,
    "requests.by_user": STAFF,
    "requests.approve": APPROVERS,
    "quotations.manage": BUYERS,
    "orders.generate": APPROVERS,
    "orders.update": STAFF,
    # ingestion / AI
    "uploads.requests": ALL_ROLES,
    "uploads.quotations": BUYERS,
    "ai.analyze": ALL_ROLES,
}


def roles_for(capability: str) -> FrozenSet[str]:
    """Roles granted a capability. KeyError for unknown names."""
    return POLICY[capability]


def is_allowed(user: Optional[User], capability: str) -> bool:
    """Pure policy check used by the gates and by tests."""
    if user is None or not user.is_active:
        return False
    return user.role in roles_for(capability)


def load_actor() -> User:
    """
    Return the authenticated user's current row from storage.

    Raises AuthenticationError when nobody is logged in or the account vanished.
    The row is cached on flask.g for the rest of the request.
    """
    actor = g.get("actor")
    if actor is not None:
        return actor

    if not current_user.is_authenticated:
        raise AuthenticationError("Authentication required")

    try:
        actor = get_storage().get_user(int(current_user.get_id()))
    except NotFoundError:
        raise AuthenticationError("Authentication required")

    g.actor = actor
    return actor


def _check(actor: User, capability: str) -> None:
    if not actor.is_active:
        raise AuthorizationError("Account is disabled")
    if actor.role not in roles_for(capability):
        raise AuthorizationError("You do not have permission to perform this action")


def require_capability(capability: str) -> Callable[..., Any]:
    """Decorator: the acting user's role must be granted `capability`."""
    roles_for(capability)

    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            _check(load_actor(), capability)
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def require_owner_or_capability(capability: str, owner_getter: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator factory: the owner of the resource passes, anyone else needs `capability`.

    Usage:
        @require_owner_or_capability("requests.edit", lambda request_id: ...requester_id)
        def update_request(request_id): ...

    A missing resource surfaces as 404 (NotFoundError from the getter).
    """
    roles_for(capability)

    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            actor = load_actor()
            if not actor.is_active:
                raise AuthorizationError("Account is disabled")

            owner_id = owner_getter(**kwargs)
            if owner_id is not None and int(owner_id) == actor.id:
                return view_func(*args, **kwargs)

            _check(actor, capability)
            return view_func(*args, **kwargs)

        return wrapper

    return decorator
