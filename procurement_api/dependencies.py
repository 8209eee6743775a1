"""
Request-scoped dependencies: the service container and the calling actor.

Identity is asserted by the upstream auth layer through ``X-Actor-Id`` and
``X-Actor-Role``.  A missing or unknown identity is rejected with 401.
"""

from __future__ import annotations

from fastapi import Header, Request

from procurement_kernel.domain.roles import Actor, Role
from procurement_kernel.exceptions import AuthenticationError
from procurement_services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def client_ip(request: Request, forwarded_for: str | None) -> str | None:
    """First hop of ``X-Forwarded-For``, else the socket peer."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def get_actor(
    request: Request,
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_forwarded_for: str | None = Header(default=None),
    user_agent: str | None = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_id.strip():
        raise AuthenticationError("missing X-Actor-Id header")
    if not x_actor_role:
        raise AuthenticationError("missing X-Actor-Role header")
    try:
        role = Role(x_actor_role.strip().upper())
    except ValueError:
        raise AuthenticationError(f"unknown role {x_actor_role!r}") from None
    if role is Role.SYSTEM:
        raise AuthenticationError("the system role cannot be asserted by a client")

    return Actor(
        user_id=x_actor_id.strip(),
        role=role,
        ip_address=client_ip(request, x_forwarded_for),
        user_agent=user_agent,
    )
