"""
FastAPI dependencies: caller identity and service lookup.

Identity is issued upstream. The gateway forwards the authenticated user
as `X-User-Id` and their role as `X-User-Role`; this service trusts those
headers and only enforces presence and role membership.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import Depends, Header, Request

from rankboard.core.logging.logger import set_log_context
from rankboard.modules.leaderboard.aggregation import AggregationService
from rankboard.modules.leaderboard.score_service import ScoreUpdateService
from rankboard.modules.leaderboard.service import LeaderboardService
from rankboard.modules.shared.exceptions import AuthenticationError, AuthorizationError


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str


async def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Identity:
    """
    Raises
    ------
    AuthenticationError
        When no user id is forwarded.
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError()

    identity = Identity(
        user_id=x_user_id.strip(),
        role=(x_user_role or "participant").strip().lower(),
    )
    set_log_context(user_id=identity.user_id)
    return identity


def require_roles(
    *roles: str, action: str = "access_route"
) -> Callable[..., Awaitable[Identity]]:
    """Dependency factory admitting only callers whose role is in `roles`."""
    allowed = {role.lower() for role in roles}

    async def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in allowed:
            raise AuthorizationError(action, identity.role)
        return identity

    return dependency


def get_leaderboard_service(request: Request) -> LeaderboardService:
    return request.app.state.leaderboard_service


def get_score_update_service(request: Request) -> ScoreUpdateService:
    return request.app.state.score_update_service


def get_aggregation_service(request: Request) -> AggregationService:
    return request.app.state.aggregation_service
