"""
Authentication gate and authorization chain.

Both are plain FastAPI dependencies, so a route composes them by
declaring what it needs::

    @router.delete("/{post_id}")
    async def delete_post(post: Post = Depends(get_owned_post), ...):

FastAPI resolves the chain in order (authenticate → load → ownership) and
the first dependency that raises ends the request before the handler body
runs.
"""
import logging
from typing import Protocol

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.database import get_db
from blogapi.errors import Forbidden, NotFound, Unauthenticated
from blogapi.models import Post, Role, User
from blogapi.tokens import InvalidToken, TokenService

logger = logging.getLogger(__name__)

# auto_error=False: a missing or non-Bearer header must produce our 401
# envelope rather than FastAPI's default response.
bearer_scheme = HTTPBearer(auto_error=False)


class Owned(Protocol):
    """Any resource whose access is restricted to its owner (or an admin)."""

    @property
    def owner_id(self) -> int | None: ...


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


# ---------------------------------------------------------------------------
# Authentication gate
# ---------------------------------------------------------------------------

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()

    try:
        user_id = tokens.verify(credentials.credentials)
    except InvalidToken as exc:
        logger.debug("Rejected bearer token: %s", exc)
        raise Unauthenticated() from exc

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthenticated()
    if not user.is_active:
        raise Unauthenticated("User account is deactivated")

    request.state.user = user
    return user


# ---------------------------------------------------------------------------
# Authorization predicates
# ---------------------------------------------------------------------------

def authorize(*roles: str):
    """
    Return a dependency that admits only users whose role is in *roles*.

    Admins get no implicit pass here; list ``"admin"`` explicitly.
    """
    allowed = frozenset(roles)

    async def _require_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise Forbidden(f"User role {user.role} is not authorized to access this route")
        return user

    return _require_role


def check_ownership(resource: Owned, user: User) -> None:
    """Raise ``Forbidden`` unless *user* is an admin or owns *resource*."""
    if user.is_admin:
        return
    if resource.owner_id is None or resource.owner_id != user.id:
        raise Forbidden("Not authorized to access this resource")


async def get_owned_post(
    post_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Post:
    post = await db.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found")
    check_ownership(post, user)
    return post


require_admin = authorize(Role.ADMIN.value)
