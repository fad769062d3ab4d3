"""
User service — registration, credentials and profile for the User aggregate.

The password hash never leaves this module: every outward representation
goes through ``user_to_dict``, which has no hash field.  ``post_count`` is
read-only here; only ``services.counters`` changes it.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.errors import BadRequest, Conflict, Unauthenticated
from blogapi.models import User
from blogapi.schemas import LoginRequest, PasswordChange, ProfileUpdate, RegisterRequest
from blogapi.security import hash_password, verify_password

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def user_to_dict(user: User) -> dict:
    """Public profile of *user*."""
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "avatar": user.avatar,
        "bio": user.bio,
        "is_active": user.is_active,
        "post_count": user.post_count,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def public_profile_to_dict(user: User) -> dict:
    """What anyone may see about *user*: no email, role or account state."""
    return {
        "id": user.id,
        "name": user.name,
        "avatar": user.avatar,
        "bio": user.bio,
        "post_count": user.post_count,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_user(db: AsyncSession, user_id: int) -> User | None:
    """Fresh copy of *user_id*; counters may have moved since it was cached in the session."""
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_users(db: AsyncSession) -> list[dict]:
    """All users, newest first."""
    result = await db.execute(
        select(User).order_by(User.created_at.desc(), User.id.desc()).execution_options(
            populate_existing=True
        )
    )
    return [user_to_dict(u) for u in result.scalars().all()]


# ---------------------------------------------------------------------------
# Registration and credentials
# ---------------------------------------------------------------------------

async def register_user(db: AsyncSession, data: RegisterRequest, role: str = "user") -> User:
    """
    Create a user with a bcrypt-hashed password.

    Raises ``Conflict`` (field ``email``) when the address is taken.
    """
    email = data.email.lower()
    if await get_user_by_email(db, email) is not None:
        raise Conflict("User with this email already exists", field="email")

    user = User(
        name=data.name.strip(),
        email=email,
        password_hash=hash_password(data.password),
        role=role,
        bio=data.bio,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("User with this email already exists", field="email")

    logger.info("User registered: id=%s role=%s", user.id, user.role)
    return user


async def authenticate(db: AsyncSession, data: LoginRequest) -> User:
    """
    Check an email/password pair and stamp ``last_login``.

    Unknown email and wrong password produce the same error so callers
    cannot probe for registered addresses.
    """
    user = await get_user_by_email(db, data.email)
    if user is None:
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Unauthenticated("User account is deactivated")
    if not verify_password(data.password, user.password_hash):
        logger.info("Failed login for user id=%s", user.id)
        raise Unauthenticated("Invalid credentials")

    user.last_login = datetime.now(timezone.utc)
    await db.flush()
    return user


async def change_password(db: AsyncSession, user: User, data: PasswordChange) -> None:
    if not verify_password(data.current_password, user.password_hash):
        raise BadRequest("Current password is incorrect")
    user.password_hash = hash_password(data.new_password)
    await db.flush()
    logger.info("Password changed for user id=%s", user.id)


# ---------------------------------------------------------------------------
# Profile and status
# ---------------------------------------------------------------------------

async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    """Only ``name`` and ``bio`` are user-editable."""
    fields = data.model_dump(exclude_unset=True)
    if fields.get("name") is not None:
        user.name = fields["name"].strip()
    if "bio" in fields:
        user.bio = fields["bio"]
    await db.flush()
    return user


async def set_active(db: AsyncSession, user_id: int, is_active: bool) -> User | None:
    """
    Activate or deactivate an account.  Users are never hard-deleted;
    a deactivated user's existing tokens stop working immediately because
    the authentication gate re-reads the flag on every request.
    """
    user = await get_user(db, user_id)
    if user is None:
        return None
    user.is_active = is_active
    await db.flush()
    logger.info("User id=%s %s", user_id, "activated" if is_active else "deactivated")
    return user
