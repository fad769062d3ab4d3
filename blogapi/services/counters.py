"""
Post counters on users and categories.

``User.post_count`` and ``Category.post_count`` are cached aggregates of
the posts table.  They are maintained after the fact: the post insert or
delete is committed first and is the source of truth, then each counter is
adjusted with its own atomic ``UPDATE``.

A counter update that cannot be applied (the row is gone, or the
statement fails) is logged and reported in the returned ``CounterSync``;
it is never raised, because the post mutation it follows has already
succeeded.  ``recount`` rebuilds every counter from live counts and is the
repair path for whatever drift that leaves behind.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.models import Category, Post, User

logger = logging.getLogger(__name__)


class SyncStatus(str, enum.Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"  # target record no longer exists
    FAILED = "failed"  # storage error, rolled back


@dataclass(frozen=True)
class CounterUpdate:
    target: str
    record_id: int | None
    delta: int
    status: SyncStatus


@dataclass(frozen=True)
class CounterSync:
    updates: tuple[CounterUpdate, ...] = ()

    @property
    def degraded(self) -> bool:
        return any(u.status is not SyncStatus.APPLIED for u in self.updates)

    def status_of(self, target: str) -> SyncStatus | None:
        for u in self.updates:
            if u.target == target:
                return u.status
        return None

    def to_dict(self) -> dict:
        return {
            "degraded": self.degraded,
            "updates": [
                {"target": u.target, "id": u.record_id, "delta": u.delta, "status": u.status.value}
                for u in self.updates
            ],
        }


@dataclass(frozen=True)
class PostMutation:
    """Outcome of a post write: the authoritative result plus counter sync."""

    post: dict | None
    counters: CounterSync = field(default_factory=CounterSync)


_COUNTED = {"author": User, "category": Category}
_FOREIGN_KEYS = {"author": Post.author_id, "category": Post.category_id}


# ---------------------------------------------------------------------------
# Single counter adjustment
# ---------------------------------------------------------------------------

async def adjust_post_count(
    db: AsyncSession, target: str, record_id: int | None, delta: int
) -> CounterUpdate:
    """
    Add *delta* to the ``post_count`` of one user or category.

    Decrements saturate at zero.  Runs as a single ``UPDATE`` so concurrent
    adjustments of the same row never lose an update.
    """
    model = _COUNTED[target]
    if record_id is None:
        logger.warning("Counter update skipped: post has no %s (delta=%+d)", target, delta)
        return CounterUpdate(target, record_id, delta, SyncStatus.SKIPPED)

    new_value = model.post_count + delta
    if delta < 0:
        new_value = case((model.post_count + delta < 0, 0), else_=model.post_count + delta)

    stmt = (
        update(model)
        .where(model.id == record_id)
        .values(post_count=new_value)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(stmt)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning(
            "Counter update failed for %s %s (delta=%+d): %s", target, record_id, delta, exc
        )
        return CounterUpdate(target, record_id, delta, SyncStatus.FAILED)

    if result.rowcount == 0:
        logger.warning(
            "Counter update skipped: %s %s no longer exists (delta=%+d)", target, record_id, delta
        )
        return CounterUpdate(target, record_id, delta, SyncStatus.SKIPPED)
    return CounterUpdate(target, record_id, delta, SyncStatus.APPLIED)


# ---------------------------------------------------------------------------
# Post lifecycle hooks
# ---------------------------------------------------------------------------

async def record_post_created(
    db: AsyncSession, author_id: int | None, category_id: int | None
) -> CounterSync:
    # Both bumps share the request session, which cannot run statements
    # concurrently; their relative order does not matter.
    return CounterSync((
        await adjust_post_count(db, "author", author_id, +1),
        await adjust_post_count(db, "category", category_id, +1),
    ))


async def record_post_deleted(
    db: AsyncSession, author_id: int | None, category_id: int | None
) -> CounterSync:
    return CounterSync((
        await adjust_post_count(db, "author", author_id, -1),
        await adjust_post_count(db, "category", category_id, -1),
    ))


async def record_post_moved(
    db: AsyncSession, old_category_id: int | None, new_category_id: int | None
) -> CounterSync:
    if old_category_id == new_category_id:
        return CounterSync()
    return CounterSync((
        await adjust_post_count(db, "category", old_category_id, -1),
        await adjust_post_count(db, "category", new_category_id, +1),
    ))


# ---------------------------------------------------------------------------
# Drift detection and repair
# ---------------------------------------------------------------------------

def _live_count(target: str):
    model = _COUNTED[target]
    return (
        select(func.count(Post.id))
        .where(_FOREIGN_KEYS[target] == model.id)
        .correlate(model)
        .scalar_subquery()
    )


async def find_drift(db: AsyncSession) -> dict:
    """Return users and categories whose cached counter disagrees with the posts table."""
    drift: dict[str, list[dict]] = {}
    for target, model in _COUNTED.items():
        live = _live_count(target)
        rows = (
            await db.execute(
                select(model.id, model.post_count, live.label("live")).where(model.post_count != live)
            )
        ).all()
        drift[target] = [
            {"id": row.id, "cached": row.post_count, "live": row.live} for row in rows
        ]
    return drift


async def recount(db: AsyncSession) -> dict:
    """Overwrite every counter with the live post count.  Returns rows changed per table."""
    changed: dict[str, int] = {}
    for target, model in _COUNTED.items():
        live = _live_count(target)
        result = await db.execute(
            update(model)
            .where(model.post_count != live)
            .values(post_count=live)
            .execution_options(synchronize_session=False)
        )
        changed[target] = result.rowcount
    await db.commit()
    if any(changed.values()):
        logger.warning("Post counters rebuilt: %s", changed)
    return changed
