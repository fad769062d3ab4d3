from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.auth import require_admin
from blogapi.cache import cache
from blogapi.database import get_db
from blogapi.models import Category, Comment, Post, User
from blogapi.schemas import MetricsResponse
from blogapi.services import counters

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    total_posts = (await db.execute(select(func.count()).select_from(Post))).scalar_one()
    total_comments = (await db.execute(select(func.count()).select_from(Comment))).scalar_one()
    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()
    total_categories = (await db.execute(select(func.count()).select_from(Category))).scalar_one()

    avg_comments = total_comments / total_posts if total_posts > 0 else 0

    return MetricsResponse(
        total_posts=total_posts,
        total_comments=total_comments,
        total_users=total_users,
        total_categories=total_categories,
        avg_comments_per_post=round(avg_comments, 2),
        cache_info=cache.stats,
    )


@router.get("/counters", dependencies=[Depends(require_admin)])
async def counter_drift(db: AsyncSession = Depends(get_db)):
    drift = await counters.find_drift(db)
    return {"success": True, "consistent": not any(drift.values()), "data": drift}


@router.post("/counters/recount", dependencies=[Depends(require_admin)])
async def recount_counters(db: AsyncSession = Depends(get_db)):
    changed = await counters.recount(db)
    await cache.invalidate_categories()
    return {"success": True, "data": changed}
