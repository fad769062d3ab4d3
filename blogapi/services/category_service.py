"""
Category service — admin-managed categories.

The category list is cached (it is read on every page that shows a
sidebar); any category write and any post write that moves a counter
purges it.  Deleting a category is refused while posts still reference
it, counted live from the posts table rather than trusted from
``post_count``.
"""
import logging
import math

from sqlalchemy import case, delete, desc, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.cache import CATEGORY_LIST_KEY, cache
from blogapi.config import settings
from blogapi.errors import BadRequest, Conflict
from blogapi.models import Category, Post
from blogapi.schemas import CategoryCreate, CategoryUpdate
from blogapi.services.post_service import with_relations, post_to_dict, slugify

logger = logging.getLogger(__name__)


def category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "color": category.color,
        "post_count": category.post_count,
        "created_at": category.created_at.isoformat() if category.created_at else None,
    }


def _lookup_clause(ident: str):
    if ident.isascii() and ident.isdigit():
        return or_(Category.id == int(ident), Category.slug == ident)
    return Category.slug == ident


async def _ensure_unique(db: AsyncSession, name: str, slug: str, exclude_id: int | None = None) -> None:
    q = select(Category.name, Category.slug).where(
        or_(func.lower(Category.name) == name.lower(), Category.slug == slug)
    )
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    clash = (await db.execute(q)).first()
    if clash is None:
        return
    field = "name" if clash.name.lower() == name.lower() else "slug"
    raise Conflict(f"Category with this {field} already exists", field=field)


def _slug_for(name: str) -> str:
    slug = slugify(name)
    if not slug:
        raise BadRequest(
            "Category name must contain letters or digits",
            details=[{"field": "name", "message": "no usable characters for a slug"}],
        )
    return slug


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_categories(db: AsyncSession) -> list[dict]:
    """All categories ordered by name."""
    cached = await cache.get(CATEGORY_LIST_KEY)
    if cached is not None:
        return cached

    result = await db.execute(
        select(Category).order_by(Category.name).execution_options(populate_existing=True)
    )
    data = [category_to_dict(c) for c in result.scalars().all()]
    await cache.set(CATEGORY_LIST_KEY, data, ttl=settings.CACHE_TTL_LIST)
    return data


async def get_category(db: AsyncSession, ident: str) -> Category | None:
    result = await db.execute(
        select(Category).where(_lookup_clause(ident)).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_category_detail(
    db: AsyncSession, ident: str, page: int = 1, page_size: int = 10
) -> dict | None:
    """
    Return a category (by id or slug) with one page of its published posts.

    Returns None when the category does not exist.
    """
    category = await get_category(db, ident)
    if category is None:
        return None

    filters = (Post.category_id == category.id, Post.is_published.is_(True))
    total: int = (
        await db.execute(select(func.count()).select_from(Post).where(*filters))
    ).scalar_one()
    posts = (
        await db.execute(
            with_relations(select(Post).where(*filters))
            .order_by(desc(Post.created_at), desc(Post.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).unique().scalars().all()

    return {
        "category": category_to_dict(category),
        "posts": {
            "data": [post_to_dict(p) for p in posts],
            "count": len(posts),
            "total": total,
            "page": page,
            "pages": math.ceil(total / page_size) if total > 0 else 0,
        },
    }


async def get_category_stats(db: AsyncSession) -> list[dict]:
    """Live post and published-post counts per category, most published first."""
    published = func.coalesce(func.sum(case((Post.is_published.is_(True), 1), else_=0)), 0)
    q = (
        select(
            Category.id,
            Category.name,
            Category.slug,
            Category.color,
            func.count(Post.id).label("post_count"),
            published.label("published_post_count"),
        )
        .outerjoin(Post, Post.category_id == Category.id)
        .group_by(Category.id, Category.name, Category.slug, Category.color)
        .order_by(desc("published_post_count"), Category.name)
    )
    rows = (await db.execute(q)).all()
    return [
        {
            "id": row.id,
            "name": row.name,
            "slug": row.slug,
            "color": row.color,
            "post_count": row.post_count,
            "published_post_count": int(row.published_post_count),
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Writes (admin only; enforced by the router)
# ---------------------------------------------------------------------------

async def create_category(db: AsyncSession, data: CategoryCreate) -> dict:
    """
    Create a category.  Name and derived slug must both be unique; a clash
    raises ``Conflict`` naming the field.
    """
    name = data.name.strip()
    slug = _slug_for(name)
    await _ensure_unique(db, name, slug)

    category = Category(name=name, slug=slug, description=data.description, color=data.color)
    db.add(category)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent create of the same name.
        await db.rollback()
        raise Conflict("Category with this name already exists", field="name")

    await cache.invalidate_categories()
    logger.info("Category %r created (id=%s)", category.name, category.id)
    return category_to_dict(category)


async def update_category(db: AsyncSession, category_id: int, data: CategoryUpdate) -> dict | None:
    """
    Partially update a category; the slug is recomputed only when the name
    changes.  Returns None when the category does not exist.
    """
    category = await db.get(Category, category_id)
    if category is None:
        return None

    update_data = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    new_name = update_data.pop("name", None)
    if new_name is not None:
        new_name = new_name.strip()
    if new_name and new_name != category.name:
        slug = _slug_for(new_name)
        await _ensure_unique(db, new_name, slug, exclude_id=category.id)
        category.name = new_name
        category.slug = slug

    for field_name, value in update_data.items():
        setattr(category, field_name, value)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Category with this name already exists", field="name")

    await cache.invalidate_categories()
    await cache.invalidate_posts()
    return category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: int) -> bool:
    """
    Delete a category that no post references.

    Returns False when the category does not exist and raises
    ``BadRequest`` (with the live reference count) while posts still
    point at it.
    """
    category = await db.get(Category, category_id)
    if category is None:
        return False

    referencing: int = (
        await db.execute(
            select(func.count()).select_from(Post).where(Post.category_id == category_id)
        )
    ).scalar_one()
    if referencing > 0:
        raise BadRequest(
            f"Cannot delete category. It has {referencing} post(s) associated with it",
            details=[{"field": "post_count", "message": str(referencing)}],
        )

    await db.execute(delete(Category).where(Category.id == category_id))
    db.expunge(category)
    await cache.invalidate_categories()
    logger.info("Category %s deleted", category_id)
    return True
