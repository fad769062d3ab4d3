"""
Post service — business logic for the Post aggregate.

Design notes
------------
- Creating and deleting a post touches three records (post, author,
  category).  The post write is committed on its own first; the two
  counter adjustments follow through ``services.counters`` and report
  their outcome separately in ``PostMutation.counters``.
- The view counter is bumped with a single ``UPDATE ... SET view_count =
  view_count + 1`` so concurrent readers never lose increments.  Detail
  reads are therefore never served from cache.
- List pages use the cache-aside pattern (Redis → fallback to DB); every
  write purges them.
- Relationships are ``lazy="noload"`` on the models, so every query that
  serialises a post eager-loads author, category and tags explicitly.
"""
import logging
import math
import re
import time
from datetime import datetime, timezone

from sqlalchemy import asc, delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blogapi.cache import cache
from blogapi.config import settings
from blogapi.errors import BadRequest, NotFound
from blogapi.models import Category, Comment, Post, Tag, User, post_tags
from blogapi.schemas import PaginatedResponse, PostCreate, PostUpdate
from blogapi.services import counters
from blogapi.services.counters import PostMutation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# Columns that are safe to sort by; guards against arbitrary attribute access.
_SORTABLE_COLUMNS: frozenset[str] = frozenset(
    {"created_at", "published_at", "view_count", "title"}
)

SEARCH_LIMIT = 20

_NULLABLE_POST_FIELDS = frozenset({"excerpt", "featured_image"})


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def make_excerpt(content: str, length: int | None = None) -> str:
    length = length or settings.EXCERPT_LENGTH
    if len(content) <= length:
        return content
    return content[:length] + "..."


def _resolve_sort_column(sort_by: str):
    if sort_by in _SORTABLE_COLUMNS:
        return getattr(Post, sort_by)
    return Post.created_at


def _unique_tag_names(names: list[str]) -> list[str]:
    """Tags are a set: strip, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        name = name.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


def with_relations(stmt, comments: bool = False):
    options = [
        joinedload(Post.author),
        joinedload(Post.category),
        selectinload(Post.tags),
    ]
    if comments:
        options.append(selectinload(Post.comments).joinedload(Comment.user))
    return stmt.options(*options)


def _is_id(ident: str) -> bool:
    return ident.isascii() and ident.isdigit()


def _lookup_clause(ident: str):
    """Posts are addressable by numeric id or by slug."""
    if _is_id(ident):
        return Post.id == int(ident)
    return Post.slug == ident


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def author_to_dict(author: User | None) -> dict | None:
    if author is None:
        return None
    return {"id": author.id, "name": author.name, "avatar": author.avatar}


def _category_to_dict(category: Category | None) -> dict | None:
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "color": category.color,
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "content": comment.content,
        "user": author_to_dict(comment.user),
        "created_at": _iso(comment.created_at),
    }


def post_to_dict(post: Post) -> dict:
    """Serialise a Post ORM instance to a plain dict (list view)."""
    return {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "excerpt": post.excerpt,
        "featured_image": post.featured_image,
        "view_count": post.view_count,
        "is_published": post.is_published,
        "published_at": _iso(post.published_at),
        "created_at": _iso(post.created_at),
        "updated_at": _iso(post.updated_at),
        "author_id": post.author_id,
        "category_id": post.category_id,
        "author": author_to_dict(post.author),
        "category": _category_to_dict(post.category),
        "tags": [t.name for t in post.tags],
    }


def post_detail_to_dict(post: Post) -> dict:
    data = post_to_dict(post)
    data["content"] = post.content
    data["comments"] = [comment_to_dict(c) for c in post.comments]
    return data


# ---------------------------------------------------------------------------
# Internal loaders
# ---------------------------------------------------------------------------

async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag instances for each name, creating missing ones inside the
    caller's transaction.
    """
    tags: list[Tag] = []
    for name in _unique_tag_names(tag_names):
        result = await db.execute(select(Tag).where(Tag.name == name))
        tag = result.scalar_one_or_none()
        if not tag:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


async def _unique_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    """Slug from *title*, suffixed with a timestamp when already taken."""
    slug = slugify(title) or "post"
    if _is_id(slug):
        # An all-digit slug would be read back as an id.
        slug = f"post-{slug}"
    q = select(Post.id).where(Post.slug == slug)
    if exclude_id is not None:
        q = q.where(Post.id != exclude_id)
    if (await db.execute(q)).first() is not None:
        slug = f"{slug}-{time.time_ns() // 1000}"
    return slug


async def _load_post(db: AsyncSession, post_id: int, comments: bool = False) -> Post | None:
    q = with_relations(select(Post).where(Post.id == post_id), comments=comments)
    q = q.execution_options(populate_existing=True)
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _require_category(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise BadRequest("Category not found")
    return category


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_posts(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 10,
    category_id: int | None = None,
    published: bool | None = True,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> PaginatedResponse:
    """
    Return one page of posts, published only unless *published* says
    otherwise.  *search* is a case-insensitive substring match on title,
    content and excerpt.
    """
    cache_key = (
        f"posts:list:{page}:{page_size}:{category_id}:{published}:{search}:{sort_by}:{sort_order}"
    )
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    filters = []
    if category_id is not None:
        filters.append(Post.category_id == category_id)
    if published is not None:
        filters.append(Post.is_published.is_(published))
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                Post.title.ilike(pattern),
                Post.content.ilike(pattern),
                Post.excerpt.ilike(pattern),
            )
        )

    total: int = (
        await db.execute(select(func.count()).select_from(Post).where(*filters))
    ).scalar_one()

    sort_col = _resolve_sort_column(sort_by)
    order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)
    q = (
        with_relations(select(Post).where(*filters))
        .order_by(order_expr, desc(Post.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    posts = (await db.execute(q)).unique().scalars().all()

    response = PaginatedResponse(
        data=[post_to_dict(p) for p in posts],
        count=len(posts),
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def search_posts(db: AsyncSession, query: str) -> list[dict]:
    """Published posts whose title, content, excerpt or a tag contains *query*."""
    pattern = f"%{query}%"
    tagged = select(post_tags.c.post_id).join(Tag, Tag.id == post_tags.c.tag_id).where(
        Tag.name.ilike(pattern)
    )
    q = (
        with_relations(
            select(Post).where(
                Post.is_published.is_(True),
                or_(
                    Post.title.ilike(pattern),
                    Post.content.ilike(pattern),
                    Post.excerpt.ilike(pattern),
                    Post.id.in_(tagged),
                ),
            )
        )
        .order_by(desc(Post.created_at), desc(Post.id))
        .limit(SEARCH_LIMIT)
    )
    posts = (await db.execute(q)).unique().scalars().all()
    return [post_to_dict(p) for p in posts]


async def increment_view_count(db: AsyncSession, post_id: int) -> bool:
    """
    Atomically add one view to *post_id*.

    Returns False when the post no longer exists.
    """
    result = await db.execute(
        update(Post)
        .where(Post.id == post_id)
        .values(view_count=Post.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def get_post(db: AsyncSession, ident: str) -> dict | None:
    """
    Return the full detail dict for a post addressed by id or slug,
    counting one view.  Returns None when the post does not exist.
    """
    post_id = (await db.execute(select(Post.id).where(_lookup_clause(ident)))).scalar_one_or_none()
    if post_id is None:
        return None
    if not await increment_view_count(db, post_id):
        return None
    await db.commit()

    post = await _load_post(db, post_id, comments=True)
    if post is None:
        return None
    return post_detail_to_dict(post)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_post(db: AsyncSession, author: User, data: PostCreate) -> PostMutation:
    """
    Create a post for *author* and bump both post counters.

    Raises ``BadRequest`` when the category does not exist; nothing is
    written in that case.
    """
    author_id = author.id
    category = await _require_category(db, data.category_id)

    post = Post(
        title=data.title,
        slug=await _unique_slug(db, data.title),
        content=data.content,
        excerpt=data.excerpt or make_excerpt(data.content),
        featured_image=data.featured_image,
        is_published=data.is_published,
        author_id=author_id,
        category_id=category.id,
    )
    if data.tags:
        post.tags.extend(await _resolve_tags(db, data.tags))
    if data.is_published:
        post.published_at = datetime.now(timezone.utc)

    db.add(post)
    await db.commit()

    created = await _load_post(db, post.id, comments=True)
    result = post_detail_to_dict(created)

    sync = await counters.record_post_created(db, author_id, category.id)
    await cache.invalidate_posts()
    await cache.invalidate_categories()
    return PostMutation(post=result, counters=sync)


async def update_post(db: AsyncSession, post: Post, data: PostUpdate) -> PostMutation:
    """
    Apply the fields explicitly set in *data* to an already loaded (and
    ownership-checked) post.

    Moving the post to another category shifts one count from the old
    category to the new one.
    """
    # Reload with tags so a tag replacement diffs against the stored set.
    post = await _load_post(db, post.id)
    if post is None:
        raise NotFound("Post not found")

    # Explicit nulls only clear the optional fields.
    update_data = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in _NULLABLE_POST_FIELDS
    }
    tags_data: list[str] | None = update_data.pop("tags", None)

    old_category_id = post.category_id
    new_category_id = update_data.get("category_id", old_category_id)
    if new_category_id != old_category_id:
        await _require_category(db, new_category_id)

    for field_name, value in update_data.items():
        setattr(post, field_name, value)

    if "title" in update_data:
        post.slug = await _unique_slug(db, update_data["title"], exclude_id=post.id)

    # Stamp published_at the first time the post is published.
    if post.is_published and not post.published_at:
        post.published_at = datetime.now(timezone.utc)

    if tags_data is not None:
        post.tags.clear()
        post.tags.extend(await _resolve_tags(db, tags_data))

    post_id = post.id
    await db.commit()

    updated = await _load_post(db, post_id, comments=True)
    result = post_detail_to_dict(updated)

    sync = await counters.record_post_moved(db, old_category_id, new_category_id)
    await cache.invalidate_posts()
    if sync.updates:
        await cache.invalidate_categories()
    return PostMutation(post=result, counters=sync)


async def delete_post(db: AsyncSession, post: Post) -> PostMutation:
    """
    Delete an already loaded (and ownership-checked) post, then decrement
    its author's and category's counters.

    The delete is a single conditional statement: when two requests race to
    delete the same post exactly one removes the row and the other gets
    ``NotFound``.
    """
    post_id, author_id, category_id = post.id, post.author_id, post.category_id

    await db.execute(delete(Comment).where(Comment.post_id == post_id))
    await db.execute(delete(post_tags).where(post_tags.c.post_id == post_id))
    result = await db.execute(
        delete(Post).where(Post.id == post_id).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFound("Post not found")
    await db.commit()
    if post in db:
        db.expunge(post)

    sync = await counters.record_post_deleted(db, author_id, category_id)
    await cache.invalidate_posts()
    await cache.invalidate_categories()
    logger.info("Post %s deleted (counters degraded=%s)", post_id, sync.degraded)
    return PostMutation(post=None, counters=sync)
