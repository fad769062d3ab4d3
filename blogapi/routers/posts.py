from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.auth import get_current_user, get_owned_post
from blogapi.database import get_db
from blogapi.dependencies import PaginationParams
from blogapi.errors import BadRequest, NotFound
from blogapi.models import Post, User
from blogapi.schemas import CommentCreate, PaginatedResponse, PostCreate, PostUpdate
from blogapi.services import comment_service, post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])


@router.get("", response_model=PaginatedResponse)
async def list_posts(
    pagination: PaginationParams = Depends(),
    category: int | None = Query(None, description="Only posts in this category id."),
    published: bool | None = Query(None, description="Defaults to published posts only."),
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.get_posts(
        db,
        page=pagination.page,
        page_size=pagination.page_size,
        category_id=category,
        published=True if published is None else published,
        search=search or None,
        sort_by=pagination.sort_by,
        sort_order=pagination.sort_order,
    )


@router.get("/search")
async def search_posts(q: str | None = Query(None, max_length=100), db: AsyncSession = Depends(get_db)):
    if not q or not q.strip():
        raise BadRequest("Search query is required")
    posts = await post_service.search_posts(db, q.strip())
    return {"success": True, "count": len(posts), "data": posts}


@router.get("/{ident}")
async def get_post(ident: str, db: AsyncSession = Depends(get_db)):
    post = await post_service.get_post(db, ident)
    if not post:
        raise NotFound("Post not found")
    return {"success": True, "data": post}


@router.post("", status_code=201)
async def create_post(
    data: PostCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await post_service.create_post(db, user, data)
    return {"success": True, "data": result.post}


@router.put("/{post_id}")
async def update_post(
    data: PostUpdate,
    post: Post = Depends(get_owned_post),
    db: AsyncSession = Depends(get_db),
):
    result = await post_service.update_post(db, post, data)
    return {"success": True, "data": result.post}


@router.delete("/{post_id}")
async def delete_post(post: Post = Depends(get_owned_post), db: AsyncSession = Depends(get_db)):
    await post_service.delete_post(db, post)
    return {"success": True, "data": {}}


@router.get("/{post_id}/comments")
async def list_comments(post_id: int, db: AsyncSession = Depends(get_db)):
    comments = await comment_service.get_comments(db, post_id)
    return {"success": True, "count": len(comments), "data": comments}


@router.post("/{post_id}/comments", status_code=201)
async def add_comment(
    post_id: int,
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.add_comment(db, post_id, user, data)
    if not comment:
        raise NotFound("Post not found")
    return {"success": True, "data": comment}
