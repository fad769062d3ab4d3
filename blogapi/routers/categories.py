from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.auth import require_admin
from blogapi.database import get_db
from blogapi.dependencies import PaginationParams
from blogapi.errors import NotFound
from blogapi.schemas import CategoryCreate, CategoryUpdate
from blogapi.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


@router.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    categories = await category_service.get_categories(db)
    return {"success": True, "count": len(categories), "data": categories}


@router.get("/stats")
async def category_stats(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await category_service.get_category_stats(db)}


@router.get("/{ident}")
async def get_category(
    ident: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    detail = await category_service.get_category_detail(
        db, ident, page=pagination.page, page_size=pagination.page_size
    )
    if not detail:
        raise NotFound("Category not found")
    return {"success": True, "data": detail}


@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_category(data: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await category_service.create_category(db, data)}


@router.put("/{category_id}", dependencies=[Depends(require_admin)])
async def update_category(category_id: int, data: CategoryUpdate, db: AsyncSession = Depends(get_db)):
    category = await category_service.update_category(db, category_id, data)
    if not category:
        raise NotFound("Category not found")
    return {"success": True, "data": category}


@router.delete("/{category_id}", dependencies=[Depends(require_admin)])
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db)):
    deleted = await category_service.delete_category(db, category_id)
    if not deleted:
        raise NotFound("Category not found")
    return {"success": True, "data": {}}
