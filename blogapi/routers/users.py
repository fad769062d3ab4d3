from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.auth import require_admin
from blogapi.database import get_db
from blogapi.errors import NotFound
from blogapi.schemas import UserStatusUpdate
from blogapi.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("", dependencies=[Depends(require_admin)])
async def list_users(db: AsyncSession = Depends(get_db)):
    users = await user_service.get_users(db)
    return {"success": True, "count": len(users), "data": users}


@router.get("/{user_id}")
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    user = await user_service.get_user(db, user_id)
    if not user:
        raise NotFound("User not found")
    return {"success": True, "user": user_service.public_profile_to_dict(user)}


@router.put("/{user_id}/status", dependencies=[Depends(require_admin)])
async def set_user_status(user_id: int, data: UserStatusUpdate, db: AsyncSession = Depends(get_db)):
    user = await user_service.set_active(db, user_id, data.is_active)
    if not user:
        raise NotFound("User not found")
    return {"success": True, "user": user_service.user_to_dict(user)}
