from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blogapi.auth import get_current_user, get_token_service
from blogapi.database import get_db
from blogapi.models import User
from blogapi.schemas import LoginRequest, PasswordChange, ProfileUpdate, RegisterRequest
from blogapi.services import user_service
from blogapi.tokens import TokenService

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user = await user_service.register_user(db, data)
    return {"success": True, "token": tokens.issue(user.id), "user": user_service.user_to_dict(user)}


@router.post("/login")
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    user = await user_service.authenticate(db, data)
    return {"success": True, "token": tokens.issue(user.id), "user": user_service.user_to_dict(user)}


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"success": True, "user": user_service.user_to_dict(user)}


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_profile(db, user, data)
    return {"success": True, "user": user_service.user_to_dict(user)}


@router.put("/password")
async def change_password(
    data: PasswordChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await user_service.change_password(db, user, data)
    return {"success": True, "message": "Password updated successfully"}


@router.post("/refresh")
async def refresh(
    user: User = Depends(get_current_user),
    tokens: TokenService = Depends(get_token_service),
):
    return {"success": True, "token": tokens.issue(user.id)}


@router.post("/logout")
async def logout(user: User = Depends(get_current_user)):
    # Tokens are stateless; the client discards its copy.
    return {"success": True, "message": "Logged out successfully"}
