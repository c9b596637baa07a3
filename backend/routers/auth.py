# routers/auth.py - Account endpoints: register, login, token rotation, logout
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, UserOut, TokenResponse, RefreshRequest,
    get_current_user, CurrentUser,
)
from database import get_db_session
from models import User

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _public(user: User) -> UserOut:
    return UserOut(id=user.id, email=user.email, display_name=user.display_name or "")


@router.post("/register", response_model=TokenResponse)
async def register(
    data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Create an account and sign it in; 409 when the email is taken"""
    user = await AuthService.register_user(data, db)
    return AuthService.issue_tokens(_public(user))


@router.post("/login", response_model=TokenResponse)
async def login(
    data: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    user = await AuthService.authenticate_user(data.email, data.password, db)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return AuthService.issue_tokens(_public(user))


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Single-use refresh: the presented token stops working once exchanged"""
    return await AuthService.rotate_refresh_token(data.refresh_token, db)


@router.post("/logout", status_code=204)
async def logout(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if user.token_jti and user.token_expires_at:
        await AuthService.revoke_token(user.token_jti, user.id, user.token_expires_at, db)
    return Response(status_code=204)


@router.get("/me", response_model=UserOut)
async def me(user: CurrentUser = Depends(get_current_user)):
    return user.public()
