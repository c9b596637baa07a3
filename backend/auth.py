# auth.py - Identity provider for ClientDesk
# Features:
# - Secure JWT with JTI for revocation
# - Password policy enforcement
# - Brute force protection
# - Token revocation support

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from collections import defaultdict

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from models import User, RevokedToken

logger = logging.getLogger("clientdesk.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
MIN_PASSWORD_LENGTH = 8
MAX_LOGIN_ATTEMPTS = 5
LOGIN_LOCKOUT_MINUTES = 15

security = HTTPBearer()

# In-memory brute force tracker (per process)
_login_attempts: Dict[str, list] = defaultdict(list)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str
    display_name: str = ""

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if not any(c.isupper() for c in v):
            raise ValueError("Password must contain at least one uppercase letter")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: str
    email: str
    display_name: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class CurrentUser(BaseModel):
    id: str
    email: str
    display_name: str
    is_active: bool
    token_jti: Optional[str] = None
    token_expires_at: Optional[datetime] = None

    def public(self) -> UserOut:
        return UserOut(id=self.id, email=self.email, display_name=self.display_name)


class RefreshRequest(BaseModel):
    refresh_token: str


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Authentication service: passwords, tokens, revocation"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        return AuthService._create_token(data, "access", delta)

    @staticmethod
    def create_refresh_token(data: Dict[str, Any]) -> str:
        return AuthService._create_token(data, "refresh", timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS))

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            return payload
        except ExpiredSignatureError:
            raise HTTPException(status_code=401, detail="Token expired")
        except JWTError:
            raise HTTPException(status_code=401, detail="Invalid token")

    @staticmethod
    def _check_brute_force(email: str) -> None:
        """Check if login attempts exceed threshold"""
        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=LOGIN_LOCKOUT_MINUTES)
        # Clean old attempts
        _login_attempts[email] = [t for t in _login_attempts[email] if t > cutoff]
        if len(_login_attempts[email]) >= MAX_LOGIN_ATTEMPTS:
            logger.warning(f"Login locked out for {email}")
            raise HTTPException(
                status_code=429,
                detail=f"Too many login attempts. Try again in {LOGIN_LOCKOUT_MINUTES} minutes.",
            )

    @staticmethod
    def _record_failed_attempt(email: str) -> None:
        _login_attempts[email].append(datetime.now(timezone.utc))

    @staticmethod
    def _clear_attempts(email: str) -> None:
        _login_attempts.pop(email, None)

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        stmt = select(User).where(User.email == user_data.email)
        result = await db.execute(stmt)
        if result.scalar_one_or_none():
            raise HTTPException(status_code=409, detail="User already exists")

        display_name = user_data.display_name or user_data.email.split("@")[0]

        new_user = User(
            email=user_data.email,
            display_name=display_name,
            password_hash=AuthService.hash_password(user_data.password),
            is_active=True,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)

        logger.info(f"Registered user {new_user.id}")
        return new_user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        AuthService._check_brute_force(email)

        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            AuthService._record_failed_attempt(email)
            return None

        if not user.is_active:
            return None

        AuthService._clear_attempts(email)

        user.last_login_at = datetime.now(timezone.utc)
        db.add(user)
        await db.commit()

        return user

    @staticmethod
    async def is_token_revoked(jti: str, db: AsyncSession) -> bool:
        stmt = select(RevokedToken).where(RevokedToken.jti == jti)
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def revoke_token(jti: str, user_id: str, expires_at: datetime, db: AsyncSession) -> None:
        revoked = RevokedToken(jti=jti, user_id=user_id, expires_at=expires_at)
        db.add(revoked)
        await db.commit()

    @staticmethod
    def issue_tokens(user: UserOut) -> TokenResponse:
        token_data = {"sub": user.id, "email": user.email}
        return TokenResponse(
            access_token=AuthService.create_access_token(token_data),
            refresh_token=AuthService.create_refresh_token(token_data),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=user,
        )

    @staticmethod
    async def rotate_refresh_token(token: str, db: AsyncSession) -> TokenResponse:
        """Exchange a refresh token for a new pair. The presented token is revoked."""
        current = await AuthService.resolve_user(token, db, token_type="refresh")
        if current.token_jti and current.token_expires_at:
            await AuthService.revoke_token(current.token_jti, current.id, current.token_expires_at, db)
        return AuthService.issue_tokens(current.public())

    @staticmethod
    async def resolve_user(token: str, db: AsyncSession, token_type: str = "access") -> CurrentUser:
        """Validate a raw token of ``token_type`` and load the identity behind it"""
        payload = AuthService.verify_token(token)

        if payload.get("type") != token_type:
            raise HTTPException(status_code=401, detail="Invalid token type")

        # Check revocation
        jti = payload.get("jti")
        if jti and await AuthService.is_token_revoked(jti, db):
            raise HTTPException(status_code=401, detail="Token has been revoked")

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="Invalid token")

        stmt = select(User).where(User.id == user_id)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not user.is_active:
            raise HTTPException(status_code=401, detail="User not found or inactive")

        exp = payload.get("exp")
        return CurrentUser(
            id=user.id,
            email=user.email,
            display_name=user.display_name or "",
            is_active=user.is_active,
            token_jti=jti,
            token_expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
        )


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    return await AuthService.resolve_user(credentials.credentials, db)


def bearer_token(request: Request) -> Optional[str]:
    """Extract the raw token from an `Authorization: Bearer ...` header, if any"""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
