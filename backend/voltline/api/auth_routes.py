"""
JWT Authentication routes — register, login, me.

Rate limiting for these endpoints is enforced at the middleware level
(RateLimitMiddleware in main.py).
"""
import os
import re
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from passlib.context import CryptContext
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from voltline.db import get_db
from voltline.models.orm_models import User, Role
from voltline.api.deps import SECRET_KEY, ALGORITHM, get_current_user

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
_MIN_PASSWORD_LEN = 8

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _validate_email(email: str) -> str:
    """Normalise and validate email. Raises HTTPException 422 on failure."""
    email = email.strip().lower()
    if not _EMAIL_RE.match(email):
        raise HTTPException(status_code=422, detail="Invalid email format")
    return email


def _validate_password(password: str) -> None:
    if len(password) < _MIN_PASSWORD_LEN:
        raise HTTPException(
            status_code=422,
            detail=f"Password must be at least {_MIN_PASSWORD_LEN} characters"
        )


class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str
    role: str
    full_name: str = ""


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def _get_or_create_role(db: AsyncSession, name: str) -> Role:
    result = await db.execute(select(Role).where(Role.name == name))
    role = result.scalar_one_or_none()
    if not role:
        role = Role(name=name)
        db.add(role)
        await db.flush()
    return role


@router.post("/register", response_model=TokenResponse)
async def register(req: RegisterRequest, db: AsyncSession = Depends(get_db)):
    email = _validate_email(req.email)
    _validate_password(req.password)

    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    # First account on a fresh install administers the rest
    user_count = (await db.execute(select(func.count(User.id)))).scalar_one()
    role = await _get_or_create_role(db, "Admin" if user_count == 0 else "Engineer")

    user = User(
        email=email,
        hashed_password=pwd_context.hash(req.password),
        full_name=req.full_name,
        role_id=role.id,
    )
    db.add(user)
    await db.flush()

    token = create_access_token({"sub": user.id, "email": user.email, "role": role.name})
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        email=user.email,
        role=role.name,
        full_name=req.full_name,
    )


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest, db: AsyncSession = Depends(get_db)):
    email = _validate_email(req.email)
    if len(req.password) < _MIN_PASSWORD_LEN:
        # Same answer as a bad login so account existence is not confirmed
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user or not pwd_context.verify(req.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account deactivated")

    role_name = "Viewer"
    if user.role_id:
        role_result = await db.execute(select(Role).where(Role.id == user.role_id))
        role = role_result.scalar_one_or_none()
        if role:
            role_name = role.name

    token = create_access_token({"sub": user.id, "email": user.email, "role": role_name})
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        email=user.email,
        role=role_name,
        full_name=user.full_name or "",
    )


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    return {
        "user_id": user.id,
        "email": user.email,
        "full_name": user.full_name or "",
        "role_id": user.role_id,
        "is_active": user.is_active,
    }
