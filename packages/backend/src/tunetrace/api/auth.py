"""Auth API — registration, login, profile.

Learn: Routes for the identity collaborator:
- POST /auth/register → create an account, returns a JWT straight away
- POST /auth/login → email/password → JWT
- GET /auth/profile → current user info

The mobile client expects 400 + {"error": ...} for every validation
problem (not FastAPI's 422), so request fields are Optional and checked
in the handler. Wrong email and wrong password get the same message.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.auth.dependencies import CurrentIdentity, get_current_user
from tunetrace.auth.jwt import create_access_token
from tunetrace.auth.password import hash_password, verify_password
from tunetrace.db.engine import get_db
from tunetrace.db.models import User

logger = structlog.get_logger()
router = APIRouter(prefix="/auth")

MIN_PASSWORD_LENGTH = 6


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID
    email: str
    display_name: str = Field(alias="displayName")


class UserProfile(UserSummary):
    created_at: datetime = Field(alias="createdAt")


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserSummary


class ProfileResponse(BaseModel):
    user: UserProfile


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def _auth_response(message: str, user: User) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=create_access_token(str(user.id), email=user.email),
        user=UserSummary(id=user.id, email=user.email, display_name=user.display_name),
    )


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a new user account."""
    if not body.email or not body.password or not body.display_name:
        raise HTTPException(status_code=400, detail="All fields are required")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    email = _normalize_email(body.email)
    result = await db.execute(select(User).where(User.email == email))
    if result.scalars().first():
        raise HTTPException(status_code=400, detail="User already exists with this email")

    user = User(
        email=email,
        display_name=body.display_name.strip(),
        password_hash=hash_password(body.password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration for the same email.
        await db.rollback()
        raise HTTPException(status_code=400, detail="User already exists with this email")
    await db.refresh(user)

    logger.info("auth.registered", user_id=str(user.id))
    return _auth_response("User registered successfully", user)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with email and password → JWT."""
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    result = await db.execute(select(User).where(User.email == _normalize_email(body.email)))
    user = result.scalars().first()

    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid email or password")

    logger.info("auth.logged_in", user_id=str(user.id))
    return _auth_response("Login successful", user)


# ─── Current user ───────────────────────────────────────


@router.get("/profile", response_model=ProfileResponse)
async def profile(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the current authenticated user's info."""
    try:
        user = await db.get(User, uuid.UUID(identity.user_id))
    except ValueError:
        user = None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return ProfileResponse(
        user=UserProfile(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            created_at=user.created_at,
        )
    )
