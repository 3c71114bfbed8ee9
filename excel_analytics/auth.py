"""
auth.py — Authentication Gate & Account Flows
Excel Analytics API

The gate decodes the bearer JWT on each protected request; account flows
(register, login, federated login, password reset) issue those tokens.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from excel_analytics import federated, notifications
from excel_analytics.config import settings
from excel_analytics.errors import Forbidden, Unauthenticated, ValidationError
from excel_analytics.models.user_model import User, UserRole
from excel_analytics.utils import (
    UserCreate, create_access_token, decode_token, hash_password,
    hash_reset_token, verify_password,
)


# ── Gate ──────────────────────────────────────────────────────────────────────
_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> CurrentUser:
    """FastAPI dependency: resolve the caller from `Authorization: Bearer <token>`."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthenticated("Access denied")
    payload = decode_token(credentials.credentials)
    try:
        return CurrentUser(id=int(payload["sub"]), role=str(payload.get("role", "user")))
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid or expired token")


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise Forbidden("Admin access only")
    return user


def issue_token(user: User) -> dict:
    role = user.role.value
    token = create_access_token({"sub": str(user.id), "role": role})
    return {"token": token, "role": role}


# ── Lookups ───────────────────────────────────────────────────────────────────
async def find_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


def _parse_role(value) -> UserRole:
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationError("Invalid role")


# ── Flows ─────────────────────────────────────────────────────────────────────
async def register_user(db: AsyncSession, payload: UserCreate) -> User:
    if await find_user_by_email(db, payload.email):
        raise ValidationError("Email already registered")
    user = User(
        name=payload.name.strip(),
        email=payload.email,
        hashed_password=hash_password(payload.password),
        role=_parse_role(payload.role) if payload.role else UserRole.USER,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"User registered: {user.email} (id={user.id})")
    return user


async def login_user(db: AsyncSession, email: str, password: str) -> dict:
    user = await find_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        raise Unauthenticated("Invalid credentials")
    if user.is_blocked:
        raise Forbidden("Your account has been blocked")
    logger.info(f"User logged in: {user.email}")
    return issue_token(user)


async def federated_login(db: AsyncSession, id_token: str) -> dict:
    """
    Sign in with a Firebase ID token.
    First sight of an email creates the user with a random, never-disclosed password.
    """
    claims = await federated.verify_id_token(id_token)
    email = (claims.get("email") or "").strip().lower()
    if not email:
        raise Unauthenticated("Federated account has no email address")

    user = await find_user_by_email(db, email)
    if user is None:
        user = User(
            name=claims.get("name") or email.split("@")[0],
            email=email,
            hashed_password=hash_password(secrets.token_urlsafe(32)),
            role=UserRole.USER,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"Federated user created: {email} (id={user.id})")

    if user.is_blocked:
        raise Forbidden("Your account has been blocked")
    return issue_token(user)


async def request_password_reset(db: AsyncSession, email: str) -> None:
    """Unknown emails are a silent no-op so callers cannot probe for accounts."""
    user = await find_user_by_email(db, email)
    if user is None:
        logger.info(f"Password reset requested for unknown email: {email}")
        return

    raw_token = secrets.token_urlsafe(32)
    user.reset_token_hash = hash_reset_token(raw_token)
    user.reset_token_expires_at = datetime.utcnow() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
    await db.commit()

    link = f"{settings.FRONTEND_URL.rstrip('/')}/reset-password/{raw_token}"
    await notifications.send_reset_email(user.email, link)


async def reset_password(db: AsyncSession, raw_token: str, new_password: str,
                         confirm_password: Optional[str] = None) -> None:
    if confirm_password is not None and confirm_password != new_password:
        raise ValidationError("Passwords do not match")

    result = await db.execute(
        select(User)
        .where(User.reset_token_hash == hash_reset_token(raw_token))
        .where(User.reset_token_expires_at > datetime.utcnow())
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise ValidationError("Invalid or expired reset token")

    user.hashed_password = hash_password(new_password)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    await db.commit()
    logger.info(f"Password reset completed for {user.email}")
