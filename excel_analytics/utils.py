"""
utils.py — Validation, Auth Helpers & Shared Utilities
Excel Analytics API
"""

import hashlib
from datetime import datetime, timedelta
from typing import Any, List, Optional
from passlib.context import CryptContext
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from excel_analytics.config import settings
from excel_analytics.errors import Unauthenticated

# ── Password hashing ──────────────────────────────────────────────────────────
_pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain: str) -> str:
    return _pwd_ctx.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return _pwd_ctx.verify(plain, hashed)


def hash_reset_token(raw: str) -> str:
    """Reset tokens are stored only as their sha256 hex digest."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ── JWT ───────────────────────────────────────────────────────────────────────
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise Unauthenticated("Invalid or expired token")


# ── Pydantic Schemas ──────────────────────────────────────────────────────────
class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _check_password(v: str) -> str:
    if len(v) < 8:
        raise ValueError("password must be at least 8 characters")
    return v


class UserCreate(BaseModel):
    name: str
    email: str
    password: str
    role: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email must be a valid address")
        return v

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class FirebaseLoginRequest(_CamelModel):
    id_token: str = Field(alias="idToken")


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v: str) -> str:
        return v.strip().lower()


class ResetPasswordRequest(_CamelModel):
    new_password: str = Field(alias="newPassword")
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class TokenResponse(BaseModel):
    token: str
    role: str


class ChartCreate(_CamelModel):
    chart_type: str = Field(default="bar", alias="chartType")
    x_key: str = Field(alias="xKey")
    y_key: str = Field(alias="yKey")
    title: Optional[str] = None
    data: Optional[List[dict]] = None
    file_name: Optional[str] = Field(default=None, alias="fileName")
    is_pinned: bool = Field(default=False, alias="isPinned")


class ChartUpdate(_CamelModel):
    chart_type: Optional[str] = Field(default=None, alias="chartType")
    x_key: Optional[str] = Field(default=None, alias="xKey")
    y_key: Optional[str] = Field(default=None, alias="yKey")
    title: Optional[str] = None
    data: Optional[List[dict]] = None
    is_pinned: Optional[bool] = Field(default=None, alias="isPinned")

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "ChartUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class InsightRequest(_CamelModel):
    chart_type: str = Field(default="bar", alias="chartType")
    x_key: str = Field(alias="xKey")
    y_key: str = Field(alias="yKey")
    data: List[dict] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    role: Any = None


# ── Serialisation Helpers ─────────────────────────────────────────────────────
def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
