"""
admin.py — User Management & Platform Statistics
Excel Analytics API
"""

from typing import Dict, List
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from excel_analytics.auth import CurrentUser
from excel_analytics.errors import Forbidden, NotFound, ValidationError
from excel_analytics.models.db_models import ChartRecord
from excel_analytics.models.user_model import User, UserRole
from excel_analytics.utils import isoformat


def serialize_user(user: User) -> Dict:
    """Public user view: password and reset fields never leave the service."""
    return {
        "_id": user.id,
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "isBlocked": user.is_blocked,
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    }


def _reject_self(admin: CurrentUser, target_id: int) -> None:
    if admin.id == target_id:
        raise Forbidden("You cannot modify your own account")


async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


# ── User Management ───────────────────────────────────────────────────────────
async def list_users(db: AsyncSession) -> List[User]:
    result = await db.execute(select(User).order_by(User.created_at, User.id))
    return list(result.scalars().all())


async def change_role(db: AsyncSession, admin: CurrentUser, target_id: int, role) -> User:
    _reject_self(admin, target_id)
    if not isinstance(role, str) or role not in {r.value for r in UserRole}:
        raise ValidationError("Invalid role")
    user = await _get_user(db, target_id)
    user.role = UserRole(role)
    await db.commit()
    logger.warning(f"Admin {admin.id} set role of user {target_id} to '{role}'.")
    return user


async def toggle_block(db: AsyncSession, admin: CurrentUser, target_id: int) -> User:
    _reject_self(admin, target_id)
    user = await _get_user(db, target_id)
    user.is_blocked = not user.is_blocked
    await db.commit()
    logger.warning(
        f"Admin {admin.id} {'blocked' if user.is_blocked else 'unblocked'} user {target_id}."
    )
    return user


async def delete_user(db: AsyncSession, admin: CurrentUser, target_id: int) -> None:
    """Charts owned by the user are left in place."""
    _reject_self(admin, target_id)
    user = await _get_user(db, target_id)
    await db.delete(user)
    await db.commit()
    logger.warning(f"Admin {admin.id} deleted user {target_id} ({user.email}).")


# ── Platform Stats ────────────────────────────────────────────────────────────
async def platform_stats(db: AsyncSession) -> Dict:
    """Aggregate counts for the admin dashboard; chart-type ties have no fixed winner."""
    total_users = await db.scalar(select(func.count(User.id)))
    blocked_users = await db.scalar(
        select(func.count(User.id)).where(User.is_blocked.is_(True))
    )
    total_charts = await db.scalar(select(func.count(ChartRecord.id)))

    usage = func.count(ChartRecord.id).label("usage")
    result = await db.execute(
        select(ChartRecord.chart_type, usage)
        .group_by(ChartRecord.chart_type)
        .order_by(usage.desc())
        .limit(1)
    )
    top = result.first()

    return {
        "totalUsers": total_users or 0,
        "blockedUsers": blocked_users or 0,
        "totalCharts": total_charts or 0,
        "mostUsedChartType": top[0] if top else "N/A",
    }
