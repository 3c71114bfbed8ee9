"""
charts.py — Chart Metadata Lifecycle
Excel Analytics API

Every lookup includes `owner_id == caller` in the WHERE clause, so a chart
owned by someone else is indistinguishable from a missing one.
"""

from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from excel_analytics.errors import NotFound, ValidationError
from excel_analytics.models.db_models import ChartRecord
from excel_analytics.utils import ChartCreate, ChartUpdate, isoformat


# ── Serialisation ─────────────────────────────────────────────────────────────
def serialize_chart(chart: ChartRecord) -> Dict:
    return {
        "_id": chart.id,
        "id": chart.id,
        "userId": chart.owner_id,
        "chartType": chart.chart_type,
        "xKey": chart.x_key,
        "yKey": chart.y_key,
        "title": chart.title,
        "fileName": chart.file_name,
        "isPinned": chart.is_pinned,
        "data": chart.data,
        "createdAt": isoformat(chart.created_at),
        "updatedAt": isoformat(chart.updated_at),
    }


def _require_rows(data: Optional[list]) -> list:
    if not data:
        raise ValidationError("Chart data is required")
    return data


async def _get_owned(db: AsyncSession, chart_id: int, owner_id: int) -> ChartRecord:
    result = await db.execute(
        select(ChartRecord)
        .where(ChartRecord.id == chart_id)
        .where(ChartRecord.owner_id == owner_id)
    )
    chart = result.scalar_one_or_none()
    if chart is None:
        raise NotFound("Chart not found or unauthorized")
    return chart


# ── Operations ────────────────────────────────────────────────────────────────
async def create_chart(db: AsyncSession, owner_id: int, payload: ChartCreate) -> ChartRecord:
    chart = ChartRecord(
        owner_id=owner_id,
        chart_type=payload.chart_type,
        x_key=payload.x_key,
        y_key=payload.y_key,
        title=payload.title,
        file_name=payload.file_name,
        is_pinned=payload.is_pinned,
        data=_require_rows(payload.data),
    )
    db.add(chart)
    await db.commit()
    await db.refresh(chart)
    logger.info(f"Chart {chart.id} saved for user {owner_id} (pinned={chart.is_pinned}).")
    return chart


async def update_chart(db: AsyncSession, owner_id: int, chart_id: int,
                       payload: ChartUpdate) -> ChartRecord:
    """Apply only the fields present in the request body."""
    changes = payload.model_dump(exclude_unset=True)
    if "data" in changes:
        _require_rows(changes["data"])

    chart = await _get_owned(db, chart_id, owner_id)
    for field, value in changes.items():
        setattr(chart, field, value)
    await db.commit()
    await db.refresh(chart)
    logger.info(f"Chart {chart_id} updated by user {owner_id}: {sorted(changes)}")
    return chart


async def list_charts(db: AsyncSession, owner_id: int, pinned: bool) -> List[ChartRecord]:
    """Caller's charts with the given pin state, newest first."""
    result = await db.execute(
        select(ChartRecord)
        .where(ChartRecord.owner_id == owner_id)
        .where(ChartRecord.is_pinned == pinned)
        .order_by(ChartRecord.created_at.desc(), ChartRecord.id.desc())
    )
    return list(result.scalars().all())


async def delete_chart(db: AsyncSession, owner_id: int, chart_id: int) -> None:
    chart = await _get_owned(db, chart_id, owner_id)
    await db.delete(chart)
    await db.commit()
    logger.info(f"Chart {chart_id} deleted by user {owner_id}.")
