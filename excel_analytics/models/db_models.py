"""
db_models.py — Chart ORM Models
Excel Analytics API
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Index
from excel_analytics.database import Base


# ── Chart Records ─────────────────────────────────────────────────────────────
class ChartRecord(Base):
    """Saved chart configuration plus the row data captured at save time."""
    __tablename__ = "chart_records"

    id = Column(Integer, primary_key=True, index=True)
    # No FK: deleting a user leaves their charts in place
    owner_id = Column(Integer, nullable=False, index=True)
    chart_type = Column(String(50), nullable=False, default="bar")
    x_key = Column(String(255))
    y_key = Column(String(255))
    title = Column(String(500))
    file_name = Column(String(500), nullable=True)
    is_pinned = Column(Boolean, default=False, nullable=False)
    data = Column(JSON, nullable=False)                 # list of {column: value}
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_charts_owner_pinned_created", "owner_id", "is_pinned", "created_at"),
    )
