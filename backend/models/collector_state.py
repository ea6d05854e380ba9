from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CollectorState(Base):
    """Single-row-per-job bookkeeping: run timestamps, last error, last summary."""

    __tablename__ = "collector_state"

    job_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_success_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_summary: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
