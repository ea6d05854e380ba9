from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from models.collector_state import CollectorState
from .base import BaseRepository


class CollectorStateRepository(BaseRepository[CollectorState]):
    """Per-job run bookkeeping (last start, last success, last error, last summary)."""

    model = CollectorState

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_or_create(self, job_name: str) -> CollectorState:
        state = await self.get_by_pk(job_name)
        if state is None:
            state = CollectorState(job_name=job_name)
            await self.add(state)
            await self.session.flush()
        return state

    async def last_success_at(self, job_name: str) -> Optional[datetime]:
        state = await self.get_by_pk(job_name)
        if state is None or state.last_success_at is None:
            return None
        value = state.last_success_at
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)

    async def mark_started(self, job_name: str, at: datetime) -> None:
        state = await self.get_or_create(job_name)
        state.last_started_at = at

    async def mark_finished(
        self,
        job_name: str,
        at: datetime,
        summary: Dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        """Record the outcome; last_success_at only moves forward on error-free runs."""
        state = await self.get_or_create(job_name)
        state.last_summary = summary
        state.last_error = error
        if error is None:
            state.last_success_at = at
