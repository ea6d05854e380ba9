from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert, is_postgres
from models.crawl_queue import CrawlQueueEntry
from .base import BaseRepository


class CrawlQueueRepository(BaseRepository[CrawlQueueEntry]):
    """Persistent crawl frontier: claim-by-delete and duplicate-tolerant inserts."""

    model = CrawlQueueEntry

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def claim(self, limit: int) -> List[Tuple[str, str]]:
        """Atomically delete up to ``limit`` oldest entries and return them as (region, puuid).

        A single DELETE ... RETURNING statement, so two workers never receive the
        same entry. On PostgreSQL the inner select skips rows locked by a concurrent claim.
        """
        if limit <= 0:
            return []
        ids = select(CrawlQueueEntry.id).order_by(CrawlQueueEntry.id).limit(limit)
        if is_postgres(self.session):
            ids = ids.with_for_update(skip_locked=True)
        stmt = (
            delete(CrawlQueueEntry)
            .where(CrawlQueueEntry.id.in_(ids.scalar_subquery()))
            .returning(CrawlQueueEntry.id, CrawlQueueEntry.region, CrawlQueueEntry.puuid)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        rows = sorted(result.all(), key=lambda r: r[0])
        return [(row[1], row[2]) for row in rows]

    async def insert_many_ignore_duplicates(self, entries: Iterable[Tuple[str, str]]) -> int:
        """Insert (region, puuid) pairs, skipping any pair already queued. Returns rows inserted."""
        unique: Dict[Tuple[str, str], None] = {}
        for region, puuid in entries:
            if puuid:
                unique[(region, puuid)] = None
        if not unique:
            return 0
        stmt = (
            dialect_insert(self.session, CrawlQueueEntry)
            .values([{"region": r, "puuid": p} for r, p in unique])
            .on_conflict_do_nothing(index_elements=["region", "puuid"])
            .returning(CrawlQueueEntry.id)
        )
        result = await self.session.execute(stmt)
        return len(result.all())

    async def rewrite_identifier(self, old_puuid: str, new_puuid: str) -> int:
        """Re-key queued entries; drops the old entry where the new pair is already queued."""
        existing_regions = select(CrawlQueueEntry.region).where(CrawlQueueEntry.puuid == new_puuid)
        await self.session.execute(
            delete(CrawlQueueEntry)
            .where(CrawlQueueEntry.puuid == old_puuid)
            .where(CrawlQueueEntry.region.in_(existing_regions.scalar_subquery()))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            update(CrawlQueueEntry)
            .where(CrawlQueueEntry.puuid == old_puuid)
            .values(puuid=new_puuid)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def count_by_region(self) -> Dict[str, int]:
        stmt = (
            select(CrawlQueueEntry.region, func.count())
            .group_by(CrawlQueueEntry.region)
            .order_by(CrawlQueueEntry.region)
        )
        result = await self.session.execute(stmt)
        return {row[0]: int(row[1]) for row in result.all()}

    async def list_pairs(self) -> List[Tuple[str, str]]:
        stmt = select(CrawlQueueEntry.region, CrawlQueueEntry.puuid).order_by(CrawlQueueEntry.id)
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]
