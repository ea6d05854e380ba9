from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from models.player import Player
from .base import BaseRepository


class PlayerRepository(BaseRepository[Player]):
    """Repository for Player profiles."""

    model = Player

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_by_puuid(self, puuid: str) -> Optional[Player]:
        stmt = select(Player).where(Player.puuid == puuid)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def upsert_seen(
        self,
        puuid: str,
        region: str,
        summoner_name: Optional[str] = None,
        last_seen: Optional[datetime] = None,
        win: Optional[bool] = None,
    ) -> None:
        """Create the player or refresh it.

        An existing display name is never overwritten, only filled when empty.
        last_seen is always refreshed. When ``win`` is given the lifetime counters
        are bumped by one game.
        """
        name = (summoner_name or "").strip() or None
        games = 1 if win is not None else 0
        wins = 1 if win else 0
        stmt = dialect_insert(self.session, Player).values(
            puuid=puuid,
            region=region,
            summoner_name=name,
            last_seen=last_seen,
            total_games=games,
            total_wins=wins,
        )
        table = Player.__table__
        stmt = stmt.on_conflict_do_update(
            index_elements=["puuid"],
            set_={
                "summoner_name": case(
                    (
                        (table.c.summoner_name.is_(None)) | (table.c.summoner_name == ""),
                        stmt.excluded.summoner_name,
                    ),
                    else_=table.c.summoner_name,
                ),
                "last_seen": func.coalesce(stmt.excluded.last_seen, table.c.last_seen),
                "total_games": table.c.total_games + stmt.excluded.total_games,
                "total_wins": table.c.total_wins + stmt.excluded.total_wins,
            },
        )
        await self.session.execute(stmt)

    def _needs_name(self, stale_before: datetime):
        missing = or_(Player.summoner_name.is_(None), Player.summoner_name == "")
        never_checked = Player.name_refreshed_at.is_(None)
        return missing, never_checked, or_(missing, never_checked, Player.name_refreshed_at < stale_before)

    async def count_needing_name(self, stale_before: datetime) -> int:
        stmt = select(func.count()).select_from(Player).where(self._needs_name(stale_before)[2])
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def list_needing_name(self, limit: int, stale_before: datetime) -> List[Tuple[str, str]]:
        """(puuid, region) of players without a name or with a name older than ``stale_before``.

        Never-checked players come first, then the least recently checked, so lookups
        that keep failing do not starve the rest.
        """
        missing, never_checked, needs_name = self._needs_name(stale_before)
        stmt = (
            select(Player.puuid, Player.region)
            .where(needs_name)
            .order_by(
                case((never_checked, 0), else_=1),
                Player.name_refreshed_at,
                case((missing, 0), else_=1),
                Player.id,
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def mark_name_checked(self, puuid: str, checked_at: datetime, summoner_name: Optional[str] = None) -> bool:
        """Stamp the lookup time; store ``summoner_name`` when given. Returns True if the name changed."""
        player = await self.get_by_puuid(puuid)
        if player is None:
            return False
        player.name_refreshed_at = checked_at
        changed = bool(summoner_name) and summoner_name != player.summoner_name
        if changed:
            player.summoner_name = summoner_name
        await self.session.flush()
        return changed

    async def merge_identifier(
        self,
        old_puuid: str,
        new_puuid: str,
        display_name: Optional[str] = None,
    ) -> str:
        """Move the profile of old_puuid onto new_puuid.

        Returns ``"merged"`` when a profile for new_puuid already existed (old row deleted),
        ``"rekeyed"`` when the old row was renamed in place, ``"missing"`` when there was
        no profile for old_puuid.
        """
        old = await self.get_by_puuid(old_puuid)
        if old is None:
            return "missing"
        existing = await self.get_by_puuid(new_puuid)
        if existing is not None:
            if old.last_seen is not None and (
                existing.last_seen is None or _aware(old.last_seen) > _aware(existing.last_seen)
            ):
                existing.last_seen = old.last_seen
            existing.summoner_name = display_name or existing.summoner_name or old.summoner_name
            existing.total_games = (existing.total_games or 0) + (old.total_games or 0)
            existing.total_wins = (existing.total_wins or 0) + (old.total_wins or 0)
            await self.session.delete(old)
            await self.session.flush()
            return "merged"
        old.puuid = new_puuid
        if display_name:
            old.summoner_name = display_name
        await self.session.flush()
        return "rekeyed"


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
