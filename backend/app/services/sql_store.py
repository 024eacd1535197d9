import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.future import select

from backend.app.core.database import create_engine_for, get_session_maker, init_models
from backend.app.core.errors import (
    CapacityExceeded,
    DuplicateRegistration,
    NotFound,
    PersistenceFailure,
    TournamentError,
)
from backend.app.engine.bracket import group_rounds
from backend.app.models.leaderboard_model import LeaderboardEntry
from backend.app.models.match_model import TournamentMatch
from backend.app.models.tournament_model import Tournament, TournamentPlayer
from backend.app.schemas.tournament_schema import (
    LeaderboardRecord,
    MatchRecord,
    PlayerRecord,
    RoundRecord,
    TournamentRecord,
)
from backend.app.services.store import LEADERBOARD_FIELDS, TournamentStore

logger = logging.getLogger(__name__)


def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    # Enums are stored by value
    return {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}


def _match_row(match: MatchRecord) -> Dict[str, Any]:
    return _column_values(match.model_dump())


class SqlTournamentStore(TournamentStore):
    """
    SQLAlchemy-backed store. Each call opens its own session and is bounded by
    `timeout`; driver errors and timeouts surface as PersistenceFailure.
    """

    def __init__(self, session_maker, engine: Optional[AsyncEngine] = None, timeout: float = 10.0):
        self._session_maker = session_maker
        self._engine = engine
        self._timeout = timeout

    @classmethod
    def from_url(cls, database_url: str, timeout: float = 10.0) -> "SqlTournamentStore":
        engine = create_engine_for(database_url)
        return cls(get_session_maker(engine), engine=engine, timeout=timeout)

    @property
    def session_maker(self):
        return self._session_maker

    async def init_schema(self):
        if self._engine is not None:
            await init_models(self._engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def _run(self, operation, *args):
        try:
            return await asyncio.wait_for(operation(*args), timeout=self._timeout)
        except TournamentError:
            raise
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(f"{operation.__name__} timed out after {self._timeout}s") from e
        except SQLAlchemyError as e:
            logger.error("Store operation %s failed: %s", operation.__name__, e)
            raise PersistenceFailure(f"{operation.__name__} failed: {e}") from e

    # --- Tournaments ---
    async def create_tournament(self, record: TournamentRecord) -> TournamentRecord:
        async def _create():
            async with self._session_maker() as db:
                row = Tournament(**_column_values(record.model_dump()))
                db.add(row)
                await db.commit()
                return TournamentRecord.model_validate(row)
        return await self._run(_create)

    async def get_tournament(self, tournament_id: str) -> Optional[TournamentRecord]:
        async def _get():
            async with self._session_maker() as db:
                result = await db.execute(select(Tournament).where(Tournament.id == tournament_id))
                row = result.scalar_one_or_none()
                return TournamentRecord.model_validate(row) if row else None
        return await self._run(_get)

    async def list_tournaments(self, game_variant=None, status=None) -> List[TournamentRecord]:
        async def _list():
            query = select(Tournament).order_by(Tournament.created_at.asc())
            if game_variant is not None:
                query = query.where(Tournament.game_variant == str(game_variant))
            if status is not None:
                query = query.where(Tournament.status == str(status))
            async with self._session_maker() as db:
                result = await db.execute(query)
                return [TournamentRecord.model_validate(r) for r in result.scalars().all()]
        return await self._run(_list)

    async def update_tournament(self, tournament_id: str, fields: Dict[str, Any]) -> TournamentRecord:
        async def _update():
            async with self._session_maker() as db:
                result = await db.execute(select(Tournament).where(Tournament.id == tournament_id))
                row = result.scalar_one_or_none()
                if not row:
                    raise NotFound(f"Tournament {tournament_id} not found")
                for key, value in _column_values(fields).items():
                    setattr(row, key, value)
                await db.commit()
                return TournamentRecord.model_validate(row)
        return await self._run(_update)

    # --- Registrations ---
    async def register_player(self, player: PlayerRecord, capacity: Optional[int] = None) -> int:
        async def _register():
            async with self._session_maker() as db:
                # Lock the tournament row so concurrent registrations count one at a time
                result = await db.execute(
                    select(Tournament).where(Tournament.id == player.tournament_id).with_for_update()
                )
                if not result.scalar_one_or_none():
                    raise NotFound(f"Tournament {player.tournament_id} not found")

                existing = await db.execute(
                    select(TournamentPlayer.id).where(
                        TournamentPlayer.tournament_id == player.tournament_id,
                        TournamentPlayer.user_id == player.user_id,
                    )
                )
                if existing.first():
                    raise DuplicateRegistration(f"{player.user_id} is already registered")

                count = await self._count(db, player.tournament_id)
                if capacity is not None and count >= capacity:
                    raise CapacityExceeded(f"Tournament {player.tournament_id} is full")

                db.add(TournamentPlayer(**player.model_dump()))
                try:
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    raise DuplicateRegistration(f"{player.user_id} is already registered") from e
                return count + 1
        return await self._run(_register)

    @staticmethod
    async def _count(db, tournament_id: str) -> int:
        result = await db.execute(
            select(func.count(TournamentPlayer.id)).where(TournamentPlayer.tournament_id == tournament_id)
        )
        return result.scalar() or 0

    async def list_players(self, tournament_id: str) -> List[PlayerRecord]:
        async def _list():
            async with self._session_maker() as db:
                result = await db.execute(
                    select(TournamentPlayer)
                    .where(TournamentPlayer.tournament_id == tournament_id)
                    .order_by(TournamentPlayer.id.asc())
                )
                return [PlayerRecord.model_validate(r) for r in result.scalars().all()]
        return await self._run(_list)

    async def count_players(self, tournament_id: str) -> int:
        async def _count():
            async with self._session_maker() as db:
                return await self._count(db, tournament_id)
        return await self._run(_count)

    async def is_player_registered(self, tournament_id: str, user_id: str) -> bool:
        if not user_id:
            return False

        async def _check():
            async with self._session_maker() as db:
                result = await db.execute(
                    select(TournamentPlayer.id).where(
                        TournamentPlayer.tournament_id == tournament_id,
                        TournamentPlayer.user_id == user_id,
                    ).limit(1)
                )
                return result.first() is not None
        return await self._run(_check)

    async def assign_seeds(self, tournament_id: str, seeds: Dict[str, int]) -> None:
        async def _assign():
            async with self._session_maker() as db:
                for user_id, seed in seeds.items():
                    await db.execute(
                        update(TournamentPlayer)
                        .where(
                            TournamentPlayer.tournament_id == tournament_id,
                            TournamentPlayer.user_id == user_id,
                        )
                        .values(seed=seed)
                    )
                await db.commit()
        await self._run(_assign)

    # --- Bracket / matches ---
    async def save_bracket(self, tournament_id: str, rounds: List[RoundRecord]) -> None:
        async def _save():
            async with self._session_maker() as db:
                # Replace any rows from an earlier, unfinished start; delete and insert commit together
                await db.execute(delete(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id))
                db.add_all([
                    TournamentMatch(**_match_row(m))
                    for round_ in rounds
                    for m in round_.matches
                ])
                await db.commit()
        await self._run(_save)

    async def get_bracket(self, tournament_id: str) -> List[RoundRecord]:
        matches = await self.list_matches(tournament_id=tournament_id)
        return group_rounds(matches)

    async def get_match(self, match_id: str) -> Optional[MatchRecord]:
        async def _get():
            async with self._session_maker() as db:
                result = await db.execute(select(TournamentMatch).where(TournamentMatch.id == match_id))
                row = result.scalar_one_or_none()
                return MatchRecord.model_validate(row) if row else None
        return await self._run(_get)

    async def list_matches(self, tournament_id=None, status=None, deadline_before=None) -> List[MatchRecord]:
        async def _list():
            query = select(TournamentMatch).order_by(
                TournamentMatch.tournament_id.asc(),
                TournamentMatch.round_number.asc(),
                TournamentMatch.match_number.asc(),
            )
            if tournament_id is not None:
                query = query.where(TournamentMatch.tournament_id == tournament_id)
            if status is not None:
                query = query.where(TournamentMatch.status == str(status))
            if deadline_before is not None:
                query = query.where(
                    TournamentMatch.deadline.is_not(None),
                    TournamentMatch.deadline < deadline_before,
                )
            async with self._session_maker() as db:
                result = await db.execute(query)
                return [MatchRecord.model_validate(r) for r in result.scalars().all()]
        return await self._run(_list)

    async def upsert_match(self, match: MatchRecord) -> None:
        async def _upsert():
            async with self._session_maker() as db:
                await db.merge(TournamentMatch(**_match_row(match)))
                await db.commit()
        await self._run(_upsert)

    async def update_match(self, match_id: str, fields: Dict[str, Any]) -> None:
        async def _update():
            async with self._session_maker() as db:
                result = await db.execute(
                    update(TournamentMatch)
                    .where(TournamentMatch.id == match_id)
                    .values(**_column_values(fields))
                )
                if result.rowcount == 0:
                    raise NotFound(f"Match {match_id} not found")
                await db.commit()
        await self._run(_update)

    # --- Leaderboard ---
    async def upsert_leaderboard_entry(self, user_id: str, delta: Dict[str, int]) -> LeaderboardRecord:
        async def _upsert():
            async with self._session_maker() as db:
                result = await db.execute(
                    select(LeaderboardEntry).where(LeaderboardEntry.user_id == user_id).with_for_update()
                )
                row = result.scalar_one_or_none()
                if not row:
                    row = LeaderboardEntry(user_id=user_id, wins=0, finals=0, semifinals=0, points=0)
                    db.add(row)
                for key in LEADERBOARD_FIELDS:
                    setattr(row, key, (getattr(row, key) or 0) + int(delta.get(key, 0)))
                row.updated_at = datetime.now(timezone.utc)
                await db.commit()
                return LeaderboardRecord.model_validate(row)
        return await self._run(_upsert)

    async def list_leaderboard(self, limit: int = 50) -> List[LeaderboardRecord]:
        async def _list():
            async with self._session_maker() as db:
                result = await db.execute(
                    select(LeaderboardEntry)
                    .order_by(
                        LeaderboardEntry.points.desc(),
                        LeaderboardEntry.wins.desc(),
                        LeaderboardEntry.user_id.asc(),
                    )
                    .limit(limit)
                )
                return [LeaderboardRecord.model_validate(r) for r in result.scalars().all()]
        return await self._run(_list)

    # --- Admin ---
    async def delete_all(self) -> None:
        async def _delete_all():
            async with self._session_maker() as db:
                # Children first for databases without ON DELETE CASCADE enforcement
                await db.execute(delete(TournamentMatch))
                await db.execute(delete(TournamentPlayer))
                await db.execute(delete(Tournament))
                await db.execute(delete(LeaderboardEntry))
                await db.commit()
        await self._run(_delete_all)
