"""
Read-only rating lookup used to seed tournaments.

Ratings are produced elsewhere (per game variant); the tournament engine only
needs the current number, falling back to DEFAULT_RATING for unknown players.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from backend.app.core.errors import PersistenceFailure
from backend.app.models.enums import GameVariant
from backend.app.models.rating_model import PlayerRating

logger = logging.getLogger(__name__)

DEFAULT_RATING = 1000


class RatingGateway(ABC):
    @abstractmethod
    async def get_rating(self, game_variant: GameVariant, user_id: str) -> int:
        ...

    @abstractmethod
    async def set_rating(self, game_variant: GameVariant, user_id: str, rating: int) -> None:
        ...


class MemoryRatingGateway(RatingGateway):
    def __init__(self):
        self._ratings: Dict[Tuple[str, str], int] = {}

    async def get_rating(self, game_variant: GameVariant, user_id: str) -> int:
        return self._ratings.get((str(game_variant), user_id), DEFAULT_RATING)

    async def set_rating(self, game_variant: GameVariant, user_id: str, rating: int) -> None:
        self._ratings[(str(game_variant), user_id)] = int(rating)


class SqlRatingGateway(RatingGateway):
    def __init__(self, session_maker, timeout: float = 10.0):
        self._session_maker = session_maker
        self._timeout = timeout

    async def get_rating(self, game_variant: GameVariant, user_id: str) -> int:
        async def _read():
            async with self._session_maker() as db:
                result = await db.execute(
                    select(PlayerRating.rating).where(
                        PlayerRating.user_id == user_id,
                        PlayerRating.game_variant == str(game_variant),
                    )
                )
                return result.scalar_one_or_none()

        try:
            rating = await asyncio.wait_for(_read(), timeout=self._timeout)
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            # Seeding still works on the baseline; registration must not fail here
            logger.warning("Rating lookup failed for %s/%s: %s", game_variant, user_id, e)
            return DEFAULT_RATING
        return int(rating) if rating is not None else DEFAULT_RATING

    async def set_rating(self, game_variant: GameVariant, user_id: str, rating: int) -> None:
        async def _write():
            async with self._session_maker() as db:
                result = await db.execute(
                    select(PlayerRating).where(
                        PlayerRating.user_id == user_id,
                        PlayerRating.game_variant == str(game_variant),
                    )
                )
                row = result.scalar_one_or_none()
                if not row:
                    row = PlayerRating(user_id=user_id, game_variant=str(game_variant))
                    db.add(row)
                row.rating = int(rating)
                await db.commit()

        try:
            await asyncio.wait_for(_write(), timeout=self._timeout)
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            logger.error("Rating update failed for %s/%s: %s", game_variant, user_id, e)
            raise PersistenceFailure(f"Could not store rating for {user_id}") from e
