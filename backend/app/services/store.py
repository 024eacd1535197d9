"""
Persistence gateway for tournaments, registrations, matches and the leaderboard.

Two interchangeable backends implement TournamentStore: MemoryTournamentStore
(in-process, one owned instance per engine) and SqlTournamentStore (SQLAlchemy
async). create_store() picks one at startup; nothing above this layer knows
which backend is active.

Every call is atomic per row. register_player is the one multi-row operation:
it inserts only if the tournament still has room and the user is not yet
registered, and returns the new participant count.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.app.core.config import Settings
from backend.app.models.enums import GameVariant, MatchStatus, TournamentStatus
from backend.app.schemas.tournament_schema import (
    LeaderboardRecord,
    MatchRecord,
    PlayerRecord,
    RoundRecord,
    TournamentRecord,
)


class TournamentStore(ABC):
    # --- Tournaments ---
    @abstractmethod
    async def create_tournament(self, record: TournamentRecord) -> TournamentRecord: ...

    @abstractmethod
    async def get_tournament(self, tournament_id: str) -> Optional[TournamentRecord]: ...

    @abstractmethod
    async def list_tournaments(
        self,
        game_variant: Optional[GameVariant] = None,
        status: Optional[TournamentStatus] = None,
    ) -> List[TournamentRecord]: ...

    @abstractmethod
    async def update_tournament(self, tournament_id: str, fields: Dict[str, Any]) -> TournamentRecord: ...

    # --- Registrations ---
    @abstractmethod
    async def register_player(self, player: PlayerRecord, capacity: Optional[int] = None) -> int: ...

    @abstractmethod
    async def list_players(self, tournament_id: str) -> List[PlayerRecord]:
        """Players in registration order."""

    @abstractmethod
    async def count_players(self, tournament_id: str) -> int: ...

    @abstractmethod
    async def is_player_registered(self, tournament_id: str, user_id: str) -> bool: ...

    @abstractmethod
    async def assign_seeds(self, tournament_id: str, seeds: Dict[str, int]) -> None: ...

    # --- Bracket / matches ---
    @abstractmethod
    async def save_bracket(self, tournament_id: str, rounds: List[RoundRecord]) -> None:
        """Replace the tournament's matches with `rounds` in one atomic write."""

    @abstractmethod
    async def get_bracket(self, tournament_id: str) -> List[RoundRecord]: ...

    @abstractmethod
    async def get_match(self, match_id: str) -> Optional[MatchRecord]: ...

    @abstractmethod
    async def list_matches(
        self,
        tournament_id: Optional[str] = None,
        status: Optional[MatchStatus] = None,
        deadline_before: Optional[datetime] = None,
    ) -> List[MatchRecord]: ...

    @abstractmethod
    async def upsert_match(self, match: MatchRecord) -> None: ...

    @abstractmethod
    async def update_match(self, match_id: str, fields: Dict[str, Any]) -> None: ...

    # --- Leaderboard ---
    @abstractmethod
    async def upsert_leaderboard_entry(self, user_id: str, delta: Dict[str, int]) -> LeaderboardRecord: ...

    @abstractmethod
    async def list_leaderboard(self, limit: int = 50) -> List[LeaderboardRecord]:
        """Ordered by points, highest first."""

    # --- Admin ---
    @abstractmethod
    async def delete_all(self) -> None: ...

    async def close(self) -> None:
        pass


LEADERBOARD_FIELDS = ("wins", "finals", "semifinals", "points")


def create_store(settings: Settings) -> TournamentStore:
    """Select the backend once, at startup."""
    if settings.uses_database:
        from backend.app.services.sql_store import SqlTournamentStore
        return SqlTournamentStore.from_url(settings.database_url, timeout=settings.store_timeout_seconds)

    from backend.app.services.memory_store import MemoryTournamentStore
    return MemoryTournamentStore()
