from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.app.core.errors import CapacityExceeded, DuplicateRegistration, NotFound
from backend.app.engine.bracket import group_rounds
from backend.app.schemas.tournament_schema import (
    LeaderboardRecord,
    MatchRecord,
    PlayerRecord,
    RoundRecord,
    TournamentRecord,
)
from backend.app.services.store import LEADERBOARD_FIELDS, TournamentStore


class MemoryTournamentStore(TournamentStore):
    """
    In-process fallback store. Records are copied in and out so callers never
    hold references into the store. No await happens between a check and the
    write that depends on it, which makes each method atomic on the event loop.
    """

    def __init__(self):
        self.tournaments: Dict[str, TournamentRecord] = {}
        self.players: Dict[str, Dict[str, PlayerRecord]] = {}  # tournament_id -> user_id -> player (insertion ordered)
        self.matches: Dict[str, MatchRecord] = {}
        self.leaderboard: Dict[str, LeaderboardRecord] = {}

    # --- Tournaments ---
    async def create_tournament(self, record: TournamentRecord) -> TournamentRecord:
        self.tournaments[record.id] = record.model_copy(deep=True)
        self.players[record.id] = {}
        return record.model_copy(deep=True)

    async def get_tournament(self, tournament_id: str) -> Optional[TournamentRecord]:
        t = self.tournaments.get(tournament_id)
        return t.model_copy(deep=True) if t else None

    async def list_tournaments(self, game_variant=None, status=None) -> List[TournamentRecord]:
        return [
            t.model_copy(deep=True)
            for t in self.tournaments.values()
            if (game_variant is None or t.game_variant == game_variant)
            and (status is None or t.status == status)
        ]

    async def update_tournament(self, tournament_id: str, fields: Dict[str, Any]) -> TournamentRecord:
        t = self.tournaments.get(tournament_id)
        if not t:
            raise NotFound(f"Tournament {tournament_id} not found")
        updated = t.model_copy(update=fields, deep=True)
        self.tournaments[tournament_id] = updated
        return updated.model_copy(deep=True)

    # --- Registrations ---
    async def register_player(self, player: PlayerRecord, capacity: Optional[int] = None) -> int:
        if player.tournament_id not in self.tournaments:
            raise NotFound(f"Tournament {player.tournament_id} not found")
        registered = self.players.setdefault(player.tournament_id, {})
        if player.user_id in registered:
            raise DuplicateRegistration(f"{player.user_id} is already registered")
        if capacity is not None and len(registered) >= capacity:
            raise CapacityExceeded(f"Tournament {player.tournament_id} is full")
        registered[player.user_id] = player.model_copy(deep=True)
        return len(registered)

    async def list_players(self, tournament_id: str) -> List[PlayerRecord]:
        return [p.model_copy(deep=True) for p in self.players.get(tournament_id, {}).values()]

    async def count_players(self, tournament_id: str) -> int:
        return len(self.players.get(tournament_id, {}))

    async def is_player_registered(self, tournament_id: str, user_id: str) -> bool:
        if not user_id:
            return False
        return user_id in self.players.get(tournament_id, {})

    async def assign_seeds(self, tournament_id: str, seeds: Dict[str, int]) -> None:
        for user_id, player in self.players.get(tournament_id, {}).items():
            if user_id in seeds:
                player.seed = seeds[user_id]

    # --- Bracket / matches ---
    async def save_bracket(self, tournament_id: str, rounds: List[RoundRecord]) -> None:
        # Replaces whatever an earlier, unfinished start left behind
        self.matches = {mid: m for mid, m in self.matches.items() if m.tournament_id != tournament_id}
        for round_ in rounds:
            for match in round_.matches:
                self.matches[match.id] = match.model_copy(deep=True)

    async def get_bracket(self, tournament_id: str) -> List[RoundRecord]:
        rows = [m.model_copy(deep=True) for m in self.matches.values() if m.tournament_id == tournament_id]
        return group_rounds(rows)

    async def get_match(self, match_id: str) -> Optional[MatchRecord]:
        m = self.matches.get(match_id)
        return m.model_copy(deep=True) if m else None

    async def list_matches(self, tournament_id=None, status=None, deadline_before=None) -> List[MatchRecord]:
        rows = [
            m for m in self.matches.values()
            if (tournament_id is None or m.tournament_id == tournament_id)
            and (status is None or m.status == status)
            and (deadline_before is None or (m.deadline is not None and m.deadline < deadline_before))
        ]
        rows.sort(key=lambda m: (m.tournament_id, m.round_number, m.match_number))
        return [m.model_copy(deep=True) for m in rows]

    async def upsert_match(self, match: MatchRecord) -> None:
        self.matches[match.id] = match.model_copy(deep=True)

    async def update_match(self, match_id: str, fields: Dict[str, Any]) -> None:
        m = self.matches.get(match_id)
        if not m:
            raise NotFound(f"Match {match_id} not found")
        self.matches[match_id] = m.model_copy(update=fields, deep=True)

    # --- Leaderboard ---
    async def upsert_leaderboard_entry(self, user_id: str, delta: Dict[str, int]) -> LeaderboardRecord:
        row = self.leaderboard.get(user_id) or LeaderboardRecord(user_id=user_id)
        for key in LEADERBOARD_FIELDS:
            setattr(row, key, getattr(row, key) + int(delta.get(key, 0)))
        row.updated_at = datetime.now(timezone.utc)
        self.leaderboard[user_id] = row
        return row.model_copy(deep=True)

    async def list_leaderboard(self, limit: int = 50) -> List[LeaderboardRecord]:
        rows = sorted(self.leaderboard.values(), key=lambda r: (-r.points, -r.wins, r.user_id))
        return [r.model_copy(deep=True) for r in rows[:limit]]

    # --- Admin ---
    async def delete_all(self) -> None:
        self.tournaments.clear()
        self.players.clear()
        self.matches.clear()
        self.leaderboard.clear()
