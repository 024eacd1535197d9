import logging
from typing import Dict, List, Sequence

from backend.app.core.config import ScoringTable
from backend.app.engine.bracket import final_match
from backend.app.schemas.tournament_schema import LeaderboardRecord, RoundRecord
from backend.app.services.store import TournamentStore

logger = logging.getLogger(__name__)


class LeaderboardAggregator:
    def __init__(self, store: TournamentStore, scoring: ScoringTable = None):
        self.store = store
        self.scoring = scoring or ScoringTable()

    def tournament_deltas(self, rounds: Sequence[RoundRecord], winner_user_id: str) -> Dict[str, Dict[str, int]]:
        """
        Per-user increments for a completed bracket: the winner gets a win,
        both finalists a final, the semifinal losers a semifinal.
        """
        deltas: Dict[str, Dict[str, int]] = {}

        def add(user_id: str, key: str, points: int):
            row = deltas.setdefault(user_id, {})
            row[key] = row.get(key, 0) + 1
            row["points"] = row.get("points", 0) + points

        add(winner_user_id, "wins", self.scoring.win)

        final = final_match(rounds)
        if final is not None:
            for user_id in final.real_players():
                add(user_id, "finals", self.scoring.final)

        if len(rounds) >= 2:
            for match in rounds[-2].matches:
                for user_id in match.real_players():
                    if user_id != match.winner_user_id:
                        add(user_id, "semifinals", self.scoring.semifinal)
        return deltas

    async def record_tournament(self, rounds: Sequence[RoundRecord], winner_user_id: str) -> List[LeaderboardRecord]:
        updated = []
        for user_id, delta in self.tournament_deltas(rounds, winner_user_id).items():
            updated.append(await self.store.upsert_leaderboard_entry(user_id, delta))
        logger.info("Leaderboard updated for %d players (champion %s)", len(updated), winner_user_id)
        return updated

    async def top(self, limit: int = 50) -> List[LeaderboardRecord]:
        return await self.store.list_leaderboard(limit)
