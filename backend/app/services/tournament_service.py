"""
Tournament Service - Lifecycle Controller

Single entry point for every tournament state change:
- Creation and registration (auto-start when the field fills up)
- Bracket generation on start
- Match start / result reporting and deadline forfeits
- Completion, leaderboard scoring and notifications

Used by the HTTP routes and by the deadline sweeper alike. Each mutating call
holds the tournament's lock for the whole read -> mutate -> persist -> notify
sequence; different tournaments never wait on each other.
"""

import asyncio
import logging
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from backend.app.core.config import Settings
from backend.app.core.errors import InvalidState, NotFound, TournamentError
from backend.app.core.events import NotificationEmitter
from backend.app.engine import match_state
from backend.app.engine.bracket import build_bracket, final_match, find_match
from backend.app.engine.rating import RatingGateway
from backend.app.models.enums import (
    TOURNAMENT_TRANSITIONS,
    GameVariant,
    MatchStatus,
    SeedingMethod,
    TournamentStatus,
)
from backend.app.schemas.tournament_schema import (
    TBD,
    LeaderboardRecord,
    MatchRecord,
    PlayerRecord,
    RoundRecord,
    TournamentRecord,
    public_bracket,
    public_tournament,
)
from backend.app.services.leaderboard import LeaderboardAggregator
from backend.app.services.store import TournamentStore

logger = logging.getLogger(__name__)

# Socket event names
TOURNAMENT_UPDATED = "tournamentUpdated"
TOURNAMENT_STARTED = "tournamentStarted"
TOURNAMENT_FINISHED = "tournamentFinished"
TOURNAMENT_CANCELLED = "tournamentCancelled"
BRACKET_UPDATED = "bracketUpdated"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TournamentService:
    def __init__(
        self,
        store: TournamentStore,
        ratings: RatingGateway,
        emitter: Optional[NotificationEmitter] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.ratings = ratings
        self.emitter = emitter or NotificationEmitter()
        self.settings = settings or Settings()
        self.leaderboard = LeaderboardAggregator(store, self.settings.scoring)
        self._clock = clock or utc_now
        self._rng = rng or random.Random()
        self._locks: Dict[str, asyncio.Lock] = {}

    def now(self) -> datetime:
        return self._clock()

    def lock_for(self, tournament_id: str) -> asyncio.Lock:
        lock = self._locks.get(tournament_id)
        if lock is None:
            lock = self._locks[tournament_id] = asyncio.Lock()
        return lock

    def _forget_lock(self, tournament_id: str):
        # Terminal tournaments take no more writes; holders keep their reference until release
        self._locks.pop(tournament_id, None)

    # ---------- Reads ----------

    async def get_tournament(self, tournament_id: str) -> TournamentRecord:
        t = await self.store.get_tournament(tournament_id)
        if not t:
            raise NotFound(f"Tournament {tournament_id} not found")
        return t

    async def list_tournaments(
        self,
        game_variant: Optional[GameVariant] = None,
        status: Optional[TournamentStatus] = None,
    ) -> List[TournamentRecord]:
        return await self.store.list_tournaments(game_variant=game_variant, status=status)

    async def describe(self, t: TournamentRecord) -> Dict[str, Any]:
        """Public view including the live participant count."""
        return public_tournament(t, await self.store.count_players(t.id))

    async def list_players(self, tournament_id: str) -> List[PlayerRecord]:
        await self.get_tournament(tournament_id)
        return await self.store.list_players(tournament_id)

    async def is_player_registered(self, tournament_id: str, user_id: str) -> bool:
        return await self.store.is_player_registered(tournament_id, user_id)

    async def get_bracket(self, tournament_id: str) -> List[RoundRecord]:
        await self.get_tournament(tournament_id)
        return await self.store.get_bracket(tournament_id)

    async def bracket_payload(self, tournament_id: str, rounds: Optional[Sequence[RoundRecord]] = None) -> List[Dict[str, Any]]:
        if rounds is None:
            rounds = await self.get_bracket(tournament_id)
        players = await self.store.list_players(tournament_id)
        return public_bracket(list(rounds), {p.user_id: p.user_name for p in players})

    async def get_leaderboard(self, limit: Optional[int] = None) -> List[LeaderboardRecord]:
        return await self.leaderboard.top(limit or self.settings.leaderboard_limit)

    # ---------- Creation ----------

    async def create_tournament(
        self,
        name: str,
        game_variant: str,
        max_participants: int,
        created_by: Optional[str] = None,
        seeding_method: str = SeedingMethod.RANDOM,
        registration_deadline: Optional[datetime] = None,
        round_deadline_hours: Optional[int] = None,
        prize_pool: Optional[str] = None,
    ) -> TournamentRecord:
        if not name or not name.strip():
            raise ValueError("Tournament name is required")
        if max_participants is None or max_participants <= 1:
            raise ValueError("max_participants must be greater than 1")
        variant = GameVariant(game_variant)  # ValueError on unknown variant
        seeding = SeedingMethod(seeding_method)
        hours = round_deadline_hours
        if hours is None:
            hours = self.settings.default_round_deadline_hours
        if hours <= 0:
            raise ValueError("round_deadline_hours must be positive")
        if registration_deadline is not None and registration_deadline.tzinfo is None:
            registration_deadline = registration_deadline.replace(tzinfo=timezone.utc)

        record = TournamentRecord(
            id=str(uuid.uuid4()),
            name=name.strip(),
            game_variant=variant,
            max_participants=max_participants,
            status=TournamentStatus.REGISTRATION,
            seeding_method=seeding,
            registration_deadline=registration_deadline,
            round_deadline_hours=hours,
            prize_pool=prize_pool,
            created_by=created_by,
            created_at=self.now(),
        )
        t = await self.store.create_tournament(record)
        logger.info("Created tournament %s (%s, %s, max %d)", t.id, t.name, t.game_variant, t.max_participants)
        self._publish(TOURNAMENT_UPDATED, public_tournament(t, 0))
        return t

    # ---------- Registration ----------

    async def register_player(
        self,
        tournament_id: str,
        user_id: str,
        user_name: str,
        rating: Optional[int] = None,
    ) -> PlayerRecord:
        if not user_id or user_id == TBD:
            raise ValueError("A valid user id is required")

        async with self.lock_for(tournament_id):
            t = await self.get_tournament(tournament_id)
            if t.status != TournamentStatus.REGISTRATION:
                raise InvalidState(f"Tournament {t.id} is not in registration phase")

            if rating is None:
                rating = await self.ratings.get_rating(t.game_variant, user_id)
            player = PlayerRecord(
                tournament_id=t.id,
                user_id=user_id,
                user_name=user_name or user_id,
                rating=rating,
                joined_at=self.now(),
            )
            # Insert-if-room: capacity and duplicate checks happen inside the store
            count = await self.store.register_player(player, capacity=t.max_participants)
            logger.info("Registered %s for tournament %s (%d/%d)", user_id, t.id, count, t.max_participants)
            self._publish(TOURNAMENT_UPDATED, public_tournament(t, count))

            if count == t.max_participants:
                try:
                    await self._start_locked(t)
                except TournamentError:
                    # The registration stands; the deadline sweeper retries full tournaments
                    logger.exception("Auto-start failed for tournament %s", t.id)
            return player

    # ---------- Start tournament & bracket generation ----------

    async def start_tournament(self, tournament_id: str) -> List[RoundRecord]:
        async with self.lock_for(tournament_id):
            t = await self.get_tournament(tournament_id)
            return await self._start_locked(t)

    async def _start_locked(self, t: TournamentRecord) -> List[RoundRecord]:
        if t.status != TournamentStatus.REGISTRATION:
            raise InvalidState(f"Tournament {t.id} is {t.status}, cannot start")
        players = await self.store.list_players(t.id)
        if len(players) < 2:
            raise InvalidState(f"Tournament {t.id} needs at least 2 players to start")

        now = self.now()
        plan = build_bracket(t, players, now, self._rng)

        await self.store.assign_seeds(t.id, plan.seeds)
        await self.store.save_bracket(t.id, plan.rounds)
        t = await self._transition(t, TournamentStatus.ONGOING, started_at=now)
        logger.info("Tournament %s started with %d players", t.id, len(players))

        names = {p.user_id: p.user_name for p in players}
        bracket = public_bracket(plan.rounds, names)
        self._publish(TOURNAMENT_STARTED, {**public_tournament(t, len(players)), "bracket": bracket})
        self._publish(BRACKET_UPDATED, {"tournamentId": t.id, "bracket": bracket})

        await self._complete_if_decided(t, plan.rounds)
        return plan.rounds

    # ---------- Matches ----------

    async def start_match(self, tournament_id: str, match_id: str, game_room_id: str) -> MatchRecord:
        async with self.lock_for(tournament_id):
            t = await self._require_status(tournament_id, TournamentStatus.ONGOING)
            rounds = await self.store.get_bracket(t.id)
            match = find_match(rounds, match_id)

            match_state.start_match(match, game_room_id, self.now())
            await self.store.update_match(match.id, {
                "status": match.status,
                "started_at": match.started_at,
                "game_room_id": match.game_room_id,
            })
            logger.info("Match %s started in room %s", match.id, game_room_id)
            await self._publish_bracket(t.id, rounds)
            return match

    async def report_match_result(self, tournament_id: str, match_id: str, winner_user_id: str) -> MatchRecord:
        async with self.lock_for(tournament_id):
            t = await self.get_tournament(tournament_id)
            rounds = await self.store.get_bracket(t.id)
            match = find_match(rounds, match_id)
            if match.is_resolved:
                return match
            if t.status != TournamentStatus.ONGOING:
                raise InvalidState(f"Tournament {t.id} is {t.status}")

            changed = match_state.record_result(rounds, match, winner_user_id, self.now(), t.round_deadline_hours)
            await self._persist(changed)
            logger.info("Match %s won by %s", match.id, winner_user_id)
            await self._publish_bracket(t.id, rounds)
            await self._complete_if_decided(t, rounds)
            return match

    async def resolve_expired_match(self, tournament_id: str, match_id: str) -> Optional[MatchRecord]:
        """
        Deadline path. Returns None when the match stopped being eligible
        (reported, started or already forfeited) since the caller looked at it.
        """
        async with self.lock_for(tournament_id):
            t = await self.get_tournament(tournament_id)
            if t.status != TournamentStatus.ONGOING:
                return None
            rounds = await self.store.get_bracket(t.id)
            match = find_match(rounds, match_id)
            now = self.now()
            if (
                match.status != MatchStatus.PENDING
                or not match_state.deadline_passed(match, now)
                or len(match.real_players()) != 2
            ):
                logger.debug("Match %s no longer eligible for deadline resolution", match_id)
                return None

            changed = match_state.resolve_by_deadline(rounds, match, now, t.round_deadline_hours, self._rng)
            await self._persist(changed)
            await self._publish_bracket(t.id, rounds)
            await self._complete_if_decided(t, rounds)
            return match

    # ---------- Administrative ----------

    async def cancel_tournament(self, tournament_id: str) -> TournamentRecord:
        async with self.lock_for(tournament_id):
            t = await self.get_tournament(tournament_id)
            t = await self._transition(t, TournamentStatus.CANCELLED, finished_at=self.now())
            logger.info("Tournament %s cancelled", t.id)
            self._publish(TOURNAMENT_CANCELLED, {"tournamentId": t.id})
            await self._publish_tournament(t)
            self._forget_lock(t.id)
            return t

    async def reset_all(self):
        await self.store.delete_all()
        self._locks.clear()
        logger.warning("All tournament data deleted")

    async def ensure_sample_tournaments(self) -> List[TournamentRecord]:
        """Create demo tournaments (one running, the rest open) when the store is empty."""
        if await self.store.list_tournaments():
            return []
        logger.info("Creating sample tournaments...")
        now = self.now()
        samples = [
            ("Briskula Daily Clash", GameVariant.BRISKULA, 8, SeedingMethod.RANDOM, timedelta(minutes=45)),
            ("Treseta Evening Cup", GameVariant.TRESETA, 16, SeedingMethod.RATING, timedelta(hours=3)),
            ("Briskula Weekend Open", GameVariant.BRISKULA, 32, SeedingMethod.RANDOM, timedelta(days=2)),
            ("Treseta Quick Four", GameVariant.TRESETA, 4, SeedingMethod.RATING, timedelta(days=7)),
        ]
        created = []
        for name, variant, size, seeding, window in samples:
            created.append(await self.create_tournament(
                name, variant, size,
                created_by="system",
                seeding_method=seeding,
                registration_deadline=now + window,
            ))

        for i in range(1, 5):
            await self.register_player(created[0].id, f"seed{i}", f"Seed{i}")
        await self.start_tournament(created[0].id)
        return created

    # ---------- Helpers ----------

    async def _require_status(self, tournament_id: str, status: TournamentStatus) -> TournamentRecord:
        t = await self.get_tournament(tournament_id)
        if t.status != status:
            raise InvalidState(f"Tournament {t.id} is {t.status}, expected {status}")
        return t

    async def _transition(self, t: TournamentRecord, status: TournamentStatus, **fields) -> TournamentRecord:
        # Status only ever moves forward
        if status not in TOURNAMENT_TRANSITIONS[t.status]:
            raise InvalidState(f"Tournament {t.id} cannot go from {t.status} to {status}")
        return await self.store.update_tournament(t.id, {"status": status, **fields})

    async def _persist(self, changed: Sequence[MatchRecord]):
        seen = set()
        for match in changed:
            if match.id in seen:
                continue
            seen.add(match.id)
            await self.store.upsert_match(match)

    async def _complete_if_decided(self, t: TournamentRecord, rounds: Sequence[RoundRecord]):
        final = final_match(rounds)
        if final is None or not final.is_resolved or not final.winner_user_id:
            return
        winner = final.winner_user_id
        t = await self._transition(t, TournamentStatus.FINISHED, winner_user_id=winner, finished_at=self.now())
        await self.leaderboard.record_tournament(rounds, winner)
        logger.info("Tournament %s finished, winner %s", t.id, winner)
        self._publish(TOURNAMENT_FINISHED, {"tournamentId": t.id, "winner": winner})
        await self._publish_tournament(t)
        self._forget_lock(t.id)

    async def _publish_bracket(self, tournament_id: str, rounds: Sequence[RoundRecord]):
        try:
            bracket = await self.bracket_payload(tournament_id, rounds)
        except TournamentError:
            # The transition is already persisted; only the notification is lost
            logger.exception("Could not build bracket payload for %s", tournament_id)
            return
        self._publish(BRACKET_UPDATED, {"tournamentId": tournament_id, "bracket": bracket})

    async def _publish_tournament(self, t: TournamentRecord):
        try:
            payload = await self.describe(t)
        except TournamentError:
            logger.exception("Could not build tournament payload for %s", t.id)
            return
        self._publish(TOURNAMENT_UPDATED, payload)

    def _publish(self, event_name: str, payload: Dict[str, Any]):
        try:
            self.emitter.publish(event_name, payload)
        except Exception:
            logger.exception("Publishing %s failed", event_name)
