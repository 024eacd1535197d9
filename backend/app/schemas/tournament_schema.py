from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Any, Dict
from datetime import datetime, timezone

from backend.app.models.enums import RESOLVED_MATCH_STATUSES, GameVariant, SeedingMethod, TournamentStatus, MatchStatus

# Slot values: a user id, TBD (not yet determined) or None (bye)
TBD = "TBD"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything we store is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_real_player(slot: Optional[str]) -> bool:
    return slot is not None and slot != TBD


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TournamentRecord(_Record):
    id: str
    name: str
    game_variant: GameVariant
    max_participants: int = Field(gt=1)
    status: TournamentStatus = TournamentStatus.REGISTRATION
    seeding_method: SeedingMethod = SeedingMethod.RANDOM
    registration_deadline: Optional[datetime] = None
    round_deadline_hours: int = Field(default=48, gt=0)
    prize_pool: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    winner_user_id: Optional[str] = None

    normalize_utc = field_validator(
        "registration_deadline", "created_at", "started_at", "finished_at"
    )(_as_utc)


class PlayerRecord(_Record):
    tournament_id: str
    user_id: str
    user_name: str
    rating: int = 1000
    seed: Optional[int] = None
    joined_at: datetime

    normalize_utc = field_validator("joined_at")(_as_utc)


class MatchRecord(_Record):
    id: str
    tournament_id: str
    round_number: int
    match_number: int
    player1: Optional[str] = TBD
    player2: Optional[str] = TBD
    winner_user_id: Optional[str] = None
    status: MatchStatus = MatchStatus.WAITING
    deadline: Optional[datetime] = None
    game_room_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    normalize_utc = field_validator("deadline", "started_at", "finished_at")(_as_utc)

    def real_players(self) -> List[str]:
        return [p for p in (self.player1, self.player2) if is_real_player(p)]

    @property
    def slots_determined(self) -> bool:
        return self.player1 != TBD and self.player2 != TBD

    @property
    def is_resolved(self) -> bool:
        return self.status in RESOLVED_MATCH_STATUSES


class RoundRecord(_Record):
    round_number: int
    name: str
    matches: List[MatchRecord] = Field(default_factory=list)


class LeaderboardRecord(_Record):
    user_id: str
    wins: int = 0
    finals: int = 0
    semifinals: int = 0
    points: int = 0
    updated_at: Optional[datetime] = None

    normalize_utc = field_validator("updated_at")(_as_utc)


# --- Event payloads (camelCase for socket clients) ---

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def public_tournament(t: TournamentRecord, current_participants: int) -> Dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "gameType": t.game_variant.value,
        "maxParticipants": t.max_participants,
        "currentParticipants": current_participants,
        "registrationDeadline": _iso(t.registration_deadline),
        "roundDeadlineHours": t.round_deadline_hours,
        "seedingMethod": t.seeding_method.value,
        "status": t.status.value,
        "prizePool": t.prize_pool,
        "createdAt": _iso(t.created_at),
        "startedAt": _iso(t.started_at),
        "finishedAt": _iso(t.finished_at),
        "winner": t.winner_user_id,
    }


def public_match(m: MatchRecord, names: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    names = names or {}

    def label(slot: Optional[str]) -> str:
        if slot is None:
            return "BYE"
        if slot == TBD:
            return TBD
        return names.get(slot, slot)

    return {
        "id": m.id,
        "roundNumber": m.round_number,
        "matchNumber": m.match_number,
        "player1": m.player1,
        "player2": m.player2,
        "player1Name": label(m.player1),
        "player2Name": label(m.player2),
        "winner": m.winner_user_id,
        "status": m.status.value,
        "deadline": _iso(m.deadline),
        "gameRoomId": m.game_room_id,
        "startedAt": _iso(m.started_at),
        "finishedAt": _iso(m.finished_at),
    }


def public_bracket(rounds: List[RoundRecord], names: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
    return [
        {
            "roundNumber": r.round_number,
            "name": r.name,
            "matches": [public_match(m, names) for m in r.matches],
        }
        for r in rounds
    ]
