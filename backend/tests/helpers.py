from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

from backend.app.models.enums import GameVariant, SeedingMethod
from backend.app.schemas.tournament_schema import PlayerRecord, TournamentRecord

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


class RecordingListener:
    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, event_name: str, payload: Dict[str, Any]):
        self.events.append((event_name, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def last(self, event_name: str) -> Dict[str, Any]:
        for name, payload in reversed(self.events):
            if name == event_name:
                return payload
        raise AssertionError(f"No {event_name} event published")


def make_tournament(max_participants=8, seeding=SeedingMethod.RANDOM, hours=48) -> TournamentRecord:
    return TournamentRecord(
        id="t-1",
        name="Test Cup",
        game_variant=GameVariant.BRISKULA,
        max_participants=max_participants,
        seeding_method=seeding,
        round_deadline_hours=hours,
        created_at=T0,
    )


def make_players(count: int, ratings=None) -> List[PlayerRecord]:
    ratings = ratings or [1000] * count
    return [
        PlayerRecord(
            tournament_id="t-1",
            user_id=f"p{i + 1}",
            user_name=f"Player {i + 1}",
            rating=ratings[i],
            joined_at=T0 + timedelta(minutes=i),
        )
        for i in range(count)
    ]
