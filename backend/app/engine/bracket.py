"""
Single-elimination bracket construction.

A bracket is a flat list of rounds, each an ordered list of matches. The
parent of a match is found by index arithmetic (see parent_of), never by
object references, so the in-memory and persisted forms are identical.
"""

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from backend.app.core.errors import InvalidState, NotFound
from backend.app.models.enums import MatchStatus, SeedingMethod
from backend.app.schemas.tournament_schema import (
    TBD,
    MatchRecord,
    PlayerRecord,
    RoundRecord,
    TournamentRecord,
)

logger = logging.getLogger(__name__)

MIN_PLAYERS = 2


@dataclass
class BracketPlan:
    rounds: List[RoundRecord]
    seeds: Dict[str, int] = field(default_factory=dict)  # user_id -> seed (1 = top)
    resolved: List[MatchRecord] = field(default_factory=list)  # matches touched by bye resolution


def next_power_of_two(value: int) -> int:
    if value <= 0:
        raise ValueError("Value must be positive")
    return 1 << (value - 1).bit_length()


def round_count(bracket_size: int) -> int:
    return bracket_size.bit_length() - 1


def round_name(round_number: int, total_rounds: int) -> str:
    remaining = total_rounds - round_number
    if remaining == 0:
        return "Final"
    if remaining == 1:
        return "Semifinal"
    if remaining == 2:
        return "Quarterfinal"
    return f"Round {round_number}"


def seed_players(
    players: Sequence[PlayerRecord],
    method: SeedingMethod,
    rng: Optional[random.Random] = None,
) -> List[PlayerRecord]:
    """
    Order players for round-1 placement.
    RANDOM: uniform Fisher-Yates shuffle.
    RATING: descending rating; sorted() is stable, so ties keep registration order.
    """
    ordered = list(players)
    if method == SeedingMethod.RATING:
        return sorted(ordered, key=lambda p: -p.rating)

    rng = rng or random.Random()
    for i in range(len(ordered) - 1, 0, -1):
        j = rng.randint(0, i)
        ordered[i], ordered[j] = ordered[j], ordered[i]
    return ordered


def build_bracket(
    tournament: TournamentRecord,
    players: Sequence[PlayerRecord],
    now: datetime,
    rng: Optional[random.Random] = None,
) -> BracketPlan:
    """Seed the players, lay out every round and advance players who drew a bye."""
    # Late import: match_state imports helpers from this module
    from backend.app.engine.match_state import resolve_byes

    if len(players) < MIN_PLAYERS:
        raise InvalidState(f"At least {MIN_PLAYERS} players are required to build a bracket")

    seeded = seed_players(players, tournament.seeding_method, rng)
    size = next_power_of_two(len(seeded))
    total_rounds = round_count(size)

    # Byes are padded after every real player
    slots: List[Optional[str]] = [p.user_id for p in seeded] + [None] * (size - len(seeded))
    deadline = now + timedelta(hours=tournament.round_deadline_hours)

    first_round: List[MatchRecord] = []
    for index in range(0, size, 2):
        p1, p2 = slots[index], slots[index + 1]
        is_bye = p1 is None or p2 is None
        first_round.append(MatchRecord(
            id=str(uuid.uuid4()),
            tournament_id=tournament.id,
            round_number=1,
            match_number=index // 2 + 1,
            player1=p1,
            player2=p2,
            status=MatchStatus.FINISHED if is_bye else MatchStatus.PENDING,
            deadline=None if is_bye else deadline,
        ))

    rounds = [RoundRecord(round_number=1, name=round_name(1, total_rounds), matches=first_round)]
    for r in range(2, total_rounds + 1):
        matches = [
            MatchRecord(
                id=str(uuid.uuid4()),
                tournament_id=tournament.id,
                round_number=r,
                match_number=m,
                player1=TBD,
                player2=TBD,
                status=MatchStatus.WAITING,
            )
            for m in range(1, size // (2 ** r) + 1)
        ]
        rounds.append(RoundRecord(round_number=r, name=round_name(r, total_rounds), matches=matches))

    resolved = resolve_byes(rounds, now, tournament.round_deadline_hours)
    seeds = {p.user_id: i + 1 for i, p in enumerate(seeded)}

    logger.info(
        "Built bracket for tournament %s: %d players, size %d, %d byes, %d rounds",
        tournament.id, len(seeded), size, size - len(seeded), total_rounds,
    )
    return BracketPlan(rounds=rounds, seeds=seeds, resolved=resolved)


# --- Lookups ---

def iter_matches(rounds: Sequence[RoundRecord]) -> Iterator[MatchRecord]:
    for round_ in rounds:
        yield from round_.matches


def find_match(rounds: Sequence[RoundRecord], match_id: str) -> MatchRecord:
    for match in iter_matches(rounds):
        if match.id == match_id:
            return match
    raise NotFound(f"Match {match_id} not found")


def parent_of(rounds: Sequence[RoundRecord], match: MatchRecord) -> Optional[Tuple[MatchRecord, str]]:
    """
    Returns (parent match, slot attribute) or None for the final.
    Odd match numbers feed player1, even ones player2.
    """
    round_index = match.round_number - 1
    if round_index >= len(rounds) - 1:
        return None
    parent = rounds[round_index + 1].matches[(match.match_number - 1) // 2]
    slot = "player1" if match.match_number % 2 == 1 else "player2"
    return parent, slot


def final_match(rounds: Sequence[RoundRecord]) -> Optional[MatchRecord]:
    if not rounds or not rounds[-1].matches:
        return None
    return rounds[-1].matches[0]


def group_rounds(matches: Sequence[MatchRecord]) -> List[RoundRecord]:
    """Rebuild the round list from flat match rows (as read back from storage)."""
    if not matches:
        return []
    total_rounds = max(m.round_number for m in matches)
    rounds = [
        RoundRecord(round_number=r, name=round_name(r, total_rounds), matches=[])
        for r in range(1, total_rounds + 1)
    ]
    for match in sorted(matches, key=lambda m: (m.round_number, m.match_number)):
        rounds[match.round_number - 1].matches.append(match)
    return rounds
