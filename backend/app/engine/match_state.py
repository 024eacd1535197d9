"""
Match lifecycle: waiting -> pending -> playing -> finished | forfeit.

Every function mutates MatchRecords inside a bracket (list of rounds) and
returns the matches it touched, so the caller can persist exactly those.
An empty list means nothing changed.
"""

import logging
import random
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from backend.app.core.errors import BracketConflict, InvalidState
from backend.app.engine.bracket import iter_matches, parent_of
from backend.app.models.enums import MatchStatus
from backend.app.schemas.tournament_schema import TBD, MatchRecord, RoundRecord

logger = logging.getLogger(__name__)


def deadline_passed(match: MatchRecord, now: datetime) -> bool:
    return match.deadline is not None and match.deadline < now


def start_match(match: MatchRecord, game_room_id: str, now: datetime) -> MatchRecord:
    if match.status != MatchStatus.PENDING:
        raise InvalidState(f"Match {match.id} is {match.status}, expected pending")
    match.status = MatchStatus.PLAYING
    match.started_at = now
    match.game_room_id = game_room_id
    return match


def propagate(
    rounds: Sequence[RoundRecord],
    match: MatchRecord,
    now: datetime,
    deadline_hours: int,
) -> List[MatchRecord]:
    """
    Write a resolved match's winner into its parent slot and advance the parent.

    Safe to re-run: writing the value a slot already holds is a no-op. A slot
    holding a different value raises BracketConflict. A resolved match with
    no winner (both inputs were byes) propagates a bye.
    """
    if not match.is_resolved:
        return []
    located = parent_of(rounds, match)
    if located is None:
        return []
    parent, slot = located

    value = match.winner_user_id
    current = getattr(parent, slot)
    if current == value:
        return []
    if current != TBD:
        raise BracketConflict(
            f"Match {parent.id} {slot} already holds {current!r}, refusing {value!r}"
        )

    setattr(parent, slot, value)
    changed = [parent]

    if parent.status == MatchStatus.WAITING and parent.slots_determined:
        players = parent.real_players()
        if len(players) == 2:
            parent.status = MatchStatus.PENDING
            parent.deadline = now + timedelta(hours=deadline_hours)
        else:
            # One side (or both) was a bye: resolve straight through
            parent.status = MatchStatus.FINISHED
            parent.winner_user_id = players[0] if players else None
            parent.finished_at = now
            changed.extend(propagate(rounds, parent, now, deadline_hours))
    return changed


def resolve_byes(rounds: Sequence[RoundRecord], now: datetime, deadline_hours: int) -> List[MatchRecord]:
    """Advance the lone real player out of every round-1 bye match."""
    changed: List[MatchRecord] = []
    if not rounds:
        return changed
    for match in rounds[0].matches:
        if match.status != MatchStatus.FINISHED:
            continue
        if match.winner_user_id is None:
            players = match.real_players()
            if len(players) > 1:
                continue
            if players:
                match.winner_user_id = players[0]
                match.finished_at = now
                changed.append(match)
        changed.extend(propagate(rounds, match, now, deadline_hours))
    return changed


def record_result(
    rounds: Sequence[RoundRecord],
    match: MatchRecord,
    winner_user_id: str,
    now: datetime,
    deadline_hours: int,
) -> List[MatchRecord]:
    if match.is_resolved:
        # Duplicate report: leave the match exactly as it is
        return []
    if match.status not in (MatchStatus.PENDING, MatchStatus.PLAYING):
        raise InvalidState(f"Match {match.id} is {match.status}, cannot record a result")
    if winner_user_id not in match.real_players():
        raise InvalidState(f"{winner_user_id} is not a player in match {match.id}")

    match.winner_user_id = winner_user_id
    match.status = MatchStatus.FINISHED
    match.finished_at = now
    return [match] + propagate(rounds, match, now, deadline_hours)


def resolve_by_deadline(
    rounds: Sequence[RoundRecord],
    match: MatchRecord,
    now: datetime,
    deadline_hours: int,
    rng: Optional[random.Random] = None,
) -> List[MatchRecord]:
    """
    Forfeit an expired pending match. With two players the winner is a coin
    flip; with one, that player wins.
    """
    if match.status != MatchStatus.PENDING:
        raise InvalidState(f"Match {match.id} is {match.status}, only pending matches expire")
    if not deadline_passed(match, now):
        raise InvalidState(f"Match {match.id} deadline has not passed")
    players = match.real_players()
    if not players:
        raise InvalidState(f"Match {match.id} has no players to advance")

    rng = rng or random.Random()
    winner = rng.choice(players) if len(players) == 2 else players[0]
    match.winner_user_id = winner
    match.status = MatchStatus.FORFEIT
    match.finished_at = now
    logger.info("Match %s expired, %s advances by forfeit", match.id, winner)
    return [match] + propagate(rounds, match, now, deadline_hours)


def bracket_issues(rounds: Sequence[RoundRecord], now: datetime) -> List[str]:
    """Human-readable list of stalled or inconsistent matches."""
    issues = []
    for match in iter_matches(rounds):
        label = f"R{match.round_number}M{match.match_number}"
        if match.status == MatchStatus.PENDING and deadline_passed(match, now):
            issues.append(f"{label}: pending past its deadline ({match.deadline.isoformat()})")
        if match.status == MatchStatus.WAITING and match.slots_determined:
            issues.append(f"{label}: both inputs known but still waiting")
        if match.status == MatchStatus.PENDING and len(match.real_players()) != 2:
            issues.append(f"{label}: pending without two players")
        if match.is_resolved and match.winner_user_id not in (None, match.player1, match.player2):
            issues.append(f"{label}: winner {match.winner_user_id} did not play in this match")
        if match.is_resolved:
            located = parent_of(rounds, match)
            if located is not None:
                parent, slot = located
                if getattr(parent, slot) != match.winner_user_id:
                    issues.append(f"{label}: winner not propagated to R{parent.round_number}M{parent.match_number}")
    return issues


def expired_matches(rounds: Sequence[RoundRecord], now: datetime) -> List[MatchRecord]:
    """Pending matches past their deadline with both players assigned."""
    return [
        m for m in iter_matches(rounds)
        if m.status == MatchStatus.PENDING
        and deadline_passed(m, now)
        and len(m.real_players()) == 2
    ]
