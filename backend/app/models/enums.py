from enum import StrEnum

class GameVariant(StrEnum):
    BRISKULA = "briskula"
    TRESETA = "treseta"

class SeedingMethod(StrEnum):
    RANDOM = "random"
    RATING = "elo"

class TournamentStatus(StrEnum):
    REGISTRATION = "registration"
    ONGOING = "ongoing"
    FINISHED = "finished"
    CANCELLED = "cancelled"

class MatchStatus(StrEnum):
    WAITING = "waiting"
    PENDING = "pending"
    PLAYING = "playing"
    FINISHED = "finished"
    FORFEIT = "forfeit"

# Forward-only transitions for Tournament.status
TOURNAMENT_TRANSITIONS = {
    TournamentStatus.REGISTRATION: {TournamentStatus.ONGOING, TournamentStatus.CANCELLED},
    TournamentStatus.ONGOING: {TournamentStatus.FINISHED, TournamentStatus.CANCELLED},
    TournamentStatus.FINISHED: set(),
    TournamentStatus.CANCELLED: set(),
}

RESOLVED_MATCH_STATUSES = (MatchStatus.FINISHED, MatchStatus.FORFEIT)
