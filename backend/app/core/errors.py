"""
Typed failures raised by the tournament engine.

The HTTP layer maps each class to a status code (see main.py); the
deadline sweeper logs them per record and carries on.
"""


class TournamentError(Exception):
    """Base class for every failure the engine raises on purpose."""
    status_code = 400


class NotFound(TournamentError):
    status_code = 404


class InvalidState(TournamentError):
    status_code = 409


class BracketConflict(InvalidState):
    """A parent slot already holds a different winner."""


class CapacityExceeded(TournamentError):
    status_code = 409


class DuplicateRegistration(TournamentError):
    status_code = 409


class PersistenceFailure(TournamentError):
    status_code = 503
