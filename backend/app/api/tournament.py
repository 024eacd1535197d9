from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from backend.app.models.enums import GameVariant, SeedingMethod, TournamentStatus
from backend.app.schemas.tournament_schema import public_match
from backend.app.services.tournament_service import TournamentService

router = APIRouter()


def get_service(request: Request) -> TournamentService:
    return request.app.state.tournament_service


class TournamentCreate(BaseModel):
    name: str
    game_type: GameVariant
    max_participants: int = Field(gt=1)
    seeding_method: SeedingMethod = SeedingMethod.RANDOM
    registration_deadline: Optional[datetime] = None
    round_deadline_hours: Optional[int] = Field(default=None, gt=0)
    prize_pool: Optional[str] = None
    created_by: Optional[str] = None

class PlayerRegister(BaseModel):
    user_id: str
    user_name: str
    rating: Optional[int] = None

class MatchStart(BaseModel):
    game_room_id: str

class MatchResult(BaseModel):
    winner_user_id: str


@router.post("")
async def create_tournament(payload: TournamentCreate, service: TournamentService = Depends(get_service)):
    t = await service.create_tournament(
        payload.name,
        payload.game_type,
        payload.max_participants,
        created_by=payload.created_by,
        seeding_method=payload.seeding_method,
        registration_deadline=payload.registration_deadline,
        round_deadline_hours=payload.round_deadline_hours,
        prize_pool=payload.prize_pool,
    )
    return await service.describe(t)

@router.get("")
async def list_tournaments(
    game_type: Optional[GameVariant] = None,
    status: Optional[TournamentStatus] = None,
    service: TournamentService = Depends(get_service),
):
    tournaments = await service.list_tournaments(game_variant=game_type, status=status)
    return [await service.describe(t) for t in tournaments]

@router.get("/{id}")
async def get_tournament(id: str, service: TournamentService = Depends(get_service)):
    t = await service.get_tournament(id)
    return await service.describe(t)

@router.get("/{id}/players")
async def list_players(id: str, service: TournamentService = Depends(get_service)) -> List[dict]:
    players = await service.list_players(id)
    return [
        {"userId": p.user_id, "userName": p.user_name, "rating": p.rating, "seed": p.seed}
        for p in players
    ]

@router.get("/{id}/players/{user_id}")
async def is_registered(id: str, user_id: str, service: TournamentService = Depends(get_service)):
    return {"registered": await service.is_player_registered(id, user_id)}

@router.post("/{id}/register")
async def register_player(id: str, payload: PlayerRegister, service: TournamentService = Depends(get_service)):
    player = await service.register_player(id, payload.user_id, payload.user_name, rating=payload.rating)
    t = await service.get_tournament(id)
    return {
        "player": {"userId": player.user_id, "userName": player.user_name, "rating": player.rating},
        "tournament": await service.describe(t),
    }

@router.post("/{id}/start")
async def start_tournament(id: str, service: TournamentService = Depends(get_service)):
    rounds = await service.start_tournament(id)
    return {"message": "Tournament started", "bracket": await service.bracket_payload(id, rounds)}

@router.get("/{id}/bracket")
async def get_bracket(id: str, service: TournamentService = Depends(get_service)):
    return await service.bracket_payload(id)

@router.post("/{id}/matches/{match_id}/start")
async def start_match(id: str, match_id: str, payload: MatchStart, service: TournamentService = Depends(get_service)):
    match = await service.start_match(id, match_id, payload.game_room_id)
    return public_match(match)

@router.post("/{id}/matches/{match_id}/result")
async def report_result(id: str, match_id: str, payload: MatchResult, service: TournamentService = Depends(get_service)):
    match = await service.report_match_result(id, match_id, payload.winner_user_id)
    return public_match(match)

@router.post("/{id}/cancel")
async def cancel_tournament(id: str, service: TournamentService = Depends(get_service)):
    t = await service.cancel_tournament(id)
    return await service.describe(t)
