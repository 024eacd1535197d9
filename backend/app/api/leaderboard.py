from fastapi import APIRouter, Depends, Query
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from backend.app.api.tournament import get_service
from backend.app.services.tournament_service import TournamentService

router = APIRouter()

# --- Schemas ---
class LeaderboardEntry(BaseModel):
    user_id: str
    wins: int
    finals: int
    semifinals: int
    points: int
    updated_at: Optional[datetime] = None

@router.get("", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    service: TournamentService = Depends(get_service),
):
    """Tournament standings, highest points first."""
    rows = await service.get_leaderboard(limit)
    return [LeaderboardEntry(**row.model_dump()) for row in rows]
