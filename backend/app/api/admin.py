from fastapi import APIRouter, Depends, HTTPException, Request, status

from backend.app.api.tournament import get_service
from backend.app.models.enums import TournamentStatus
from backend.app.services.tournament_service import TournamentService

router = APIRouter()

RESET_CONFIRMATION = "I-UNDERSTAND-THIS-DELETES-EVERYTHING"

@router.delete("/reset", status_code=status.HTTP_200_OK)
async def reset_tournaments(confirmation: str, service: TournamentService = Depends(get_service)):
    """
    Deletes every tournament, registration, match and leaderboard row.
    Query Param 'confirmation' must equal 'I-UNDERSTAND-THIS-DELETES-EVERYTHING'.
    """
    if confirmation != RESET_CONFIRMATION:
        raise HTTPException(
            status_code=400,
            detail="Invalid confirmation string. Operation aborted."
        )
    await service.reset_all()
    return {"message": "Tournament data successfully wiped."}

@router.post("/sweep")
async def run_sweep(request: Request, background: bool = False):
    """
    Run the deadline sweep now instead of waiting for the next tick.
    With background=true the running sweeper loop is woken instead and the
    call returns without a report.
    """
    sweeper = request.app.state.sweeper
    if background:
        sweeper.trigger("admin")
        return {"queued": True}
    report = await sweeper.run_once()
    return {
        "skipped": report.skipped,
        "startedTournaments": report.started_tournaments,
        "resolvedMatches": report.resolved_matches,
        "failures": report.failures,
    }

@router.get("/status")
async def get_admin_status(service: TournamentService = Depends(get_service)):
    """
    Tournament counts per status for the admin dashboard.
    """
    tournaments = await service.list_tournaments()
    counts = {s.value: 0 for s in TournamentStatus}
    for t in tournaments:
        counts[t.status.value] += 1
    return {"tournaments": counts, "total": len(tournaments)}
