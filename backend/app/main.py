import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.api.admin import router as admin_router
from backend.app.api.leaderboard import router as leaderboard_router
from backend.app.api.tournament import router as tournament_router
from backend.app.api.websocket_manager import ConnectionManager
from backend.app.core.config import Settings, load_settings
from backend.app.core.errors import TournamentError
from backend.app.core.events import NotificationEmitter
from backend.app.engine.rating import MemoryRatingGateway, SqlRatingGateway
from backend.app.services.deadline_sweeper import DeadlineSweeper
from backend.app.services.store import create_store
from backend.app.services.tournament_bus import TournamentBus
from backend.app.services.tournament_service import TournamentService

logger = logging.getLogger(__name__)


# --- LIFESPAN MANAGER (schema, sample data, sweeper) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    store = app.state.store
    if hasattr(store, "init_schema"):
        await store.init_schema()

    if app.state.settings.dev_seed:
        try:
            await app.state.tournament_service.ensure_sample_tournaments()
        except TournamentError as e:
            logger.error("Sample tournament seeding failed: %s", e)

    app.state.sweeper.start()
    yield
    await app.state.sweeper.stop()
    await app.state.emitter.drain()
    await store.close()
# -------------------------------------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    store = create_store(settings)
    if settings.uses_database:
        ratings = SqlRatingGateway(store.session_maker, timeout=settings.store_timeout_seconds)
    else:
        ratings = MemoryRatingGateway()

    emitter = NotificationEmitter()
    manager = ConnectionManager()
    emitter.subscribe(manager.on_event)

    service = TournamentService(store, ratings, emitter, settings)
    sweeper = DeadlineSweeper(service, TournamentBus(), interval=settings.sweep_interval_seconds)

    app = FastAPI(title="Card Game Tournaments", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.emitter = emitter
    app.state.ws_manager = manager
    app.state.tournament_service = service
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TournamentError)
    async def tournament_error_handler(request: Request, exc: TournamentError):
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "error": type(exc).__name__})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # Register routers
    app.include_router(tournament_router, prefix="/tournaments", tags=["Tournaments"])
    app.include_router(leaderboard_router, prefix="/leaderboard", tags=["Leaderboard"])
    app.include_router(admin_router, prefix="/admin", tags=["Admin"])

    @app.websocket("/ws/tournaments")
    async def tournament_websocket(websocket: WebSocket):
        await manager.handle_session(websocket)

    return app


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
app = create_app()
