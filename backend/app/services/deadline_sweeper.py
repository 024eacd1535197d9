"""
Deadline Sweeper - Background Worker

Periodically:
1. Starts tournaments whose registration deadline passed with at least 2 players,
   and full tournaments whose auto-start on the last registration failed.
2. Forfeits pending matches whose deadline passed (coin flip between the two players).

Both passes re-enter TournamentService exactly like a client would, so they
take the same per-tournament locks as live requests. A failure on one
tournament or match is logged and the sweep moves on.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from backend.app.models.enums import MatchStatus, TournamentStatus
from backend.app.services.tournament_bus import TournamentBus
from backend.app.services.tournament_service import TournamentService

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 5 * 60  # seconds


@dataclass
class SweepReport:
    started_tournaments: List[str] = field(default_factory=list)
    resolved_matches: List[str] = field(default_factory=list)
    failures: int = 0
    skipped: bool = False


class DeadlineSweeper:
    def __init__(
        self,
        service: TournamentService,
        bus: Optional[TournamentBus] = None,
        interval: float = DEFAULT_SWEEP_INTERVAL,
    ):
        self.service = service
        self.bus = bus or TournamentBus()
        self.interval = interval
        self._running = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> SweepReport:
        """One tick. Skipped (not queued) if the previous tick is still running."""
        if self._running.locked():
            logger.warning("Previous sweep still running, skipping this tick")
            return SweepReport(skipped=True)

        async with self._running:
            report = SweepReport()
            await self._start_due_tournaments(report)
            await self._resolve_expired_matches(report)
            if report.started_tournaments or report.resolved_matches or report.failures:
                logger.info(
                    "Sweep done: %d tournaments started, %d matches forfeited, %d failures",
                    len(report.started_tournaments), len(report.resolved_matches), report.failures,
                )
            return report

    async def _start_due_tournaments(self, report: SweepReport):
        now = self.service.now()
        try:
            open_tournaments = await self.service.list_tournaments(status=TournamentStatus.REGISTRATION)
        except Exception:
            logger.exception("Auto-start fetch failed")
            report.failures += 1
            return

        for t in open_tournaments:
            deadline_due = t.registration_deadline is not None and t.registration_deadline < now
            try:
                count = await self.service.store.count_players(t.id)
                # A full field here means its auto-start failed; fewer than 2 players is left for an administrator
                if count < 2 or not (deadline_due or count >= t.max_participants):
                    continue
                await self.service.start_tournament(t.id)
                report.started_tournaments.append(t.id)
            except Exception:
                logger.exception("Auto-start failed for tournament %s", t.id)
                report.failures += 1

    async def _resolve_expired_matches(self, report: SweepReport):
        now = self.service.now()
        try:
            expired = await self.service.store.list_matches(status=MatchStatus.PENDING, deadline_before=now)
        except Exception:
            logger.exception("Deadline match processing failed")
            report.failures += 1
            return

        for match in expired:
            if len(match.real_players()) != 2:
                continue
            try:
                resolved = await self.service.resolve_expired_match(match.tournament_id, match.id)
                if resolved is not None:
                    report.resolved_matches.append(match.id)
            except Exception:
                logger.exception("Deadline resolution failed for match %s", match.id)
                report.failures += 1

    # ---------- Background task ----------

    async def run_forever(self):
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Sweep loop error")
            await self.bus.wait_for_signal(timeout=self.interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
            logger.info("Deadline sweeper started (every %ss)", self.interval)
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Deadline sweeper stopped")

    def trigger(self, reason: str = "manual"):
        """Wake the background loop for an immediate sweep."""
        self.bus.trigger(reason)
