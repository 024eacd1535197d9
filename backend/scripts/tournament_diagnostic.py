#!/usr/bin/env python3
"""
Tournament Diagnostic Script
Lists ongoing tournaments and flags stalled or inconsistent bracket matches.

Usage:
    python backend/scripts/tournament_diagnostic.py
"""

import asyncio
import os
import sys

# Add project root to path so we can import from backend.app
sys.path.append(os.path.join(os.path.dirname(__file__), '../../'))

from backend.app.core.config import load_settings
from backend.app.engine.match_state import bracket_issues, expired_matches
from backend.app.models.enums import MatchStatus, TournamentStatus
from backend.app.services.store import create_store
from backend.app.services.tournament_service import utc_now

async def diagnose():
    settings = load_settings()
    if not settings.uses_database:
        print("DATABASE_URL is not set; nothing persistent to diagnose.")
        return

    store = create_store(settings)
    try:
        tournaments = await store.list_tournaments(status=TournamentStatus.ONGOING)
        if not tournaments:
            print("No ongoing tournaments found in database.")
            return

        now = utc_now()
        for t in tournaments:
            rounds = await store.get_bracket(t.id)
            print(f"--- Diagnostic: Tournament {t.id} '{t.name}' ({t.status}) ---")
            print(f"Started: {t.started_at}  Rounds: {len(rounds)}")

            print("Match Status Breakdown:")
            for s in MatchStatus:
                count = sum(1 for r in rounds for m in r.matches if m.status == s)
                print(f"  {s}: {count}")

            print(f"Overdue (awaiting sweep): {len(expired_matches(rounds, now))}")
            issues = bracket_issues(rounds, now)
            print(f"Issues Found: {len(issues)}")
            for issue in issues:
                print(f"  ⚠️  {issue}")
            print()
    finally:
        await store.close()

if __name__ == "__main__":
    asyncio.run(diagnose())
