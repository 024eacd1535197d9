import asyncio
import random
import unittest
from datetime import timedelta

from sqlalchemy.exc import OperationalError

from backend.app.core.errors import CapacityExceeded, DuplicateRegistration, NotFound, PersistenceFailure
from backend.app.engine.bracket import build_bracket, final_match
from backend.app.engine.rating import DEFAULT_RATING, SqlRatingGateway
from backend.app.models.enums import GameVariant, MatchStatus, SeedingMethod, TournamentStatus
from backend.app.schemas.tournament_schema import TBD
from backend.app.services.sql_store import SqlTournamentStore
from backend.app.services.tournament_service import TournamentService

from backend.tests.helpers import T0, FakeClock, make_players, make_tournament

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


class SqlStoreTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = SqlTournamentStore.from_url(SQLITE_URL, timeout=5)
        await self.store.init_schema()

    async def asyncTearDown(self):
        await self.store.close()


class TestSqlStoreRecords(SqlStoreTestCase):
    async def test_tournament_round_trip(self):
        record = make_tournament(max_participants=4).model_copy(update={"registration_deadline": T0 + timedelta(hours=2)})
        await self.store.create_tournament(record)

        loaded = await self.store.get_tournament(record.id)
        self.assertEqual(loaded.name, "Test Cup")
        self.assertEqual(loaded.game_variant, GameVariant.BRISKULA)
        self.assertEqual(loaded.status, TournamentStatus.REGISTRATION)
        self.assertEqual(loaded.registration_deadline, T0 + timedelta(hours=2))
        self.assertIsNone(await self.store.get_tournament("missing"))

        updated = await self.store.update_tournament(record.id, {"status": TournamentStatus.ONGOING, "started_at": T0})
        self.assertEqual(updated.status, TournamentStatus.ONGOING)
        self.assertEqual(
            [t.id for t in await self.store.list_tournaments(status=TournamentStatus.ONGOING)],
            [record.id],
        )
        self.assertEqual(await self.store.list_tournaments(game_variant=GameVariant.TRESETA), [])

        with self.assertRaises(NotFound):
            await self.store.update_tournament("missing", {"status": TournamentStatus.CANCELLED})

    async def test_registration_is_capacity_checked(self):
        await self.store.create_tournament(make_tournament(max_participants=2))
        p1, p2, p3 = make_players(3)

        self.assertEqual(await self.store.register_player(p1, capacity=2), 1)
        with self.assertRaises(DuplicateRegistration):
            await self.store.register_player(p1, capacity=2)
        self.assertEqual(await self.store.register_player(p2, capacity=2), 2)
        with self.assertRaises(CapacityExceeded):
            await self.store.register_player(p3, capacity=2)

        self.assertEqual(await self.store.count_players("t-1"), 2)
        self.assertEqual([p.user_id for p in await self.store.list_players("t-1")], ["p1", "p2"])
        self.assertTrue(await self.store.is_player_registered("t-1", "p2"))
        self.assertFalse(await self.store.is_player_registered("t-1", "p3"))

        await self.store.assign_seeds("t-1", {"p1": 2, "p2": 1})
        self.assertEqual({p.user_id: p.seed for p in await self.store.list_players("t-1")}, {"p1": 2, "p2": 1})

    async def test_register_for_unknown_tournament(self):
        with self.assertRaises(NotFound):
            await self.store.register_player(make_players(1)[0], capacity=4)

    async def test_bracket_round_trip(self):
        tournament = make_tournament(seeding=SeedingMethod.RATING)
        await self.store.create_tournament(tournament)
        plan = build_bracket(tournament, make_players(5, [1500, 1400, 1300, 1200, 1100]), T0)
        await self.store.save_bracket(tournament.id, plan.rounds)

        rounds = await self.store.get_bracket(tournament.id)
        self.assertEqual([r.name for r in rounds], ["Quarterfinal", "Semifinal", "Final"])
        first = rounds[0].matches
        self.assertEqual(first[0].status, MatchStatus.PENDING)
        self.assertEqual(first[0].deadline, T0 + timedelta(hours=48))
        self.assertEqual((first[3].player1, first[3].player2), (None, None))
        self.assertEqual((final_match(rounds).player1, final_match(rounds).player2), (TBD, "p5"))

        pending = await self.store.list_matches(status=MatchStatus.PENDING, deadline_before=T0 + timedelta(hours=49))
        self.assertEqual([m.id for m in pending], [first[0].id, first[1].id])
        self.assertEqual(await self.store.list_matches(status=MatchStatus.PENDING, deadline_before=T0), [])

        match = first[0]
        match.status = MatchStatus.FINISHED
        match.winner_user_id = "p2"
        await self.store.upsert_match(match)
        await self.store.update_match(first[1].id, {"status": MatchStatus.PLAYING, "game_room_id": "room-9"})

        self.assertEqual((await self.store.get_match(match.id)).winner_user_id, "p2")
        self.assertEqual((await self.store.get_match(first[1].id)).game_room_id, "room-9")
        self.assertIsNone(await self.store.get_match("missing"))
        with self.assertRaises(NotFound):
            await self.store.update_match("missing", {"status": MatchStatus.PLAYING})

    async def test_saving_bracket_again_replaces_matches(self):
        tournament = make_tournament()
        await self.store.create_tournament(tournament)
        first = build_bracket(tournament, make_players(5), T0, random.Random(1))
        await self.store.save_bracket(tournament.id, first.rounds)

        second = build_bracket(tournament, make_players(4), T0, random.Random(2))
        await self.store.save_bracket(tournament.id, second.rounds)

        rounds = await self.store.get_bracket(tournament.id)
        self.assertEqual([len(r.matches) for r in rounds], [2, 1])
        self.assertEqual(
            {m.id for r in rounds for m in r.matches},
            {m.id for r in second.rounds for m in r.matches},
        )

    async def test_leaderboard_accumulates_and_orders(self):
        await self.store.upsert_leaderboard_entry("a", {"wins": 1, "finals": 1, "points": 5})
        await self.store.upsert_leaderboard_entry("b", {"finals": 1, "points": 2})
        row = await self.store.upsert_leaderboard_entry("b", {"wins": 1, "finals": 1, "points": 5})
        self.assertEqual((row.wins, row.finals, row.points), (1, 2, 7))

        board = await self.store.list_leaderboard()
        self.assertEqual([r.user_id for r in board], ["b", "a"])
        self.assertEqual(len(await self.store.list_leaderboard(limit=1)), 1)

    async def test_delete_all(self):
        await self.store.create_tournament(make_tournament())
        await self.store.register_player(make_players(1)[0])
        await self.store.upsert_leaderboard_entry("p1", {"wins": 1})
        await self.store.delete_all()
        self.assertEqual(await self.store.list_tournaments(), [])
        self.assertEqual(await self.store.list_leaderboard(), [])
        self.assertEqual(await self.store.count_players("t-1"), 0)


class TestSqlRatings(SqlStoreTestCase):
    async def test_unknown_player_gets_baseline(self):
        ratings = SqlRatingGateway(self.store.session_maker)
        self.assertEqual(await ratings.get_rating(GameVariant.BRISKULA, "nobody"), DEFAULT_RATING)

    async def test_ratings_are_per_variant(self):
        ratings = SqlRatingGateway(self.store.session_maker)
        await ratings.set_rating(GameVariant.BRISKULA, "u1", 1320)
        await ratings.set_rating(GameVariant.BRISKULA, "u1", 1340)
        self.assertEqual(await ratings.get_rating(GameVariant.BRISKULA, "u1"), 1340)
        self.assertEqual(await ratings.get_rating(GameVariant.TRESETA, "u1"), DEFAULT_RATING)


class TestServiceOnSql(SqlStoreTestCase):
    async def test_full_tournament(self):
        clock = FakeClock()
        ratings = SqlRatingGateway(self.store.session_maker)
        service = TournamentService(self.store, ratings, clock=clock, rng=random.Random(3))
        await ratings.set_rating(GameVariant.TRESETA, "ana", 1600)

        t = await service.create_tournament("Night Cup", GameVariant.TRESETA, 3, seeding_method=SeedingMethod.RATING)
        for user in ("bo", "ana", "cy"):
            await service.register_player(t.id, user, user.title())

        rounds = await service.get_bracket(t.id)
        self.assertEqual((await service.get_tournament(t.id)).status, TournamentStatus.ONGOING)
        semi, bye = rounds[0].matches
        self.assertEqual((semi.player1, semi.player2), ("ana", "bo"))
        self.assertEqual((bye.player1, bye.player2, bye.winner_user_id), ("cy", None, "cy"))

        await service.report_match_result(t.id, semi.id, "ana")
        final = final_match(await service.get_bracket(t.id))
        self.assertEqual((final.player1, final.player2, final.status), ("ana", "cy", MatchStatus.PENDING))

        await service.report_match_result(t.id, final.id, "cy")
        done = await service.get_tournament(t.id)
        self.assertEqual((done.status, done.winner_user_id), (TournamentStatus.FINISHED, "cy"))
        self.assertEqual((await service.get_leaderboard())[0].user_id, "cy")


def broken_session_maker():
    raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))


class TestSqlFailures(SqlStoreTestCase):
    async def test_slow_operation_times_out(self):
        async def slow():
            await asyncio.sleep(1)

        store = SqlTournamentStore(self.store.session_maker, timeout=0.01)
        with self.assertRaises(PersistenceFailure):
            await store._run(slow)

    async def test_driver_error_becomes_persistence_failure(self):
        async def failing():
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        with self.assertLogs("backend.app.services.sql_store", level="ERROR"):
            with self.assertRaises(PersistenceFailure):
                await self.store._run(failing)

    async def test_unreachable_database(self):
        store = SqlTournamentStore(broken_session_maker)
        with self.assertLogs("backend.app.services.sql_store", level="ERROR"):
            with self.assertRaises(PersistenceFailure):
                await store.get_tournament("t-1")

    async def test_engine_errors_pass_through(self):
        async def missing():
            raise NotFound("Tournament t-1 not found")

        with self.assertRaises(NotFound):
            await self.store._run(missing)

    async def test_rating_write_failure(self):
        ratings = SqlRatingGateway(broken_session_maker)
        with self.assertLogs("backend.app.engine.rating", level="ERROR"):
            with self.assertRaises(PersistenceFailure):
                await ratings.set_rating(GameVariant.BRISKULA, "u1", 1200)
        with self.assertLogs("backend.app.engine.rating", level="WARNING"):
            self.assertEqual(await ratings.get_rating(GameVariant.BRISKULA, "u1"), DEFAULT_RATING)


if __name__ == "__main__":
    unittest.main()
