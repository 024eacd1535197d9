import random
import unittest
from datetime import timedelta

from backend.app.core.errors import InvalidState, NotFound
from backend.app.engine.bracket import (
    build_bracket,
    final_match,
    find_match,
    group_rounds,
    iter_matches,
    next_power_of_two,
    parent_of,
    round_name,
    seed_players,
)
from backend.app.models.enums import MatchStatus, SeedingMethod
from backend.app.schemas.tournament_schema import TBD

from backend.tests.helpers import T0, make_players, make_tournament


class TestBracketSizing(unittest.TestCase):
    def test_next_power_of_two(self):
        self.assertEqual(next_power_of_two(1), 1)
        self.assertEqual(next_power_of_two(2), 2)
        self.assertEqual(next_power_of_two(3), 4)
        self.assertEqual(next_power_of_two(5), 8)
        self.assertEqual(next_power_of_two(16), 16)
        self.assertEqual(next_power_of_two(17), 32)
        with self.assertRaises(ValueError):
            next_power_of_two(0)

    def test_size_and_bye_count_for_all_player_counts(self):
        """For every N >= 2: size = 2^ceil(log2 N), byes = size - N."""
        for n in range(2, 34):
            plan = build_bracket(make_tournament(max_participants=64), make_players(n), T0, random.Random(n))
            size = next_power_of_two(n)
            first_round = plan.rounds[0].matches
            self.assertEqual(len(first_round) * 2, size, f"N={n}")
            slots = [s for m in first_round for s in (m.player1, m.player2)]
            self.assertEqual(slots.count(None), size - n, f"N={n}")
            self.assertEqual(len(plan.rounds), size.bit_length() - 1, f"N={n}")
            self.assertEqual(sorted(plan.seeds.values()), list(range(1, n + 1)))

    def test_fewer_than_two_players_refused(self):
        with self.assertRaises(InvalidState):
            build_bracket(make_tournament(), make_players(1), T0)
        with self.assertRaises(InvalidState):
            build_bracket(make_tournament(), [], T0)


class TestSeeding(unittest.TestCase):
    def test_rating_seeding_is_descending_and_stable(self):
        players = make_players(5, ratings=[1100, 1300, 1100, 1500, 1300])
        ordered = seed_players(players, SeedingMethod.RATING)
        self.assertEqual([p.user_id for p in ordered], ["p4", "p2", "p5", "p1", "p3"])

    def test_random_seeding_is_a_permutation(self):
        players = make_players(10)
        ordered = seed_players(players, SeedingMethod.RANDOM, random.Random(7))
        self.assertEqual(sorted(p.user_id for p in ordered), sorted(p.user_id for p in players))
        # Input list is left untouched
        self.assertEqual([p.user_id for p in players], [f"p{i}" for i in range(1, 11)])

    def test_random_seeding_is_reproducible_with_same_rng(self):
        players = make_players(8)
        first = seed_players(players, SeedingMethod.RANDOM, random.Random(42))
        second = seed_players(players, SeedingMethod.RANDOM, random.Random(42))
        self.assertEqual([p.user_id for p in first], [p.user_id for p in second])


class TestBracketConstruction(unittest.TestCase):
    def test_five_player_bracket(self):
        """
        Scenario: 5 players, rating seeding -> size 8, 3 byes, 3 rounds.
        Seeds 1-4 meet in round 1; seed 5 draws a bye; the last pairing is two byes.
        """
        tournament = make_tournament(seeding=SeedingMethod.RATING)
        players = make_players(5, ratings=[1500, 1400, 1300, 1200, 1100])
        plan = build_bracket(tournament, players, T0)

        self.assertEqual([r.name for r in plan.rounds], ["Quarterfinal", "Semifinal", "Final"])
        self.assertEqual([len(r.matches) for r in plan.rounds], [4, 2, 1])

        r1 = plan.rounds[0].matches
        self.assertEqual((r1[0].player1, r1[0].player2), ("p1", "p2"))
        self.assertEqual((r1[1].player1, r1[1].player2), ("p3", "p4"))
        for m in r1[:2]:
            self.assertEqual(m.status, MatchStatus.PENDING)
            self.assertEqual(m.deadline, T0 + timedelta(hours=48))
            self.assertIsNone(m.winner_user_id)

        # Lone player advances out of the bye
        self.assertEqual(r1[2].status, MatchStatus.FINISHED)
        self.assertEqual(r1[2].winner_user_id, "p5")
        self.assertIsNone(r1[2].deadline)
        # Double bye resolves with no winner
        self.assertEqual(r1[3].status, MatchStatus.FINISHED)
        self.assertIsNone(r1[3].winner_user_id)

        semis = plan.rounds[1].matches
        self.assertEqual((semis[0].player1, semis[0].player2), (TBD, TBD))
        self.assertEqual(semis[0].status, MatchStatus.WAITING)
        # p5 meets nobody in the second semifinal and walks into the final
        self.assertEqual((semis[1].player1, semis[1].player2), ("p5", None))
        self.assertEqual(semis[1].status, MatchStatus.FINISHED)
        self.assertEqual(semis[1].winner_user_id, "p5")

        final = final_match(plan.rounds)
        self.assertEqual((final.player1, final.player2), (TBD, "p5"))
        self.assertEqual(final.status, MatchStatus.WAITING)
        self.assertEqual(plan.seeds, {"p1": 1, "p2": 2, "p3": 3, "p4": 4, "p5": 5})

    def test_two_players_single_final(self):
        plan = build_bracket(make_tournament(), make_players(2), T0, random.Random(1))
        self.assertEqual(len(plan.rounds), 1)
        self.assertEqual(plan.rounds[0].name, "Final")
        final = final_match(plan.rounds)
        self.assertEqual(final.status, MatchStatus.PENDING)
        self.assertEqual(sorted(final.real_players()), ["p1", "p2"])
        self.assertEqual(plan.resolved, [])

    def test_three_players_bye_goes_to_final(self):
        plan = build_bracket(make_tournament(seeding=SeedingMethod.RATING), make_players(3, [1300, 1200, 1100]), T0)
        final = final_match(plan.rounds)
        self.assertEqual(final.player2, "p3")
        self.assertEqual(final.player1, TBD)
        self.assertEqual(final.status, MatchStatus.WAITING)

    def test_later_rounds_use_tournament_deadline_hours(self):
        plan = build_bracket(make_tournament(hours=12), make_players(4), T0, random.Random(3))
        for m in plan.rounds[0].matches:
            self.assertEqual(m.deadline, T0 + timedelta(hours=12))
        self.assertIsNone(plan.rounds[1].matches[0].deadline)

    def test_match_numbers_and_ids(self):
        plan = build_bracket(make_tournament(max_participants=16), make_players(16), T0, random.Random(5))
        for round_ in plan.rounds:
            self.assertEqual([m.match_number for m in round_.matches], list(range(1, len(round_.matches) + 1)))
            self.assertTrue(all(m.round_number == round_.round_number for m in round_.matches))
        ids = [m.id for m in iter_matches(plan.rounds)]
        self.assertEqual(len(ids), len(set(ids)))


class TestBracketTopology(unittest.TestCase):
    def test_each_parent_slot_has_exactly_one_child(self):
        plan = build_bracket(make_tournament(max_participants=32), make_players(32), T0, random.Random(9))
        targets = {}
        for match in iter_matches(plan.rounds):
            located = parent_of(plan.rounds, match)
            if located is None:
                self.assertEqual(match.round_number, len(plan.rounds))
                continue
            parent, slot = located
            key = (parent.id, slot)
            self.assertNotIn(key, targets, "slot fed by two matches")
            targets[key] = match.id
        # Every slot of rounds 2..n is fed
        later_matches = sum(len(r.matches) for r in plan.rounds[1:])
        self.assertEqual(len(targets), later_matches * 2)

    def test_odd_feeds_player1_even_feeds_player2(self):
        plan = build_bracket(make_tournament(), make_players(8), T0, random.Random(2))
        r1 = plan.rounds[0].matches
        parent, slot = parent_of(plan.rounds, r1[2])  # match 3
        self.assertEqual(parent.match_number, 2)
        self.assertEqual(slot, "player1")
        parent, slot = parent_of(plan.rounds, r1[3])  # match 4
        self.assertEqual(parent.match_number, 2)
        self.assertEqual(slot, "player2")

    def test_find_match(self):
        plan = build_bracket(make_tournament(), make_players(4), T0, random.Random(2))
        target = plan.rounds[1].matches[0]
        self.assertIs(find_match(plan.rounds, target.id), target)
        with self.assertRaises(NotFound):
            find_match(plan.rounds, "missing")

    def test_group_rounds_rebuilds_structure(self):
        plan = build_bracket(make_tournament(), make_players(6), T0, random.Random(4))
        flat = list(reversed(list(iter_matches(plan.rounds))))
        rebuilt = group_rounds(flat)
        self.assertEqual([r.name for r in rebuilt], [r.name for r in plan.rounds])
        self.assertEqual(
            [[m.id for m in r.matches] for r in rebuilt],
            [[m.id for m in r.matches] for r in plan.rounds],
        )
        self.assertEqual(group_rounds([]), [])

    def test_round_names(self):
        self.assertEqual(round_name(5, 5), "Final")
        self.assertEqual(round_name(4, 5), "Semifinal")
        self.assertEqual(round_name(3, 5), "Quarterfinal")
        self.assertEqual(round_name(2, 5), "Round 2")
        self.assertEqual(round_name(1, 1), "Final")


if __name__ == "__main__":
    unittest.main()
