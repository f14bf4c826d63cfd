import unittest
from datetime import timedelta

from support import make_services, seed_competition, submit_for

from ngage.leaderboard import trend_direction, trend_percentage
from ngage_shared.leaderboard import LeaderboardFilter, LeaderboardSort
from ngage_shared.types import LeaderboardSortField, NotificationType, TrendDirection


class LeaderboardServiceTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.s.judging.assign_judge(self.world.event.id, "judge", "admin")

    def _score(self, team, member_id, value):
        submission = submit_for(self.env, self.world, team, member_id)
        self.s.judging.score_submission(submission.id, "judge", {"overall": value})
        return submission

    def _updates_for(self, member_id):
        return self.s.notifications.get_notifications_by_type(
            member_id, NotificationType.LEADERBOARD_UPDATE
        )

    def test_publish_notifies_on_new_leader_only(self):
        event_id = self.world.event.id
        self._score(self.world.team_a, "alice", 70)
        self._score(self.world.team_b, "carol", 60)

        published = self.s.leaderboards.publish_leaderboard(event_id)
        self.assertEqual(published.leader.team_name, "Alpha")
        stored = self.s.leaderboards.get_latest_leaderboard(event_id)
        self.assertEqual([e.team_id for e in stored.entries], [e.team_id for e in published.entries])
        for member_id in ("alice", "bob", "carol", "dave"):
            self.assertEqual(len(self._updates_for(member_id)), 1)
        self.assertEqual(self._updates_for("admin"), [])

        self.s.leaderboards.publish_leaderboard(event_id)
        self.assertEqual(len(self._updates_for("alice")), 1)

        self.env.clock.advance(minutes=5)
        self._score(self.world.team_b, "dave", 100)
        republished = self.s.leaderboards.publish_leaderboard(event_id)
        self.assertEqual(republished.leader.team_name, "Bravo")
        latest = self._updates_for("bob")[0]
        self.assertEqual(len(self._updates_for("bob")), 2)
        self.assertEqual(latest.data["leaderTeamId"], self.world.team_b.id)

    def test_announce_results_lists_winners(self):
        self._score(self.world.team_a, "alice", 70)
        self._score(self.world.team_b, "carol", 90)
        self.s.leaderboards.announce_results(self.world.event.id)
        results = self.s.notifications.get_notifications_by_type(
            "dave", NotificationType.RESULT_ANNOUNCEMENT
        )
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].message, "Final standings: 1. Bravo, 2. Alpha")

    def test_filtered_view_renumbers_positions(self):
        self._score(self.world.team_a, "alice", 70)
        self._score(self.world.team_b, "carol", 90)
        event_id = self.world.event.id

        view = self.s.leaderboards.get_filtered_leaderboard(
            event_id, LeaderboardFilter(max_score=80)
        )
        self.assertEqual([(e.team_name, e.position) for e in view.entries], [("Alpha", 1)])
        self.assertTrue(view.metadata["filtered"])
        self.assertEqual(view.metadata["totalEntries"], 2)
        self.assertEqual(view.metadata["filteredEntries"], 1)

        by_name = self.s.leaderboards.get_filtered_leaderboard(
            event_id, sort=LeaderboardSort(LeaderboardSortField.TEAM_NAME, ascending=True)
        )
        self.assertEqual([e.team_name for e in by_name.entries], ["Alpha", "Bravo"])

        second = self.s.leaderboards.get_filtered_leaderboard(event_id, limit=1, offset=1)
        self.assertEqual([(e.team_name, e.position) for e in second.entries], [("Alpha", 1)])

        full = self.s.leaderboards.calculate_event_leaderboard(event_id)
        self.assertEqual([e.position for e in full.entries], [1, 2])

    def test_individual_leaderboard(self):
        self._score(self.world.team_a, "alice", 70)
        self._score(self.world.team_a, "bob", 90)
        self._score(self.world.team_b, "carol", 80)

        individual = self.s.leaderboards.calculate_individual_leaderboard(self.world.event.id)
        self.assertEqual(
            [(e.member_name, e.position) for e in individual.entries],
            [("Bob Member", 1), ("Carol Member", 2), ("Alice Member", 3)],
        )
        self.assertEqual(individual.entries[0].team_ids, [self.world.team_a.id])
        self.assertEqual(individual.metadata["membersWithScores"], 3)


class ScoreHistoryTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(
            self.env, deadline_in=timedelta(days=5), duration=timedelta(days=6)
        )
        self.s.judging.assign_judge(self.world.event.id, "judge", "admin")
        for value in (50, 60, 75):
            submission = submit_for(self.env, self.world, self.world.team_a, "alice")
            self.s.judging.score_submission(submission.id, "judge", {"overall": value})
            self.env.clock.advance(days=1)

    def test_history_is_chronological(self):
        history = self.s.leaderboards.get_team_score_history(self.world.team_a.id)
        self.assertEqual([p.score for p in history.entries], [50.0, 60.0, 75.0])
        self.assertEqual(history.entries[0].event_name, "Spring Hackathon")
        self.assertEqual(history.metadata["filteredSubmissions"], 3)

        recent = self.s.leaderboards.get_team_score_history(
            self.world.team_a.id, start=self.env.clock() - timedelta(days=2, hours=1)
        )
        self.assertEqual([p.score for p in recent.entries], [60.0, 75.0])

    def test_trend(self):
        trend = self.s.leaderboards.get_team_score_trend(self.world.team_a.id)
        self.assertEqual(trend.direction, TrendDirection.UPWARD)
        self.assertAlmostEqual(trend.percentage_change, 50.0)
        self.assertAlmostEqual(trend.average_score, 185 / 3)
        self.assertEqual(trend.metadata["highestScore"], 75.0)

        empty = self.s.leaderboards.get_team_score_trend(self.world.team_b.id)
        self.assertEqual(empty.direction, TrendDirection.STABLE)
        self.assertEqual(empty.data_points, [])

    def test_trend_helpers(self):
        self.assertEqual(trend_direction([80, 70, 75, 60]), TrendDirection.DOWNWARD)
        self.assertEqual(trend_direction([80]), TrendDirection.STABLE)
        self.assertEqual(trend_percentage([0, 50]), 0.0)
        self.assertAlmostEqual(trend_percentage([80, 60]), -25.0)


if __name__ == "__main__":
    unittest.main()
