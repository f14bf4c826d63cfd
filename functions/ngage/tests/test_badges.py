import unittest

from support import make_services, seed_competition, submit_for

from ngage.badges import level_for, level_title, streak_badge_id
from ngage.errors import NotFoundError, OperationError, ValidationError
from ngage_shared.types import (
    BadgeCategory,
    BadgeRarity,
    MilestoneType,
    NotificationType,
    StreakType,
)


class LevelTests(unittest.TestCase):
    def test_levels_and_titles(self):
        self.assertEqual(level_for(0), 1)
        self.assertEqual(level_for(999), 1)
        self.assertEqual(level_for(1000), 2)
        self.assertEqual(level_title(1), "Beginner")
        self.assertEqual(level_title(6), "Intermediate")
        self.assertEqual(level_title(20), "Advanced")
        self.assertEqual(level_title(50), "Expert")
        self.assertEqual(level_title(51), "Master")
        self.assertEqual(
            streak_badge_id(StreakType.SUBMISSION, 5), "streak_submission_5days"
        )


class BadgeAwardTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.badge = self.s.badges.create_badge(
            " First Blood ",
            "First submission",
            BadgeCategory.PARTICIPATION,
            BadgeRarity.RARE,
            point_value=150,
        )

    def test_award_adds_points_and_notifies(self):
        awarded = self.s.badges.award_badge("alice", self.badge.id, event_id=self.world.event.id)
        self.assertEqual(awarded.id, f"alice_{self.badge.id}")
        self.assertEqual(self.badge.name, "First Blood")
        self.assertTrue(self.s.badges.has_badge("alice", self.badge.id))

        points = self.s.badges.get_member_points("alice")
        self.assertEqual(points.total_points, 150)
        self.assertEqual(points.category_points, {"participation": 150})

        notices = self.s.notifications.get_notifications_by_type(
            "alice", NotificationType.BADGE_AWARDED
        )
        self.assertEqual(len(notices), 1)
        self.assertEqual(notices[0].data["badgeName"], "First Blood")
        self.assertEqual(notices[0].data["rarity"], "rare")

    def test_badge_is_awarded_once(self):
        self.s.badges.award_badge("alice", self.badge.id)
        with self.assertRaises(OperationError):
            self.s.badges.award_badge("alice", self.badge.id)
        self.assertEqual(self.s.badges.get_member_points("alice").total_points, 150)

    def test_inactive_badge_is_not_awarded(self):
        self.s.badges.deactivate_badge(self.badge.id)
        with self.assertRaises(OperationError):
            self.s.badges.award_badge("alice", self.badge.id)
        self.assertEqual(self.s.badges.get_badges(), [])
        self.assertEqual(len(self.s.badges.get_badges(active_only=False)), 1)

    def test_hidden_badges_are_left_out(self):
        self.s.badges.award_badge("alice", self.badge.id)
        self.s.badges.set_badge_visibility("alice", self.badge.id, False)
        self.assertEqual(self.s.badges.get_member_badges("alice"), [])
        self.assertEqual(len(self.s.badges.get_member_badges("alice", include_hidden=True)), 1)
        with self.assertRaises(NotFoundError):
            self.s.badges.set_badge_visibility("bob", self.badge.id, False)

    def test_points_must_be_positive(self):
        with self.assertRaises(ValidationError):
            self.s.badges.add_points("alice", 0, "special")
        with self.assertRaises(ValidationError):
            self.s.badges.create_badge("Broken", "", BadgeCategory.SPECIAL, point_value=-1)

    def test_points_leaderboard_is_scoped_to_group(self):
        self.s.badges.add_points("alice", 1200, "performance")
        self.s.badges.add_points("bob", 300, "social")
        self.s.badges.add_points("stranger", 5000, "social")

        ranked = self.s.badges.get_points_leaderboard(self.world.group.id)
        self.assertEqual([p.member_id for p in ranked], ["alice", "bob"])
        self.assertEqual(ranked[0].level, 2)
        self.assertEqual(ranked[0].current_level_points, 200)
        self.assertEqual(ranked[0].next_level_points, 2000)
        self.assertEqual(self.s.badges.get_points_leaderboard()[0].member_id, "stranger")


class StreakTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        seed_competition(self.env)

    def record(self):
        return self.s.badges.record_activity("alice", StreakType.DAILY_LOGIN)

    def test_consecutive_days_extend_the_streak(self):
        self.assertEqual(self.record().current_streak, 1)
        self.env.clock.advance(hours=2)
        self.assertEqual(self.record().current_streak, 1)
        self.env.clock.advance(days=1)
        streak = self.record()
        self.assertEqual((streak.current_streak, streak.longest_streak), (2, 2))

        self.env.clock.advance(days=3)
        streak = self.record()
        self.assertEqual((streak.current_streak, streak.longest_streak), (1, 2))
        self.assertEqual(streak.streak_start_date, self.env.clock())

    def test_fifth_day_awards_the_streak_badge(self):
        self.s.badges.create_badge(
            "Regular",
            "Five days in a row",
            BadgeCategory.PARTICIPATION,
            point_value=50,
            badge_id=streak_badge_id(StreakType.DAILY_LOGIN, 5),
        )
        for _ in range(4):
            self.record()
            self.env.clock.advance(days=1)
        self.assertFalse(self.s.badges.has_badge("alice", "streak_daily_login_5days"))

        self.assertEqual(self.record().current_streak, 5)
        self.assertTrue(self.s.badges.has_badge("alice", "streak_daily_login_5days"))
        self.assertEqual(self.s.badges.get_member_points("alice").total_points, 50)

    def test_missing_streak_badge_is_skipped(self):
        for _ in range(5):
            streak = self.record()
            self.env.clock.advance(days=1)
        self.assertEqual(streak.current_streak, 5)
        self.assertEqual(self.s.badges.get_member_badges("alice"), [])


class MilestoneTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.badge = self.s.badges.create_badge(
            "Shipper", "Two submissions", BadgeCategory.MILESTONE, point_value=10
        )
        self.milestone = self.s.badges.create_milestone(
            "Ship it",
            "Submit twice",
            MilestoneType.SUBMISSIONS_COUNT,
            2,
            point_reward=100,
            badge_id=self.badge.id,
        )

    def test_progress_is_tracked_until_completion(self):
        submit_for(self.env, self.world, self.world.team_a, "alice")
        self.assertEqual(self.s.badges.refresh_member_milestones("alice"), [])
        progress = self.s.badges.get_member_milestones("alice")[0]
        self.assertEqual(progress.current_progress, 1)
        self.assertEqual(progress.progress_percentage, 50.0)
        self.assertFalse(progress.is_completed)

        submit_for(self.env, self.world, self.world.team_a, "alice", text="Second entry")
        completed = self.s.badges.refresh_member_milestones("alice")
        self.assertEqual([m.milestone_id for m in completed], [self.milestone.id])
        self.assertTrue(completed[0].rewarded)
        self.assertEqual(self.s.badges.get_member_points("alice").total_points, 110)
        self.assertTrue(self.s.badges.has_badge("alice", self.badge.id))

        notices = self.s.notifications.get_notifications_by_type(
            "alice", NotificationType.MILESTONE_COMPLETED
        )
        self.assertEqual(len(notices), 1)
        self.assertEqual(notices[0].data["milestoneId"], self.milestone.id)

    def test_refresh_pays_out_once(self):
        self.s.badges.add_points("alice", 5, "special")
        self.s.badges.create_milestone("Points", "Any points", MilestoneType.TOTAL_POINTS, 1)
        first = self.s.badges.refresh_member_milestones("alice")
        self.assertEqual(len(first), 1)
        self.assertEqual(self.s.badges.refresh_member_milestones("alice"), [])
        self.assertEqual(self.s.badges.check_milestone_rewards("alice"), 0)

    def test_milestone_needs_a_positive_target(self):
        with self.assertRaises(ValidationError):
            self.s.badges.create_milestone("Zero", "", MilestoneType.SOCIAL_POSTS, 0)
        with self.assertRaises(NotFoundError):
            self.s.badges.create_milestone(
                "Ghost", "", MilestoneType.SOCIAL_POSTS, 1, badge_id="missing"
            )

    def test_streak_days_are_measured(self):
        self.s.badges.record_activity("bob", StreakType.SUBMISSION)
        self.env.clock.advance(days=1)
        self.s.badges.record_activity("bob", StreakType.SUBMISSION)
        self.assertEqual(self.s.badges.measure("bob", MilestoneType.STREAK_DAYS), 2)
        self.assertEqual(self.s.badges.measure("bob", MilestoneType.EVENT_PARTICIPATION), 0)
        self.assertEqual(self.s.badges.measure("bob", MilestoneType.BADGES_EARNED), 0)


if __name__ == "__main__":
    unittest.main()
