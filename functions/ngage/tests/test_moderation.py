import unittest
from datetime import timedelta

from support import make_services, seed_competition

from ngage.errors import AuthorizationError, OperationError
from ngage_shared.types import (
    ContentType,
    ModerationActionType,
    ModerationTargetType,
    ReportReason,
    ReportStatus,
)


class ModerationServiceTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.group_id = self.world.group.id
        self.post = self.s.posts.create_post(self.group_id, "alice", "Buy cheap watches")
        self.moderation = self.s.moderation

    def _report(self, reporter="bob"):
        return self.moderation.report_content(
            reporter, self.post.id, ContentType.POST, ReportReason.SPAM, "Obvious spam"
        )

    def test_reports_resolve_group_and_notify_admins(self):
        report = self._report()
        self.assertEqual(report.group_id, self.group_id)
        self.assertEqual(report.status, ReportStatus.PENDING)
        notices = self.s.notifications.get_member_notifications("admin")
        self.assertEqual(notices[0].title, "New content report")
        self.assertEqual(notices[0].message, "A post was reported for spam.")

        with self.assertRaises(OperationError):
            self._report()
        self.assertEqual(
            [r.id for r in self.moderation.get_pending_reports(self.group_id)], [report.id]
        )

    def test_reports_on_comments_and_submissions(self):
        comment = self.s.posts.add_comment(self.post.id, "carol", "Rude reply")
        report = self.moderation.report_content(
            "bob", comment.id, ContentType.COMMENT, ReportReason.HARASSMENT
        )
        self.assertEqual(report.group_id, self.group_id)

        draft = self.s.submissions.create_submission(
            self.world.event.id, self.world.team_a.id, "alice", {"text": "Copied"}
        )
        report = self.moderation.report_content(
            "carol", draft.id, ContentType.SUBMISSION, ReportReason.COPYRIGHT
        )
        self.assertEqual(report.group_id, self.group_id)

    def test_review_requires_admin(self):
        report = self._report()
        with self.assertRaises(AuthorizationError):
            self.moderation.review_report(report.id, "carol", ReportStatus.DISMISSED)
        reviewed = self.moderation.review_report(
            report.id, "admin", ReportStatus.DISMISSED, "Not spam"
        )
        self.assertEqual(reviewed.reviewed_by, "admin")
        self.assertEqual(
            [r.id for r in self.moderation.get_reports_by_status(ReportStatus.DISMISSED)],
            [report.id],
        )
        bob = self.s.notifications.get_member_notifications("bob")
        self.assertEqual(bob[0].message, "Your report has been marked as dismissed.")

    def test_hiding_content_resolves_report_and_can_be_reversed(self):
        report = self._report()
        with self.assertRaises(AuthorizationError):
            self.moderation.hide_content(
                "bob", self.group_id, self.post.id, ModerationTargetType.POST
            )
        action = self.moderation.hide_content(
            "admin", self.group_id, self.post.id, ModerationTargetType.POST, report_id=report.id
        )
        self.assertFalse(self.s.posts.get_post(self.post.id).is_active)
        self.assertEqual(self.s.posts.get_group_posts(self.group_id), [])
        self.assertEqual(self.moderation.get_report(report.id).status, ReportStatus.RESOLVED)
        self.assertTrue(
            self.moderation.is_content_moderated(self.post.id, ModerationTargetType.POST)
        )

        self.moderation.reverse_moderation_action(action.id, "admin")
        self.assertTrue(self.s.posts.get_post(self.post.id).is_active)
        self.assertFalse(
            self.moderation.is_content_moderated(self.post.id, ModerationTargetType.POST)
        )

    def test_approve_restores_visibility(self):
        comment = self.s.posts.add_comment(self.post.id, "carol", "Borderline")
        self.moderation.delete_content(
            "admin", self.group_id, comment.id, ModerationTargetType.COMMENT
        )
        self.assertEqual(self.s.posts.get_post_comments(self.post.id), [])
        self.moderation.approve_content(
            "admin", self.group_id, comment.id, ModerationTargetType.COMMENT
        )
        self.assertEqual(
            [c.id for c in self.s.posts.get_post_comments(self.post.id)], [comment.id]
        )
        history = self.moderation.get_actions_for_target(comment.id, ModerationTargetType.COMMENT)
        self.assertEqual(len(history), 2)

    def test_user_restrictions_expire(self):
        until = self.env.clock() + timedelta(days=1)
        self.moderation.warn_user("admin", self.group_id, "dave", reason="Be kind")
        self.assertFalse(self.moderation.is_user_restricted("dave"))
        self.moderation.suspend_user("admin", self.group_id, "dave", until, reason="Spam")
        self.assertTrue(self.moderation.is_user_restricted("dave"))
        self.assertEqual(
            sorted(a.action_type for a in self.moderation.get_user_restrictions("dave")),
            [ModerationActionType.SUSPEND, ModerationActionType.WARN],
        )
        notices = self.s.notifications.get_member_notifications("dave")
        self.assertEqual(len(notices), 2)

        self.env.clock.advance(days=1, seconds=1)
        self.assertFalse(self.moderation.is_user_restricted("dave"))
        self.assertEqual(self.moderation.cleanup_expired_actions(), 1)
        self.assertEqual(self.moderation.cleanup_expired_actions(), 0)

    def test_statistics(self):
        self._report()
        self.moderation.ban_user("admin", self.group_id, "alice")
        stats = self.moderation.get_moderation_statistics(self.group_id)
        self.assertEqual(stats["reports"]["pending"], 1)
        self.assertEqual(stats["reports"]["resolved"], 0)
        self.assertEqual(stats["actions"]["ban"], 1)
        self.assertEqual(stats["actions"]["hide"], 0)


if __name__ == "__main__":
    unittest.main()
