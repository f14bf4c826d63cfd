import unittest
from datetime import timedelta

from support import make_services, seed_competition

from ngage.deadlines import DeadlineMonitor, format_time_remaining, get_deadline_status
from ngage_shared.types import (
    DeadlineStatus,
    EventStatus,
    EventType,
    NotificationPriority,
    NotificationType,
    SubmissionStatus,
)


class DeadlineStatusTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.world = seed_competition(self.env)
        self.event = self.world.event

    def status_at(self, before_deadline):
        return get_deadline_status(self.event, self.event.submission_deadline - before_deadline)

    def test_thresholds(self):
        self.assertEqual(self.status_at(timedelta(days=2)), DeadlineStatus.NORMAL)
        self.assertEqual(self.status_at(timedelta(hours=24)), DeadlineStatus.APPROACHING)
        self.assertEqual(self.status_at(timedelta(hours=3)), DeadlineStatus.WARNING)
        self.assertEqual(self.status_at(timedelta(minutes=45)), DeadlineStatus.URGENT)
        self.assertEqual(self.status_at(timedelta(minutes=15)), DeadlineStatus.CRITICAL)
        self.assertEqual(self.status_at(timedelta(seconds=-1)), DeadlineStatus.PASSED)
        self.assertTrue(DeadlineStatus.CRITICAL.is_urgent)

        self.event.submission_deadline = None
        self.assertEqual(
            get_deadline_status(self.event, self.env.clock()), DeadlineStatus.NO_DEADLINE
        )

    def test_format_time_remaining(self):
        self.assertEqual(format_time_remaining(timedelta(days=1, hours=2)), "1d 2h remaining")
        self.assertEqual(format_time_remaining(timedelta(days=2)), "2d remaining")
        self.assertEqual(format_time_remaining(timedelta(hours=3)), "3h remaining")
        self.assertEqual(format_time_remaining(timedelta(hours=1, minutes=30)), "1h 30m remaining")
        self.assertEqual(format_time_remaining(timedelta(minutes=5)), "5m remaining")
        self.assertEqual(format_time_remaining(timedelta(minutes=-5)), "Deadline passed")
        self.assertEqual(format_time_remaining(None), "No deadline")
        self.assertEqual(
            self.env.services.deadlines.format_time_remaining(self.event), "1d remaining"
        )


class DeadlineReminderTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.s.submissions.create_submission(
            self.world.event.id, self.world.team_a.id, "alice", {"text": "Draft"}
        )
        self.s.submissions.create_submission(
            self.world.event.id, self.world.team_a.id, "alice", {"text": "Second draft"}
        )

    def _event(self):
        return self.s.events.get_event(self.world.event.id)

    def _alerts(self, member_id):
        return self.s.notifications.get_notifications_by_type(
            member_id, NotificationType.DEADLINE_ALERT
        )

    def test_each_offset_is_sent_once(self):
        self.assertEqual(self.s.deadlines.send_due_reminders(self._event()), 1)
        self.assertEqual(self._event().reminders_sent, [1440])
        self.assertEqual(len(self._alerts("alice")), 1)
        self.assertEqual(self._alerts("carol"), [])
        self.assertEqual(self._alerts("admin")[0].data["pendingSubmissions"], 2)

        self.assertEqual(self.s.deadlines.send_due_reminders(self._event()), 0)

        self.env.clock.advance(hours=20)
        self.assertEqual(self.s.deadlines.send_due_reminders(self._event()), 1)
        self.assertEqual(self._event().reminders_sent, [1440, 240])
        self.assertEqual(len(self._alerts("alice")), 2)

    def test_missed_offsets_collapse_into_one_reminder(self):
        self.env.clock.advance(hours=23, minutes=50)
        self.assertEqual(self.s.deadlines.send_due_reminders(self._event()), 1)
        self.assertEqual(self._event().reminders_sent, [1440, 240, 60, 15])
        alerts = self._alerts("alice")
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].priority, NotificationPriority.URGENT)
        self.assertEqual(alerts[0].data["timeRemaining"], "10 minutes")


class DeadlineEnforcementTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services

    def _drafts(self, world):
        kept = self.s.submissions.create_submission(
            world.event.id, world.team_a.id, "alice", {"text": "Nearly done"}
        )
        empty = self.s.submissions.create_submission(world.event.id, world.team_b.id, "carol")
        return kept, empty

    def test_sweep_closes_drafts_once(self):
        world = seed_competition(self.env)
        kept, empty = self._drafts(world)
        self.env.clock.advance(days=1, minutes=1)

        summary = self.s.deadlines.check_all_deadlines()
        self.assertEqual(summary.checked, 1)
        self.assertEqual(len(summary.enforced), 1)
        result = summary.enforced[0]
        self.assertEqual((result.auto_submitted, result.deleted, result.failed), (1, 1, 0))
        self.assertFalse(result.completed_event)

        closed = self.s.submissions.get_submission(kept.id)
        self.assertEqual(closed.status, SubmissionStatus.SUBMITTED)
        self.assertEqual(closed.submitted_at, world.event.submission_deadline)
        self.assertIsNone(self.s.submissions.get_submission(empty.id))

        event = self.s.events.get_event(world.event.id)
        self.assertEqual(event.status, EventStatus.ACTIVE)
        self.assertIsNotNone(event.deadline_enforced_at)
        titles = [n.title for n in self.s.notifications.get_member_notifications("alice")]
        self.assertIn("Submission closed: Spring Hackathon", titles)
        organizer = [n.title for n in self.s.notifications.get_member_notifications("admin")]
        self.assertIn("Deadline passed: Spring Hackathon", organizer)

        again = self.s.deadlines.check_all_deadlines()
        self.assertEqual(again.enforced, [])
        self.assertEqual(again.as_dict()["checked"], 1)

    def test_event_completes_when_it_has_ended(self):
        world = seed_competition(
            self.env, deadline_in=timedelta(hours=2), duration=timedelta(hours=2)
        )
        self.env.clock.advance(hours=2, minutes=1)
        summary = self.s.deadlines.check_all_deadlines()
        self.assertTrue(summary.enforced[0].completed_event)
        self.assertEqual(self.s.events.get_event(world.event.id).status, EventStatus.COMPLETED)
        self.assertEqual(self.s.deadlines.check_all_deadlines().checked, 0)

    def test_enforced_event_completes_on_a_later_sweep(self):
        world = seed_competition(
            self.env, deadline_in=timedelta(days=1), duration=timedelta(days=2)
        )
        self.env.clock.advance(days=1, minutes=1)
        first = self.s.deadlines.check_all_deadlines()
        self.assertFalse(first.enforced[0].completed_event)
        self.assertEqual(first.completed, [])
        self.assertEqual(self.s.events.get_event(world.event.id).status, EventStatus.ACTIVE)

        self.env.clock.advance(days=2)
        second = self.s.deadlines.check_all_deadlines()
        self.assertEqual(second.enforced, [])
        self.assertEqual(second.completed, [world.event.id])
        self.assertEqual(second.as_dict()["completed"], [world.event.id])
        self.assertEqual(self.s.events.get_event(world.event.id).status, EventStatus.COMPLETED)

    def test_scheduled_event_starts_at_its_start_time(self):
        world = seed_competition(self.env)
        now = self.env.clock()
        upcoming = self.s.events.create_event(
            world.group.id, "Demo Day", "Show and tell", EventType.CHALLENGE, "admin"
        )
        self.s.events.schedule_event(
            upcoming.id,
            now + timedelta(hours=1),
            now + timedelta(hours=5),
            now + timedelta(hours=4),
        )

        self.assertEqual(self.s.deadlines.check_all_deadlines().activated, [])
        self.env.clock.advance(hours=1)
        summary = self.s.deadlines.check_all_deadlines()
        self.assertEqual(summary.activated, [upcoming.id])
        self.assertEqual(summary.checked, 2)
        self.assertEqual(self.s.events.get_event(upcoming.id).status, EventStatus.ACTIVE)


class DeadlineMonitorTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.monitor = DeadlineMonitor(self.s.deadlines, interval_seconds=3600)

    def tearDown(self):
        self.monitor.stop()

    def test_future_deadline_is_scheduled_and_cancellable(self):
        self.monitor.schedule_event(self.world.event)
        self.assertEqual(self.monitor.scheduled_event_ids(), [self.world.event.id])
        self.monitor.cancel_event(self.world.event.id)
        self.assertEqual(self.monitor.scheduled_event_ids(), [])

    def test_passed_deadline_is_enforced_immediately(self):
        self.env.clock.advance(days=1, seconds=1)
        self.monitor.schedule_event(self.world.event)
        self.assertEqual(self.monitor.scheduled_event_ids(), [])
        event = self.s.events.get_event(self.world.event.id)
        self.assertIsNotNone(event.deadline_enforced_at)

    def test_start_and_stop(self):
        self.monitor.start()
        self.assertTrue(self.monitor.is_running)
        self.monitor.schedule_event(self.world.event)
        self.monitor.stop()
        self.assertFalse(self.monitor.is_running)
        self.assertEqual(self.monitor.scheduled_event_ids(), [])


if __name__ == "__main__":
    unittest.main()
