import unittest
from datetime import timedelta

from support import make_services, seed_competition, submit_for

from ngage.errors import OperationError, ValidationError
from ngage_shared.types import EventStatus, EventType, GroupType


class EventServiceTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.now = self.env.clock()
        self.group = self.s.groups.create_group(
            "Engineering", "Company engineers", GroupType.CORPORATE, "admin"
        )
        self.event = self.s.events.create_event(
            self.group.id, "Hackathon", "Build things", EventType.COMPETITION, "admin"
        )

    def test_new_events_are_drafts(self):
        self.assertEqual(self.event.status, EventStatus.DRAFT)
        self.assertEqual(self.s.events.get_group_events(self.group.id)[0].id, self.event.id)
        with self.assertRaises(ValidationError):
            self.s.events.create_event(self.group.id, "No description", "", EventType.SURVEY, "admin")

    def test_schedule_validates_times(self):
        start = self.now + timedelta(hours=1)
        with self.assertRaises(ValidationError):
            self.s.events.schedule_event(self.event.id, start, start - timedelta(hours=1))
        with self.assertRaises(ValidationError):
            self.s.events.schedule_event(self.event.id, start, start + timedelta(minutes=30))
        with self.assertRaises(ValidationError):
            self.s.events.schedule_event(
                self.event.id, start, start + timedelta(hours=3), start + timedelta(hours=4)
            )
        with self.assertRaises(ValidationError):
            past = self.now - timedelta(hours=1)
            self.s.events.schedule_event(self.event.id, past, past + timedelta(hours=3))

        scheduled = self.s.events.schedule_event(
            self.event.id, start, start + timedelta(hours=3), start + timedelta(hours=2)
        )
        self.assertEqual(scheduled.status, EventStatus.SCHEDULED)
        with self.assertRaises(OperationError):
            self.s.events.schedule_event(self.event.id, start, start + timedelta(hours=3))

    def test_status_transitions(self):
        with self.assertRaises(OperationError):
            self.s.events.update_event_status(self.event.id, EventStatus.ACTIVE)
        self.s.events.schedule_event(self.event.id, self.now, self.now + timedelta(hours=2))
        self.s.events.activate_event(self.event.id)
        completed = self.s.events.complete_event(self.event.id)
        self.assertEqual(completed.status, EventStatus.COMPLETED)
        with self.assertRaises(OperationError):
            self.s.events.cancel_event(self.event.id)

    def test_cancelled_event_can_return_to_draft(self):
        self.s.events.cancel_event(self.event.id)
        event = self.s.events.update_event_status(self.event.id, EventStatus.DRAFT)
        self.assertEqual(event.status, EventStatus.DRAFT)

    def test_only_drafts_can_be_deleted(self):
        self.s.events.schedule_event(self.event.id, self.now, self.now + timedelta(hours=2))
        with self.assertRaises(OperationError):
            self.s.events.delete_event(self.event.id)
        self.s.events.update_event_status(self.event.id, EventStatus.DRAFT)
        self.s.events.delete_event(self.event.id)
        self.assertIsNone(self.s.events.get_event(self.event.id))

    def test_clone_copies_content_not_schedule(self):
        self.s.events.schedule_event(self.event.id, self.now, self.now + timedelta(hours=2))
        clone = self.s.events.clone_event(self.event.id, "organizer")
        self.assertEqual(clone.title, "Hackathon (Copy)")
        self.assertEqual(clone.status, EventStatus.DRAFT)
        self.assertIsNone(clone.start_time)
        self.assertEqual(clone.created_by, "organizer")

        kept = self.s.events.clone_event(self.event.id, "admin", "Again", preserve_schedule=True)
        self.assertEqual(kept.start_time, self.now)

    def test_update_ignores_unknown_fields(self):
        updated = self.s.events.update_event(
            self.event.id, {"title": " Renamed ", "status": EventStatus.COMPLETED}
        )
        self.assertEqual(updated.title, "Renamed")
        self.assertEqual(updated.status, EventStatus.DRAFT)

    def test_search_is_case_insensitive(self):
        self.s.events.create_event(
            self.group.id, "Photo contest", "Best shot", EventType.CHALLENGE, "admin"
        )
        found = self.s.events.search_events(self.group.id, "HACK")
        self.assertEqual([e.title for e in found], ["Hackathon"])
        self.assertEqual(len(self.s.events.search_events(self.group.id, "")), 2)


class EventAccessTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)

    def test_eligible_teams_restrict_access(self):
        w = self.world
        self.s.events.update_event_access(w.event.id, [w.team_a.id])
        self.assertTrue(self.s.events.can_team_access_event(w.event.id, w.team_a.id))
        self.assertFalse(self.s.events.can_team_access_event(w.event.id, w.team_b.id))
        self.assertEqual(self.s.events.get_eligible_teams(w.event.id), [w.team_a.id])
        with self.assertRaises(ValidationError):
            self.s.events.update_event_access(w.event.id, ["not-a-team"])

        opened = self.s.events.update_event_access(w.event.id, [])
        self.assertIsNone(opened.eligible_team_ids)

    def test_prerequisites_gate_accessible_events(self):
        w = self.world
        follow_up = self.s.events.create_event(
            w.group.id, "Finals", "Final round", EventType.COMPETITION, "admin"
        )
        with self.assertRaises(ValidationError):
            self.s.events.set_event_prerequisites(follow_up.id, [follow_up.id])
        self.s.events.set_event_prerequisites(follow_up.id, [w.event.id])

        accessible = self.s.events.get_accessible_events_for_team(w.group.id, w.team_a.id)
        self.assertNotIn(follow_up.id, [e.id for e in accessible])

        submit_for(self.env, w, w.team_a, "alice")
        accessible = self.s.events.get_accessible_events_for_team(w.group.id, w.team_a.id)
        self.assertIn(follow_up.id, [e.id for e in accessible])

    def test_deadline_helpers(self):
        w = self.world
        self.assertTrue(self.s.events.submissions_open(w.event.id))
        self.assertEqual(self.s.events.get_time_until_deadline(w.event.id), timedelta(days=1))
        self.assertEqual(
            [e.id for e in self.s.events.get_events_with_upcoming_deadlines(w.group.id)],
            [w.event.id],
        )
        self.assertEqual([e.id for e in self.s.events.get_active_events()], [w.event.id])

        self.env.clock.advance(days=1, minutes=1)
        self.assertFalse(self.s.events.submissions_open(w.event.id))
        self.assertIsNone(self.s.events.get_time_until_deadline(w.event.id))


if __name__ == "__main__":
    unittest.main()
