import unittest
from datetime import timedelta

from support import NOW

from ngage_shared.json_utils import (
    camel_to_snake,
    convert_keys,
    from_document,
    snake_to_camel,
    to_document,
    to_json_ready,
)
from ngage_shared.models import (
    Event,
    Notification,
    NotificationPreferences,
    Score,
    ScoringCriterion,
    ScoringRubric,
    Submission,
    Team,
)
from ngage_shared.types import (
    EventStatus,
    EventType,
    NotificationChannel,
    NotificationType,
    ScoringType,
    SubmissionStatus,
)
from ngage_shared.validation import (
    validate_email,
    validate_event,
    validate_phone,
    validate_rubric,
    validate_team,
)


def _event(**kwargs):
    defaults = dict(
        id="e1",
        group_id="g1",
        title="Hackathon",
        description="Build things",
        event_type=EventType.COMPETITION,
        created_by="admin",
    )
    defaults.update(kwargs)
    return Event(**defaults)


class JsonUtilsTests(unittest.TestCase):
    def test_key_case_conversion(self):
        self.assertEqual(snake_to_camel("submission_deadline"), "submissionDeadline")
        self.assertEqual(camel_to_snake("submissionDeadline"), "submission_deadline")
        self.assertEqual(
            convert_keys({"team_ids": [{"is_active": True}]}, "snake_to_camel"),
            {"teamIds": [{"isActive": True}]},
        )
        with self.assertRaises(ValueError):
            convert_keys({}, "sideways")

    def test_document_encoding_keeps_free_form_keys(self):
        event = _event(judging_criteria={"rubricId": "r1", "prerequisites": ["e0"]})
        doc = to_document(event)
        self.assertEqual(doc["eventType"], "competition")
        self.assertEqual(doc["judgingCriteria"], {"rubricId": "r1", "prerequisites": ["e0"]})

        decoded = from_document(Event, doc)
        self.assertEqual(decoded.event_type, EventType.COMPETITION)
        self.assertEqual(decoded.judging_criteria["rubricId"], "r1")

    def test_nested_records_and_enum_lists_decode(self):
        rubric = ScoringRubric(
            id="r1",
            name="Default",
            description="Basic rubric",
            created_by="admin",
            criteria=[ScoringCriterion(key="impact", name="Impact", type=ScoringType.SCALE)],
        )
        decoded = from_document(ScoringRubric, to_document(rubric))
        self.assertIsInstance(decoded.criteria[0], ScoringCriterion)
        self.assertEqual(decoded.criteria[0].type, ScoringType.SCALE)

        notification = Notification(
            id="n1",
            recipient_id="m1",
            type=NotificationType.GENERAL,
            title="Hi",
            message="Hello",
            channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH],
        )
        decoded = from_document(Notification, to_document(notification))
        self.assertEqual(decoded.channels, [NotificationChannel.IN_APP, NotificationChannel.PUSH])

    def test_json_ready_serializes_datetimes(self):
        payload = to_json_ready({"event": _event(start_time=NOW)})
        self.assertEqual(payload["event"]["startTime"], NOW.isoformat())
        self.assertEqual(payload["event"]["status"], "draft")


class ModelTests(unittest.TestCase):
    def test_submissions_open_only_inside_the_window(self):
        event = _event(
            status=EventStatus.ACTIVE,
            start_time=NOW,
            end_time=NOW + timedelta(days=2),
            submission_deadline=NOW + timedelta(days=1),
        )
        self.assertFalse(event.submissions_open(NOW - timedelta(minutes=1)))
        self.assertTrue(event.submissions_open(NOW + timedelta(hours=1)))
        self.assertFalse(event.submissions_open(NOW + timedelta(days=1, minutes=1)))
        self.assertFalse(_event(start_time=NOW).submissions_open(NOW))

    def test_open_event_admits_every_team(self):
        self.assertTrue(_event().is_team_eligible("any"))
        restricted = _event(eligible_team_ids=["t1"])
        self.assertTrue(restricted.is_team_eligible("t1"))
        self.assertFalse(restricted.is_team_eligible("t2"))

    def test_submission_requires_content_to_submit(self):
        submission = Submission(id="s1", event_id="e1", team_id="t1", submitted_by="m1")
        self.assertFalse(submission.has_content)
        with self.assertRaises(ValueError):
            submission.submit(NOW)
        submission.content = {"photos": ["https://example.test/a.png"]}
        submission.submit(NOW)
        self.assertEqual(submission.status, SubmissionStatus.SUBMITTED)
        self.assertEqual(submission.submitted_at, NOW)

    def test_weighted_total_ignores_non_numeric_scores(self):
        rubric = ScoringRubric(
            id="r1",
            name="Default",
            description="Weighted",
            created_by="admin",
            criteria=[
                ScoringCriterion(key="impact", name="Impact", weight=3),
                ScoringCriterion(key="polish", name="Polish", weight=1),
                ScoringCriterion(key="demo", name="Demo", type=ScoringType.BOOLEAN, required=False),
            ],
        )
        score = Score(
            id="s1_j1",
            submission_id="s1",
            judge_id="j1",
            event_id="e1",
            scores={"impact": 80, "polish": 40, "demo": True},
        )
        self.assertAlmostEqual(score.calculate_total(rubric), 70.0)
        self.assertTrue(score.is_complete(rubric))
        self.assertTrue(rubric.criteria[2].is_valid_score(False))
        self.assertFalse(rubric.criteria[0].is_valid_score(101))

    def test_preferences_type_override_wins(self):
        prefs = NotificationPreferences(
            member_id="m1",
            deadline_alerts=True,
            type_preferences={NotificationType.DEADLINE_ALERT.value: False},
        )
        self.assertFalse(prefs.allows(NotificationType.DEADLINE_ALERT))
        prefs = NotificationPreferences(member_id="m1", leaderboard_updates=False)
        self.assertFalse(prefs.allows(NotificationType.LEADERBOARD_UPDATE))
        self.assertTrue(prefs.allows(NotificationType.GENERAL))


class ValidationTests(unittest.TestCase):
    def test_contact_details(self):
        self.assertTrue(validate_email("ada@example.com").is_valid)
        self.assertFalse(validate_email("not-an-email").is_valid)
        self.assertFalse(validate_email("").is_valid)
        self.assertFalse(validate_phone("").is_valid)

    def test_team_lead_must_be_member(self):
        team = Team(
            id="t1",
            group_id="g1",
            name="Alpha",
            description="First team",
            team_lead_id="alice",
            member_ids=["bob"],
        )
        result = validate_team(team)
        self.assertFalse(result.is_valid)
        self.assertIn("Team lead must be a member of the team", result.errors)

    def test_event_deadline_inside_schedule(self):
        event = _event(
            start_time=NOW,
            end_time=NOW + timedelta(hours=2),
            submission_deadline=NOW + timedelta(hours=3),
        )
        result = validate_event(event)
        self.assertIn("Submission deadline must be before end time", result.errors)
        self.assertFalse(validate_event(_event(eligible_team_ids=[])).is_valid)

    def test_rubric_needs_criteria_with_unique_keys(self):
        rubric = ScoringRubric(id="r1", name="Empty", description="None", created_by="admin")
        self.assertIn("Rubric must have at least one criterion", validate_rubric(rubric).errors)
        rubric.criteria = [
            ScoringCriterion(key="a", name="A"),
            ScoringCriterion(key="a", name="A again"),
        ]
        self.assertIn("Criterion keys must be unique", validate_rubric(rubric).errors)


if __name__ == "__main__":
    unittest.main()
