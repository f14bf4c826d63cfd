# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
# Standard library imports
import os
import unittest
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import patch

# Third-party library imports
from functions_framework import create_app

# Local application imports
# This patch must be applied before importing 'main'
with patch("firebase_admin.initialize_app"):
    import main
from ngage_shared.models import User
from ngage_shared.types import SubmissionStatus
from support import add_member, make_services, seed_competition, submit_for

MAIN_SOURCE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")


class TestMainSubmitScore(unittest.TestCase):

    @patch("firebase_admin.initialize_app")
    def setUp(self, initialize_app_mock):
        self.client = create_app("submit_score", MAIN_SOURCE).test_client()
        self.env = make_services()
        self.world = seed_competition(self.env)
        self.submission = submit_for(self.env, self.world, self.world.team_a, "alice")

    def _post(self, payload):
        with patch("main._get_services", return_value=self.env.services):
            return self.client.post("/", json={"data": payload})

    def test_submit_score(self):
        # Arrange: Assign the judge to the event.
        self.env.services.judging.assign_judge(self.world.event.id, "judge", "admin")
        payload = {
            "submission_id": self.submission.id,
            "judge_id": "judge",
            "scores": {"overall": 75},
            "comments": "Nice demo",
        }

        # Act
        response = self._post(payload)

        # Assert: @on_call wraps successful responses in a `result` key.
        self.assertEqual(
            response.status_code,
            200,
            f"Request failed with status {response.status_code}. Body: {response.get_data(as_text=True)}",
        )
        result = response.get_json()["result"]
        self.assertEqual(result["id"], f"{self.submission.id}_judge")
        self.assertEqual(result["totalScore"], 75.0)
        self.assertEqual(result["comments"], "Nice demo")

    def test_submit_score_requires_assignment(self):
        payload = {
            "submission_id": self.submission.id,
            "judge_id": "judge",
            "scores": {"overall": 75},
        }
        response = self._post(payload)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json()["error"]["status"], "PERMISSION_DENIED")

    def test_submit_score_missing_scores(self):
        response = self._post({"submission_id": self.submission.id, "judge_id": "judge"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"]["status"], "INVALID_ARGUMENT")
        self.assertIn("scores must be a non-empty object", response.get_json()["error"]["message"])

    def test_submit_score_missing_submission_id(self):
        response = self._post({"judge_id": "judge", "scores": {"overall": 1}})
        self.assertEqual(response.status_code, 400)
        self.assertIn("Must specify submission_id", response.get_json()["error"]["message"])

    def test_submit_score_unknown_submission(self):
        response = self._post(
            {"submission_id": "missing", "judge_id": "judge", "scores": {"overall": 1}}
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"]["status"], "NOT_FOUND")


class TestMainGetLeaderboard(unittest.TestCase):

    @patch("firebase_admin.initialize_app")
    def setUp(self, initialize_app_mock):
        self.client = create_app("get_leaderboard", MAIN_SOURCE).test_client()
        self.env = make_services()
        self.world = seed_competition(self.env)

    def _post(self, payload):
        with patch("main._get_services", return_value=self.env.services):
            return self.client.post("/", json={"data": payload})

    def test_get_leaderboard_computes_when_unpublished(self):
        services = self.env.services
        services.judging.assign_judge(self.world.event.id, "judge", "admin")
        submission = submit_for(self.env, self.world, self.world.team_b, "carol")
        services.judging.score_submission(submission.id, "judge", {"overall": 64})

        response = self._post({"event_id": self.world.event.id})

        self.assertEqual(response.status_code, 200)
        result = response.get_json()["result"]
        self.assertEqual(result["eventId"], self.world.event.id)
        self.assertEqual([e["teamName"] for e in result["entries"]], ["Bravo"])
        self.assertEqual(result["entries"][0]["averageScore"], 64.0)

    def test_get_leaderboard_unknown_event(self):
        response = self._post({"event_id": "missing"})
        self.assertEqual(response.status_code, 404)


class TestMainReportContent(unittest.TestCase):

    @patch("firebase_admin.initialize_app")
    def setUp(self, initialize_app_mock):
        self.client = create_app("report_content", MAIN_SOURCE).test_client()
        self.env = make_services()
        self.world = seed_competition(self.env)
        self.post = self.env.services.posts.create_post(
            self.world.group.id, "alice", "Buy followers now"
        )

    def _post(self, payload):
        with patch("main._get_services", return_value=self.env.services):
            return self.client.post("/", json={"data": payload})

    def test_report_content(self):
        payload = {
            "reporter_id": "bob",
            "content_id": self.post.id,
            "content_type": "post",
            "reason": "spam",
            "description": "Spam link",
        }
        response = self._post(payload)
        self.assertEqual(response.status_code, 200)
        result = response.get_json()["result"]
        self.assertEqual(result["groupId"], self.world.group.id)
        self.assertEqual(result["status"], "pending")

        # A second report by the same member is rejected.
        response = self._post(payload)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"]["status"], "FAILED_PRECONDITION")

    def test_report_content_invalid_reason(self):
        payload = {
            "reporter_id": "bob",
            "content_id": self.post.id,
            "content_type": "post",
            "reason": "boring",
        }
        response = self._post(payload)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Invalid content_type or reason", response.get_json()["error"]["message"])

    def test_report_content_description_too_long(self):
        payload = {
            "reporter_id": "bob",
            "content_id": self.post.id,
            "content_type": "post",
            "reason": "spam",
            "description": "a" * (main.MAX_REPORT_DESCRIPTION_LENGTH + 1),
        }
        response = self._post(payload)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Description exceeds max length", response.get_json()["error"]["message"])


class TestMainCallerIdentity(unittest.TestCase):

    def setUp(self):
        self.env = make_services()
        self.services = self.env.services
        add_member(self.services, "judge", first_name="Judy")
        self.services.collections.users.save(
            User(id="uid-judy", email="judge@example.com", default_member="judge")
        )

    def _request(self, data, uid=None):
        auth = SimpleNamespace(uid=uid, token={}) if uid else None
        return SimpleNamespace(data=data, auth=auth)

    def test_signed_in_user_overrides_payload(self):
        req = self._request({"judge_id": "alice"}, uid="uid-judy")
        self.assertEqual(main._acting_member_id(req, self.services, "judge_id"), "judge")

    def test_unauthenticated_call_uses_payload(self):
        req = self._request({"reporter_id": "bob"})
        self.assertEqual(main._acting_member_id(req, self.services, "reporter_id"), "bob")

    def test_signed_in_user_without_member(self):
        req = self._request({"judge_id": "judge"}, uid="uid-unknown")
        with self.assertRaises(main.https_fn.HttpsError) as ctx:
            main._acting_member_id(req, self.services, "judge_id")
        self.assertEqual(
            ctx.exception.code, main.https_fn.FunctionsErrorCode.FAILED_PRECONDITION
        )


class TestMainTriggers(unittest.TestCase):

    def setUp(self):
        self.env = make_services()
        self.world = seed_competition(self.env, deadline_in=timedelta(hours=1))

    def test_submission_affects_ranking(self):
        draft = {"status": SubmissionStatus.DRAFT.value}
        submitted = {"status": SubmissionStatus.SUBMITTED.value}
        approved = {"status": SubmissionStatus.APPROVED.value}
        self.assertTrue(main.submission_affects_ranking(draft, submitted))
        self.assertTrue(main.submission_affects_ranking(submitted, {}))
        self.assertFalse(main.submission_affects_ranking(submitted, approved))
        self.assertFalse(main.submission_affects_ranking({}, draft))

    def test_refresh_leaderboard(self):
        services = self.env.services
        services.judging.assign_judge(self.world.event.id, "judge", "admin")
        submission = submit_for(self.env, self.world, self.world.team_a, "alice")
        services.judging.score_submission(submission.id, "judge", {"overall": 90})

        with patch.object(main, "_get_services", return_value=services):
            self.assertTrue(main.refresh_leaderboard(self.world.event.id))
            self.assertFalse(main.refresh_leaderboard("missing"))

        published = services.leaderboards.get_latest_leaderboard(self.world.event.id)
        self.assertEqual(published.entries[0].team_name, "Alpha")

    def test_run_deadline_check(self):
        self.env.clock.advance(hours=2)
        with patch.object(main, "_get_services", return_value=self.env.services):
            summary = main.run_deadline_check()
        self.assertEqual(summary["checked"], 1)
        self.assertEqual([r["event_id"] for r in summary["enforced"]], [self.world.event.id])


if __name__ == "__main__":
    unittest.main()
