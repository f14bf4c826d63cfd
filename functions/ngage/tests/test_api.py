import unittest

from fastapi.testclient import TestClient
from support import make_services, seed_competition

from ngage.app import create_app
from ngage.dependencies import get_services


class NgageApiTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.world = seed_competition(self.env)
        app = create_app()
        app.dependency_overrides[get_services] = lambda: self.env.services
        self.client = TestClient(app)

    def as_member(self, member_id):
        return {"X-Member-Id": member_id}

    def test_missing_identity_is_rejected(self):
        response = self.client.post(
            "/api/groups", json={"name": "Club", "groupType": "community"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["errorType"], "authentication")

    def test_create_group_uses_caller_as_admin(self):
        response = self.client.post(
            "/api/groups",
            json={"name": "Book Club", "description": "Readers", "groupType": "community"},
            headers=self.as_member("alice"),
        )
        self.assertEqual(response.status_code, 201)
        group = response.json()
        self.assertEqual(group["name"], "Book Club")

        members = self.client.get(f"/api/groups/{group['id']}/members").json()
        self.assertEqual([m["memberId"] for m in members], ["alice"])
        self.assertEqual(members[0]["role"], "admin")

    def test_non_admin_cannot_create_team(self):
        response = self.client.post(
            "/api/teams",
            json={"groupId": self.world.group.id, "name": "Rogue"},
            headers=self.as_member("bob"),
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(
            response.json()["detail"], "You don't have permission to perform this action."
        )

    def test_invalid_payload_is_rejected(self):
        response = self.client.post(
            "/api/groups",
            json={"name": "Club", "groupType": "secret-society"},
            headers=self.as_member("alice"),
        )
        self.assertEqual(response.status_code, 422)

    def test_submission_scoring_and_leaderboard(self):
        created = self.client.post(
            "/api/submissions",
            json={
                "eventId": self.world.event.id,
                "teamId": self.world.team_a.id,
                "content": {"text": "Our entry"},
            },
            headers=self.as_member("alice"),
        )
        self.assertEqual(created.status_code, 201)
        submission_id = created.json()["id"]

        outsider = self.client.post(
            f"/api/submissions/{submission_id}/submit", headers=self.as_member("carol")
        )
        self.assertEqual(outsider.status_code, 403)
        submitted = self.client.post(
            f"/api/submissions/{submission_id}/submit", headers=self.as_member("bob")
        )
        self.assertEqual(submitted.json()["status"], "submitted")

        unassigned = self.client.post(
            f"/api/submissions/{submission_id}/scores",
            json={"scores": {"overall": 80}},
            headers=self.as_member("judge"),
        )
        self.assertEqual(unassigned.status_code, 403)

        assigned = self.client.post(
            f"/api/events/{self.world.event.id}/judges",
            json={"judgeId": "judge"},
            headers=self.as_member("admin"),
        )
        self.assertEqual(assigned.status_code, 201)
        scored = self.client.post(
            f"/api/submissions/{submission_id}/scores",
            json={"scores": {"overall": 80}, "comments": "Solid"},
            headers=self.as_member("judge"),
        )
        self.assertEqual(scored.status_code, 200)
        self.assertEqual(scored.json()["totalScore"], 80.0)

        leaderboard = self.client.get(f"/api/events/{self.world.event.id}/leaderboard").json()
        self.assertEqual(leaderboard["entries"][0]["teamName"], "Alpha")
        self.assertEqual(leaderboard["entries"][0]["position"], 1)

    def test_deadline_status(self):
        response = self.client.get(f"/api/events/{self.world.event.id}/deadline")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["eventId"], self.world.event.id)
        self.assertFalse(payload["hasPassed"])
        self.assertEqual(payload["secondsRemaining"], 86400.0)

    def test_patch_event_parses_dates(self):
        response = self.client.patch(
            f"/api/events/{self.world.event.id}",
            json={"endTime": "2025-03-10T09:00:00+00:00", "title": "  Spring Jam "},
            headers=self.as_member("admin"),
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body["endTime"], "2025-03-10T09:00:00+00:00")
        self.assertEqual(body["title"], "Spring Jam")
        stored = self.env.services.collections.events.get(self.world.event.id)
        self.assertEqual(stored.submission_deadline, self.world.event.submission_deadline)

        bad = self.client.patch(
            f"/api/events/{self.world.event.id}",
            json={"endTime": "next tuesday"},
            headers=self.as_member("admin"),
        )
        self.assertEqual(bad.status_code, 422)

    def test_patch_event_rejects_end_before_start(self):
        response = self.client.patch(
            f"/api/events/{self.world.event.id}",
            json={"endTime": "2025-03-01T09:00:00+00:00"},
            headers=self.as_member("admin"),
        )
        self.assertEqual(response.status_code, 400)

    def test_patch_team_and_member(self):
        team = self.client.patch(
            f"/api/teams/{self.world.team_a.id}",
            json={"name": "Alpha Prime", "maxMembers": 4},
            headers=self.as_member("alice"),
        )
        self.assertEqual(team.status_code, 200, team.text)
        self.assertEqual(team.json()["name"], "Alpha Prime")
        self.assertEqual(team.json()["maxMembers"], 4)

        member = self.client.patch(
            "/api/members/bob", json={"bio": "Backend dev"}, headers=self.as_member("bob")
        )
        self.assertEqual(member.json()["bio"], "Backend dev")
        self.assertEqual(member.json()["firstName"], "Bob")

    def test_recent_logs_require_group_admin(self):
        params = {"group_id": self.world.group.id}
        denied = self.client.get(
            "/api/admin/logs", params=params, headers=self.as_member("bob")
        )
        self.assertEqual(denied.status_code, 403)

        allowed = self.client.get(
            "/api/admin/logs", params=params, headers=self.as_member("admin")
        )
        self.assertEqual(allowed.status_code, 200)
        self.assertIsInstance(allowed.json()["logs"], list)

    def test_badges_are_created_and_awarded_by_admins(self):
        body = {
            "groupId": self.world.group.id,
            "name": "Mentor",
            "category": "social",
            "pointValue": 200,
        }
        denied = self.client.post("/api/badges", json=body, headers=self.as_member("bob"))
        self.assertEqual(denied.status_code, 403)
        created = self.client.post("/api/badges", json=body, headers=self.as_member("admin"))
        self.assertEqual(created.status_code, 201)
        badge_id = created.json()["id"]

        award = {"groupId": self.world.group.id, "memberId": "bob"}
        awarded = self.client.post(
            f"/api/badges/{badge_id}/awards", json=award, headers=self.as_member("admin")
        )
        self.assertEqual(awarded.status_code, 201)
        twice = self.client.post(
            f"/api/badges/{badge_id}/awards", json=award, headers=self.as_member("admin")
        )
        self.assertEqual(twice.status_code, 409)

        held = self.client.get("/api/members/bob/badges").json()
        self.assertEqual(held[0]["badge"]["name"], "Mentor")
        points = self.client.get("/api/members/bob/points").json()
        self.assertEqual(points["totalPoints"], 200)
        board = self.client.get(f"/api/groups/{self.world.group.id}/points-leaderboard").json()
        self.assertEqual(board[0]["memberId"], "bob")

        hidden = self.client.patch(
            f"/api/members/bob/badges/{badge_id}",
            json={"isVisible": False},
            headers=self.as_member("alice"),
        )
        self.assertEqual(hidden.status_code, 403)

    def test_activity_and_milestones(self):
        self.client.post(
            "/api/milestones",
            json={
                "groupId": self.world.group.id,
                "name": "Warm up",
                "milestoneType": "streak_days",
                "targetValue": 1,
                "pointReward": 25,
            },
            headers=self.as_member("admin"),
        )
        activity = self.client.post(
            "/api/members/alice/activity",
            json={"streakType": "daily_login"},
            headers=self.as_member("alice"),
        )
        self.assertEqual(activity.json()["currentStreak"], 1)

        refreshed = self.client.post(
            "/api/members/alice/milestones/refresh", headers=self.as_member("alice")
        )
        self.assertEqual(len(refreshed.json()["completed"]), 1)
        unread = self.client.get(
            "/api/notifications/unread-count", headers=self.as_member("alice")
        )
        self.assertEqual(unread.json(), {"count": 1})

    def test_group_analytics_require_admin(self):
        url = f"/api/groups/{self.world.group.id}/analytics"
        denied = self.client.post(url, json={}, headers=self.as_member("bob"))
        self.assertEqual(denied.status_code, 403)
        created = self.client.post(url, json={}, headers=self.as_member("admin"))
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["participation"]["totalMembers"], 6)

        history = self.client.get(url, headers=self.as_member("admin")).json()
        self.assertEqual(len(history), 1)
        trends = self.client.get(f"{url}/trends", headers=self.as_member("admin")).json()
        self.assertEqual(trends["trends"], {})

        report = self.client.post(
            "/api/analytics/reports",
            json={"title": "Monthly", "groupIds": [self.world.group.id]},
            headers=self.as_member("admin"),
        )
        self.assertEqual(report.status_code, 201)
        mine = self.client.get("/api/analytics/reports", headers=self.as_member("admin")).json()
        self.assertEqual([r["title"] for r in mine], ["Monthly"])

    def test_consent_is_managed_by_the_member(self):
        url = "/api/members/alice/consents"
        denied = self.client.post(
            url, json={"consentType": "marketing"}, headers=self.as_member("bob")
        )
        self.assertEqual(denied.status_code, 403)
        granted = self.client.post(
            url, json={"consentType": "marketing"}, headers=self.as_member("alice")
        )
        self.assertEqual(granted.status_code, 201)

        status = self.client.get(url, headers=self.as_member("alice")).json()["status"]
        self.assertTrue(status["marketing"])
        revoked = self.client.delete(f"{url}/marketing", headers=self.as_member("alice"))
        self.assertEqual(revoked.json(), {"revoked": 1})

        export = self.client.get("/api/members/alice/export", headers=self.as_member("alice"))
        self.assertEqual(export.json()["summary"]["revokedConsents"], 1)

    def test_unknown_event_is_not_found(self):
        response = self.client.get("/api/events/missing")
        self.assertEqual(response.status_code, 404)

    def test_posts_and_likes(self):
        created = self.client.post(
            f"/api/groups/{self.world.group.id}/posts",
            json={"content": "Kickoff at noon"},
            headers=self.as_member("alice"),
        )
        self.assertEqual(created.status_code, 201)
        post_id = created.json()["id"]

        liked = self.client.post(f"/api/posts/{post_id}/like", headers=self.as_member("bob"))
        self.assertEqual(liked.json(), {"liked": True, "changed": True})
        again = self.client.post(f"/api/posts/{post_id}/like", headers=self.as_member("bob"))
        self.assertEqual(again.json(), {"liked": True, "changed": False})

        feed = self.client.get(f"/api/groups/{self.world.group.id}/posts").json()
        self.assertEqual(feed[0]["likeCount"], 1)

    def test_notifications_are_scoped_to_caller(self):
        notification = self.env.services.notifications.create_notification(
            "alice", "general", "Hello", "World"
        )
        count = self.client.get(
            "/api/notifications/unread-count", headers=self.as_member("alice")
        )
        self.assertEqual(count.json(), {"count": 1})

        stolen = self.client.post(
            f"/api/notifications/{notification.id}/read", headers=self.as_member("bob")
        )
        self.assertEqual(stolen.status_code, 403)
        read = self.client.post(
            f"/api/notifications/{notification.id}/read", headers=self.as_member("alice")
        )
        self.assertTrue(read.json()["isRead"])


if __name__ == "__main__":
    unittest.main()
