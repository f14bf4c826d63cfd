import unittest
from datetime import timedelta

from support import make_services, seed_competition, submit_for

from ngage.errors import NotFoundError, OperationError
from ngage_shared.types import BadgeCategory, ConsentType


class ConsentTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)

    def test_grant_and_revoke(self):
        consent = self.s.consent.grant_consent(
            "alice", ConsentType.MEDIA_USAGE, purpose="Event photos"
        )
        self.assertTrue(self.s.consent.has_valid_consent("alice", ConsentType.MEDIA_USAGE))
        self.assertTrue(self.s.consent.validate_consent_for_action("alice", "upload_media"))
        with self.assertRaises(OperationError):
            self.s.consent.grant_consent("alice", ConsentType.MEDIA_USAGE)

        revoked = self.s.consent.revoke_consent("alice", ConsentType.MEDIA_USAGE)
        self.assertEqual([c.id for c in revoked], [consent.id])
        self.assertFalse(self.s.consent.has_valid_consent("alice", ConsentType.MEDIA_USAGE))
        self.assertFalse(self.s.consent.validate_consent_for_action("alice", "upload_media"))
        self.assertEqual(self.s.consent.revoke_consent("alice", ConsentType.MEDIA_USAGE), [])

        again = self.s.consent.grant_consent("alice", ConsentType.MEDIA_USAGE)
        self.assertNotEqual(again.id, consent.id)

    def test_status_covers_every_type(self):
        self.s.consent.grant_consent("bob", ConsentType.ANALYTICS)
        status = self.s.consent.get_consent_status("bob")
        self.assertEqual(set(status), {t.value for t in ConsentType})
        self.assertTrue(status["analytics"])
        self.assertFalse(status["marketing"])

    def test_unlisted_actions_need_no_consent(self):
        self.assertTrue(self.s.consent.validate_consent_for_action("bob", "view_feed"))
        self.assertFalse(self.s.consent.validate_consent_for_action("bob", "send_marketing"))

    def test_expiry(self):
        now = self.env.clock()
        with self.assertRaises(OperationError):
            self.s.consent.grant_consent(
                "carol", ConsentType.MARKETING, expires_at=now - timedelta(days=1)
            )
        self.s.consent.grant_consent(
            "carol", ConsentType.MARKETING, expires_at=now + timedelta(days=3)
        )
        self.s.consent.grant_consent(
            "dave", ConsentType.MARKETING, expires_at=now + timedelta(days=30)
        )
        expiring = self.s.consent.get_expiring_consents(7)
        self.assertEqual([c.member_id for c in expiring], ["carol"])

        self.env.clock.advance(days=4)
        self.assertFalse(self.s.consent.has_valid_consent("carol", ConsentType.MARKETING))
        self.s.consent.grant_consent("carol", ConsentType.MARKETING)


class MemberExportTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)

    def test_export_collects_member_records(self):
        submit_for(self.env, self.world, self.world.team_a, "alice")
        self.s.posts.create_post(self.world.group.id, "alice", "Hello team")
        badge = self.s.badges.create_badge("Helper", "", BadgeCategory.SOCIAL)
        self.s.badges.award_badge("alice", badge.id)
        self.s.consent.grant_consent("alice", ConsentType.DATA_PROCESSING)
        self.s.consent.grant_consent("alice", ConsentType.MARKETING)
        self.s.consent.revoke_consent("alice", ConsentType.MARKETING)

        export = self.s.consent.export_member_data("alice")
        self.assertEqual(export["memberId"], "alice")
        self.assertEqual(export["exportedAt"], self.env.clock().isoformat())
        self.assertEqual(export["profile"]["firstName"], "Alice")
        self.assertEqual([m["groupId"] for m in export["groups"]], [self.world.group.id])
        self.assertEqual(len(export["submissions"]), 1)
        self.assertEqual(export["posts"][0]["content"], "Hello team")
        self.assertEqual(export["badges"][0]["badgeId"], badge.id)
        self.assertEqual(
            export["summary"],
            {"totalConsents": 2, "validConsents": 1, "revokedConsents": 1},
        )

    def test_unknown_member(self):
        with self.assertRaises(NotFoundError):
            self.s.consent.export_member_data("ghost")


if __name__ == "__main__":
    unittest.main()
