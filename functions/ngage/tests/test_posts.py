import unittest

from support import make_services, seed_competition

from ngage.errors import AuthorizationError, ValidationError
from ngage_shared.types import PostContentType


class PostServiceTests(unittest.TestCase):
    def setUp(self):
        self.env = make_services()
        self.s = self.env.services
        self.world = seed_competition(self.env)
        self.group_id = self.world.group.id
        self.posts = self.s.posts

    def test_content_type_follows_media(self):
        text = self.posts.create_post(self.group_id, "alice", "  Kickoff today!  ")
        self.assertEqual(text.content, "Kickoff today!")
        self.assertEqual(text.content_type, PostContentType.TEXT)
        image = self.posts.create_post(self.group_id, "bob", "", media_urls=["https://cdn/x.png"])
        self.assertEqual(image.content_type, PostContentType.IMAGE)
        mixed = self.posts.create_post(
            self.group_id, "bob", "Look", media_urls=["https://cdn/y.png"]
        )
        self.assertEqual(mixed.content_type, PostContentType.MIXED)

    def test_only_members_post_and_content_is_required(self):
        with self.assertRaises(AuthorizationError):
            self.posts.create_post(self.group_id, "outsider", "Hi")
        with self.assertRaises(ValidationError):
            self.posts.create_post(self.group_id, "alice", "   ")
        with self.assertRaises(ValidationError):
            self.posts.create_post(self.group_id, "alice", "x" * 5001)

    def test_feed_is_newest_first_and_hides_deleted(self):
        first = self.posts.create_post(self.group_id, "alice", "First")
        self.env.clock.advance(minutes=1)
        second = self.posts.create_post(self.group_id, "bob", "Second")
        feed = self.posts.get_group_posts(self.group_id)
        self.assertEqual([p.id for p in feed], [second.id, first.id])

        with self.assertRaises(AuthorizationError):
            self.posts.delete_post(first.id, "bob")
        self.posts.delete_post(first.id, "admin")
        self.assertEqual([p.id for p in self.posts.get_group_posts(self.group_id)], [second.id])
        self.assertFalse(self.posts.get_post(first.id).is_active)

    def test_update_is_author_only(self):
        post = self.posts.create_post(self.group_id, "alice", "Draft")
        with self.assertRaises(AuthorizationError):
            self.posts.update_post(post.id, "bob", "Hijacked")
        self.assertEqual(self.posts.update_post(post.id, "alice", "Final").content, "Final")

    def test_likes_are_counted_once(self):
        post = self.posts.create_post(self.group_id, "alice", "Like me")
        self.assertTrue(self.posts.like_post(post.id, "bob"))
        self.assertFalse(self.posts.like_post(post.id, "bob"))
        self.assertTrue(self.posts.like_post(post.id, "carol"))
        self.assertTrue(self.posts.is_post_liked(post.id, "bob"))
        self.assertEqual(self.posts.get_post(post.id).like_count, 2)

        self.assertTrue(self.posts.unlike_post(post.id, "bob"))
        self.assertFalse(self.posts.unlike_post(post.id, "bob"))
        self.assertEqual(self.posts.get_post(post.id).like_count, 1)
        self.assertEqual([like.member_id for like in self.posts.get_post_likes(post.id)], ["carol"])

    def test_comments_adjust_counts(self):
        post = self.posts.create_post(self.group_id, "alice", "Discuss")
        comment = self.posts.add_comment(post.id, "bob", "Nice")
        self.env.clock.advance(minutes=1)
        reply = self.posts.add_comment(post.id, "alice", "Thanks", parent_comment_id=comment.id)
        self.assertEqual(self.posts.get_post(post.id).comment_count, 2)

        with self.assertRaises(AuthorizationError):
            self.posts.delete_comment(comment.id, "alice")
        self.posts.delete_comment(comment.id, "bob")
        self.assertEqual([c.id for c in self.posts.get_post_comments(post.id)], [reply.id])

        self.posts.like_post(post.id, "carol")
        self.assertEqual(
            self.posts.get_post_engagement(post.id),
            {"postId": post.id, "likeCount": 1, "commentCount": 1, "totalEngagement": 2},
        )


if __name__ == "__main__":
    unittest.main()
