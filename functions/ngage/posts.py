"""
Group social feed: posts, likes and comments.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import AuthorizationError, ValidationError
from ngage.groups import GroupService
from ngage.repositories import Collections
from ngage_shared.models import Post, PostComment, PostLike, utc_now
from ngage_shared.types import PostContentType
from ngage_shared.validation import ValidationResult, validate_description, validate_non_empty

logger = logging.getLogger(__name__)

POST_MAX_LENGTH = 5000
COMMENT_MAX_LENGTH = 1000
DEFAULT_PAGE_SIZE = 20


def _check(result: ValidationResult) -> None:
    if not result.is_valid:
        raise ValidationError(", ".join(result.errors), errors=result.errors)


class PostService:
    def __init__(
        self,
        collections: Collections,
        groups: GroupService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.groups = groups
        self.clock = clock

    @staticmethod
    def like_id(post_id: str, member_id: str) -> str:
        return f"{post_id}_{member_id}"

    def create_post(
        self,
        group_id: str,
        author_id: str,
        content: str,
        media_urls: Optional[List[str]] = None,
        post_id: Optional[str] = None,
    ) -> Post:
        media_urls = list(media_urls or [])
        if not media_urls:
            _check(validate_non_empty(content, "Post content"))
        _check(validate_description(content, POST_MAX_LENGTH, "Post content"))
        if not self.groups.is_group_member(group_id, author_id):
            raise AuthorizationError("Only group members can post in this group")

        if media_urls and content and content.strip():
            content_type = PostContentType.MIXED
        elif media_urls:
            content_type = PostContentType.IMAGE
        else:
            content_type = PostContentType.TEXT
        now = self.clock()
        post = Post(
            id=post_id or self.c.posts.new_id(),
            group_id=group_id,
            author_id=author_id,
            content=(content or "").strip(),
            media_urls=media_urls,
            content_type=content_type,
            created_at=now,
            updated_at=now,
        )
        return self.c.posts.save(post)

    def get_post(self, post_id: str) -> Optional[Post]:
        return self.c.posts.get(post_id)

    def get_group_posts(self, group_id: str, limit: int = DEFAULT_PAGE_SIZE) -> List[Post]:
        return self.c.posts.find(
            ("group_id", "==", group_id),
            ("is_active", "==", True),
            order_by="created_at",
            descending=True,
            limit=limit,
        )

    def get_author_posts(self, author_id: str, limit: int = DEFAULT_PAGE_SIZE) -> List[Post]:
        return self.c.posts.find(
            ("author_id", "==", author_id),
            ("is_active", "==", True),
            order_by="created_at",
            descending=True,
            limit=limit,
        )

    def update_post(self, post_id: str, author_id: str, content: str) -> Post:
        post = self.c.posts.require(post_id)
        if post.author_id != author_id:
            raise AuthorizationError("Only the post author can update the post")
        _check(validate_non_empty(content, "Post content"))
        _check(validate_description(content, POST_MAX_LENGTH, "Post content"))
        post.content = content.strip()
        post.updated_at = self.clock()
        return self.c.posts.save(post)

    def delete_post(self, post_id: str, member_id: str) -> None:
        post = self.c.posts.require(post_id)
        if post.author_id != member_id and not self.groups.is_group_admin(post.group_id, member_id):
            raise AuthorizationError("Only the post author can delete the post")
        post.is_active = False
        post.updated_at = self.clock()
        self.c.posts.save(post)

    # Likes

    def is_post_liked(self, post_id: str, member_id: str) -> bool:
        return self.c.post_likes.get(self.like_id(post_id, member_id)) is not None

    def like_post(self, post_id: str, member_id: str) -> bool:
        """Likes a post; returns False when the member already liked it."""

        def _like(tx: Collections) -> bool:
            like_id = self.like_id(post_id, member_id)
            if tx.post_likes.get(like_id) is not None:
                return False
            post = tx.posts.require(post_id)
            tx.post_likes.save(
                PostLike(id=like_id, post_id=post_id, member_id=member_id, created_at=self.clock())
            )
            tx.posts.patch(post_id, like_count=post.like_count + 1)
            return True

        return self.c.transaction(_like)

    def unlike_post(self, post_id: str, member_id: str) -> bool:
        """Removes a like; returns False when the member had not liked the post."""

        def _unlike(tx: Collections) -> bool:
            like_id = self.like_id(post_id, member_id)
            if tx.post_likes.get(like_id) is None:
                return False
            post = tx.posts.require(post_id)
            tx.post_likes.delete(like_id)
            tx.posts.patch(post_id, like_count=max(post.like_count - 1, 0))
            return True

        return self.c.transaction(_unlike)

    def get_post_likes(self, post_id: str, limit: int = 50) -> List[PostLike]:
        return self.c.post_likes.find(
            ("post_id", "==", post_id), order_by="created_at", descending=True, limit=limit
        )

    # Comments

    def add_comment(
        self,
        post_id: str,
        author_id: str,
        content: str,
        parent_comment_id: Optional[str] = None,
        comment_id: Optional[str] = None,
    ) -> PostComment:
        _check(validate_non_empty(content, "Comment"))
        _check(validate_description(content, COMMENT_MAX_LENGTH, "Comment"))
        now = self.clock()
        comment = PostComment(
            id=comment_id or self.c.post_comments.new_id(),
            post_id=post_id,
            author_id=author_id,
            content=content.strip(),
            parent_comment_id=parent_comment_id,
            created_at=now,
            updated_at=now,
        )

        def _add(tx: Collections) -> PostComment:
            post = tx.posts.require(post_id)
            tx.post_comments.save(comment)
            tx.posts.patch(post_id, comment_count=post.comment_count + 1)
            return comment

        return self.c.transaction(_add)

    def get_post_comments(self, post_id: str, limit: int = 50) -> List[PostComment]:
        return self.c.post_comments.find(
            ("post_id", "==", post_id),
            ("is_active", "==", True),
            order_by="created_at",
            limit=limit,
        )

    def delete_comment(self, comment_id: str, member_id: str) -> None:
        comment = self.c.post_comments.require(comment_id)
        if comment.author_id != member_id:
            raise AuthorizationError("Only the comment author can delete the comment")

        def _delete(tx: Collections) -> None:
            post = tx.posts.require(comment.post_id)
            tx.post_comments.patch(comment_id, is_active=False, updated_at=self.clock())
            tx.posts.patch(post.id, comment_count=max(post.comment_count - 1, 0))

        self.c.transaction(_delete)

    def get_post_engagement(self, post_id: str) -> Dict[str, Any]:
        post = self.c.posts.require(post_id)
        return {
            "postId": post.id,
            "likeCount": post.like_count,
            "commentCount": post.comment_count,
            "totalEngagement": post.like_count + post.comment_count,
        }
