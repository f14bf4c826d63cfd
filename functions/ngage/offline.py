"""
Offline support: a read-through cache for feeds and a store of writes that
could not reach the backend, replayed by sync_pending_operations.

Supports an in-memory store for tests/local runs and a SQLAlchemy-backed
store (any SQLAlchemy URL, SQLite by default) for durable queues.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import JSON, Column, DateTime, Integer, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ngage.errors import ErrorType, categorize_error
from ngage.judging import JudgingService
from ngage.leaderboard import LeaderboardService
from ngage.notifications import NotificationService
from ngage.posts import PostService
from ngage_shared.leaderboard import Leaderboard
from ngage_shared.models import (
    Notification,
    PendingOperation,
    Post,
    PostComment,
    utc_now,
)
from ngage_shared.types import OperationType, PostContentType

logger = logging.getLogger(__name__)

RECOVERABLE_ERRORS = (ErrorType.NETWORK, ErrorType.DATABASE, ErrorType.RATE_LIMIT)
MAX_SYNC_ATTEMPTS = 5


def is_recoverable(exc: BaseException) -> bool:
    return categorize_error(exc) in RECOVERABLE_ERRORS


class OfflineStore(Protocol):
    """Durable queue of pending operations, oldest first."""

    def add(self, operation: PendingOperation) -> None:
        ...

    def list(self) -> List[PendingOperation]:
        ...

    def update(self, operation: PendingOperation) -> None:
        ...

    def remove(self, operation_id: str) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryOfflineStore:
    def __init__(self):
        self._operations: Dict[str, PendingOperation] = {}
        self._lock = threading.Lock()

    def add(self, operation: PendingOperation) -> None:
        with self._lock:
            self._operations[operation.id] = replace(operation)

    def list(self) -> List[PendingOperation]:
        with self._lock:
            return sorted(
                (replace(op) for op in self._operations.values()), key=lambda op: op.timestamp
            )

    def update(self, operation: PendingOperation) -> None:
        self.add(operation)

    def remove(self, operation_id: str) -> None:
        with self._lock:
            self._operations.pop(operation_id, None)

    def clear(self) -> None:
        with self._lock:
            self._operations.clear()


Base = declarative_base()


class PendingOperationRow(Base):
    __tablename__ = "pending_operations"

    id = Column(String, primary_key=True)
    type = Column(String, nullable=False)
    data = Column(JSON, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String, nullable=True)


class SqlOfflineStore:
    """SQLAlchemy-backed store. Accepts any SQLAlchemy URL."""

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("A database URL is required for SqlOfflineStore")
        self.engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_operation(self, row: PendingOperationRow) -> PendingOperation:
        timestamp = row.timestamp
        # SQLite drops the offset; stored values are always UTC.
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=utc_now().tzinfo)
        return PendingOperation(
            id=row.id,
            type=OperationType(row.type),
            data=dict(row.data),
            timestamp=timestamp,
            attempts=row.attempts,
            last_error=row.last_error,
        )

    def add(self, operation: PendingOperation) -> None:
        with self.Session() as session:
            session.merge(
                PendingOperationRow(
                    id=operation.id,
                    type=operation.type.value,
                    data=operation.data,
                    timestamp=operation.timestamp,
                    attempts=operation.attempts,
                    last_error=operation.last_error,
                )
            )
            session.commit()

    def list(self) -> List[PendingOperation]:
        with self.Session() as session:
            rows = session.execute(
                select(PendingOperationRow).order_by(PendingOperationRow.timestamp.asc())
            ).scalars()
            return [self._to_operation(row) for row in rows]

    def update(self, operation: PendingOperation) -> None:
        self.add(operation)

    def remove(self, operation_id: str) -> None:
        with self.Session() as session:
            row = session.get(PendingOperationRow, operation_id)
            if row is not None:
                session.delete(row)
                session.commit()

    def clear(self) -> None:
        with self.Session() as session:
            session.query(PendingOperationRow).delete()
            session.commit()


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    dropped: int = 0
    skipped: bool = False

    def as_dict(self) -> dict:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "dropped": self.dropped,
            "skipped": self.skipped,
        }


class OfflineSyncService:
    """
    Offline-first facade over the feed, notification, leaderboard and
    judging services.

    Reads are served from the local cache unless a refresh is forced, and
    fall back to the cache when the backend is unreachable. Writes that
    fail with a recoverable error are queued and an optimistic result is
    returned; sync_pending_operations replays them in order.
    """

    def __init__(
        self,
        store: OfflineStore,
        posts: PostService,
        notifications: NotificationService,
        leaderboards: LeaderboardService,
        judging: JudgingService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.posts = posts
        self.notifications = notifications
        self.leaderboards = leaderboards
        self.judging = judging
        self.clock = clock
        self._cache: Dict[str, Any] = {}
        self._sync_lock = threading.Lock()

    # Cache

    def cache_data(self, key: str, data: Any) -> None:
        self._cache[key] = data

    def get_cached_data(self, key: str) -> Any:
        return self._cache.get(key)

    def remove_cached_data(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _read(self, key: str, fetch: Callable[[], Any], force_refresh: bool, default: Any) -> Any:
        if not force_refresh:
            cached = self.get_cached_data(key)
            if cached:
                return cached
        try:
            data = fetch()
        except Exception as e:
            if not is_recoverable(e):
                raise
            logger.warning("Serving %s from cache: %s", key, e)
            cached = self.get_cached_data(key)
            return cached if cached is not None else default
        self.cache_data(key, data)
        return data

    def get_group_posts(
        self, group_id: str, limit: int = 20, force_refresh: bool = False
    ) -> List[Post]:
        return self._read(
            f"group_posts_{group_id}",
            lambda: self.posts.get_group_posts(group_id, limit=limit),
            force_refresh,
            [],
        )

    def get_member_notifications(
        self, member_id: str, limit: int = 50, force_refresh: bool = False
    ) -> List[Notification]:
        return self._read(
            f"notifications_{member_id}",
            lambda: self.notifications.get_member_notifications(member_id, limit=limit),
            force_refresh,
            [],
        )

    def get_event_leaderboard(
        self, event_id: str, force_refresh: bool = False
    ) -> Optional[Leaderboard]:
        return self._read(
            f"leaderboard_{event_id}",
            lambda: self.leaderboards.get_latest_leaderboard(event_id),
            force_refresh,
            None,
        )

    def _update_cached_posts(self, post_id: str, update: Callable[[Post], Post]) -> None:
        for key, value in self._cache.items():
            if key.startswith("group_posts_") and value:
                self._cache[key] = [update(p) if p.id == post_id else p for p in value]

    # Writes

    def _queue(self, operation_type: OperationType, data: Dict[str, Any], exc: Exception) -> None:
        operation = PendingOperation(
            id=uuid.uuid4().hex,
            type=operation_type,
            data=data,
            timestamp=self.clock(),
        )
        self.store.add(operation)
        logger.info("Queued %s for sync after %s", operation_type, exc)

    def _write(self, operation_type: OperationType, data: Dict[str, Any], run: Callable[[], Any]):
        """Runs a write; returns (result, queued)."""
        try:
            return run(), False
        except Exception as e:
            if not is_recoverable(e):
                raise
            self._queue(operation_type, data, e)
            return None, True

    def create_post(
        self,
        group_id: str,
        author_id: str,
        content: str,
        media_urls: Optional[List[str]] = None,
    ) -> Post:
        post_id = self.posts.c.posts.new_id()
        data = {
            "post_id": post_id,
            "group_id": group_id,
            "author_id": author_id,
            "content": content,
            "media_urls": list(media_urls or []),
        }
        post, queued = self._write(
            OperationType.CREATE_POST, data, lambda: self._replay_create_post(data)
        )
        if queued:
            now = self.clock()
            post = Post(
                id=post_id,
                group_id=group_id,
                author_id=author_id,
                content=content.strip(),
                media_urls=data["media_urls"],
                content_type=PostContentType.MIXED if media_urls else PostContentType.TEXT,
                created_at=now,
                updated_at=now,
            )
        key = f"group_posts_{group_id}"
        self.cache_data(key, [post] + list(self.get_cached_data(key) or []))
        return post

    def like_post(self, post_id: str, member_id: str) -> None:
        data = {"post_id": post_id, "member_id": member_id}
        self._write(OperationType.LIKE_POST, data, lambda: self.posts.like_post(post_id, member_id))
        self._update_cached_posts(post_id, lambda p: replace(p, like_count=p.like_count + 1))

    def unlike_post(self, post_id: str, member_id: str) -> None:
        data = {"post_id": post_id, "member_id": member_id}
        self._write(
            OperationType.UNLIKE_POST, data, lambda: self.posts.unlike_post(post_id, member_id)
        )
        self._update_cached_posts(
            post_id, lambda p: replace(p, like_count=max(p.like_count - 1, 0))
        )

    def add_comment(self, post_id: str, author_id: str, content: str) -> PostComment:
        comment_id = self.posts.c.post_comments.new_id()
        data = {
            "comment_id": comment_id,
            "post_id": post_id,
            "author_id": author_id,
            "content": content,
        }
        comment, queued = self._write(
            OperationType.ADD_COMMENT, data, lambda: self._replay_add_comment(data)
        )
        if queued:
            now = self.clock()
            comment = PostComment(
                id=comment_id,
                post_id=post_id,
                author_id=author_id,
                content=content.strip(),
                created_at=now,
                updated_at=now,
            )
        self._update_cached_posts(post_id, lambda p: replace(p, comment_count=p.comment_count + 1))
        return comment

    def mark_notification_read(self, notification_id: str) -> None:
        data = {"notification_id": notification_id}
        self._write(
            OperationType.MARK_NOTIFICATION_READ,
            data,
            lambda: self.notifications.mark_as_read(notification_id),
        )
        for key, value in self._cache.items():
            if key.startswith("notifications_") and value:
                self._cache[key] = [
                    replace(n, is_read=True, read_at=self.clock()) if n.id == notification_id else n
                    for n in value
                ]

    def submit_score(
        self,
        submission_id: str,
        judge_id: str,
        scores: Dict[str, Any],
        comments: Optional[str] = None,
    ) -> bool:
        """Scores a submission; returns False when the score was queued."""
        data = {
            "submission_id": submission_id,
            "judge_id": judge_id,
            "scores": dict(scores),
            "comments": comments,
        }
        _, queued = self._write(
            OperationType.SUBMIT_SCORE, data, lambda: self._replay_submit_score(data)
        )
        return not queued

    # Sync

    def _replay_create_post(self, data: Dict[str, Any]) -> Post:
        return self.posts.create_post(
            data["group_id"],
            data["author_id"],
            data["content"],
            media_urls=data.get("media_urls"),
            post_id=data["post_id"],
        )

    def _replay_add_comment(self, data: Dict[str, Any]) -> PostComment:
        return self.posts.add_comment(
            data["post_id"], data["author_id"], data["content"], comment_id=data["comment_id"]
        )

    def _replay_submit_score(self, data: Dict[str, Any]):
        return self.judging.score_submission(
            data["submission_id"], data["judge_id"], data["scores"], comments=data.get("comments")
        )

    def _execute(self, operation: PendingOperation) -> None:
        data = operation.data
        if operation.type == OperationType.CREATE_POST:
            self._replay_create_post(data)
        elif operation.type == OperationType.LIKE_POST:
            self.posts.like_post(data["post_id"], data["member_id"])
        elif operation.type == OperationType.UNLIKE_POST:
            self.posts.unlike_post(data["post_id"], data["member_id"])
        elif operation.type == OperationType.ADD_COMMENT:
            self._replay_add_comment(data)
        elif operation.type == OperationType.MARK_NOTIFICATION_READ:
            self.notifications.mark_as_read(data["notification_id"])
        elif operation.type == OperationType.SUBMIT_SCORE:
            self._replay_submit_score(data)

    def get_pending_operations(self) -> List[PendingOperation]:
        return self.store.list()

    def sync_pending_operations(self) -> SyncResult:
        """
        Replays queued writes oldest first.

        Successful operations are removed. Failures stay queued with their
        attempt count and last error, until MAX_SYNC_ATTEMPTS is reached.
        """
        if not self._sync_lock.acquire(blocking=False):
            return SyncResult(skipped=True)
        result = SyncResult()
        try:
            for operation in self.store.list():
                try:
                    self._execute(operation)
                except Exception as e:
                    operation.attempts += 1
                    operation.last_error = str(e)
                    if operation.attempts >= MAX_SYNC_ATTEMPTS:
                        logger.error(
                            "Dropping %s operation %s after %d attempts: %s",
                            operation.type,
                            operation.id,
                            operation.attempts,
                            e,
                        )
                        self.store.remove(operation.id)
                        result.dropped += 1
                    else:
                        logger.warning("Failed to sync operation %s: %s", operation.id, e)
                        self.store.update(operation)
                        result.failed += 1
                    continue
                self.store.remove(operation.id)
                result.synced += 1
        finally:
            self._sync_lock.release()
        if result.synced or result.failed or result.dropped:
            logger.info(
                "Offline sync: %d synced, %d failed, %d dropped",
                result.synced,
                result.failed,
                result.dropped,
            )
        return result
