"""
Typed access to Firestore collections.

A Repository maps dataclass records from ngage_shared.models onto the
documents of one collection; field names in filters are the record's
snake_case attribute names.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, List, Optional, Tuple, Type, TypeVar

from ngage.db import DbClient
from ngage.errors import NotFoundError
from ngage_shared.firebase_constants import (
    ANALYTICS_METRICS_COLLECTION,
    ANALYTICS_REPORTS_COLLECTION,
    BADGES_COLLECTION,
    CONSENTS_COLLECTION,
    CONTENT_REPORTS_COLLECTION,
    DELIVERIES_COLLECTION,
    EVENTS_COLLECTION,
    GROUP_MEMBERSHIPS_COLLECTION,
    GROUPS_COLLECTION,
    INTEGRATIONS_COLLECTION,
    JUDGE_ASSIGNMENTS_COLLECTION,
    JUDGE_COMMENTS_COLLECTION,
    LEADERBOARDS_COLLECTION,
    MEMBER_BADGES_COLLECTION,
    MEMBER_MILESTONES_COLLECTION,
    MEMBER_POINTS_COLLECTION,
    MEMBER_STREAKS_COLLECTION,
    MEMBERS_COLLECTION,
    MILESTONES_COLLECTION,
    MODERATION_ACTIONS_COLLECTION,
    NOTIFICATION_PREFERENCES_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    POST_COMMENTS_COLLECTION,
    POST_LIKES_COLLECTION,
    POSTS_COLLECTION,
    SCORES_COLLECTION,
    SCORING_RUBRICS_COLLECTION,
    SUBMISSIONS_COLLECTION,
    TEAMS_COLLECTION,
    USERS_COLLECTION,
)
from ngage_shared.json_utils import (
    encode_value,
    from_document,
    snake_to_camel,
    to_document,
)
from ngage_shared.leaderboard import Leaderboard
from ngage_shared.models import (
    AnalyticsReport,
    AnalyticsSnapshot,
    Badge,
    Consent,
    ContentReport,
    Delivery,
    Event,
    Group,
    GroupMember,
    Integration,
    JudgeAssignment,
    JudgeComment,
    Member,
    MemberBadge,
    MemberMilestone,
    MemberPoints,
    MemberStreak,
    Milestone,
    ModerationAction,
    Notification,
    NotificationPreferences,
    Post,
    PostComment,
    PostLike,
    Score,
    ScoringRubric,
    Submission,
    Team,
    User,
)

R = TypeVar("R")


class Repository(Generic[R]):
    def __init__(self, db: DbClient, collection: str, record_type: Type[R], label: str):
        self.db = db
        self.collection = collection
        self.record_type = record_type
        self.label = label

    def new_id(self) -> str:
        return self.db.new_id(self.collection)

    def _decode(self, data: dict) -> R:
        return from_document(self.record_type, data)

    def get(self, doc_id: str) -> Optional[R]:
        if not doc_id:
            return None
        data = self.db.get(self.collection, doc_id)
        return self._decode(data) if data is not None else None

    def require(self, doc_id: str) -> R:
        record = self.get(doc_id)
        if record is None:
            raise NotFoundError(f"{self.label} not found: {doc_id}")
        return record

    def save(self, record: R, doc_id: Optional[str] = None) -> R:
        self.db.set(self.collection, doc_id or record.id, to_document(record))
        return record

    def patch(self, doc_id: str, **changes: Any) -> None:
        data = to_document_fields(changes)
        self.db.update(self.collection, doc_id, data)

    def delete(self, doc_id: str) -> None:
        self.db.delete(self.collection, doc_id)

    def find(
        self,
        *filters: Tuple[str, str, Any],
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[R]:
        docs = self.db.query(
            self.collection,
            [(snake_to_camel(f), op, _encode(value)) for f, op, value in filters],
            order_by=snake_to_camel(order_by) if order_by else None,
            descending=descending,
            limit=limit,
        )
        return [self._decode(doc) for doc in docs]

    def find_one(self, *filters: Tuple[str, str, Any]) -> Optional[R]:
        found = self.find(*filters, limit=1)
        return found[0] if found else None

    def all(self) -> List[R]:
        return self.find()


def _encode(value: Any) -> Any:
    if isinstance(value, (tuple, set)):
        value = list(value)
    return encode_value(value)


def to_document_fields(changes: dict) -> dict:
    return {snake_to_camel(k): _encode(v) for k, v in changes.items()}


def ids(records: Iterable[Any]) -> List[str]:
    return [r.id for r in records]


class Collections:
    """All Ngage repositories over one DbClient."""

    def __init__(self, db: DbClient):
        self.db = db
        self.users = Repository(db, USERS_COLLECTION, User, "User")
        self.members = Repository(db, MEMBERS_COLLECTION, Member, "Member")
        self.groups = Repository(db, GROUPS_COLLECTION, Group, "Group")
        self.memberships = Repository(
            db, GROUP_MEMBERSHIPS_COLLECTION, GroupMember, "Group membership"
        )
        self.teams = Repository(db, TEAMS_COLLECTION, Team, "Team")
        self.events = Repository(db, EVENTS_COLLECTION, Event, "Event")
        self.submissions = Repository(db, SUBMISSIONS_COLLECTION, Submission, "Submission")
        self.scores = Repository(db, SCORES_COLLECTION, Score, "Score")
        self.rubrics = Repository(
            db, SCORING_RUBRICS_COLLECTION, ScoringRubric, "Scoring rubric"
        )
        self.judge_comments = Repository(
            db, JUDGE_COMMENTS_COLLECTION, JudgeComment, "Comment"
        )
        self.judge_assignments = Repository(
            db, JUDGE_ASSIGNMENTS_COLLECTION, JudgeAssignment, "Judge assignment"
        )
        self.leaderboards = Repository(
            db, LEADERBOARDS_COLLECTION, Leaderboard, "Leaderboard"
        )
        self.notifications = Repository(
            db, NOTIFICATIONS_COLLECTION, Notification, "Notification"
        )
        self.preferences = Repository(
            db,
            NOTIFICATION_PREFERENCES_COLLECTION,
            NotificationPreferences,
            "Notification preferences",
        )
        self.deliveries = Repository(db, DELIVERIES_COLLECTION, Delivery, "Delivery")
        self.integrations = Repository(
            db, INTEGRATIONS_COLLECTION, Integration, "Integration"
        )
        self.reports = Repository(
            db, CONTENT_REPORTS_COLLECTION, ContentReport, "Report"
        )
        self.moderation_actions = Repository(
            db, MODERATION_ACTIONS_COLLECTION, ModerationAction, "Moderation action"
        )
        self.posts = Repository(db, POSTS_COLLECTION, Post, "Post")
        self.post_likes = Repository(db, POST_LIKES_COLLECTION, PostLike, "Like")
        self.post_comments = Repository(
            db, POST_COMMENTS_COLLECTION, PostComment, "Comment"
        )
        self.badges = Repository(db, BADGES_COLLECTION, Badge, "Badge")
        self.member_badges = Repository(
            db, MEMBER_BADGES_COLLECTION, MemberBadge, "Member badge"
        )
        self.member_points = Repository(
            db, MEMBER_POINTS_COLLECTION, MemberPoints, "Member points"
        )
        self.member_streaks = Repository(
            db, MEMBER_STREAKS_COLLECTION, MemberStreak, "Streak"
        )
        self.milestones = Repository(db, MILESTONES_COLLECTION, Milestone, "Milestone")
        self.member_milestones = Repository(
            db, MEMBER_MILESTONES_COLLECTION, MemberMilestone, "Member milestone"
        )
        self.analytics_metrics = Repository(
            db, ANALYTICS_METRICS_COLLECTION, AnalyticsSnapshot, "Analytics snapshot"
        )
        self.analytics_reports = Repository(
            db, ANALYTICS_REPORTS_COLLECTION, AnalyticsReport, "Analytics report"
        )
        self.consents = Repository(db, CONSENTS_COLLECTION, Consent, "Consent")

    def transaction(self, fn):
        """Runs fn(collections) with every repository bound to one transaction."""
        return self.db.run_transaction(lambda tx: fn(Collections(tx)))
