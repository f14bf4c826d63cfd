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

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ngage_shared.types import (
    BadgeCategory,
    BadgeRarity,
    ConsentType,
    ContentType,
    EventStatus,
    EventType,
    GroupRole,
    GroupType,
    IntegrationStatus,
    IntegrationType,
    JudgeCommentType,
    JudgeRole,
    MilestoneType,
    ModerationActionType,
    ModerationTargetType,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
    OperationType,
    PostContentType,
    ReportReason,
    ReportStatus,
    ScoringType,
    StreakType,
    SubmissionStatus,
)

SUBMISSION_FILE_TYPES = ("photos", "videos", "documents")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class User:
    """An authenticated account; may own several member profiles."""

    id: str
    email: str
    phone: Optional[str] = None
    default_member: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Member:
    """A participant profile, optionally claimed by a User."""

    id: str
    email: str
    first_name: str
    last_name: str
    user_id: Optional[str] = None
    phone: Optional[str] = None
    external_id: Optional[str] = None
    category: Optional[str] = None
    title: Optional[str] = None
    profile_photo: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool = True
    imported_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_claimed(self) -> bool:
        return self.user_id is not None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Group:
    id: str
    name: str
    description: str
    group_type: GroupType
    created_by: str
    settings: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class GroupMember:
    id: str
    group_id: str
    member_id: str
    role: GroupRole = GroupRole.MEMBER
    joined_at: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Team:
    id: str
    group_id: str
    name: str
    description: str
    team_lead_id: str
    member_ids: List[str] = field(default_factory=list)
    logo_url: Optional[str] = None
    max_members: Optional[int] = None
    team_type: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def has_member(self, member_id: str) -> bool:
        return member_id in self.member_ids

    @property
    def member_count(self) -> int:
        return len(self.member_ids)

    @property
    def is_at_capacity(self) -> bool:
        return self.max_members is not None and self.member_count >= self.max_members


@dataclass
class Event:
    """A competition, challenge or survey run inside a group."""

    id: str
    group_id: str
    title: str
    description: str
    event_type: EventType
    created_by: str
    status: EventStatus = EventStatus.DRAFT
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    submission_deadline: Optional[datetime] = None
    eligible_team_ids: Optional[List[str]] = None
    judging_criteria: Dict[str, Any] = field(default_factory=dict)
    # Minutes-before-deadline offsets whose reminders were already sent.
    reminders_sent: List[int] = field(default_factory=list)
    deadline_enforced_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_open_event(self) -> bool:
        return not self.eligible_team_ids

    def is_team_eligible(self, team_id: str) -> bool:
        return self.is_open_event or team_id in self.eligible_team_ids

    @property
    def prerequisites(self) -> List[str]:
        return list(self.judging_criteria.get("prerequisites") or [])

    def submissions_open(self, now: datetime) -> bool:
        if self.status != EventStatus.ACTIVE:
            return False
        if self.start_time and now < self.start_time:
            return False
        if self.end_time and now > self.end_time:
            return False
        if self.submission_deadline and now > self.submission_deadline:
            return False
        return True

    def time_until_deadline(self, now: datetime) -> Optional[timedelta]:
        if not self.submission_deadline or now > self.submission_deadline:
            return None
        return self.submission_deadline - now


@dataclass
class Submission:
    id: str
    event_id: str
    team_id: str
    submitted_by: str
    content: Dict[str, Any] = field(default_factory=dict)
    status: SubmissionStatus = SubmissionStatus.DRAFT
    submitted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def text(self) -> str:
        return self.content.get("text") or ""

    def files(self, file_type: str) -> List[str]:
        return list(self.content.get(file_type) or [])

    @property
    def has_content(self) -> bool:
        if self.text.strip():
            return True
        return any(self.files(file_type) for file_type in SUBMISSION_FILE_TYPES)

    @property
    def can_be_edited(self) -> bool:
        return self.status == SubmissionStatus.DRAFT

    @property
    def is_scored_status(self) -> bool:
        return self.status in (SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED)

    def submit(self, now: datetime) -> None:
        if self.status != SubmissionStatus.DRAFT:
            raise ValueError("Cannot submit a submission that is not in draft status")
        if not self.has_content:
            raise ValueError("Cannot submit empty submission")
        self.status = SubmissionStatus.SUBMITTED
        self.submitted_at = now
        self.updated_at = now


@dataclass
class ScoringCriterion:
    key: str
    name: str
    description: str = ""
    type: ScoringType = ScoringType.NUMERIC
    max_score: float = 100
    weight: float = 1.0
    required: bool = True
    options: Optional[Dict[str, Any]] = None

    def is_valid_score(self, value: Any) -> bool:
        if self.type == ScoringType.BOOLEAN:
            return isinstance(value, bool)
        if not _is_number(value):
            return False
        if self.type == ScoringType.SCALE:
            options = self.options or {}
            low = options.get("min", 0)
            high = options.get("max", self.max_score)
            return low <= value <= high
        return 0 <= value <= self.max_score


@dataclass
class ScoringRubric:
    id: str
    name: str
    description: str
    created_by: str
    criteria: List[ScoringCriterion] = field(default_factory=list)
    event_id: Optional[str] = None
    group_id: Optional[str] = None
    is_template: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def get_criterion(self, key: str) -> Optional[ScoringCriterion]:
        for criterion in self.criteria:
            if criterion.key == key:
                return criterion
        return None

    @property
    def max_possible_score(self) -> float:
        return sum(c.max_score for c in self.criteria)

    @property
    def weighted_max_score(self) -> float:
        return sum(c.max_score * c.weight for c in self.criteria)

    def add_criterion(self, criterion: ScoringCriterion) -> None:
        if self.get_criterion(criterion.key):
            raise ValueError(f"Criterion already exists: {criterion.key}")
        self.criteria.append(criterion)

    def remove_criterion(self, key: str) -> None:
        self.criteria = [c for c in self.criteria if c.key != key]

    def update_criterion(self, key: str, criterion: ScoringCriterion) -> None:
        self.criteria = [criterion if c.key == key else c for c in self.criteria]


@dataclass
class Score:
    """One judge's scores for one submission."""

    id: str
    submission_id: str
    judge_id: str
    event_id: str
    scores: Dict[str, Any] = field(default_factory=dict)
    comments: Optional[str] = None
    total_score: Optional[float] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def numeric_scores(self) -> Dict[str, float]:
        return {k: float(v) for k, v in self.scores.items() if _is_number(v)}

    def calculate_total(self, rubric: ScoringRubric) -> float:
        """Weighted mean of the numeric scores for the rubric's criteria."""
        weighted_sum = 0.0
        total_weight = 0.0
        numeric = self.numeric_scores
        for criterion in rubric.criteria:
            if criterion.key in numeric:
                weighted_sum += numeric[criterion.key] * criterion.weight
                total_weight += criterion.weight
        return weighted_sum / total_weight if total_weight > 0 else 0.0

    def is_complete(self, rubric: ScoringRubric) -> bool:
        return all(
            c.key in self.scores and self.scores[c.key] is not None
            for c in rubric.criteria
            if c.required
        )

    def completion_percentage(self, rubric: ScoringRubric) -> float:
        if not rubric.criteria:
            return 100.0
        scored = sum(1 for c in rubric.criteria if self.scores.get(c.key) is not None)
        return scored / len(rubric.criteria) * 100


@dataclass
class JudgeComment:
    id: str
    submission_id: str
    event_id: str
    judge_id: str
    content: str
    type: JudgeCommentType = JudgeCommentType.GENERAL
    parent_comment_id: Optional[str] = None
    is_private: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_reply(self) -> bool:
        return self.parent_comment_id is not None


@dataclass
class JudgeAssignment:
    id: str
    event_id: str
    judge_id: str
    assigned_by: str
    role: JudgeRole = JudgeRole.JUDGE
    permissions: List[str] = field(default_factory=list)
    is_active: bool = True
    assigned_at: datetime = field(default_factory=utc_now)
    revoked_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def add_permission(self, permission: str) -> None:
        if permission not in self.permissions:
            self.permissions.append(permission)

    def remove_permission(self, permission: str) -> None:
        self.permissions = [p for p in self.permissions if p != permission]

    def revoke(self, now: datetime) -> None:
        self.is_active = False
        self.revoked_at = now
        self.updated_at = now

    def reactivate(self, now: datetime) -> None:
        self.is_active = True
        self.revoked_at = None
        self.assigned_at = now
        self.updated_at = now


@dataclass
class Notification:
    id: str
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    is_read: bool = False
    channels: List[NotificationChannel] = field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )
    priority: NotificationPriority = NotificationPriority.NORMAL
    scheduled_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    read_at: Optional[datetime] = None


@dataclass
class NotificationPreferences:
    member_id: str
    event_reminders: bool = True
    deadline_alerts: bool = True
    result_announcements: bool = True
    leaderboard_updates: bool = True
    preferred_channels: List[NotificationChannel] = field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )
    type_preferences: Dict[str, bool] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utc_now)

    def allows(self, notification_type: NotificationType) -> bool:
        if notification_type.value in self.type_preferences:
            return self.type_preferences[notification_type.value]
        if notification_type == NotificationType.EVENT_REMINDER:
            return self.event_reminders
        if notification_type == NotificationType.DEADLINE_ALERT:
            return self.deadline_alerts
        if notification_type == NotificationType.RESULT_ANNOUNCEMENT:
            return self.result_announcements
        if notification_type == NotificationType.LEADERBOARD_UPDATE:
            return self.leaderboard_updates
        return True


@dataclass
class Delivery:
    """A queued outbound message for an external channel or integration."""

    id: str
    channel: str
    recipient_id: Optional[str]
    group_id: Optional[str]
    title: str
    message: str
    notification_type: NotificationType = NotificationType.GENERAL
    metadata: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    delivered_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Integration:
    """Third-party integration configured by a group admin."""

    id: str
    group_id: str
    type: IntegrationType
    name: str
    configuration: Dict[str, Any] = field(default_factory=dict)
    # Notification type -> channel id / address on the external platform.
    channel_mappings: Dict[str, str] = field(default_factory=dict)
    is_active: bool = True
    status: IntegrationStatus = IntegrationStatus.PENDING
    last_error: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class ContentReport:
    id: str
    reporter_id: str
    content_id: str
    content_type: ContentType
    reason: ReportReason
    description: Optional[str] = None
    group_id: Optional[str] = None
    status: ReportStatus = ReportStatus.PENDING
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class ModerationAction:
    id: str
    moderator_id: str
    target_id: str
    target_type: ModerationTargetType
    action_type: ModerationActionType
    group_id: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    report_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now


@dataclass
class Post:
    id: str
    group_id: str
    author_id: str
    content: str
    media_urls: List[str] = field(default_factory=list)
    content_type: PostContentType = PostContentType.TEXT
    like_count: int = 0
    comment_count: int = 0
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class PostLike:
    id: str
    post_id: str
    member_id: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class PostComment:
    id: str
    post_id: str
    author_id: str
    content: str
    parent_comment_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class PendingOperation:
    """A write captured while offline, replayed by sync."""

    id: str
    type: OperationType
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=utc_now)
    attempts: int = 0
    last_error: Optional[str] = None


@dataclass
class Badge:
    id: str
    name: str
    description: str
    category: BadgeCategory
    rarity: BadgeRarity = BadgeRarity.COMMON
    point_value: int = 0
    criteria: Dict[str, Any] = field(default_factory=dict)
    icon_url: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class MemberBadge:
    """A badge held by a member; the id is ``{member_id}_{badge_id}``."""

    id: str
    member_id: str
    badge_id: str
    awarded_at: datetime = field(default_factory=utc_now)
    event_id: Optional[str] = None
    submission_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_visible: bool = True


@dataclass
class MemberPoints:
    id: str
    member_id: str
    total_points: int = 0
    category_points: Dict[str, int] = field(default_factory=dict)
    level: int = 1
    level_title: str = "Beginner"
    current_level_points: int = 0
    next_level_points: int = 1000
    last_updated: datetime = field(default_factory=utc_now)


@dataclass
class MemberStreak:
    id: str
    member_id: str
    type: StreakType
    current_streak: int
    longest_streak: int
    last_activity_date: datetime
    streak_start_date: datetime
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Milestone:
    id: str
    name: str
    description: str
    type: MilestoneType
    target_value: int
    point_reward: int = 0
    badge_id: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class MemberMilestone:
    id: str
    member_id: str
    milestone_id: str
    current_progress: int
    target_progress: int
    reward_points: int = 0
    badge_id: Optional[str] = None
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    rewarded: bool = False

    @property
    def progress_percentage(self) -> float:
        if self.target_progress <= 0:
            return 100.0
        return min(self.current_progress / self.target_progress * 100, 100.0)


@dataclass
class ParticipationMetrics:
    total_members: int = 0
    active_members: int = 0
    total_teams: int = 0
    active_teams: int = 0
    total_events: int = 0
    completed_events: int = 0
    total_submissions: int = 0
    participation_rate: float = 0.0
    event_completion_rate: float = 0.0
    members_by_category: Dict[str, int] = field(default_factory=dict)
    teams_by_type: Dict[str, int] = field(default_factory=dict)


@dataclass
class JudgeActivityMetrics:
    total_judges: int = 0
    active_judges: int = 0
    total_scores: int = 0
    total_comments: int = 0
    average_scores_per_judge: float = 0.0
    average_comments_per_judge: float = 0.0
    scores_by_judge: Dict[str, int] = field(default_factory=dict)
    comments_by_judge: Dict[str, int] = field(default_factory=dict)
    average_scores_by_event: Dict[str, float] = field(default_factory=dict)


@dataclass
class EngagementMetrics:
    total_posts: int = 0
    total_likes: int = 0
    total_comments: int = 0
    average_likes_per_post: float = 0.0
    average_comments_per_post: float = 0.0
    posts_by_member: Dict[str, int] = field(default_factory=dict)
    likes_by_member: Dict[str, int] = field(default_factory=dict)
    comments_by_member: Dict[str, int] = field(default_factory=dict)
    top_contributors: List[str] = field(default_factory=list)
    engagement_by_day: Dict[str, int] = field(default_factory=dict)


@dataclass
class AnalyticsSnapshot:
    """Group metrics for one period, stored for trend analysis."""

    id: str
    group_id: str
    period_start: datetime
    period_end: datetime
    participation: ParticipationMetrics
    judge_activity: JudgeActivityMetrics
    engagement: EngagementMetrics
    event_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class AnalyticsReport:
    id: str
    title: str
    description: str
    group_ids: List[str]
    period_start: datetime
    period_end: datetime
    generated_by: str
    snapshot_ids: List[str] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    generated_at: datetime = field(default_factory=utc_now)


@dataclass
class Consent:
    id: str
    member_id: str
    consent_type: ConsentType
    granted: bool = True
    purpose: Optional[str] = None
    description: Optional[str] = None
    granted_at: datetime = field(default_factory=utc_now)
    revoked_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def is_valid(self, now: datetime) -> bool:
        if not self.granted or self.revoked_at is not None:
            return False
        return self.expires_at is None or now <= self.expires_at
