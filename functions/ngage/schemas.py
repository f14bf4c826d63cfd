"""
Pydantic schemas for the Ngage FastAPI backend.

Bodies use camelCase on the wire, matching the stored documents; snake_case
field names are accepted as well.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ngage_shared.types import (
    BadgeCategory,
    BadgeRarity,
    ConsentType,
    ContentType,
    EventStatus,
    EventType,
    GroupRole,
    GroupType,
    JudgeCommentType,
    JudgeRole,
    MilestoneType,
    ModerationActionType,
    ModerationTargetType,
    NotificationChannel,
    ReportReason,
    ReportStatus,
    ScoringType,
    StreakType,
    SubmissionStatus,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusResponse(ApiModel):
    status: str = "ok"


class CountResponse(ApiModel):
    count: int


# Members


class UpdateMemberRequest(ApiModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    title: Optional[str] = None
    profile_photo: Optional[str] = None
    bio: Optional[str] = None


class DefaultMemberRequest(ApiModel):
    member_id: str


# Groups


class CreateGroupRequest(ApiModel):
    name: str = Field(..., max_length=100)
    description: str = ""
    group_type: GroupType
    settings: Optional[Dict[str, Any]] = None


class UpdateGroupRequest(ApiModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    group_type: Optional[GroupType] = None
    settings: Optional[Dict[str, Any]] = None


class GroupMemberRequest(ApiModel):
    member_id: str
    role: GroupRole = GroupRole.MEMBER


class GroupRoleRequest(ApiModel):
    role: GroupRole


# Teams


class CreateTeamRequest(ApiModel):
    group_id: str
    name: str
    description: str = ""
    team_lead_id: Optional[str] = None
    member_ids: List[str] = Field(default_factory=list)
    max_members: Optional[int] = Field(default=None, ge=1)
    team_type: Optional[str] = None
    logo_url: Optional[str] = None


class UpdateTeamRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    team_lead_id: Optional[str] = None
    max_members: Optional[int] = Field(default=None, ge=1)
    team_type: Optional[str] = None
    logo_url: Optional[str] = None
    is_active: Optional[bool] = None


class TeamMembersRequest(ApiModel):
    member_ids: List[str]


class TeamLeadRequest(ApiModel):
    member_id: str


# Events


class CreateEventRequest(ApiModel):
    group_id: str
    title: str
    description: str = ""
    event_type: EventType
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    submission_deadline: Optional[datetime] = None
    eligible_team_ids: Optional[List[str]] = None
    judging_criteria: Optional[Dict[str, Any]] = None


class UpdateEventRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    submission_deadline: Optional[datetime] = None
    eligible_team_ids: Optional[List[str]] = None
    judging_criteria: Optional[Dict[str, Any]] = None


class ScheduleEventRequest(ApiModel):
    start_time: datetime
    end_time: datetime
    submission_deadline: Optional[datetime] = None


class EventStatusRequest(ApiModel):
    status: EventStatus


class CloneEventRequest(ApiModel):
    new_title: Optional[str] = None
    new_group_id: Optional[str] = None
    preserve_schedule: bool = False
    preserve_access_control: bool = True
    new_eligible_team_ids: Optional[List[str]] = None


class EventAccessRequest(ApiModel):
    eligible_team_ids: Optional[List[str]] = None


class PrerequisitesRequest(ApiModel):
    prerequisite_ids: List[str]


class DeadlineStatusResponse(ApiModel):
    event_id: str
    status: str
    time_remaining: str
    seconds_remaining: Optional[float] = None
    has_passed: bool
    is_urgent: bool
    requires_attention: bool


# Submissions


class CreateSubmissionRequest(ApiModel):
    event_id: str
    team_id: str
    content: Optional[Dict[str, Any]] = None


class SubmissionContentRequest(ApiModel):
    content: Dict[str, Any]


class SubmissionStatusRequest(ApiModel):
    status: SubmissionStatus


# Judging


class AssignJudgeRequest(ApiModel):
    judge_id: str
    role: JudgeRole = JudgeRole.JUDGE
    permissions: Optional[List[str]] = None


class JudgeCommentRequest(ApiModel):
    content: str
    comment_type: JudgeCommentType = JudgeCommentType.GENERAL
    parent_comment_id: Optional[str] = None
    is_private: bool = True


class CriterionModel(ApiModel):
    key: str
    name: str
    description: str = ""
    type: ScoringType = ScoringType.NUMERIC
    max_score: float = 100
    weight: float = 1.0
    required: bool = True
    options: Optional[Dict[str, Any]] = None


class CreateRubricRequest(ApiModel):
    name: str
    description: str = ""
    criteria: List[CriterionModel]
    event_id: Optional[str] = None
    group_id: Optional[str] = None
    is_template: bool = False


class ScoreRequest(ApiModel):
    scores: Dict[str, Any]
    comments: Optional[str] = None
    rubric_id: Optional[str] = None


# Notifications


class NotificationPreferencesRequest(ApiModel):
    event_reminders: bool = True
    deadline_alerts: bool = True
    result_announcements: bool = True
    leaderboard_updates: bool = True
    preferred_channels: List[NotificationChannel] = Field(
        default_factory=lambda: [NotificationChannel.IN_APP]
    )
    type_preferences: Dict[str, bool] = Field(default_factory=dict)


# Integrations


class IntegrationConfigRequest(ApiModel):
    # Platform configuration keeps its own key names (accessToken, ...).
    configuration: Dict[str, Any]
    channel_mappings: Optional[Dict[str, str]] = None
    name: Optional[str] = None


class IntegrationMessageRequest(ApiModel):
    title: str
    text: str


class CalendarEventRequest(ApiModel):
    title: str
    start: datetime
    end: datetime
    description: str = ""
    location: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)


# Moderation


class ReportContentRequest(ApiModel):
    content_id: str
    content_type: ContentType
    reason: ReportReason
    description: Optional[str] = Field(default=None, max_length=1000)


class ReviewReportRequest(ApiModel):
    status: ReportStatus
    review_notes: Optional[str] = None


class ModerationActionRequest(ApiModel):
    group_id: str
    target_id: str
    target_type: ModerationTargetType
    action_type: ModerationActionType
    reason: Optional[str] = None
    notes: Optional[str] = None
    report_id: Optional[str] = None
    expires_at: Optional[datetime] = None


# Posts


class CreatePostRequest(ApiModel):
    content: str = ""
    media_urls: List[str] = Field(default_factory=list)


class UpdatePostRequest(ApiModel):
    content: str


class CommentRequest(ApiModel):
    content: str
    parent_comment_id: Optional[str] = None


class LikeResponse(ApiModel):
    liked: bool
    changed: bool


# Recognition


class CreateBadgeRequest(ApiModel):
    group_id: str
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    category: BadgeCategory
    rarity: BadgeRarity = BadgeRarity.COMMON
    point_value: int = Field(0, ge=0)
    criteria: Dict[str, Any] = Field(default_factory=dict)
    icon_url: Optional[str] = None
    badge_id: Optional[str] = None


class AwardBadgeRequest(ApiModel):
    group_id: str
    member_id: str
    event_id: Optional[str] = None
    submission_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BadgeVisibilityRequest(ApiModel):
    is_visible: bool


class ActivityRequest(ApiModel):
    streak_type: StreakType
    activity_date: Optional[datetime] = None


class CreateMilestoneRequest(ApiModel):
    group_id: str
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    milestone_type: MilestoneType
    target_value: int = Field(ge=1)
    point_reward: int = Field(0, ge=0)
    badge_id: Optional[str] = None


# Analytics


class AnalyticsPeriodRequest(ApiModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    event_id: Optional[str] = None


class AnalyticsReportRequest(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    group_ids: List[str] = Field(min_length=1)
    start: Optional[datetime] = None
    end: Optional[datetime] = None


# Consent


class GrantConsentRequest(ApiModel):
    consent_type: ConsentType
    purpose: Optional[str] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
