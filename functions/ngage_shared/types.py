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

from enum import StrEnum


class GroupType(StrEnum):
    CORPORATE = "corporate"
    EDUCATIONAL = "educational"
    COMMUNITY = "community"
    SOCIAL = "social"


class GroupRole(StrEnum):
    ADMIN = "admin"
    JUDGE = "judge"
    TEAM_LEAD = "team_lead"
    MEMBER = "member"


class EventType(StrEnum):
    COMPETITION = "competition"
    CHALLENGE = "challenge"
    SURVEY = "survey"


class EventStatus(StrEnum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubmissionStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class ScoringType(StrEnum):
    NUMERIC = "numeric"
    SCALE = "scale"
    BOOLEAN = "boolean"


class JudgeRole(StrEnum):
    JUDGE = "judge"
    LEAD_JUDGE = "lead_judge"
    PANEL_MEMBER = "panel_member"


class JudgeCommentType(StrEnum):
    GENERAL = "general"
    QUESTION = "question"
    CONCERN = "concern"
    SUGGESTION = "suggestion"
    CLARIFICATION = "clarification"


class NotificationType(StrEnum):
    EVENT_REMINDER = "event_reminder"
    DEADLINE_ALERT = "deadline_alert"
    RESULT_ANNOUNCEMENT = "result_announcement"
    LEADERBOARD_UPDATE = "leaderboard_update"
    BADGE_AWARDED = "badge_awarded"
    MILESTONE_COMPLETED = "milestone_completed"
    GENERAL = "general"


class NotificationChannel(StrEnum):
    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class IntegrationType(StrEnum):
    SLACK = "slack"
    MICROSOFT_TEAMS = "microsoft_teams"
    EMAIL = "email"
    GOOGLE_CALENDAR = "google_calendar"
    MICROSOFT_CALENDAR = "microsoft_calendar"


class IntegrationStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    PENDING = "pending"


class ConnectionStatus(StrEnum):
    NOT_SUPPORTED = "not_supported"
    DISABLED = "disabled"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class EmailProvider(StrEnum):
    SENDGRID = "sendgrid"
    MAILGUN = "mailgun"
    SES = "ses"
    SMTP = "smtp"


class ReportReason(StrEnum):
    SPAM = "spam"
    HARASSMENT = "harassment"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    COPYRIGHT = "copyright"
    MISINFORMATION = "misinformation"
    OTHER = "other"


class ReportStatus(StrEnum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ContentType(StrEnum):
    POST = "post"
    COMMENT = "comment"
    SUBMISSION = "submission"


class ModerationActionType(StrEnum):
    HIDE = "hide"
    DELETE = "delete"
    WARN = "warn"
    SUSPEND = "suspend"
    BAN = "ban"
    APPROVE = "approve"
    DISMISS = "dismiss"


class ModerationTargetType(StrEnum):
    POST = "post"
    COMMENT = "comment"
    SUBMISSION = "submission"
    USER = "user"


class PostContentType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    MIXED = "mixed"


class DeadlineStatus(StrEnum):
    NO_DEADLINE = "no_deadline"
    NORMAL = "normal"
    APPROACHING = "approaching"
    WARNING = "warning"
    URGENT = "urgent"
    CRITICAL = "critical"
    PASSED = "passed"

    @property
    def is_urgent(self) -> bool:
        return self in (DeadlineStatus.URGENT, DeadlineStatus.CRITICAL)

    @property
    def requires_attention(self) -> bool:
        return self in (
            DeadlineStatus.WARNING,
            DeadlineStatus.URGENT,
            DeadlineStatus.CRITICAL,
        )


class TrendDirection(StrEnum):
    UPWARD = "upward"
    DOWNWARD = "downward"
    STABLE = "stable"


class LeaderboardSortField(StrEnum):
    AVERAGE_SCORE = "average_score"
    TOTAL_SCORE = "total_score"
    SUBMISSION_COUNT = "submission_count"
    TEAM_NAME = "team_name"


class OperationType(StrEnum):
    """Writes that can be queued while the backend is unreachable."""

    CREATE_POST = "create_post"
    LIKE_POST = "like_post"
    UNLIKE_POST = "unlike_post"
    ADD_COMMENT = "add_comment"
    MARK_NOTIFICATION_READ = "mark_notification_read"
    SUBMIT_SCORE = "submit_score"


class BadgeCategory(StrEnum):
    PARTICIPATION = "participation"
    PERFORMANCE = "performance"
    SOCIAL = "social"
    MILESTONE = "milestone"
    SPECIAL = "special"


class BadgeRarity(StrEnum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class StreakType(StrEnum):
    DAILY_LOGIN = "daily_login"
    EVENT_PARTICIPATION = "event_participation"
    SOCIAL_ENGAGEMENT = "social_engagement"
    SUBMISSION = "submission"
    JUDGING = "judging"


class MilestoneType(StrEnum):
    TOTAL_POINTS = "total_points"
    EVENT_PARTICIPATION = "event_participation"
    SOCIAL_POSTS = "social_posts"
    BADGES_EARNED = "badges_earned"
    STREAK_DAYS = "streak_days"
    SUBMISSIONS_COUNT = "submissions_count"
    JUDGE_SCORES = "judge_scores"


class ConsentType(StrEnum):
    MEDIA_USAGE = "media_usage"
    DATA_PROCESSING = "data_processing"
    MARKETING = "marketing"
    ANALYTICS = "analytics"
    THIRD_PARTY_SHARING = "third_party_sharing"
