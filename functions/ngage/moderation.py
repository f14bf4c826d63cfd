"""
Content reports and moderation actions.

Every report and action is scoped to a group: reports resolve the group
from the reported content, and only group admins may review reports or
take, and reverse, moderation actions.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import AuthorizationError, OperationError
from ngage.groups import GroupService
from ngage.notifications import NotificationService
from ngage.repositories import Collections
from ngage_shared.models import ContentReport, ModerationAction, utc_now
from ngage_shared.types import (
    ContentType,
    ModerationActionType,
    ModerationTargetType,
    ReportReason,
    ReportStatus,
)

logger = logging.getLogger(__name__)

CONTENT_HIDING_ACTIONS = (ModerationActionType.HIDE, ModerationActionType.DELETE)
RESTRICTING_ACTIONS = (ModerationActionType.SUSPEND, ModerationActionType.BAN)
USER_RESTRICTION_ACTIONS = RESTRICTING_ACTIONS + (ModerationActionType.WARN,)


class ModerationService:
    def __init__(
        self,
        collections: Collections,
        groups: GroupService,
        notifications: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.groups = groups
        self.notifications = notifications
        self.clock = clock

    def _content_group(self, content_id: str, content_type: ContentType) -> str:
        if content_type == ContentType.POST:
            return self.c.posts.require(content_id).group_id
        if content_type == ContentType.COMMENT:
            comment = self.c.post_comments.require(content_id)
            return self.c.posts.require(comment.post_id).group_id
        submission = self.c.submissions.require(content_id)
        return self.c.events.require(submission.event_id).group_id

    def _require_admin(self, group_id: Optional[str], member_id: str, message: str) -> None:
        if not group_id or not self.groups.is_group_admin(group_id, member_id):
            raise AuthorizationError(message)

    # Reports

    def report_content(
        self,
        reporter_id: str,
        content_id: str,
        content_type: ContentType,
        reason: ReportReason,
        description: Optional[str] = None,
    ) -> ContentReport:
        content_type = ContentType(content_type)
        existing = self.c.reports.find_one(
            ("reporter_id", "==", reporter_id), ("content_id", "==", content_id)
        )
        if existing is not None:
            raise OperationError("You have already reported this content")

        now = self.clock()
        report = ContentReport(
            id=self.c.reports.new_id(),
            reporter_id=reporter_id,
            content_id=content_id,
            content_type=content_type,
            reason=ReportReason(reason),
            description=description,
            group_id=self._content_group(content_id, content_type),
            created_at=now,
            updated_at=now,
        )
        self.c.reports.save(report)
        self._notify_admins_of_report(report)
        return report

    def _notify_admins_of_report(self, report: ContentReport) -> None:
        admins = [a for a in self.groups.get_group_admins(report.group_id) if a != report.reporter_id]
        for admin_id in admins:
            self.notifications.send_moderation_notice(
                admin_id,
                "New content report",
                f"A {report.content_type} was reported for {report.reason.replace('_', ' ')}.",
                data={"reportId": report.id, "groupId": report.group_id},
            )
        logger.info(
            "Content report %s for %s %s (%s)",
            report.id,
            report.content_type,
            report.content_id,
            report.reason,
        )

    def get_report(self, report_id: str) -> ContentReport:
        return self.c.reports.require(report_id)

    def get_pending_reports(
        self, group_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ContentReport]:
        return self.get_reports_by_status(ReportStatus.PENDING, group_id=group_id, limit=limit)

    def get_reports_by_status(
        self,
        status: ReportStatus,
        group_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ContentReport]:
        filters = [("status", "==", ReportStatus(status))]
        if group_id:
            filters.append(("group_id", "==", group_id))
        return self.c.reports.find(*filters, order_by="created_at", descending=True, limit=limit)

    def review_report(
        self,
        report_id: str,
        reviewer_id: str,
        new_status: ReportStatus,
        review_notes: Optional[str] = None,
    ) -> ContentReport:
        report = self.c.reports.require(report_id)
        self._require_admin(
            report.group_id, reviewer_id, "Insufficient permissions to review reports"
        )
        now = self.clock()
        report.status = ReportStatus(new_status)
        report.reviewed_by = reviewer_id
        report.review_notes = review_notes
        report.reviewed_at = now
        report.updated_at = now
        self.c.reports.save(report)
        self.notifications.send_moderation_notice(
            report.reporter_id,
            "Your report was reviewed",
            f"Your report has been marked as {report.status.replace('_', ' ')}.",
            data={"reportId": report.id, "status": report.status.value},
        )
        return report

    # Actions

    def take_moderation_action(
        self,
        moderator_id: str,
        group_id: str,
        target_id: str,
        target_type: ModerationTargetType,
        action_type: ModerationActionType,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        report_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> ModerationAction:
        self._require_admin(
            group_id, moderator_id, "Insufficient permissions to take moderation action"
        )
        target_type = ModerationTargetType(target_type)
        action_type = ModerationActionType(action_type)
        now = self.clock()
        action = ModerationAction(
            id=self.c.moderation_actions.new_id(),
            moderator_id=moderator_id,
            target_id=target_id,
            target_type=target_type,
            action_type=action_type,
            group_id=group_id,
            reason=reason,
            notes=notes,
            report_id=report_id,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        self.c.moderation_actions.save(action)
        self._apply_visibility(action, visible=action_type not in CONTENT_HIDING_ACTIONS)

        if target_type == ModerationTargetType.USER:
            self.notifications.send_moderation_notice(
                target_id,
                f"Moderation action: {action_type}",
                f"A moderator applied a {action_type} action to your account."
                + (f" Reason: {reason}" if reason else ""),
                data={"actionId": action.id, "groupId": group_id},
            )

        if report_id:
            report = self.c.reports.get(report_id)
            if report is not None:
                report.status = ReportStatus.RESOLVED
                report.reviewed_by = moderator_id
                report.review_notes = f"Resolved with {action_type} action"
                report.reviewed_at = now
                report.updated_at = now
                self.c.reports.save(report)

        logger.info(
            "Moderation action %s (%s) on %s %s by %s",
            action.id,
            action_type,
            target_type,
            target_id,
            moderator_id,
        )
        return action

    def _apply_visibility(self, action: ModerationAction, visible: bool) -> None:
        if action.action_type not in CONTENT_HIDING_ACTIONS + (ModerationActionType.APPROVE,):
            return
        if action.target_type == ModerationTargetType.POST:
            repo = self.c.posts
        elif action.target_type == ModerationTargetType.COMMENT:
            repo = self.c.post_comments
        else:
            return
        if repo.get(action.target_id) is not None:
            repo.patch(action.target_id, is_active=visible, updated_at=self.clock())

    def hide_content(
        self,
        moderator_id: str,
        group_id: str,
        content_id: str,
        content_type: ModerationTargetType,
        reason: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> ModerationAction:
        return self.take_moderation_action(
            moderator_id,
            group_id,
            content_id,
            content_type,
            ModerationActionType.HIDE,
            reason=reason,
            report_id=report_id,
        )

    def delete_content(
        self,
        moderator_id: str,
        group_id: str,
        content_id: str,
        content_type: ModerationTargetType,
        reason: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> ModerationAction:
        return self.take_moderation_action(
            moderator_id,
            group_id,
            content_id,
            content_type,
            ModerationActionType.DELETE,
            reason=reason,
            report_id=report_id,
        )

    def suspend_user(
        self,
        moderator_id: str,
        group_id: str,
        user_id: str,
        expires_at: datetime,
        reason: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> ModerationAction:
        return self.take_moderation_action(
            moderator_id,
            group_id,
            user_id,
            ModerationTargetType.USER,
            ModerationActionType.SUSPEND,
            reason=reason,
            report_id=report_id,
            expires_at=expires_at,
        )

    def ban_user(
        self,
        moderator_id: str,
        group_id: str,
        user_id: str,
        reason: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> ModerationAction:
        return self.take_moderation_action(
            moderator_id,
            group_id,
            user_id,
            ModerationTargetType.USER,
            ModerationActionType.BAN,
            reason=reason,
            report_id=report_id,
        )

    def warn_user(
        self,
        moderator_id: str,
        group_id: str,
        user_id: str,
        reason: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> ModerationAction:
        return self.take_moderation_action(
            moderator_id,
            group_id,
            user_id,
            ModerationTargetType.USER,
            ModerationActionType.WARN,
            reason=reason,
            report_id=report_id,
        )

    def approve_content(
        self,
        moderator_id: str,
        group_id: str,
        content_id: str,
        content_type: ModerationTargetType,
        notes: Optional[str] = None,
        report_id: Optional[str] = None,
    ) -> ModerationAction:
        return self.take_moderation_action(
            moderator_id,
            group_id,
            content_id,
            content_type,
            ModerationActionType.APPROVE,
            notes=notes,
            report_id=report_id,
        )

    def reverse_moderation_action(self, action_id: str, moderator_id: str) -> ModerationAction:
        action = self.c.moderation_actions.require(action_id)
        self._require_admin(
            action.group_id,
            moderator_id,
            "Insufficient permissions to reverse moderation action",
        )
        action.is_active = False
        action.updated_at = self.clock()
        self.c.moderation_actions.save(action)
        if action.action_type in CONTENT_HIDING_ACTIONS:
            self._apply_visibility(action, visible=True)
        return action

    # Queries

    def _active_actions(self, *filters) -> List[ModerationAction]:
        now = self.clock()
        actions = self.c.moderation_actions.find(("is_active", "==", True), *filters)
        return [a for a in actions if not a.is_expired(now)]

    def is_content_moderated(self, content_id: str, content_type: ModerationTargetType) -> bool:
        actions = self._active_actions(
            ("target_id", "==", content_id),
            ("target_type", "==", ModerationTargetType(content_type)),
        )
        return any(a.action_type in CONTENT_HIDING_ACTIONS for a in actions)

    def is_user_restricted(self, user_id: str) -> bool:
        return any(a.action_type in RESTRICTING_ACTIONS for a in self.get_user_restrictions(user_id))

    def get_user_restrictions(self, user_id: str) -> List[ModerationAction]:
        actions = self._active_actions(
            ("target_id", "==", user_id),
            ("target_type", "==", ModerationTargetType.USER),
        )
        return [a for a in actions if a.action_type in USER_RESTRICTION_ACTIONS]

    def get_actions_for_target(
        self, target_id: str, target_type: ModerationTargetType
    ) -> List[ModerationAction]:
        return self.c.moderation_actions.find(
            ("target_id", "==", target_id),
            ("target_type", "==", ModerationTargetType(target_type)),
            order_by="created_at",
            descending=True,
        )

    def get_moderation_statistics(self, group_id: Optional[str] = None) -> Dict[str, Any]:
        group_filter = [("group_id", "==", group_id)] if group_id else []
        reports = self.c.reports.find(*group_filter)
        actions = self._active_actions(*group_filter)
        report_counts = Counter(r.status.value for r in reports)
        action_counts = Counter(a.action_type.value for a in actions)
        return {
            "reports": {s.value: report_counts.get(s.value, 0) for s in ReportStatus},
            "actions": {t.value: action_counts.get(t.value, 0) for t in ModerationActionType},
        }

    def cleanup_expired_actions(self) -> int:
        now = self.clock()
        expired = [
            a
            for a in self.c.moderation_actions.find(("is_active", "==", True))
            if a.is_expired(now)
        ]
        for action in expired:
            self.c.moderation_actions.patch(action.id, is_active=False, updated_at=now)
        if expired:
            logger.info("Deactivated %d expired moderation actions", len(expired))
        return len(expired)
