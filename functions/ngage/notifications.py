"""
In-app notifications, member preferences and the domain-specific senders
used by deadlines, leaderboards and moderation.

Notifications for channels other than in-app are turned into Delivery
documents and handed to the delivery queue for the worker.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from ngage.queue import DeliveryQueue
from ngage.repositories import Collections
from ngage_shared.leaderboard import Leaderboard
from ngage_shared.models import (
    Badge,
    Delivery,
    Event,
    Milestone,
    Notification,
    NotificationPreferences,
    utc_now,
)
from ngage_shared.types import (
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration(duration: timedelta) -> str:
    """Human wording for a remaining duration, e.g. "2 days, 3 hours"."""
    total_minutes = max(int(duration.total_seconds() // 60), 0)
    days, remainder = divmod(total_minutes, 60 * 24)
    hours, minutes = divmod(remainder, 60)
    if days > 0:
        return f"{_plural(days, 'day')}, {_plural(hours, 'hour')}"
    if hours > 0:
        return f"{_plural(hours, 'hour')}, {_plural(minutes, 'minute')}"
    return _plural(minutes, "minute")


class NotificationService:
    def __init__(
        self,
        collections: Collections,
        queue: DeliveryQueue,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.queue = queue
        self.clock = clock

    # Preferences

    def get_preferences(self, member_id: str) -> NotificationPreferences:
        stored = self.c.preferences.get(member_id)
        return stored or NotificationPreferences(member_id=member_id, updated_at=self.clock())

    def save_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
        preferences.updated_at = self.clock()
        return self.c.preferences.save(preferences, doc_id=preferences.member_id)

    # Creation

    def create_notification(
        self,
        recipient_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        channels: Optional[List[NotificationChannel]] = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        scheduled_at: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Stores a notification unless the recipient opted out of its type.

        Requested channels are narrowed to the recipient's preferred ones;
        in-app delivery is always kept.
        """
        notification_type = NotificationType(notification_type)
        preferences = self.get_preferences(recipient_id)
        if not preferences.allows(notification_type):
            logger.debug(
                "Skipping %s notification for %s (disabled)", notification_type, recipient_id
            )
            return None

        requested = [NotificationChannel(c) for c in (channels or [NotificationChannel.IN_APP])]
        allowed = [
            c
            for c in requested
            if c == NotificationChannel.IN_APP or c in preferences.preferred_channels
        ]
        if NotificationChannel.IN_APP not in allowed:
            allowed.insert(0, NotificationChannel.IN_APP)

        now = self.clock()
        notification = Notification(
            id=self.c.notifications.new_id(),
            recipient_id=recipient_id,
            type=notification_type,
            title=title,
            message=message,
            data=data,
            channels=allowed,
            priority=NotificationPriority(priority),
            scheduled_at=scheduled_at,
            created_at=now,
        )
        if scheduled_at is None or scheduled_at <= now:
            notification.dispatched_at = now
            self.c.notifications.save(notification)
            self._enqueue_external(notification)
        else:
            self.c.notifications.save(notification)
        return notification

    def create_notifications_batch(
        self,
        recipient_ids: Iterable[str],
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> List[Notification]:
        created = []
        for recipient_id in dict.fromkeys(recipient_ids):
            notification = self.create_notification(
                recipient_id, notification_type, title, message, data=data, priority=priority
            )
            if notification:
                created.append(notification)
        return created

    def _enqueue_external(self, notification: Notification) -> None:
        for channel in notification.channels:
            if channel == NotificationChannel.IN_APP:
                continue
            delivery = Delivery(
                id=self.c.deliveries.new_id(),
                channel=channel.value,
                recipient_id=notification.recipient_id,
                group_id=(notification.data or {}).get("groupId"),
                title=notification.title,
                message=notification.message,
                notification_type=notification.type,
                metadata={"notificationId": notification.id},
                created_at=self.clock(),
            )
            self.c.deliveries.save(delivery)
            self.queue.enqueue(delivery.id)

    def dispatch_scheduled(self) -> int:
        """Releases scheduled notifications whose time has come."""
        due = self.get_scheduled_notifications()
        now = self.clock()
        for notification in due:
            notification.dispatched_at = now
            self.c.notifications.save(notification)
            self._enqueue_external(notification)
        return len(due)

    # Reads and updates

    def get_member_notifications(
        self, member_id: str, limit: int = 50, unread_only: bool = False
    ) -> List[Notification]:
        filters = [("recipient_id", "==", member_id)]
        if unread_only:
            filters.append(("is_read", "==", False))
        now = self.clock()
        notifications = self.c.notifications.find(
            *filters, order_by="created_at", descending=True
        )
        visible = [n for n in notifications if n.scheduled_at is None or n.scheduled_at <= now]
        return visible[:limit]

    def get_unread_count(self, member_id: str) -> int:
        return len(self.get_member_notifications(member_id, limit=10_000, unread_only=True))

    def mark_as_read(self, notification_id: str) -> Notification:
        notification = self.c.notifications.require(notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = self.clock()
            self.c.notifications.save(notification)
        return notification

    def mark_all_as_read(self, member_id: str) -> int:
        unread = self.c.notifications.find(
            ("recipient_id", "==", member_id), ("is_read", "==", False)
        )
        now = self.clock()

        def _mark(tx: Collections) -> None:
            for notification in unread:
                tx.notifications.patch(notification.id, is_read=True, read_at=now)

        self.c.transaction(_mark)
        return len(unread)

    def delete_notification(self, notification_id: str) -> None:
        self.c.notifications.delete(notification_id)

    def get_scheduled_notifications(self) -> List[Notification]:
        now = self.clock()
        scheduled = self.c.notifications.find(("scheduled_at", "<=", now))
        return [n for n in scheduled if n.dispatched_at is None]

    def delete_old_notifications(self, older_than_days: int = DEFAULT_RETENTION_DAYS) -> int:
        cutoff = self.clock() - timedelta(days=older_than_days)
        old = self.c.notifications.find(("created_at", "<", cutoff))
        for notification in old:
            self.c.notifications.delete(notification.id)
        if old:
            logger.info("Deleted %d notifications older than %d days", len(old), older_than_days)
        return len(old)

    def get_notifications_by_type(
        self,
        member_id: str,
        notification_type: NotificationType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Notification]:
        notifications = self.c.notifications.find(
            ("recipient_id", "==", member_id),
            ("type", "==", NotificationType(notification_type)),
            order_by="created_at",
            descending=True,
        )
        return [
            n
            for n in notifications
            if (start is None or n.created_at >= start) and (end is None or n.created_at <= end)
        ]

    # Domain senders

    def send_deadline_reminder(
        self, member_id: str, event: Event, time_remaining: timedelta
    ) -> Optional[Notification]:
        remaining = format_duration(time_remaining)
        priority = (
            NotificationPriority.URGENT
            if time_remaining <= timedelta(hours=1)
            else NotificationPriority.HIGH
        )
        return self.create_notification(
            member_id,
            NotificationType.DEADLINE_ALERT,
            f"Deadline approaching: {event.title}",
            f"Your submission for {event.title} is due in {remaining}. "
            "Submit before the deadline to be included in judging.",
            data={"eventId": event.id, "groupId": event.group_id, "timeRemaining": remaining},
            channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH],
            priority=priority,
        )

    def send_organizer_deadline_reminder(
        self, event: Event, time_remaining: timedelta, pending_submissions: int
    ) -> Optional[Notification]:
        remaining = format_duration(time_remaining)
        return self.create_notification(
            event.created_by,
            NotificationType.DEADLINE_ALERT,
            f"Deadline in {remaining}: {event.title}",
            f"{_plural(pending_submissions, 'draft submission')} still pending for "
            f"{event.title}.",
            data={
                "eventId": event.id,
                "groupId": event.group_id,
                "pendingSubmissions": pending_submissions,
            },
        )

    def send_deadline_auto_submitted(self, member_id: str, event: Event) -> Optional[Notification]:
        return self.create_notification(
            member_id,
            NotificationType.DEADLINE_ALERT,
            f"Submission closed: {event.title}",
            f"The deadline for {event.title} has passed. Your draft was submitted "
            "automatically.",
            data={"eventId": event.id, "groupId": event.group_id, "autoSubmitted": True},
            priority=NotificationPriority.HIGH,
        )

    def send_deadline_passed(self, event: Event, auto_closed_count: int) -> Optional[Notification]:
        return self.create_notification(
            event.created_by,
            NotificationType.DEADLINE_ALERT,
            f"Deadline passed: {event.title}",
            f"The submission deadline for {event.title} has passed. "
            f"{_plural(auto_closed_count, 'draft submission')} closed automatically.",
            data={
                "eventId": event.id,
                "groupId": event.group_id,
                "autoClosedCount": auto_closed_count,
            },
        )

    def send_leaderboard_update(
        self, recipient_ids: Iterable[str], event: Event, leaderboard: Leaderboard
    ) -> List[Notification]:
        leader = leaderboard.leader
        if leader is None:
            return []
        return self.create_notifications_batch(
            recipient_ids,
            NotificationType.LEADERBOARD_UPDATE,
            f"Leaderboard update: {event.title}",
            f"{leader.team_name} now leads with an average score of "
            f"{leader.average_score:.1f}.",
            data={"eventId": event.id, "groupId": event.group_id, "leaderTeamId": leader.team_id},
        )

    def send_result_announcement(
        self, recipient_ids: Iterable[str], event: Event, leaderboard: Leaderboard
    ) -> List[Notification]:
        winners = ", ".join(
            f"{e.position}. {e.team_name}" for e in leaderboard.entries if e.is_winning_position
        )
        return self.create_notifications_batch(
            recipient_ids,
            NotificationType.RESULT_ANNOUNCEMENT,
            f"Results are in: {event.title}",
            f"Final standings: {winners}" if winners else "No scored submissions.",
            data={"eventId": event.id, "groupId": event.group_id},
            priority=NotificationPriority.HIGH,
        )

    def send_moderation_notice(
        self, recipient_id: str, title: str, message: str, data: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        return self.create_notification(
            recipient_id,
            NotificationType.GENERAL,
            title,
            message,
            data=data,
            priority=NotificationPriority.HIGH,
        )

    def send_badge_awarded(self, member_id: str, badge: Badge) -> Optional[Notification]:
        return self.create_notification(
            member_id,
            NotificationType.BADGE_AWARDED,
            "Badge earned!",
            f'You earned the "{badge.name}" badge!',
            data={"badgeId": badge.id, "badgeName": badge.name, "rarity": badge.rarity.value},
            channels=[NotificationChannel.IN_APP, NotificationChannel.PUSH],
        )

    def send_milestone_completed(
        self, member_id: str, milestone: Milestone
    ) -> Optional[Notification]:
        return self.create_notification(
            member_id,
            NotificationType.MILESTONE_COMPLETED,
            "Milestone completed!",
            f"You completed {milestone.name} and earned "
            f"{_plural(milestone.point_reward, 'point')}.",
            data={"milestoneId": milestone.id, "points": milestone.point_reward},
        )
