"""
Submission deadline monitoring.

Enforcement is idempotent: each event records when its deadline was enforced
and which reminder offsets were sent, so the periodic sweep (scheduled
function, worker loop or DeadlineMonitor) can run as often as needed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ngage.errors import NgageError
from ngage.notifications import NotificationService
from ngage.repositories import Collections
from ngage_shared.models import Event, utc_now
from ngage_shared.types import DeadlineStatus, EventStatus, SubmissionStatus

logger = logging.getLogger(__name__)

CHECK_INTERVAL_SECONDS = 60.0

# Reminder offsets before the deadline, in minutes.
REMINDER_OFFSETS_MINUTES = (24 * 60, 4 * 60, 60, 15)

STATUS_THRESHOLDS = (
    (timedelta(minutes=15), DeadlineStatus.CRITICAL),
    (timedelta(hours=1), DeadlineStatus.URGENT),
    (timedelta(hours=4), DeadlineStatus.WARNING),
    (timedelta(hours=24), DeadlineStatus.APPROACHING),
)


def get_deadline_status(event: Event, now: datetime) -> DeadlineStatus:
    if event.submission_deadline is None:
        return DeadlineStatus.NO_DEADLINE
    remaining = event.submission_deadline - now
    if remaining < timedelta(0):
        return DeadlineStatus.PASSED
    for threshold, status in STATUS_THRESHOLDS:
        if remaining <= threshold:
            return status
    return DeadlineStatus.NORMAL


def format_time_remaining(remaining: Optional[timedelta]) -> str:
    if remaining is None:
        return "No deadline"
    if remaining < timedelta(0):
        return "Deadline passed"
    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h remaining" if hours > 0 else f"{days}d remaining"
    if hours > 0:
        return f"{hours}h {minutes}m remaining" if minutes > 0 else f"{hours}h remaining"
    return f"{minutes}m remaining"


@dataclass
class EnforcementResult:
    event_id: str
    auto_submitted: int = 0
    deleted: int = 0
    failed: int = 0
    completed_event: bool = False


@dataclass
class SweepSummary:
    checked: int = 0
    enforced: List[EnforcementResult] = field(default_factory=list)
    reminders_sent: int = 0
    errors: int = 0
    activated: List[str] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "checked": self.checked,
            "enforced": [vars(r) for r in self.enforced],
            "remindersSent": self.reminders_sent,
            "errors": self.errors,
            "activated": list(self.activated),
            "completed": list(self.completed),
        }


class DeadlineService:
    def __init__(
        self,
        collections: Collections,
        notifications: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.notifications = notifications
        self.clock = clock

    def get_deadline_status(self, event: Event) -> DeadlineStatus:
        return get_deadline_status(event, self.clock())

    def has_deadline_passed(self, event: Event) -> bool:
        return event.submission_deadline is not None and self.clock() > event.submission_deadline

    def get_time_until_deadline(self, event: Event) -> Optional[timedelta]:
        return event.time_until_deadline(self.clock())

    def format_time_remaining(self, event: Event) -> str:
        if event.submission_deadline is None:
            return format_time_remaining(None)
        return format_time_remaining(event.submission_deadline - self.clock())

    def _drafts(self, event_id: str):
        return self.c.submissions.find(
            ("event_id", "==", event_id), ("status", "==", SubmissionStatus.DRAFT)
        )

    def enforce_deadline(self, event: Event) -> EnforcementResult:
        """
        Closes an event's submissions once its deadline has passed.

        Drafts with content are submitted as of the deadline and their
        authors notified; empty drafts are deleted.
        """
        result = EnforcementResult(event_id=event.id)
        now = self.clock()
        for submission in self._drafts(event.id):
            try:
                if submission.has_content:
                    submission.status = SubmissionStatus.SUBMITTED
                    submission.submitted_at = event.submission_deadline or now
                    submission.updated_at = now
                    self.c.submissions.save(submission)
                    self.notifications.send_deadline_auto_submitted(
                        submission.submitted_by, event
                    )
                    result.auto_submitted += 1
                else:
                    self.c.submissions.delete(submission.id)
                    result.deleted += 1
            except NgageError as e:
                result.failed += 1
                logger.error(
                    "Failed to close submission %s for event %s: %s",
                    submission.id,
                    event.id,
                    e,
                )

        if event.status == EventStatus.ACTIVE and event.end_time and now > event.end_time:
            event.status = EventStatus.COMPLETED
            result.completed_event = True
        event.deadline_enforced_at = now
        event.updated_at = now
        self.c.events.save(event)

        self.notifications.send_deadline_passed(event, result.auto_submitted)
        logger.info(
            "Enforced deadline for event %s: %d auto-submitted, %d deleted, %d failed",
            event.id,
            result.auto_submitted,
            result.deleted,
            result.failed,
        )
        return result

    def send_due_reminders(self, event: Event) -> int:
        """
        Sends the most imminent due reminder that has not been sent yet.

        Offsets that came due while nothing was running are marked as sent
        without notifying, so members get one reminder per sweep at most.
        """
        if event.submission_deadline is None:
            return 0
        now = self.clock()
        remaining = event.submission_deadline - now
        if remaining <= timedelta(0):
            return 0
        due = [
            minutes
            for minutes in REMINDER_OFFSETS_MINUTES
            if remaining <= timedelta(minutes=minutes) and minutes not in event.reminders_sent
        ]
        if not due:
            return 0

        drafts = self._drafts(event.id)
        sent = 0
        for submitter in dict.fromkeys(s.submitted_by for s in drafts):
            if self.notifications.send_deadline_reminder(submitter, event, remaining):
                sent += 1
        self.notifications.send_organizer_deadline_reminder(event, remaining, len(drafts))

        event.reminders_sent = sorted(set(event.reminders_sent) | set(due), reverse=True)
        event.updated_at = now
        self.c.events.save(event)
        logger.info(
            "Sent %d deadline reminders for event %s (%s)",
            sent,
            event.id,
            format_time_remaining(remaining),
        )
        return sent

    def _advance_status(self, event: Event, now: datetime) -> Optional[EventStatus]:
        """Moves an event along its timeline: scheduled events start, ended ones complete."""
        if event.status == EventStatus.SCHEDULED and event.start_time and now >= event.start_time:
            event.status = EventStatus.ACTIVE
        elif (
            event.status == EventStatus.ACTIVE
            and event.end_time
            and now > event.end_time
            and (event.submission_deadline is None or event.deadline_enforced_at is not None)
        ):
            event.status = EventStatus.COMPLETED
        else:
            return None
        event.updated_at = now
        self.c.events.save(event)
        logger.info("Event %s moved to %s by date", event.id, event.status)
        return event.status

    def check_all_deadlines(self) -> SweepSummary:
        """
        Runs one sweep over scheduled and active events.

        Scheduled events whose start time has arrived become active. For
        active events, passed deadlines are enforced and due reminders sent;
        once the deadline is closed and the end time has passed the event is
        completed.
        """
        summary = SweepSummary()
        now = self.clock()
        for event in self.c.events.find(("status", "==", EventStatus.SCHEDULED)):
            try:
                if self._advance_status(event, now) == EventStatus.ACTIVE:
                    summary.activated.append(event.id)
            except NgageError as e:
                summary.errors += 1
                logger.error("Could not start event %s: %s", event.id, e)

        for event in self.c.events.find(("status", "==", EventStatus.ACTIVE)):
            try:
                if event.submission_deadline is not None:
                    summary.checked += 1
                    if now > event.submission_deadline:
                        if event.deadline_enforced_at is None:
                            result = self.enforce_deadline(event)
                            summary.enforced.append(result)
                            if result.completed_event:
                                summary.completed.append(event.id)
                                continue
                    else:
                        summary.reminders_sent += self.send_due_reminders(event)
                if self._advance_status(event, now) == EventStatus.COMPLETED:
                    summary.completed.append(event.id)
            except NgageError as e:
                summary.errors += 1
                logger.error("Deadline check failed for event %s: %s", event.id, e)
        return summary


class DeadlineMonitor:
    """
    In-process deadline monitor for long-running services.

    Runs the periodic sweep on a timer and can schedule a one-off
    enforcement at a specific event's deadline.
    """

    def __init__(
        self,
        service: DeadlineService,
        interval_seconds: float = CHECK_INTERVAL_SECONDS,
    ):
        self.service = service
        self.interval_seconds = interval_seconds
        self._sweep_timer: Optional[threading.Timer] = None
        self._event_timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            self._running = True
        self._schedule_sweep()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._sweep_timer:
                self._sweep_timer.cancel()
                self._sweep_timer = None
            for timer in self._event_timers.values():
                timer.cancel()
            self._event_timers.clear()

    def _schedule_sweep(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._sweep_timer = threading.Timer(self.interval_seconds, self._run_sweep)
            self._sweep_timer.daemon = True
            self._sweep_timer.start()

    def _run_sweep(self) -> None:
        try:
            self.service.check_all_deadlines()
        except Exception:
            logger.exception("Deadline sweep failed")
        finally:
            self._schedule_sweep()

    def schedule_event(self, event: Event) -> None:
        """Schedules enforcement at the event's deadline (immediately if passed)."""
        if event.submission_deadline is None:
            return
        self.cancel_event(event.id)
        delay = (event.submission_deadline - self.service.clock()).total_seconds()
        if delay <= 0:
            self._enforce(event.id)
            return
        timer = threading.Timer(delay, self._enforce, args=(event.id,))
        timer.daemon = True
        with self._lock:
            self._event_timers[event.id] = timer
        timer.start()

    def cancel_event(self, event_id: str) -> None:
        with self._lock:
            timer = self._event_timers.pop(event_id, None)
        if timer:
            timer.cancel()

    def scheduled_event_ids(self) -> List[str]:
        with self._lock:
            return list(self._event_timers)

    def _enforce(self, event_id: str) -> None:
        with self._lock:
            self._event_timers.pop(event_id, None)
        event = self.service.c.events.get(event_id)
        if event is None or event.deadline_enforced_at is not None:
            return
        try:
            self.service.enforce_deadline(event)
        except NgageError:
            logger.exception("Deadline enforcement failed for event %s", event_id)
