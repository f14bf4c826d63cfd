"""
Event lifecycle: creation, scheduling, status transitions, access control,
cloning and prerequisites.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import OperationError, ValidationError
from ngage.repositories import Collections
from ngage_shared.models import Event, utc_now
from ngage_shared.types import EventStatus, EventType, SubmissionStatus
from ngage_shared.validation import validate_event

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: Dict[EventStatus, List[EventStatus]] = {
    EventStatus.DRAFT: [EventStatus.SCHEDULED, EventStatus.CANCELLED],
    EventStatus.SCHEDULED: [EventStatus.ACTIVE, EventStatus.CANCELLED, EventStatus.DRAFT],
    EventStatus.ACTIVE: [EventStatus.COMPLETED, EventStatus.CANCELLED],
    EventStatus.COMPLETED: [],
    EventStatus.CANCELLED: [EventStatus.DRAFT],
}

MIN_EVENT_DURATION = timedelta(hours=1)
SCHEDULE_GRACE_PERIOD = timedelta(minutes=5)
COMPLETED_SUBMISSION_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED)
UPDATABLE_EVENT_FIELDS = (
    "title",
    "description",
    "event_type",
    "start_time",
    "end_time",
    "submission_deadline",
    "eligible_team_ids",
    "judging_criteria",
)


class EventService:
    def __init__(self, collections: Collections, clock: Callable[[], datetime] = utc_now):
        self.c = collections
        self.clock = clock

    def _validate(self, event: Event) -> None:
        result = validate_event(event)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid event data: {', '.join(result.errors)}", errors=result.errors
            )

    def _check_team_ids(self, group_id: str, team_ids: Optional[List[str]]) -> None:
        if not team_ids:
            return
        group_team_ids = {t.id for t in self.c.teams.find(("group_id", "==", group_id))}
        invalid = [t for t in team_ids if t not in group_team_ids]
        if invalid:
            raise ValidationError(
                f"Invalid team IDs for group {group_id}: {', '.join(invalid)}"
            )

    def create_event(
        self,
        group_id: str,
        title: str,
        description: str,
        event_type: EventType,
        created_by: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        submission_deadline: Optional[datetime] = None,
        eligible_team_ids: Optional[List[str]] = None,
        judging_criteria: Optional[Dict[str, Any]] = None,
    ) -> Event:
        self.c.groups.require(group_id)
        now = self.clock()
        event = Event(
            id=self.c.events.new_id(),
            group_id=group_id,
            title=title.strip(),
            description=description.strip(),
            event_type=EventType(event_type),
            created_by=created_by,
            status=EventStatus.DRAFT,
            start_time=start_time,
            end_time=end_time,
            submission_deadline=submission_deadline,
            eligible_team_ids=eligible_team_ids,
            judging_criteria=judging_criteria or {},
            created_at=now,
            updated_at=now,
        )
        self._validate(event)
        self._check_team_ids(group_id, eligible_team_ids)
        self.c.events.save(event)
        logger.info("Created event %s in group %s", event.id, group_id)
        return event

    def get_event(self, event_id: str) -> Optional[Event]:
        return self.c.events.get(event_id)

    def get_group_events(self, group_id: str) -> List[Event]:
        return self.c.events.find(
            ("group_id", "==", group_id), order_by="created_at", descending=True
        )

    def update_event(self, event_id: str, updates: Dict[str, Any]) -> Event:
        event = self.c.events.require(event_id)
        changes = {k: v for k, v in updates.items() if k in UPDATABLE_EVENT_FIELDS}
        for key in ("title", "description"):
            if key in changes and changes[key] is not None:
                changes[key] = changes[key].strip()
        if "event_type" in changes:
            changes["event_type"] = EventType(changes["event_type"])
        updated = replace(event, **changes, updated_at=self.clock())
        self._validate(updated)
        if "eligible_team_ids" in changes:
            self._check_team_ids(updated.group_id, updated.eligible_team_ids)
        return self.c.events.save(updated)

    def delete_event(self, event_id: str) -> None:
        event = self.c.events.require(event_id)
        if event.status != EventStatus.DRAFT:
            raise OperationError(
                f"Cannot delete event with status: {event.status}. "
                "Only draft events can be deleted."
            )
        self.c.events.delete(event_id)

    def _validate_event_times(
        self,
        start_time: datetime,
        end_time: datetime,
        submission_deadline: Optional[datetime],
    ) -> None:
        if end_time <= start_time:
            raise ValidationError("End time must be after start time")
        if submission_deadline is not None:
            if submission_deadline < start_time:
                raise ValidationError("Submission deadline must be after start time")
            if submission_deadline > end_time:
                raise ValidationError("Submission deadline must be before end time")
        if end_time - start_time < MIN_EVENT_DURATION:
            raise ValidationError("Events must be at least 1 hour long")
        if start_time < self.clock() - SCHEDULE_GRACE_PERIOD:
            raise ValidationError("Cannot schedule events in the past")

    def schedule_event(
        self,
        event_id: str,
        start_time: datetime,
        end_time: datetime,
        submission_deadline: Optional[datetime] = None,
    ) -> Event:
        event = self.c.events.require(event_id)
        if event.status != EventStatus.DRAFT:
            raise OperationError(
                f"Cannot schedule event with status: {event.status}. "
                "Only draft events can be scheduled."
            )
        self._validate_event_times(start_time, end_time, submission_deadline)
        event.start_time = start_time
        event.end_time = end_time
        event.submission_deadline = submission_deadline
        event.status = EventStatus.SCHEDULED
        event.reminders_sent = []
        event.deadline_enforced_at = None
        event.updated_at = self.clock()
        self._validate(event)
        return self.c.events.save(event)

    def update_event_schedule(
        self,
        event_id: str,
        start_time: datetime,
        end_time: datetime,
        submission_deadline: Optional[datetime] = None,
    ) -> Event:
        event = self.c.events.require(event_id)
        if event.status in (EventStatus.COMPLETED, EventStatus.CANCELLED):
            raise OperationError(f"Cannot reschedule event with status: {event.status}")
        self._validate_event_times(start_time, end_time, submission_deadline)
        event.start_time = start_time
        event.end_time = end_time
        event.submission_deadline = submission_deadline
        event.reminders_sent = []
        event.deadline_enforced_at = None
        event.updated_at = self.clock()
        self._validate(event)
        return self.c.events.save(event)

    def update_event_status(self, event_id: str, new_status: EventStatus) -> Event:
        event = self.c.events.require(event_id)
        new_status = EventStatus(new_status)
        if new_status not in VALID_TRANSITIONS[event.status]:
            raise OperationError(
                f"Invalid status transition from {event.status} to {new_status}"
            )
        if new_status == EventStatus.ACTIVE and event.start_time is None:
            raise ValidationError("Cannot activate event without start time")
        if new_status == EventStatus.SCHEDULED and (
            event.start_time is None or event.end_time is None
        ):
            raise ValidationError("Cannot schedule event without start and end times")
        event.status = new_status
        event.updated_at = self.clock()
        logger.info("Event %s moved to %s", event_id, new_status)
        return self.c.events.save(event)

    def activate_event(self, event_id: str) -> Event:
        return self.update_event_status(event_id, EventStatus.ACTIVE)

    def complete_event(self, event_id: str) -> Event:
        return self.update_event_status(event_id, EventStatus.COMPLETED)

    def cancel_event(self, event_id: str) -> Event:
        return self.update_event_status(event_id, EventStatus.CANCELLED)

    def clone_event(
        self,
        event_id: str,
        created_by: str,
        new_title: Optional[str] = None,
        new_group_id: Optional[str] = None,
        preserve_schedule: bool = False,
        preserve_access_control: bool = True,
        new_eligible_team_ids: Optional[List[str]] = None,
    ) -> Event:
        source = self.c.events.require(event_id)
        group_id = new_group_id or source.group_id
        if new_eligible_team_ids is not None:
            eligible = new_eligible_team_ids or None
        elif preserve_access_control and group_id == source.group_id:
            eligible = list(source.eligible_team_ids) if source.eligible_team_ids else None
        else:
            eligible = None
        return self.create_event(
            group_id=group_id,
            title=new_title or f"{source.title} (Copy)",
            description=source.description,
            event_type=source.event_type,
            created_by=created_by,
            start_time=source.start_time if preserve_schedule else None,
            end_time=source.end_time if preserve_schedule else None,
            submission_deadline=source.submission_deadline if preserve_schedule else None,
            eligible_team_ids=eligible,
            judging_criteria=dict(source.judging_criteria),
        )

    def update_event_access(self, event_id: str, eligible_team_ids: Optional[List[str]]) -> Event:
        event = self.c.events.require(event_id)
        event.eligible_team_ids = eligible_team_ids or None
        event.updated_at = self.clock()
        self._validate(event)
        self._check_team_ids(event.group_id, event.eligible_team_ids)
        return self.c.events.save(event)

    def can_team_access_event(self, event_id: str, team_id: str) -> bool:
        event = self.c.events.get(event_id)
        return event is not None and event.is_team_eligible(team_id)

    def get_eligible_teams(self, event_id: str) -> List[str]:
        event = self.c.events.require(event_id)
        if event.is_open_event:
            return [t.id for t in self.c.teams.find(("group_id", "==", event.group_id))]
        return list(event.eligible_team_ids)

    def set_event_prerequisites(self, event_id: str, prerequisite_ids: List[str]) -> Event:
        event = self.c.events.require(event_id)
        for prerequisite_id in prerequisite_ids:
            if prerequisite_id == event_id:
                raise ValidationError("An event cannot be its own prerequisite")
            prerequisite = self.c.events.get(prerequisite_id)
            if prerequisite is None:
                raise ValidationError(f"Prerequisite event not found: {prerequisite_id}")
            if prerequisite.group_id != event.group_id:
                raise ValidationError(
                    f"Prerequisite event must be in the same group: {prerequisite_id}"
                )
        event.judging_criteria = {
            **event.judging_criteria,
            "prerequisites": list(prerequisite_ids),
        }
        event.updated_at = self.clock()
        return self.c.events.save(event)

    def has_team_completed_event(self, team_id: str, event_id: str) -> bool:
        submissions = self.c.submissions.find(
            ("event_id", "==", event_id), ("team_id", "==", team_id)
        )
        return any(s.status in COMPLETED_SUBMISSION_STATUSES for s in submissions)

    def does_team_meet_prerequisites(self, event_id: str, team_id: str) -> bool:
        event = self.c.events.require(event_id)
        return all(
            self.has_team_completed_event(team_id, prerequisite_id)
            for prerequisite_id in event.prerequisites
        )

    def get_accessible_events_for_team(self, group_id: str, team_id: str) -> List[Event]:
        return [
            e
            for e in self.get_group_events(group_id)
            if e.is_team_eligible(team_id) and self.does_team_meet_prerequisites(e.id, team_id)
        ]

    def get_events_by_status(self, group_id: str, status: EventStatus) -> List[Event]:
        return self.c.events.find(
            ("group_id", "==", group_id),
            ("status", "==", EventStatus(status)),
            order_by="start_time",
        )

    def get_active_events(self, group_id: Optional[str] = None) -> List[Event]:
        filters = [("status", "==", EventStatus.ACTIVE)]
        if group_id:
            filters.append(("group_id", "==", group_id))
        return self.c.events.find(*filters)

    def get_scheduled_events(self, group_id: str) -> List[Event]:
        return self.get_events_by_status(group_id, EventStatus.SCHEDULED)

    def get_events_with_upcoming_deadlines(self, group_id: str, days_ahead: int = 7) -> List[Event]:
        now = self.clock()
        horizon = now + timedelta(days=days_ahead)
        events = self.c.events.find(
            ("group_id", "==", group_id),
            ("submission_deadline", ">=", now),
            order_by="submission_deadline",
        )
        return [
            e
            for e in events
            if e.submission_deadline <= horizon
            and e.status in (EventStatus.SCHEDULED, EventStatus.ACTIVE)
        ]

    def search_events(self, group_id: str, term: str) -> List[Event]:
        events = self.get_group_events(group_id)
        term = (term or "").strip().lower()
        if not term:
            return events
        return [e for e in events if term in e.title.lower()]

    def submissions_open(self, event_id: str) -> bool:
        event = self.c.events.get(event_id)
        return event is not None and event.submissions_open(self.clock())

    def get_time_until_deadline(self, event_id: str) -> Optional[timedelta]:
        event = self.c.events.require(event_id)
        return event.time_until_deadline(self.clock())
