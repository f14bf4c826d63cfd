"""
Team submissions for events: draft editing, media uploads and submitting.
"""

from __future__ import annotations

import logging
import mimetypes
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ngage.errors import (
    FileError,
    NgageError,
    NotFoundError,
    OperationError,
    ValidationError,
)
from ngage.repositories import Collections
from ngage.storage import StorageClient
from ngage_shared.firebase_constants import SUBMISSION_FILES_PREFIX
from ngage_shared.models import SUBMISSION_FILE_TYPES, Submission, utc_now
from ngage_shared.types import SubmissionStatus
from ngage_shared.validation import validate_submission

logger = logging.getLogger(__name__)

NOT_EDITABLE_MESSAGE = "Cannot edit submission that is not in draft status"


class SubmissionService:
    def __init__(
        self,
        collections: Collections,
        storage: StorageClient,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.storage = storage
        self.clock = clock

    def _validate(self, submission: Submission) -> None:
        result = validate_submission(submission)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid submission data: {', '.join(result.errors)}",
                errors=result.errors,
            )

    def _require_editable(self, submission_id: str) -> Submission:
        submission = self.c.submissions.require(submission_id)
        if not submission.can_be_edited:
            raise OperationError(NOT_EDITABLE_MESSAGE)
        return submission

    def create_submission(
        self,
        event_id: str,
        team_id: str,
        submitted_by: str,
        content: Optional[Dict[str, Any]] = None,
    ) -> Submission:
        event = self.c.events.require(event_id)
        team = self.c.teams.require(team_id)
        if not event.is_team_eligible(team_id):
            raise OperationError("Team is not eligible for this event")
        if not team.has_member(submitted_by):
            raise OperationError("Only team members can create submissions")
        if not event.submissions_open(self.clock()):
            raise OperationError("Submissions are not open for this event")

        now = self.clock()
        submission = Submission(
            id=self.c.submissions.new_id(),
            event_id=event_id,
            team_id=team_id,
            submitted_by=submitted_by,
            content=dict(content or {}),
            status=SubmissionStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        self._validate(submission)
        return self.c.submissions.save(submission)

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        return self.c.submissions.get(submission_id)

    def update_submission_content(self, submission_id: str, content: Dict[str, Any]) -> Submission:
        submission = self._require_editable(submission_id)
        submission.content = {**submission.content, **content}
        submission.updated_at = self.clock()
        self._validate(submission)
        return self.c.submissions.save(submission)

    def add_text_content(self, submission_id: str, text: str) -> Submission:
        return self.update_submission_content(submission_id, {"text": text})

    def upload_files(
        self,
        submission_id: str,
        files: List[Tuple[str, bytes]],
        file_type: str,
    ) -> Submission:
        """Uploads (filename, data) pairs and appends their URLs to the content."""
        if file_type not in SUBMISSION_FILE_TYPES:
            raise ValidationError(
                f"Invalid file type: {file_type}. Must be one of {', '.join(SUBMISSION_FILE_TYPES)}"
            )
        submission = self._require_editable(submission_id)
        urls = submission.files(file_type)
        for filename, data in files:
            if not data:
                raise FileError(f"File {filename} is empty")
            path = f"{SUBMISSION_FILES_PREFIX}/{submission_id}/{file_type}/{filename}"
            content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
            urls.append(self.storage.upload_bytes(path, data, content_type))
        submission.content = {**submission.content, file_type: urls}
        submission.updated_at = self.clock()
        self._validate(submission)
        return self.c.submissions.save(submission)

    def remove_file(self, submission_id: str, file_url: str, file_type: str) -> Submission:
        if file_type not in SUBMISSION_FILE_TYPES:
            raise ValidationError(f"Invalid file type: {file_type}")
        submission = self._require_editable(submission_id)
        urls = submission.files(file_type)
        if file_url not in urls:
            raise NotFoundError("File not found in submission")
        path = self.storage.path_from_url(file_url)
        if path:
            try:
                self.storage.delete(path)
            except NgageError as e:
                logger.warning("Failed to delete %s from storage: %s", path, e)
        submission.content = {**submission.content, file_type: [u for u in urls if u != file_url]}
        submission.updated_at = self.clock()
        return self.c.submissions.save(submission)

    def submit_submission(self, submission_id: str) -> Submission:
        submission = self.c.submissions.require(submission_id)
        event = self.c.events.require(submission.event_id)
        now = self.clock()
        if event.submission_deadline and now > event.submission_deadline:
            raise OperationError("The submission deadline has passed")
        try:
            submission.submit(now)
        except ValueError as e:
            raise OperationError(str(e)) from e
        self._validate(submission)
        logger.info("Submission %s submitted for event %s", submission_id, event.id)
        return self.c.submissions.save(submission)

    def update_submission_status(self, submission_id: str, status: SubmissionStatus) -> Submission:
        submission = self.c.submissions.require(submission_id)
        status = SubmissionStatus(status)
        now = self.clock()
        if status == SubmissionStatus.DRAFT:
            submission.submitted_at = None
        elif submission.submitted_at is None:
            submission.submitted_at = now
        submission.status = status
        submission.updated_at = now
        self._validate(submission)
        return self.c.submissions.save(submission)

    def get_event_submissions(
        self, event_id: str, status: Optional[SubmissionStatus] = None
    ) -> List[Submission]:
        filters = [("event_id", "==", event_id)]
        if status is not None:
            filters.append(("status", "==", SubmissionStatus(status)))
        return self.c.submissions.find(*filters, order_by="created_at", descending=True)

    def get_team_submissions(self, team_id: str) -> List[Submission]:
        return self.c.submissions.find(
            ("team_id", "==", team_id), order_by="created_at", descending=True
        )

    def get_member_submissions(self, member_id: str) -> List[Submission]:
        return self.c.submissions.find(
            ("submitted_by", "==", member_id), order_by="created_at", descending=True
        )

    def get_team_event_submission(self, event_id: str, team_id: str) -> Optional[Submission]:
        return self.c.submissions.find_one(
            ("event_id", "==", event_id), ("team_id", "==", team_id)
        )

    def has_team_submitted(self, event_id: str, team_id: str) -> bool:
        submissions = self.c.submissions.find(
            ("event_id", "==", event_id), ("team_id", "==", team_id)
        )
        return any(s.status != SubmissionStatus.DRAFT for s in submissions)

    def get_submission_count(self, event_id: str, status: Optional[SubmissionStatus] = None) -> int:
        return len(self.get_event_submissions(event_id, status))

    def delete_submission(self, submission_id: str) -> None:
        submission = self.c.submissions.require(submission_id)
        if not submission.can_be_edited:
            raise OperationError("Cannot delete submission that is not in draft status")
        self.c.submissions.delete(submission_id)

    def get_submissions_paginated(
        self, event_id: str, limit: int = 20, offset: int = 0
    ) -> Dict[str, Any]:
        submissions = self.get_event_submissions(event_id)
        page = submissions[offset : offset + limit]
        return {
            "submissions": page,
            "total": len(submissions),
            "hasMore": offset + len(page) < len(submissions),
        }
