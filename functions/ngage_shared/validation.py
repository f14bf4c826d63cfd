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

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ngage_shared.leaderboard import Leaderboard
from ngage_shared.models import (
    SUBMISSION_FILE_TYPES,
    Event,
    Group,
    Member,
    Score,
    ScoringRubric,
    Submission,
    Team,
)
from ngage_shared.types import EventStatus, SubmissionStatus

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{6,14}$")

NAME_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 500
SUBMISSION_TEXT_MAX_LENGTH = 5000
SUBMISSION_FILE_LIMITS = {"photos": 20, "videos": 5, "documents": 10}


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, errors: List[str]) -> "ValidationResult":
        return cls(is_valid=False, errors=list(errors))

    @classmethod
    def single_error(cls, error: str) -> "ValidationResult":
        return cls(is_valid=False, errors=[error])

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls.invalid(errors) if errors else cls.valid()

    def combine(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult.from_errors(self.errors + other.errors)

    @property
    def first_error(self) -> Optional[str]:
        return self.errors[0] if self.errors else None


def validate_email(email: Optional[str]) -> ValidationResult:
    if not email or not email.strip():
        return ValidationResult.single_error("Email is required")
    if not EMAIL_PATTERN.match(email.strip()):
        return ValidationResult.single_error("Please enter a valid email address")
    return ValidationResult.valid()


def validate_phone(phone: Optional[str]) -> ValidationResult:
    if not phone or not phone.strip():
        return ValidationResult.single_error("Phone number is required")
    cleaned = re.sub(r"[^\d+]", "", phone)
    if not PHONE_PATTERN.match(cleaned):
        return ValidationResult.single_error("Please enter a valid phone number")
    return ValidationResult.valid()


def validate_name(
    name: Optional[str], field_name: str = "Name", max_length: int = NAME_MAX_LENGTH
) -> ValidationResult:
    if not name or not name.strip():
        return ValidationResult.single_error(f"{field_name} is required")
    if len(name.strip()) > max_length:
        return ValidationResult.single_error(
            f"{field_name} must not exceed {max_length} characters"
        )
    return ValidationResult.valid()


def validate_description(
    description: Optional[str],
    max_length: int = DESCRIPTION_MAX_LENGTH,
    field_name: str = "Description",
    required: bool = False,
) -> ValidationResult:
    if not description or not description.strip():
        if required:
            return ValidationResult.single_error(f"{field_name} is required")
        return ValidationResult.valid()
    if len(description) > max_length:
        return ValidationResult.single_error(
            f"{field_name} must not exceed {max_length} characters"
        )
    return ValidationResult.valid()


def validate_id(value: Optional[str], field_name: str = "ID") -> ValidationResult:
    if not value or not value.strip():
        return ValidationResult.single_error(f"{field_name} is required")
    return ValidationResult.valid()


def validate_non_empty(value: Optional[str], field_name: str) -> ValidationResult:
    if not value or not value.strip():
        return ValidationResult.single_error(f"{field_name} cannot be empty")
    return ValidationResult.valid()


def validate_date_range(
    start: Optional[datetime],
    end: Optional[datetime],
    start_name: str = "Start time",
    end_name: str = "End time",
) -> ValidationResult:
    if start and end and end <= start:
        return ValidationResult.single_error(f"{end_name} must be after {start_name.lower()}")
    return ValidationResult.valid()


def validate_member(member: Member) -> ValidationResult:
    result = validate_id(member.id, "Member ID")
    result = result.combine(validate_email(member.email))
    if member.phone:
        result = result.combine(validate_phone(member.phone))
    result = result.combine(validate_name(member.first_name, "First name"))
    result = result.combine(validate_name(member.last_name, "Last name"))
    errors = list(result.errors)
    for value, label, limit in (
        (member.category, "Category", 100),
        (member.title, "Title", 100),
        (member.bio, "Bio", 1000),
    ):
        if value and len(value) > limit:
            errors.append(f"{label} must not exceed {limit} characters")

    if member.user_id is not None and member.claimed_at is None:
        errors.append("Claimed members must have both userId and claimedAt")
    if member.user_id is None and member.claimed_at is not None:
        errors.append("Unclaimed members should not have userId or claimedAt")
    if member.claimed_at and member.imported_at and member.claimed_at < member.imported_at:
        errors.append("Claimed date must be after imported date")
    return ValidationResult.from_errors(errors)


def validate_group(group: Group) -> ValidationResult:
    result = validate_name(group.name, "Group name", max_length=100)
    result = result.combine(
        validate_description(
            group.description, max_length=1000, field_name="Group description", required=True
        )
    )
    return result.combine(validate_id(group.created_by, "Creator ID"))


def validate_team(team: Team) -> ValidationResult:
    result = validate_name(team.name, "Team name", max_length=100)
    result = result.combine(
        validate_description(
            team.description, max_length=1000, field_name="Team description", required=True
        )
    )
    result = result.combine(validate_id(team.team_lead_id, "Team lead ID"))
    errors = list(result.errors)
    if team.team_lead_id and team.team_lead_id not in team.member_ids:
        errors.append("Team lead must be a member of the team")
    if team.max_members is not None:
        if team.max_members < 1:
            errors.append("Maximum members must be at least 1")
        elif len(team.member_ids) > team.max_members:
            errors.append("Team has more members than maximum allowed")
    if len(set(team.member_ids)) != len(team.member_ids):
        errors.append("Team cannot have duplicate members")
    if team.team_type and len(team.team_type) > 50:
        errors.append("Team type must not exceed 50 characters")
    return ValidationResult.from_errors(errors)


def validate_event(event: Event) -> ValidationResult:
    result = validate_name(event.title, "Event title", max_length=200)
    result = result.combine(
        validate_description(
            event.description, max_length=2000, field_name="Event description", required=True
        )
    )
    start, end, deadline = event.start_time, event.end_time, event.submission_deadline
    result = result.combine(validate_date_range(start, end))
    errors = list(result.errors)
    if deadline and start and deadline < start:
        errors.append("Submission deadline must be after start time")
    if deadline and end and deadline > end:
        errors.append("Submission deadline must be before end time")
    if event.status == EventStatus.SCHEDULED and (not start or not end):
        errors.append("Scheduled events must have start and end times")
    if event.status == EventStatus.ACTIVE and not start:
        errors.append("Active events must have a start time")
    if event.eligible_team_ids is not None:
        if not event.eligible_team_ids:
            errors.append("Eligible teams list cannot be empty when specified")
        elif len(set(event.eligible_team_ids)) != len(event.eligible_team_ids):
            errors.append("Eligible teams list cannot contain duplicates")
    return ValidationResult.from_errors(errors)


def validate_submission(submission: Submission) -> ValidationResult:
    errors: List[str] = []
    if submission.status == SubmissionStatus.DRAFT:
        if submission.submitted_at is not None:
            errors.append("Draft submissions should not have a submitted date")
    elif submission.submitted_at is None:
        errors.append("Submitted submissions must have a submitted date")
    if submission.submitted_at and submission.submitted_at < submission.created_at:
        errors.append("Submitted date cannot be before created date")
    if len(submission.text) > SUBMISSION_TEXT_MAX_LENGTH:
        errors.append(
            f"Text content must not exceed {SUBMISSION_TEXT_MAX_LENGTH} characters"
        )
    for file_type in SUBMISSION_FILE_TYPES:
        urls = submission.files(file_type)
        if any(not url or not str(url).strip() for url in urls):
            errors.append(f"{file_type.capitalize()} cannot contain empty URLs")
        limit = SUBMISSION_FILE_LIMITS[file_type]
        if len(urls) > limit:
            errors.append(f"Cannot have more than {limit} {file_type}")
    return ValidationResult.from_errors(errors)


def validate_rubric(rubric: ScoringRubric) -> ValidationResult:
    result = validate_non_empty(rubric.name, "Rubric name")
    result = result.combine(validate_non_empty(rubric.description, "Rubric description"))
    errors = list(result.errors)
    if not rubric.criteria:
        errors.append("Rubric must have at least one criterion")
    keys = [c.key for c in rubric.criteria]
    if len(set(keys)) != len(keys):
        errors.append("Criterion keys must be unique")
    for criterion in rubric.criteria:
        if not criterion.key or not criterion.key.strip():
            errors.append("Criterion key cannot be empty")
        if not criterion.name or not criterion.name.strip():
            errors.append("Criterion name cannot be empty")
        if criterion.max_score <= 0:
            errors.append(f"Criterion {criterion.key} must have a positive max score")
        if criterion.weight <= 0:
            errors.append(f"Criterion {criterion.key} must have a positive weight")
    return ValidationResult.from_errors(errors)


def validate_score(score: Score) -> ValidationResult:
    errors: List[str] = []
    if score.total_score is not None and not 0 <= score.total_score <= 100:
        errors.append("Total score must be between 0 and 100")
    if score.comments and len(score.comments) > 2000:
        errors.append("Comments must not exceed 2000 characters")
    return ValidationResult.from_errors(errors)


def validate_leaderboard(leaderboard: Leaderboard) -> ValidationResult:
    errors: List[str] = []
    team_ids = [e.team_id for e in leaderboard.entries]
    positions = [e.position for e in leaderboard.entries]
    if len(set(team_ids)) != len(team_ids):
        errors.append("Leaderboard cannot have duplicate teams")
    if len(set(positions)) != len(positions):
        errors.append("Leaderboard cannot have duplicate positions")
    if sorted(positions) != list(range(1, len(positions) + 1)):
        errors.append("Leaderboard positions must run from 1 to the number of entries")
    averages = [e.average_score for e in leaderboard.entries]
    if any(a < b for a, b in zip(averages, averages[1:])):
        errors.append("Leaderboard entries must be ordered by average score")
    return ValidationResult.from_errors(errors)
