"""
Judging: judge assignments and permissions, private judge comments,
rubric-based scoring, per-submission aggregation and the team leaderboard.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import (
    AuthorizationError,
    NotFoundError,
    OperationError,
    ValidationError,
)
from ngage.repositories import Collections
from ngage_shared.leaderboard import (
    AggregatedScore,
    IndividualScore,
    Leaderboard,
    LeaderboardEntry,
    ScoreRange,
)
from ngage_shared.models import (
    JudgeAssignment,
    JudgeComment,
    Score,
    ScoringCriterion,
    ScoringRubric,
    Submission,
    utc_now,
)
from ngage_shared.types import JudgeCommentType, JudgeRole, SubmissionStatus
from ngage_shared.validation import validate_rubric, validate_score

logger = logging.getLogger(__name__)

SCORABLE_STATUSES = (
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.APPROVED,
)
RANKED_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED)
COMMENT_MAX_LENGTH = 2000
UNKNOWN_TEAM = "Unknown Team"


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def aggregate_scores(submission_id: str, scores: List[Score]) -> AggregatedScore:
    """Combines every judge's score for one submission."""
    totals = [s.total_score for s in scores if s.total_score is not None]
    criteria: Dict[str, List[float]] = defaultdict(list)
    for score in scores:
        for key, value in score.numeric_scores.items():
            criteria[key].append(value)
    return AggregatedScore(
        submission_id=submission_id,
        total_score=sum(totals),
        average_score=_mean(totals),
        judge_count=len(scores),
        criteria_averages={k: _mean(v) for k, v in criteria.items()},
        score_range=ScoreRange(min=min(totals), max=max(totals)) if totals else ScoreRange(),
        individual_scores=[
            IndividualScore(
                judge_id=s.judge_id,
                total_score=s.total_score,
                scores=dict(s.scores),
                comments=s.comments,
            )
            for s in scores
        ],
    )


def rank_entries(entries: List[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """
    Orders entries by average score, highest first, and assigns positions 1..n.

    Ties go to the entry whose last submission came first, then by team name.
    """

    def sort_key(entry: LeaderboardEntry):
        submitted = entry.last_submitted_at.timestamp() if entry.last_submitted_at else float("inf")
        return (-entry.average_score, submitted, entry.team_name)

    ranked = sorted(entries, key=sort_key)
    for position, entry in enumerate(ranked, start=1):
        entry.position = position
    return ranked


class JudgingService:
    def __init__(self, collections: Collections, clock: Callable[[], datetime] = utc_now):
        self.c = collections
        self.clock = clock

    # Judge assignments

    def assign_judge(
        self,
        event_id: str,
        judge_id: str,
        assigned_by: str,
        role: JudgeRole = JudgeRole.JUDGE,
        permissions: Optional[List[str]] = None,
    ) -> JudgeAssignment:
        self.c.events.require(event_id)
        existing = self._get_assignment(event_id, judge_id)
        now = self.clock()
        if existing and existing.is_active:
            raise OperationError("Judge is already assigned to this event")
        if existing:
            existing.reactivate(now)
            existing.role = JudgeRole(role)
            existing.permissions = list(permissions or [])
            existing.assigned_by = assigned_by
            return self.c.judge_assignments.save(existing)

        assignment = JudgeAssignment(
            id=f"{event_id}_{judge_id}",
            event_id=event_id,
            judge_id=judge_id,
            assigned_by=assigned_by,
            role=JudgeRole(role),
            permissions=list(permissions or []),
            assigned_at=now,
            created_at=now,
            updated_at=now,
        )
        logger.info("Assigned judge %s to event %s", judge_id, event_id)
        return self.c.judge_assignments.save(assignment)

    def _get_assignment(self, event_id: str, judge_id: str) -> Optional[JudgeAssignment]:
        return self.c.judge_assignments.find_one(
            ("event_id", "==", event_id), ("judge_id", "==", judge_id)
        )

    def _require_active_assignment(self, event_id: str, judge_id: str) -> JudgeAssignment:
        assignment = self._get_assignment(event_id, judge_id)
        if not assignment or not assignment.is_active:
            raise AuthorizationError(
                "Judge is not assigned to this event",
                user_message="Judge is not assigned to this event",
            )
        return assignment

    def remove_judge(self, event_id: str, judge_id: str) -> JudgeAssignment:
        assignment = self._require_active_assignment(event_id, judge_id)
        assignment.revoke(self.clock())
        return self.c.judge_assignments.save(assignment)

    def get_event_judges(self, event_id: str, active_only: bool = True) -> List[JudgeAssignment]:
        filters = [("event_id", "==", event_id)]
        if active_only:
            filters.append(("is_active", "==", True))
        return self.c.judge_assignments.find(*filters, order_by="assigned_at")

    def get_judge_assignments(self, judge_id: str, active_only: bool = True) -> List[JudgeAssignment]:
        filters = [("judge_id", "==", judge_id)]
        if active_only:
            filters.append(("is_active", "==", True))
        return self.c.judge_assignments.find(*filters)

    def update_judge_assignment(
        self,
        event_id: str,
        judge_id: str,
        role: Optional[JudgeRole] = None,
        permissions: Optional[List[str]] = None,
    ) -> JudgeAssignment:
        assignment = self._require_active_assignment(event_id, judge_id)
        if role is not None:
            assignment.role = JudgeRole(role)
        if permissions is not None:
            assignment.permissions = list(permissions)
        assignment.updated_at = self.clock()
        return self.c.judge_assignments.save(assignment)

    def add_judge_permission(self, event_id: str, judge_id: str, permission: str) -> JudgeAssignment:
        assignment = self._require_active_assignment(event_id, judge_id)
        assignment.add_permission(permission)
        assignment.updated_at = self.clock()
        return self.c.judge_assignments.save(assignment)

    def remove_judge_permission(
        self, event_id: str, judge_id: str, permission: str
    ) -> JudgeAssignment:
        assignment = self._require_active_assignment(event_id, judge_id)
        assignment.remove_permission(permission)
        assignment.updated_at = self.clock()
        return self.c.judge_assignments.save(assignment)

    def has_judge_permission(self, event_id: str, judge_id: str, permission: str) -> bool:
        assignment = self._get_assignment(event_id, judge_id)
        return bool(assignment and assignment.is_active and assignment.has_permission(permission))

    def is_judge_assigned(self, event_id: str, judge_id: str) -> bool:
        assignment = self._get_assignment(event_id, judge_id)
        return bool(assignment and assignment.is_active)

    def get_lead_judges(self, event_id: str) -> List[JudgeAssignment]:
        return [a for a in self.get_event_judges(event_id) if a.role == JudgeRole.LEAD_JUDGE]

    def get_regular_judges(self, event_id: str) -> List[JudgeAssignment]:
        return [a for a in self.get_event_judges(event_id) if a.role != JudgeRole.LEAD_JUDGE]

    def validate_judge_action(self, event_id: str, judge_id: str, action: str) -> None:
        self._require_active_assignment(event_id, judge_id)
        if not self.has_judge_permission(event_id, judge_id, action):
            raise AuthorizationError(
                f"Judge does not have permission for action: {action}",
                user_message=f"Judge does not have permission for action: {action}",
            )

    # Judge comments

    def create_judge_comment(
        self,
        submission_id: str,
        judge_id: str,
        content: str,
        comment_type: JudgeCommentType = JudgeCommentType.GENERAL,
        parent_comment_id: Optional[str] = None,
        is_private: bool = True,
    ) -> JudgeComment:
        submission = self.c.submissions.require(submission_id)
        self._require_active_assignment(submission.event_id, judge_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        if len(content) > COMMENT_MAX_LENGTH:
            raise ValidationError(
                f"Comment must not exceed {COMMENT_MAX_LENGTH} characters"
            )
        if parent_comment_id:
            parent = self.c.judge_comments.require(parent_comment_id)
            if parent.submission_id != submission_id:
                raise ValidationError("Reply must belong to the same submission")

        now = self.clock()
        comment = JudgeComment(
            id=self.c.judge_comments.new_id(),
            submission_id=submission_id,
            event_id=submission.event_id,
            judge_id=judge_id,
            content=content,
            type=JudgeCommentType(comment_type),
            parent_comment_id=parent_comment_id,
            is_private=is_private,
            created_at=now,
            updated_at=now,
        )
        return self.c.judge_comments.save(comment)

    def get_submission_comments(self, submission_id: str) -> List[JudgeComment]:
        return self.c.judge_comments.find(
            ("submission_id", "==", submission_id), order_by="created_at"
        )

    def get_comment_replies(self, comment_id: str) -> List[JudgeComment]:
        return self.c.judge_comments.find(
            ("parent_comment_id", "==", comment_id), order_by="created_at"
        )

    def get_top_level_comments(self, submission_id: str) -> List[JudgeComment]:
        return [c for c in self.get_submission_comments(submission_id) if not c.is_reply]

    def update_judge_comment(self, comment_id: str, judge_id: str, content: str) -> JudgeComment:
        comment = self.c.judge_comments.require(comment_id)
        if comment.judge_id != judge_id:
            raise AuthorizationError(
                "Judge can only edit their own comments",
                user_message="Judge can only edit their own comments",
            )
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment cannot be empty")
        comment.content = content
        comment.updated_at = self.clock()
        return self.c.judge_comments.save(comment)

    def delete_judge_comment(self, comment_id: str, judge_id: str) -> None:
        comment = self.c.judge_comments.require(comment_id)
        if comment.judge_id != judge_id:
            raise AuthorizationError(
                "Judge can only delete their own comments",
                user_message="Judge can only delete their own comments",
            )
        self.c.judge_comments.delete(comment_id)

    # Rubrics

    def create_scoring_rubric(
        self,
        name: str,
        description: str,
        criteria: List[ScoringCriterion],
        created_by: str,
        event_id: Optional[str] = None,
        group_id: Optional[str] = None,
        is_template: bool = False,
    ) -> ScoringRubric:
        now = self.clock()
        rubric = ScoringRubric(
            id=self.c.rubrics.new_id(),
            name=name.strip(),
            description=description.strip(),
            criteria=list(criteria),
            created_by=created_by,
            event_id=event_id,
            group_id=group_id,
            is_template=is_template,
            created_at=now,
            updated_at=now,
        )
        result = validate_rubric(rubric)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid rubric: {', '.join(result.errors)}", errors=result.errors
            )
        return self.c.rubrics.save(rubric)

    def get_scoring_rubric(self, rubric_id: str) -> Optional[ScoringRubric]:
        return self.c.rubrics.get(rubric_id)

    def get_available_rubrics(
        self,
        event_id: Optional[str] = None,
        group_id: Optional[str] = None,
        is_template: Optional[bool] = None,
        limit: int = 50,
    ) -> List[ScoringRubric]:
        filters = []
        if event_id:
            filters.append(("event_id", "==", event_id))
        if group_id:
            filters.append(("group_id", "==", group_id))
        if is_template is not None:
            filters.append(("is_template", "==", is_template))
        return self.c.rubrics.find(*filters, order_by="created_at", descending=True, limit=limit)

    def clone_rubric(
        self,
        rubric_id: str,
        created_by: str,
        new_name: Optional[str] = None,
        new_description: Optional[str] = None,
        event_id: Optional[str] = None,
        group_id: Optional[str] = None,
        is_template: Optional[bool] = None,
    ) -> ScoringRubric:
        source = self.c.rubrics.require(rubric_id)
        return self.create_scoring_rubric(
            name=new_name or f"{source.name} (Copy)",
            description=new_description or source.description,
            criteria=[ScoringCriterion(**vars(c)) for c in source.criteria],
            created_by=created_by,
            event_id=event_id,
            group_id=group_id if group_id is not None else source.group_id,
            is_template=source.is_template if is_template is None else is_template,
        )

    def get_event_rubric(self, event_id: str) -> Optional[ScoringRubric]:
        event = self.c.events.get(event_id)
        rubric_id = (event.judging_criteria.get("rubricId") if event else None)
        if rubric_id:
            return self.c.rubrics.get(rubric_id)
        found = self.get_available_rubrics(event_id=event_id, limit=1)
        return found[0] if found else None

    # Scoring

    def _check_scores(self, scores: Dict[str, Any], rubric: ScoringRubric) -> None:
        errors = []
        for key in scores:
            if rubric.get_criterion(key) is None:
                errors.append(f"Unknown criterion: {key}")
        for criterion in rubric.criteria:
            if criterion.key not in scores:
                if criterion.required:
                    errors.append(f"Missing score for required criterion: {criterion.key}")
                continue
            if not criterion.is_valid_score(scores[criterion.key]):
                errors.append(f"Invalid score for {criterion.key}")
        if errors:
            raise ValidationError(f"Invalid scores: {', '.join(errors)}", errors=errors)

    def score_submission(
        self,
        submission_id: str,
        judge_id: str,
        scores: Dict[str, Any],
        comments: Optional[str] = None,
        rubric_id: Optional[str] = None,
    ) -> Score:
        """
        Records one judge's scores for a submission, replacing any earlier
        scores by the same judge.
        """
        submission = self.c.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(f"Submission not found: {submission_id}")
        if submission.status not in SCORABLE_STATUSES:
            raise OperationError("Only submitted submissions can be scored")
        self._require_active_assignment(submission.event_id, judge_id)

        rubric = (
            self.c.rubrics.require(rubric_id) if rubric_id else self.get_event_rubric(submission.event_id)
        )
        if rubric is not None:
            self._check_scores(scores, rubric)

        now = self.clock()
        candidate = Score(
            id=f"{submission_id}_{judge_id}",
            submission_id=submission_id,
            judge_id=judge_id,
            event_id=submission.event_id,
            scores=dict(scores),
            comments=comments,
            created_at=now,
            updated_at=now,
        )
        if rubric is not None:
            candidate.total_score = candidate.calculate_total(rubric)
        else:
            candidate.total_score = _mean(list(candidate.numeric_scores.values()))
        result = validate_score(candidate)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid score: {', '.join(result.errors)}", errors=result.errors
            )

        def _upsert(tx: Collections) -> Score:
            existing = tx.scores.get(candidate.id)
            if existing:
                candidate.created_at = existing.created_at
                if candidate.comments is None:
                    candidate.comments = existing.comments
            return tx.scores.save(candidate)

        saved = self.c.transaction(_upsert)
        logger.info(
            "Judge %s scored submission %s: %.2f", judge_id, submission_id, saved.total_score
        )
        return saved

    def get_submission_scores(self, submission_id: str) -> List[Score]:
        return self.c.scores.find(("submission_id", "==", submission_id))

    def get_judge_score(self, submission_id: str, judge_id: str) -> Optional[Score]:
        return self.c.scores.find_one(
            ("submission_id", "==", submission_id), ("judge_id", "==", judge_id)
        )

    def has_judge_scored(self, submission_id: str, judge_id: str) -> bool:
        return self.get_judge_score(submission_id, judge_id) is not None

    def add_judge_comment(self, submission_id: str, judge_id: str, comment: str) -> Score:
        """Attaches a private comment to the judge's score, creating it if needed."""
        submission = self.c.submissions.require(submission_id)
        self._require_active_assignment(submission.event_id, judge_id)
        now = self.clock()
        score = self.get_judge_score(submission_id, judge_id) or Score(
            id=f"{submission_id}_{judge_id}",
            submission_id=submission_id,
            judge_id=judge_id,
            event_id=submission.event_id,
            created_at=now,
        )
        score.comments = comment
        score.updated_at = now
        return self.c.scores.save(score)

    def calculate_submission_aggregation(self, submission_id: str) -> AggregatedScore:
        return aggregate_scores(submission_id, self.get_submission_scores(submission_id))

    def calculate_leaderboard(self, event_id: str) -> Leaderboard:
        """Ranks teams by the average of their scored submissions."""
        submissions = [
            s
            for s in self.c.submissions.find(("event_id", "==", event_id))
            if s.status in RANKED_STATUSES
        ]
        scores_by_submission: Dict[str, List[Score]] = defaultdict(list)
        for score in self.c.scores.find(("event_id", "==", event_id)):
            scores_by_submission[score.submission_id].append(score)

        teams: Dict[str, Dict[str, Any]] = {}
        for submission in submissions:
            scored = [
                s for s in scores_by_submission.get(submission.id, []) if s.total_score is not None
            ]
            if not scored:
                continue
            aggregation = aggregate_scores(submission.id, scored)
            data = teams.setdefault(
                submission.team_id,
                {"total": 0.0, "count": 0, "criteria": defaultdict(list), "by": [], "last": None},
            )
            data["total"] += aggregation.average_score
            data["count"] += 1
            if submission.submitted_by not in data["by"]:
                data["by"].append(submission.submitted_by)
            for key, value in aggregation.criteria_averages.items():
                data["criteria"][key].append(value)
            if submission.submitted_at and (data["last"] is None or submission.submitted_at > data["last"]):
                data["last"] = submission.submitted_at

        entries = []
        for team_id, data in teams.items():
            team = self.c.teams.get(team_id)
            entries.append(
                LeaderboardEntry(
                    team_id=team_id,
                    team_name=team.name if team else UNKNOWN_TEAM,
                    total_score=data["total"],
                    average_score=data["total"] / data["count"],
                    submission_count=data["count"],
                    position=0,
                    criteria_scores={k: _mean(v) for k, v in data["criteria"].items()},
                    submitted_by=data["by"],
                    last_submitted_at=data["last"],
                )
            )

        return Leaderboard(
            event_id=event_id,
            entries=rank_entries(entries),
            calculated_at=self.clock(),
            metadata={
                "totalSubmissions": len(submissions),
                "totalScores": sum(
                    len(scores_by_submission.get(s.id, [])) for s in submissions
                ),
                "teamsWithScores": len(teams),
            },
        )

    def get_event_scoring_stats(self, event_id: str) -> Dict[str, Any]:
        scores = self.c.scores.find(("event_id", "==", event_id))
        submissions = [
            s
            for s in self.c.submissions.find(("event_id", "==", event_id))
            if s.status in SCORABLE_STATUSES
        ]
        scored_ids = {s.submission_id for s in scores if s.total_score is not None}
        rated = [s for s in scores if s.total_score is not None]
        participation: Dict[str, int] = defaultdict(int)
        for score in rated:
            participation[score.judge_id] += 1
        return {
            "totalScores": len(rated),
            "averageScore": _mean([s.total_score for s in rated]),
            "completedSubmissions": len([s for s in submissions if s.id in scored_ids]),
            "pendingSubmissions": len([s for s in submissions if s.id not in scored_ids]),
            "judgeParticipation": dict(participation),
        }

    def get_submissions_for_judging(self, event_id: str, judge_id: str) -> List[Submission]:
        """Scorable submissions of the event, unscored by this judge first."""
        self._require_active_assignment(event_id, judge_id)
        submissions = [
            s
            for s in self.c.submissions.find(("event_id", "==", event_id))
            if s.status in SCORABLE_STATUSES
        ]
        return sorted(submissions, key=lambda s: self.has_judge_scored(s.id, judge_id))
