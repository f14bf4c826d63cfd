"""
Leaderboards: team and individual rankings, published snapshots, filtered
views and per-team score history and trends.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ngage.judging import RANKED_STATUSES, JudgingService, aggregate_scores
from ngage.notifications import NotificationService
from ngage.repositories import Collections
from ngage_shared.leaderboard import (
    IndividualLeaderboard,
    IndividualLeaderboardEntry,
    Leaderboard,
    LeaderboardFilter,
    LeaderboardSort,
    ScoreHistory,
    ScoreHistoryPoint,
    ScoreTrend,
)
from ngage_shared.models import utc_now
from ngage_shared.types import LeaderboardSortField, TrendDirection
from ngage_shared.validation import validate_leaderboard

logger = logging.getLogger(__name__)

UNKNOWN_EVENT = "Unknown Event"


def trend_direction(scores: List[float]) -> TrendDirection:
    if len(scores) < 2:
        return TrendDirection.STABLE
    upward = sum(1 for a, b in zip(scores, scores[1:]) if b > a)
    downward = sum(1 for a, b in zip(scores, scores[1:]) if b < a)
    if upward > downward:
        return TrendDirection.UPWARD
    if downward > upward:
        return TrendDirection.DOWNWARD
    return TrendDirection.STABLE


def trend_percentage(scores: List[float]) -> float:
    if len(scores) < 2 or scores[0] == 0:
        return 0.0
    return (scores[-1] - scores[0]) / scores[0] * 100


def apply_filter(entries: list, leaderboard_filter: LeaderboardFilter) -> list:
    f = leaderboard_filter
    filtered = list(entries)
    if f.min_score is not None:
        filtered = [e for e in filtered if e.average_score >= f.min_score]
    if f.max_score is not None:
        filtered = [e for e in filtered if e.average_score <= f.max_score]
    if f.min_submissions is not None:
        filtered = [e for e in filtered if e.submission_count >= f.min_submissions]
    if f.team_ids:
        filtered = [e for e in filtered if e.team_id in f.team_ids]
    if f.top_n is not None:
        filtered = filtered[: f.top_n]
    return filtered


def apply_sort(entries: list, sort: LeaderboardSort) -> list:
    attribute = {
        LeaderboardSortField.AVERAGE_SCORE: "average_score",
        LeaderboardSortField.TOTAL_SCORE: "total_score",
        LeaderboardSortField.SUBMISSION_COUNT: "submission_count",
        LeaderboardSortField.TEAM_NAME: "team_name",
    }[LeaderboardSortField(sort.field)]
    return sorted(entries, key=lambda e: getattr(e, attribute), reverse=not sort.ascending)


class LeaderboardService:
    def __init__(
        self,
        collections: Collections,
        judging: JudgingService,
        notifications: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.judging = judging
        self.notifications = notifications
        self.clock = clock

    def calculate_event_leaderboard(self, event_id: str) -> Leaderboard:
        return self.judging.calculate_leaderboard(event_id)

    def calculate_individual_leaderboard(self, event_id: str) -> IndividualLeaderboard:
        submissions = [
            s
            for s in self.c.submissions.find(("event_id", "==", event_id))
            if s.status in RANKED_STATUSES
        ]
        members: Dict[str, Dict[str, Any]] = {}
        total_scores = 0
        for submission in submissions:
            scores = [
                s
                for s in self.judging.get_submission_scores(submission.id)
                if s.total_score is not None
            ]
            total_scores += len(scores)
            if not scores:
                continue
            aggregation = aggregate_scores(submission.id, scores)
            data = members.setdefault(
                submission.submitted_by,
                {"total": 0.0, "count": 0, "criteria": defaultdict(list), "teams": []},
            )
            data["total"] += aggregation.average_score
            data["count"] += 1
            if submission.team_id not in data["teams"]:
                data["teams"].append(submission.team_id)
            for key, value in aggregation.criteria_averages.items():
                data["criteria"][key].append(value)

        entries = []
        for member_id, data in members.items():
            member = self.c.members.get(member_id)
            entries.append(
                IndividualLeaderboardEntry(
                    member_id=member_id,
                    member_name=member.full_name if member else f"Member {member_id[:8]}",
                    total_score=data["total"],
                    average_score=data["total"] / data["count"],
                    submission_count=data["count"],
                    position=0,
                    criteria_scores={
                        k: sum(v) / len(v) for k, v in data["criteria"].items()
                    },
                    team_ids=data["teams"],
                )
            )
        entries.sort(key=lambda e: (-e.average_score, e.member_name))
        for position, entry in enumerate(entries, start=1):
            entry.position = position
        return IndividualLeaderboard(
            event_id=event_id,
            entries=entries,
            calculated_at=self.clock(),
            metadata={
                "totalSubmissions": len(submissions),
                "totalScores": total_scores,
                "membersWithScores": len(members),
            },
        )

    def get_latest_leaderboard(self, event_id: str) -> Optional[Leaderboard]:
        return self.c.leaderboards.get(event_id)

    def publish_leaderboard(self, event_id: str) -> Leaderboard:
        """
        Recomputes and stores the event leaderboard snapshot.

        Members of ranked teams are notified when the leading team changes.
        """
        event = self.c.events.require(event_id)
        previous = self.get_latest_leaderboard(event_id)
        leaderboard = self.calculate_event_leaderboard(event_id)
        result = validate_leaderboard(leaderboard)
        if not result.is_valid:
            logger.error(
                "Computed leaderboard for %s is inconsistent: %s", event_id, result.errors
            )
        self.c.leaderboards.save(leaderboard, doc_id=event_id)

        previous_leader = previous.leader.team_id if previous and previous.leader else None
        leader = leaderboard.leader
        if leader and leader.team_id != previous_leader:
            recipients = self._ranked_team_members(leaderboard)
            self.notifications.send_leaderboard_update(recipients, event, leaderboard)
            logger.info("New leader for event %s: %s", event_id, leader.team_id)
        return leaderboard

    def announce_results(self, event_id: str) -> Leaderboard:
        event = self.c.events.require(event_id)
        leaderboard = self.publish_leaderboard(event_id)
        self.notifications.send_result_announcement(
            self._ranked_team_members(leaderboard), event, leaderboard
        )
        return leaderboard

    def _ranked_team_members(self, leaderboard: Leaderboard) -> List[str]:
        recipients: List[str] = []
        for entry in leaderboard.entries:
            team = self.c.teams.get(entry.team_id)
            member_ids = team.member_ids if team else entry.submitted_by
            recipients.extend(m for m in member_ids if m not in recipients)
        return recipients

    def get_filtered_leaderboard(
        self,
        event_id: str,
        leaderboard_filter: Optional[LeaderboardFilter] = None,
        sort: Optional[LeaderboardSort] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> Leaderboard:
        base = self.calculate_event_leaderboard(event_id)
        entries = [replace(e) for e in base.entries]
        if leaderboard_filter is not None:
            entries = apply_filter(entries, leaderboard_filter)
        if sort is not None:
            entries = apply_sort(entries, sort)
        if offset:
            entries = entries[offset:]
        if limit is not None:
            entries = entries[:limit]
        for position, entry in enumerate(entries, start=1):
            entry.position = position
        return Leaderboard(
            event_id=event_id,
            entries=entries,
            calculated_at=base.calculated_at,
            metadata={
                **base.metadata,
                "filtered": leaderboard_filter is not None,
                "sorted": sort is not None,
                "totalEntries": len(base.entries),
                "filteredEntries": len(entries),
            },
        )

    def get_team_score_history(
        self,
        team_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> ScoreHistory:
        submissions = self.c.submissions.find(("team_id", "==", team_id), order_by="created_at")
        filtered = [
            s
            for s in submissions
            if (start is None or s.created_at > start) and (end is None or s.created_at < end)
        ]
        if limit is not None:
            filtered = filtered[:limit]

        entries = []
        for submission in filtered:
            aggregation = self.judging.calculate_submission_aggregation(submission.id)
            event = self.c.events.get(submission.event_id)
            entries.append(
                ScoreHistoryPoint(
                    submission_id=submission.id,
                    event_id=submission.event_id,
                    event_name=event.title if event else UNKNOWN_EVENT,
                    score=aggregation.average_score,
                    total_score=aggregation.total_score,
                    judge_count=aggregation.judge_count,
                    submitted_at=submission.submitted_at or submission.created_at,
                    criteria_scores=aggregation.criteria_averages,
                )
            )
        entries.sort(key=lambda e: e.submitted_at)
        return ScoreHistory(
            team_id=team_id,
            entries=entries,
            calculated_at=self.clock(),
            metadata={
                "totalSubmissions": len(submissions),
                "filteredSubmissions": len(filtered),
                "dateRange": {
                    "start": start.isoformat() if start else None,
                    "end": end.isoformat() if end else None,
                },
            },
        )

    def get_team_score_trend(
        self,
        team_id: str,
        period: Optional[timedelta] = None,
        data_points: Optional[int] = None,
    ) -> ScoreTrend:
        history = self.get_team_score_history(
            team_id,
            start=self.clock() - period if period else None,
            limit=data_points,
        )
        scores = [e.score for e in history.entries]
        if not scores:
            return ScoreTrend(
                team_id=team_id,
                direction=TrendDirection.STABLE,
                percentage_change=0.0,
                average_score=0.0,
                calculated_at=self.clock(),
            )
        return ScoreTrend(
            team_id=team_id,
            direction=trend_direction(scores),
            percentage_change=trend_percentage(scores),
            average_score=sum(scores) / len(scores),
            data_points=history.entries,
            calculated_at=self.clock(),
            metadata={
                "periodDays": period.days if period else None,
                "totalDataPoints": len(scores),
                "highestScore": max(scores),
                "lowestScore": min(scores),
            },
        )
