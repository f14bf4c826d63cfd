"""
Group analytics: participation, judge activity and social engagement over a
period, stored as snapshots so trends and reports can compare periods.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ngage.errors import ValidationError
from ngage.repositories import Collections, Repository
from ngage_shared.models import (
    AnalyticsReport,
    AnalyticsSnapshot,
    EngagementMetrics,
    Event,
    JudgeActivityMetrics,
    ParticipationMetrics,
    utc_now,
)
from ngage_shared.types import EventStatus, SubmissionStatus

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = timedelta(days=30)
TOP_CONTRIBUTORS = 10
# Relative change (percent) beyond which a metric counts as moving.
TREND_THRESHOLD_PERCENT = 5.0


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def _ratio(total: int, count: int) -> float:
    return total / count if count else 0.0


def _within(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment <= end


def _find_in(repo: Repository, field: str, values: Iterable[str]) -> list:
    values = list(dict.fromkeys(values))
    if not values:
        return []
    return repo.find((field, "in", values))


def calculate_trend(values: Sequence[float]) -> Dict[str, Any]:
    if len(values) < 2:
        return {"trend": "insufficient_data"}
    first, last = values[0], values[-1]
    change = last - first
    percent = change / first * 100 if first else 0.0
    if percent > TREND_THRESHOLD_PERCENT:
        trend = "increasing"
    elif percent < -TREND_THRESHOLD_PERCENT:
        trend = "decreasing"
    else:
        trend = "stable"
    return {
        "trend": trend,
        "change": change,
        "percentChange": percent,
        "firstValue": first,
        "lastValue": last,
    }


class AnalyticsService:
    def __init__(self, collections: Collections, clock: Callable[[], datetime] = utc_now):
        self.c = collections
        self.clock = clock

    def _period(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> tuple[datetime, datetime]:
        end = end or self.clock()
        start = start or end - DEFAULT_PERIOD
        if start >= end:
            raise ValidationError("Analytics period must start before it ends")
        return start, end

    def _events(self, group_id: str, event_id: Optional[str]) -> List[Event]:
        events = self.c.events.find(("group_id", "==", group_id))
        if event_id:
            events = [e for e in events if e.id == event_id]
        return events

    def participation_metrics(
        self,
        group_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> ParticipationMetrics:
        start, end = self._period(start, end)
        member_ids = [m.member_id for m in self.c.memberships.find(("group_id", "==", group_id))]
        teams = self.c.teams.find(("group_id", "==", group_id), ("is_active", "==", True))
        events = [
            e
            for e in self._events(group_id, event_id)
            if _within(e.start_time or e.created_at, start, end)
        ]
        submissions = [
            s
            for s in _find_in(self.c.submissions, "event_id", [e.id for e in events])
            if s.status != SubmissionStatus.DRAFT and _within(s.submitted_at, start, end)
        ]

        active = {s.submitted_by for s in submissions}
        posts = self.c.posts.find(("group_id", "==", group_id))
        active.update(p.author_id for p in posts if _within(p.created_at, start, end))
        post_ids = [p.id for p in posts]
        for like in _find_in(self.c.post_likes, "post_id", post_ids):
            if _within(like.created_at, start, end):
                active.add(like.member_id)
        for comment in _find_in(self.c.post_comments, "post_id", post_ids):
            if _within(comment.created_at, start, end):
                active.add(comment.author_id)
        active_members = active.intersection(member_ids)

        by_category: Counter = Counter()
        for member in _find_in(self.c.members, "id", member_ids):
            by_category[member.category or "uncategorized"] += 1
        completed = sum(1 for e in events if e.status == EventStatus.COMPLETED)
        active_team_ids = {s.team_id for s in submissions}

        return ParticipationMetrics(
            total_members=len(member_ids),
            active_members=len(active_members),
            total_teams=len(teams),
            active_teams=sum(1 for t in teams if t.id in active_team_ids),
            total_events=len(events),
            completed_events=completed,
            total_submissions=len(submissions),
            participation_rate=_rate(len(active_members), len(member_ids)),
            event_completion_rate=_rate(completed, len(events)),
            members_by_category=dict(by_category),
            teams_by_type=dict(Counter(t.team_type or "general" for t in teams)),
        )

    def judge_activity_metrics(
        self,
        group_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> JudgeActivityMetrics:
        start, end = self._period(start, end)
        event_ids = [e.id for e in self._events(group_id, event_id)]
        assignments = [
            a for a in _find_in(self.c.judge_assignments, "event_id", event_ids) if a.is_active
        ]
        scores = [
            s
            for s in _find_in(self.c.scores, "event_id", event_ids)
            if s.total_score is not None and _within(s.updated_at, start, end)
        ]
        comments = [
            c
            for c in _find_in(self.c.judge_comments, "event_id", event_ids)
            if _within(c.created_at, start, end)
        ]

        scores_by_judge = Counter(s.judge_id for s in scores)
        comments_by_judge = Counter(c.judge_id for c in comments)
        active_judges = set(scores_by_judge) | set(comments_by_judge)
        totals: Dict[str, List[float]] = defaultdict(list)
        for score in scores:
            totals[score.event_id].append(score.total_score)

        return JudgeActivityMetrics(
            total_judges=len({a.judge_id for a in assignments}),
            active_judges=len(active_judges),
            total_scores=len(scores),
            total_comments=len(comments),
            average_scores_per_judge=_ratio(len(scores), len(active_judges)),
            average_comments_per_judge=_ratio(len(comments), len(active_judges)),
            scores_by_judge=dict(scores_by_judge),
            comments_by_judge=dict(comments_by_judge),
            average_scores_by_event={k: sum(v) / len(v) for k, v in totals.items()},
        )

    def engagement_metrics(
        self,
        group_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> EngagementMetrics:
        start, end = self._period(start, end)
        group_posts = self.c.posts.find(("group_id", "==", group_id), ("is_active", "==", True))
        post_ids = [p.id for p in group_posts]
        posts = [p for p in group_posts if _within(p.created_at, start, end)]
        likes = [
            like
            for like in _find_in(self.c.post_likes, "post_id", post_ids)
            if _within(like.created_at, start, end)
        ]
        comments = [
            c
            for c in _find_in(self.c.post_comments, "post_id", post_ids)
            if c.is_active and _within(c.created_at, start, end)
        ]

        posts_by_member = Counter(p.author_id for p in posts)
        likes_by_member = Counter(like.member_id for like in likes)
        comments_by_member = Counter(c.author_id for c in comments)
        contributions = posts_by_member + likes_by_member + comments_by_member
        top = sorted(contributions, key=lambda m: (-contributions[m], m))[:TOP_CONTRIBUTORS]
        by_day: Counter = Counter()
        for moment in [p.created_at for p in posts] + [x.created_at for x in likes + comments]:
            by_day[moment.date().isoformat()] += 1

        return EngagementMetrics(
            total_posts=len(posts),
            total_likes=len(likes),
            total_comments=len(comments),
            average_likes_per_post=_ratio(len(likes), len(posts)),
            average_comments_per_post=_ratio(len(comments), len(posts)),
            posts_by_member=dict(posts_by_member),
            likes_by_member=dict(likes_by_member),
            comments_by_member=dict(comments_by_member),
            top_contributors=top,
            engagement_by_day=dict(sorted(by_day.items())),
        )

    def generate_metrics(
        self,
        group_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        event_id: Optional[str] = None,
    ) -> AnalyticsSnapshot:
        """Computes all three metric sets for the period and stores the snapshot."""
        self.c.groups.require(group_id)
        start, end = self._period(start, end)
        snapshot = AnalyticsSnapshot(
            id=self.c.analytics_metrics.new_id(),
            group_id=group_id,
            event_id=event_id,
            period_start=start,
            period_end=end,
            participation=self.participation_metrics(group_id, start, end, event_id),
            judge_activity=self.judge_activity_metrics(group_id, start, end, event_id),
            engagement=self.engagement_metrics(group_id, start, end),
            created_at=self.clock(),
        )
        logger.info("Stored analytics snapshot %s for group %s", snapshot.id, group_id)
        return self.c.analytics_metrics.save(snapshot)

    def get_historical_metrics(
        self,
        group_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AnalyticsSnapshot]:
        snapshots = self.c.analytics_metrics.find(
            ("group_id", "==", group_id), order_by="period_start"
        )
        return [
            s
            for s in snapshots
            if (start is None or s.period_start >= start) and (end is None or s.period_end <= end)
        ]

    def calculate_trends(
        self,
        group_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        history = self.get_historical_metrics(group_id, start, end)
        if len(history) < 2:
            return {"trends": {}, "message": "Insufficient data for trend analysis"}
        return {
            "trends": {
                "participation": calculate_trend(
                    [s.participation.participation_rate for s in history]
                ),
                "engagement": calculate_trend(
                    [float(s.engagement.total_posts) for s in history]
                ),
                "judgeActivity": calculate_trend(
                    [s.judge_activity.average_scores_per_judge for s in history]
                ),
            },
            "dataPoints": len(history),
        }

    def generate_report(
        self,
        title: str,
        description: str,
        group_ids: List[str],
        generated_by: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> AnalyticsReport:
        if not group_ids:
            raise ValidationError("A report needs at least one group")
        start, end = self._period(start, end)
        snapshots = [self.generate_metrics(g, start, end) for g in dict.fromkeys(group_ids)]
        count = len(snapshots)
        report = AnalyticsReport(
            id=self.c.analytics_reports.new_id(),
            title=title.strip(),
            description=(description or "").strip(),
            group_ids=list(dict.fromkeys(group_ids)),
            period_start=start,
            period_end=end,
            generated_by=generated_by,
            snapshot_ids=[s.id for s in snapshots],
            summary={
                "averageParticipationRate": sum(
                    s.participation.participation_rate for s in snapshots
                )
                / count,
                "totalEngagementPosts": sum(s.engagement.total_posts for s in snapshots),
                "averageJudgeActivity": sum(
                    s.judge_activity.average_scores_per_judge for s in snapshots
                )
                / count,
                "groupsAnalyzed": count,
                "periodDays": (end - start).days,
            },
            generated_at=self.clock(),
        )
        return self.c.analytics_reports.save(report)

    def get_reports(
        self, generated_by: Optional[str] = None, limit: int = 50
    ) -> List[AnalyticsReport]:
        filters = [("generated_by", "==", generated_by)] if generated_by else []
        return self.c.analytics_reports.find(
            *filters, order_by="generated_at", descending=True, limit=limit
        )
