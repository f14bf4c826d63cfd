"""
Recognition: badges, points and levels, activity streaks and milestones.

Points come from badges (their point value) and completed milestones (their
reward). Milestone progress is recomputed from a member's stored activity,
so refreshing is safe to repeat; a milestone pays out once.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import NotFoundError, OperationError, ValidationError
from ngage.notifications import NotificationService
from ngage.repositories import Collections
from ngage_shared.models import (
    Badge,
    MemberBadge,
    MemberMilestone,
    MemberPoints,
    MemberStreak,
    Milestone,
    utc_now,
)
from ngage_shared.types import (
    BadgeCategory,
    BadgeRarity,
    MilestoneType,
    StreakType,
    SubmissionStatus,
)

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 1000
STREAK_BADGE_DAYS = (5, 10, 30, 100)
MILESTONE_POINTS_CATEGORY = "milestone"

LEVEL_TITLES = (
    (5, "Beginner"),
    (10, "Intermediate"),
    (20, "Advanced"),
    (50, "Expert"),
)


def level_for(total_points: int) -> int:
    return max(total_points, 0) // POINTS_PER_LEVEL + 1


def level_title(level: int) -> str:
    for ceiling, title in LEVEL_TITLES:
        if level <= ceiling:
            return title
    return "Master"


def streak_badge_id(streak_type: StreakType, days: int) -> str:
    return f"streak_{streak_type.value}_{days}days"


class BadgeService:
    def __init__(
        self,
        collections: Collections,
        notifications: NotificationService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.notifications = notifications
        self.clock = clock

    # Badges

    def create_badge(
        self,
        name: str,
        description: str,
        category: BadgeCategory,
        rarity: BadgeRarity = BadgeRarity.COMMON,
        point_value: int = 0,
        criteria: Optional[Dict[str, Any]] = None,
        icon_url: Optional[str] = None,
        badge_id: Optional[str] = None,
    ) -> Badge:
        if not name or not name.strip():
            raise ValidationError("Badge name is required")
        if point_value < 0:
            raise ValidationError("Badge point value cannot be negative")
        now = self.clock()
        badge = Badge(
            id=badge_id or self.c.badges.new_id(),
            name=name.strip(),
            description=(description or "").strip(),
            category=BadgeCategory(category),
            rarity=BadgeRarity(rarity),
            point_value=point_value,
            criteria=dict(criteria or {}),
            icon_url=icon_url,
            created_at=now,
            updated_at=now,
        )
        return self.c.badges.save(badge)

    def get_badges(self, active_only: bool = True) -> List[Badge]:
        if active_only:
            return self.c.badges.find(("is_active", "==", True), order_by="name")
        return self.c.badges.find(order_by="name")

    def deactivate_badge(self, badge_id: str) -> Badge:
        badge = self.c.badges.require(badge_id)
        badge.is_active = False
        badge.updated_at = self.clock()
        return self.c.badges.save(badge)

    @staticmethod
    def member_badge_id(member_id: str, badge_id: str) -> str:
        return f"{member_id}_{badge_id}"

    def has_badge(self, member_id: str, badge_id: str) -> bool:
        return self.c.member_badges.get(self.member_badge_id(member_id, badge_id)) is not None

    def award_badge(
        self,
        member_id: str,
        badge_id: str,
        event_id: Optional[str] = None,
        submission_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MemberBadge:
        """Awards a badge once per member, adds its points and notifies the member."""
        badge = self.c.badges.require(badge_id)
        if not badge.is_active:
            raise OperationError(f"Badge is no longer awarded: {badge.name}")
        if self.has_badge(member_id, badge_id):
            raise OperationError(f"Member already holds the {badge.name} badge")

        awarded = self.c.member_badges.save(
            MemberBadge(
                id=self.member_badge_id(member_id, badge_id),
                member_id=member_id,
                badge_id=badge_id,
                awarded_at=self.clock(),
                event_id=event_id,
                submission_id=submission_id,
                metadata=dict(metadata or {}),
            )
        )
        if badge.point_value:
            self.add_points(member_id, badge.point_value, badge.category.value)
        self.notifications.send_badge_awarded(member_id, badge)
        logger.info("Awarded badge %s to member %s", badge_id, member_id)
        return awarded

    def _award_if_available(self, member_id: str, badge_id: str, **kwargs) -> bool:
        badge = self.c.badges.get(badge_id)
        if badge is None or not badge.is_active or self.has_badge(member_id, badge_id):
            return False
        self.award_badge(member_id, badge_id, **kwargs)
        return True

    def get_member_badges(self, member_id: str, include_hidden: bool = False) -> List[MemberBadge]:
        held = self.c.member_badges.find(
            ("member_id", "==", member_id), order_by="awarded_at", descending=True
        )
        return held if include_hidden else [b for b in held if b.is_visible]

    def get_member_badges_with_details(self, member_id: str) -> List[Dict[str, Any]]:
        details = []
        for held in self.get_member_badges(member_id):
            badge = self.c.badges.get(held.badge_id)
            if badge is not None:
                details.append({"memberBadge": held, "badge": badge})
        return details

    def set_badge_visibility(self, member_id: str, badge_id: str, visible: bool) -> MemberBadge:
        held = self.c.member_badges.get(self.member_badge_id(member_id, badge_id))
        if held is None:
            raise NotFoundError("Member does not hold this badge")
        held.is_visible = visible
        return self.c.member_badges.save(held)

    # Points

    def get_member_points(self, member_id: str) -> MemberPoints:
        return self.c.member_points.get(member_id) or MemberPoints(
            id=member_id, member_id=member_id, last_updated=self.clock()
        )

    def add_points(self, member_id: str, points: int, category: str) -> MemberPoints:
        if points <= 0:
            raise ValidationError("Points to add must be positive")

        def _add(tx: Collections) -> MemberPoints:
            current = tx.member_points.get(member_id) or MemberPoints(
                id=member_id, member_id=member_id
            )
            current.total_points += points
            current.category_points[category] = current.category_points.get(category, 0) + points
            current.level = level_for(current.total_points)
            current.level_title = level_title(current.level)
            current.current_level_points = (
                current.total_points - (current.level - 1) * POINTS_PER_LEVEL
            )
            current.next_level_points = current.level * POINTS_PER_LEVEL
            current.last_updated = self.clock()
            return tx.member_points.save(current)

        return self.c.transaction(_add)

    def get_points_leaderboard(
        self, group_id: Optional[str] = None, limit: int = 50
    ) -> List[MemberPoints]:
        if group_id is None:
            return self.c.member_points.find(
                order_by="total_points", descending=True, limit=limit
            )
        member_ids = {
            m.member_id for m in self.c.memberships.find(("group_id", "==", group_id))
        }
        ranked = [p for p in self.c.member_points.all() if p.member_id in member_ids]
        ranked.sort(key=lambda p: (-p.total_points, p.member_id))
        return ranked[:limit]

    # Streaks

    @staticmethod
    def streak_id(member_id: str, streak_type: StreakType) -> str:
        return f"{member_id}_{streak_type.value}"

    def get_member_streaks(self, member_id: str) -> List[MemberStreak]:
        return self.c.member_streaks.find(("member_id", "==", member_id))

    def record_activity(
        self,
        member_id: str,
        streak_type: StreakType,
        activity_date: Optional[datetime] = None,
    ) -> MemberStreak:
        """
        Counts consecutive days of an activity.

        A second activity on the same day changes nothing and a gap of more
        than one day starts a new streak. Reaching 5, 10, 30 or 100 days
        awards the matching streak badge when one is defined.
        """
        streak_type = StreakType(streak_type)
        now = self.clock()
        activity_date = activity_date or now
        streak_id = self.streak_id(member_id, streak_type)
        streak = self.c.member_streaks.get(streak_id)

        if streak is None:
            streak = MemberStreak(
                id=streak_id,
                member_id=member_id,
                type=streak_type,
                current_streak=1,
                longest_streak=1,
                last_activity_date=activity_date,
                streak_start_date=activity_date,
                created_at=now,
                updated_at=now,
            )
            return self.c.member_streaks.save(streak)

        days = (activity_date.date() - streak.last_activity_date.date()).days
        if days <= 0:
            return streak
        if days == 1:
            streak.current_streak += 1
        else:
            streak.current_streak = 1
            streak.streak_start_date = activity_date
        streak.longest_streak = max(streak.longest_streak, streak.current_streak)
        streak.last_activity_date = activity_date
        streak.updated_at = now
        self.c.member_streaks.save(streak)

        if streak.current_streak in STREAK_BADGE_DAYS:
            badge_id = streak_badge_id(streak_type, streak.current_streak)
            if not self._award_if_available(member_id, badge_id):
                logger.debug("No streak badge %s to award to %s", badge_id, member_id)
        return streak

    # Milestones

    def create_milestone(
        self,
        name: str,
        description: str,
        milestone_type: MilestoneType,
        target_value: int,
        point_reward: int = 0,
        badge_id: Optional[str] = None,
    ) -> Milestone:
        if target_value <= 0:
            raise ValidationError("Milestone target must be positive")
        if badge_id is not None:
            self.c.badges.require(badge_id)
        now = self.clock()
        milestone = Milestone(
            id=self.c.milestones.new_id(),
            name=name.strip(),
            description=(description or "").strip(),
            type=MilestoneType(milestone_type),
            target_value=target_value,
            point_reward=point_reward,
            badge_id=badge_id,
            created_at=now,
            updated_at=now,
        )
        return self.c.milestones.save(milestone)

    def get_milestones(self) -> List[Milestone]:
        return self.c.milestones.find(("is_active", "==", True))

    def get_member_milestones(self, member_id: str) -> List[MemberMilestone]:
        return self.c.member_milestones.find(("member_id", "==", member_id))

    def measure(self, member_id: str, milestone_type: MilestoneType) -> int:
        """The member's current value for a milestone type, from stored activity."""
        if milestone_type == MilestoneType.TOTAL_POINTS:
            return self.get_member_points(member_id).total_points
        if milestone_type == MilestoneType.BADGES_EARNED:
            return len(self.get_member_badges(member_id, include_hidden=True))
        if milestone_type == MilestoneType.STREAK_DAYS:
            return max((s.longest_streak for s in self.get_member_streaks(member_id)), default=0)
        if milestone_type == MilestoneType.SOCIAL_POSTS:
            return len(
                self.c.posts.find(("author_id", "==", member_id), ("is_active", "==", True))
            )
        if milestone_type == MilestoneType.JUDGE_SCORES:
            scores = self.c.scores.find(("judge_id", "==", member_id))
            return sum(1 for s in scores if s.total_score is not None)

        submitted = [
            s
            for s in self.c.submissions.find(("submitted_by", "==", member_id))
            if s.status != SubmissionStatus.DRAFT
        ]
        if milestone_type == MilestoneType.SUBMISSIONS_COUNT:
            return len(submitted)
        return len({s.event_id for s in submitted})

    def refresh_member_milestones(self, member_id: str) -> List[MemberMilestone]:
        """Updates progress on every active milestone; returns the ones completed now."""
        measured: Dict[MilestoneType, int] = {}
        completed = []
        for milestone in self.get_milestones():
            if milestone.type not in measured:
                measured[milestone.type] = self.measure(member_id, milestone.type)
            progress = self._update_progress(member_id, milestone, measured[milestone.type])
            if progress.is_completed and not progress.rewarded:
                completed.append(self._reward(member_id, milestone, progress))
        return completed

    def _update_progress(
        self, member_id: str, milestone: Milestone, value: int
    ) -> MemberMilestone:
        progress_id = f"{member_id}_{milestone.id}"
        progress = self.c.member_milestones.get(progress_id) or MemberMilestone(
            id=progress_id,
            member_id=member_id,
            milestone_id=milestone.id,
            current_progress=0,
            target_progress=milestone.target_value,
            reward_points=milestone.point_reward,
            badge_id=milestone.badge_id,
        )
        progress.current_progress = value
        if not progress.is_completed and value >= progress.target_progress:
            progress.is_completed = True
            progress.completed_at = self.clock()
        return self.c.member_milestones.save(progress)

    def _reward(
        self, member_id: str, milestone: Milestone, progress: MemberMilestone
    ) -> MemberMilestone:
        progress.rewarded = True
        self.c.member_milestones.save(progress)
        if progress.reward_points:
            self.add_points(member_id, progress.reward_points, MILESTONE_POINTS_CATEGORY)
        if progress.badge_id:
            self._award_if_available(member_id, progress.badge_id)
        self.notifications.send_milestone_completed(member_id, milestone)
        logger.info("Member %s completed milestone %s", member_id, milestone.id)
        return progress

    def check_milestone_rewards(self, member_id: str) -> int:
        """Pays out completed milestones whose reward is still outstanding."""
        paid = 0
        for progress in self.get_member_milestones(member_id):
            if progress.is_completed and not progress.rewarded:
                milestone = self.c.milestones.require(progress.milestone_id)
                self._reward(member_id, milestone, progress)
                paid += 1
        return paid
