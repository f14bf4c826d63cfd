"""
Teams within a group.

A member belongs to at most one team per group and the team lead is always
one of the team's members.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import OperationError, ValidationError
from ngage.groups import GroupService
from ngage.repositories import Collections
from ngage_shared.models import Team, utc_now
from ngage_shared.validation import validate_team

logger = logging.getLogger(__name__)


class TeamService:
    def __init__(
        self,
        collections: Collections,
        groups: GroupService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.c = collections
        self.groups = groups
        self.clock = clock

    def _validate(self, team: Team) -> None:
        result = validate_team(team)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid team data: {', '.join(result.errors)}", errors=result.errors
            )

    def _require_group_member(self, group_id: str, member_id: str) -> None:
        if not self.groups.is_group_member(group_id, member_id):
            raise ValidationError(f"Member {member_id} is not part of group {group_id}")

    def _require_unassigned(self, group_id: str, member_id: str, exclude_team_id: str = "") -> None:
        existing = self.get_member_team_in_group(member_id, group_id)
        if existing and existing.id != exclude_team_id:
            raise OperationError(
                f'Member {member_id} is already assigned to team "{existing.name}" in this '
                "group. A member can only be assigned to one team per group."
            )

    def create_team(
        self,
        group_id: str,
        name: str,
        description: str,
        team_lead_id: str,
        member_ids: Optional[List[str]] = None,
        max_members: Optional[int] = None,
        team_type: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> Team:
        self.c.groups.require(group_id)
        members = list(dict.fromkeys(member_ids or []))
        if team_lead_id not in members:
            members.insert(0, team_lead_id)
        for member_id in members:
            self._require_group_member(group_id, member_id)
            self._require_unassigned(group_id, member_id)

        now = self.clock()
        team = Team(
            id=self.c.teams.new_id(),
            group_id=group_id,
            name=name.strip(),
            description=description.strip(),
            team_lead_id=team_lead_id,
            member_ids=members,
            logo_url=logo_url,
            max_members=max_members,
            team_type=team_type,
            created_at=now,
            updated_at=now,
        )
        self._validate(team)
        self.c.teams.save(team)
        logger.info("Created team %s in group %s", team.id, group_id)
        return team

    def get_team(self, team_id: str) -> Optional[Team]:
        return self.c.teams.get(team_id)

    def update_team(self, team_id: str, updates: Dict[str, Any]) -> Team:
        team = self.c.teams.require(team_id)
        if "team_lead_id" in updates and updates["team_lead_id"] != team.team_lead_id:
            new_lead = updates["team_lead_id"]
            self._require_group_member(team.group_id, new_lead)
            if not team.has_member(new_lead):
                raise ValidationError("New team lead must be a member of the team")
            team.team_lead_id = new_lead
        for key in ("name", "description"):
            if key in updates:
                setattr(team, key, (updates[key] or "").strip())
        for key in ("max_members", "team_type", "logo_url", "is_active"):
            if key in updates:
                setattr(team, key, updates[key])
        team.updated_at = self.clock()
        self._validate(team)
        return self.c.teams.save(team)

    def update_team_logo(self, team_id: str, logo_url: Optional[str]) -> Team:
        return self.update_team(team_id, {"logo_url": logo_url})

    def delete_team(self, team_id: str) -> None:
        self.c.teams.require(team_id)
        self.c.teams.delete(team_id)

    def add_member_to_team(self, team_id: str, member_id: str) -> Team:
        return self.add_members_to_team(team_id, [member_id])

    def add_members_to_team(self, team_id: str, member_ids: List[str]) -> Team:
        team = self.c.teams.require(team_id)
        new_members = [m for m in dict.fromkeys(member_ids) if not team.has_member(m)]
        if not new_members:
            if len(member_ids) == 1:
                raise OperationError("Member is already in this team")
            raise OperationError("All specified members are already in this team")
        if team.max_members is not None and team.member_count + len(new_members) > team.max_members:
            raise OperationError(f"Team is at maximum capacity ({team.max_members} members)")
        for member_id in new_members:
            self._require_group_member(team.group_id, member_id)
            self._require_unassigned(team.group_id, member_id, exclude_team_id=team.id)
        team.member_ids.extend(new_members)
        team.updated_at = self.clock()
        self._validate(team)
        return self.c.teams.save(team)

    def remove_member_from_team(self, team_id: str, member_id: str) -> Team:
        return self.remove_members_from_team(team_id, [member_id])

    def remove_members_from_team(self, team_id: str, member_ids: List[str]) -> Team:
        team = self.c.teams.require(team_id)
        if team.team_lead_id in member_ids:
            raise OperationError(
                "Cannot remove team lead. Transfer leadership first."
            )
        missing = [m for m in member_ids if not team.has_member(m)]
        if missing:
            raise OperationError("Member is not in this team")
        team.member_ids = [m for m in team.member_ids if m not in member_ids]
        team.updated_at = self.clock()
        return self.c.teams.save(team)

    def change_team_lead(self, team_id: str, new_lead_id: str) -> Team:
        team = self.c.teams.require(team_id)
        if team.team_lead_id == new_lead_id:
            raise OperationError("Member is already the team lead")
        if not team.has_member(new_lead_id):
            raise ValidationError("New team lead must be a member of the team")
        team.team_lead_id = new_lead_id
        team.updated_at = self.clock()
        return self.c.teams.save(team)

    def transfer_team_leadership(self, team_id: str, new_lead_id: str) -> Team:
        return self.change_team_lead(team_id, new_lead_id)

    def get_group_teams(self, group_id: str, active_only: bool = True) -> List[Team]:
        teams = self.c.teams.find(("group_id", "==", group_id), order_by="name")
        return [t for t in teams if t.is_active or not active_only]

    def get_teams_led_by(self, member_id: str) -> List[Team]:
        return self.c.teams.find(("team_lead_id", "==", member_id))

    def get_teams_for_member(self, member_id: str) -> List[Team]:
        return self.c.teams.find(("member_ids", "array_contains", member_id))

    def get_member_team_in_group(self, member_id: str, group_id: str) -> Optional[Team]:
        return self.c.teams.find_one(
            ("group_id", "==", group_id), ("member_ids", "array_contains", member_id)
        )

    def is_member_assigned_to_team(self, member_id: str, group_id: str) -> bool:
        return self.get_member_team_in_group(member_id, group_id) is not None

    def get_unassigned_members_in_group(self, group_id: str) -> List[str]:
        assigned = {
            m for team in self.c.teams.find(("group_id", "==", group_id)) for m in team.member_ids
        }
        return [
            membership.member_id
            for membership in self.groups.get_group_members(group_id)
            if membership.member_id not in assigned
        ]

    def get_available_members_for_team(self, team_id: str) -> List[str]:
        team = self.c.teams.require(team_id)
        return self.get_unassigned_members_in_group(team.group_id)

    def can_add_member_to_team(self, team_id: str, member_id: str) -> bool:
        team = self.c.teams.get(team_id)
        if not team or team.has_member(member_id) or team.is_at_capacity:
            return False
        if not self.groups.is_group_member(team.group_id, member_id):
            return False
        return not self.is_member_assigned_to_team(member_id, team.group_id)

    def get_team_stats(self, team_id: str) -> Dict[str, Any]:
        team = self.c.teams.require(team_id)
        submissions = self.c.submissions.find(("team_id", "==", team_id))
        return {
            "memberCount": team.member_count,
            "maxMembers": team.max_members,
            "isAtCapacity": team.is_at_capacity,
            "availableSlots": (
                team.max_members - team.member_count if team.max_members is not None else None
            ),
            "submissionCount": len(submissions),
            "eventCount": len({s.event_id for s in submissions}),
        }
