"""
Groups and group membership roles.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import NotFoundError, OperationError, ValidationError
from ngage.repositories import Collections
from ngage_shared.models import Group, GroupMember, Member, utc_now
from ngage_shared.types import GroupRole, GroupType
from ngage_shared.validation import validate_group

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self, collections: Collections, clock: Callable[[], datetime] = utc_now):
        self.c = collections
        self.clock = clock

    def create_group(
        self,
        name: str,
        description: str,
        group_type: GroupType,
        created_by: str,
        settings: Optional[Dict[str, Any]] = None,
    ) -> Group:
        now = self.clock()
        group = Group(
            id=self.c.groups.new_id(),
            name=name.strip(),
            description=description.strip(),
            group_type=GroupType(group_type),
            created_by=created_by,
            settings=settings or {},
            created_at=now,
            updated_at=now,
        )
        result = validate_group(group)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid group data: {', '.join(result.errors)}", errors=result.errors
            )

        def _create(tx: Collections) -> Group:
            tx.groups.save(group)
            tx.memberships.save(self._membership(group.id, created_by, GroupRole.ADMIN))
            return group

        self.c.transaction(_create)
        logger.info("Created group %s by %s", group.id, created_by)
        return group

    def _membership(self, group_id: str, member_id: str, role: GroupRole) -> GroupMember:
        now = self.clock()
        return GroupMember(
            id=f"{group_id}_{member_id}",
            group_id=group_id,
            member_id=member_id,
            role=GroupRole(role),
            joined_at=now,
            created_at=now,
        )

    def get_group(self, group_id: str) -> Optional[Group]:
        return self.c.groups.get(group_id)

    def update_group(self, group_id: str, updates: Dict[str, Any]) -> Group:
        group = self.c.groups.get(group_id)
        if not group:
            raise NotFoundError(f"Group not found: {group_id}")
        for key in ("name", "description"):
            if key in updates:
                setattr(group, key, (updates[key] or "").strip())
        if "group_type" in updates:
            group.group_type = GroupType(updates["group_type"])
        if "settings" in updates:
            group.settings = dict(updates["settings"])
        group.updated_at = self.clock()
        result = validate_group(group)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid group data: {', '.join(result.errors)}", errors=result.errors
            )
        return self.c.groups.save(group)

    def delete_group(self, group_id: str) -> None:
        self.c.groups.require(group_id)

        def _delete(tx: Collections) -> None:
            memberships = tx.memberships.find(("group_id", "==", group_id))
            for membership in memberships:
                tx.memberships.delete(membership.id)
            tx.groups.delete(group_id)

        self.c.transaction(_delete)
        logger.info("Deleted group %s", group_id)

    def add_member_to_group(
        self, group_id: str, member_id: str, role: GroupRole = GroupRole.MEMBER
    ) -> GroupMember:
        self.c.groups.require(group_id)
        if self.get_group_membership(group_id, member_id):
            raise OperationError("Member is already in this group")
        return self.c.memberships.save(self._membership(group_id, member_id, role))

    def remove_member_from_group(self, group_id: str, member_id: str) -> None:
        membership = self.get_group_membership(group_id, member_id)
        if not membership:
            raise OperationError("Member is not in this group")
        self.c.memberships.delete(membership.id)

    def update_member_role(self, group_id: str, member_id: str, role: GroupRole) -> GroupMember:
        membership = self.get_group_membership(group_id, member_id)
        if not membership:
            raise OperationError("Member is not in this group")
        membership.role = GroupRole(role)
        return self.c.memberships.save(membership)

    def get_group_membership(self, group_id: str, member_id: str) -> Optional[GroupMember]:
        return self.c.memberships.find_one(
            ("group_id", "==", group_id), ("member_id", "==", member_id)
        )

    def get_member_groups(self, member_id: str) -> List[Group]:
        memberships = self.c.memberships.find(("member_id", "==", member_id))
        groups = [self.c.groups.get(m.group_id) for m in memberships]
        return [g for g in groups if g is not None]

    def get_group_members(self, group_id: str) -> List[GroupMember]:
        return self.c.memberships.find(("group_id", "==", group_id), order_by="joined_at")

    def get_group_member_profiles(self, group_id: str) -> List[Member]:
        profiles = [self.c.members.get(m.member_id) for m in self.get_group_members(group_id)]
        return [p for p in profiles if p is not None]

    def get_groups_by_type(self, group_type: GroupType) -> List[Group]:
        return self.c.groups.find(
            ("group_type", "==", GroupType(group_type)), order_by="created_at", descending=True
        )

    def get_groups_created_by(self, member_id: str) -> List[Group]:
        return self.c.groups.find(
            ("created_by", "==", member_id), order_by="created_at", descending=True
        )

    def has_role(self, group_id: str, member_id: str, role: GroupRole) -> bool:
        membership = self.get_group_membership(group_id, member_id)
        return membership is not None and membership.role == role

    def is_group_admin(self, group_id: str, member_id: str) -> bool:
        return self.has_role(group_id, member_id, GroupRole.ADMIN)

    def is_group_member(self, group_id: str, member_id: str) -> bool:
        return self.get_group_membership(group_id, member_id) is not None

    def get_group_admins(self, group_id: str) -> List[str]:
        return [
            m.member_id
            for m in self.c.memberships.find(
                ("group_id", "==", group_id), ("role", "==", GroupRole.ADMIN)
            )
        ]
