"""
Member profiles: default-profile switching, profile updates and claiming
imported profiles for a newly authenticated user.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from ngage.errors import NotFoundError, OperationError, ValidationError
from ngage.repositories import Collections
from ngage_shared.models import Member, User, utc_now
from ngage_shared.validation import validate_member

logger = logging.getLogger(__name__)

# Fields a member may change on their own profile.
EDITABLE_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "category",
    "title",
    "profile_photo",
    "bio",
)


class MemberService:
    def __init__(self, collections: Collections, clock: Callable[[], datetime] = utc_now):
        self.c = collections
        self.clock = clock

    def get_member(self, member_id: str) -> Optional[Member]:
        return self.c.members.get(member_id)

    def get_user_members(self, user_id: str) -> List[Member]:
        return self.c.members.find(("user_id", "==", user_id))

    def get_current_member(self, user_id: str) -> Optional[Member]:
        user = self.c.users.get(user_id)
        if not user or not user.default_member:
            return None
        return self.c.members.get(user.default_member)

    def switch_default_member(self, user_id: str, member_id: str) -> User:
        member = self.c.members.get(member_id)
        if not member:
            raise NotFoundError("Member not found")
        if member.user_id != user_id:
            raise OperationError("Member does not belong to user")
        if not member.is_active:
            raise OperationError("Cannot set inactive member as default")
        return self.set_default_member(user_id, member_id)

    def set_default_member(self, user_id: str, member_id: str) -> User:
        user = self.c.users.require(user_id)
        user.default_member = member_id
        user.updated_at = self.clock()
        return self.c.users.save(user)

    def update_member_profile(self, member_id: str, updates: dict) -> Member:
        if not updates:
            raise ValidationError("No updates provided")
        unknown = set(updates) - set(EDITABLE_PROFILE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}"
            )
        member = self.c.members.require(member_id)
        updated = replace(member, **updates, updated_at=self.clock())
        result = validate_member(updated)
        if not result.is_valid:
            raise ValidationError(
                f"Invalid member data: {', '.join(result.errors)}", errors=result.errors
            )
        return self.c.members.save(updated)

    def deactivate_member(self, member_id: str) -> Member:
        return self._set_active(member_id, False)

    def reactivate_member(self, member_id: str) -> Member:
        return self._set_active(member_id, True)

    def _set_active(self, member_id: str, is_active: bool) -> Member:
        member = self.c.members.require(member_id)
        member.is_active = is_active
        member.updated_at = self.clock()
        return self.c.members.save(member)

    def claim_member_profiles(self, user: User) -> List[Member]:
        """
        Links every unclaimed member whose email or phone matches the user.

        The first claimed profile becomes the user's default when the user
        has none yet.
        """
        now = self.clock()
        candidates = {m.id: m for m in self.c.members.find(("email", "==", user.email))}
        if user.phone:
            for m in self.c.members.find(("phone", "==", user.phone)):
                candidates.setdefault(m.id, m)

        claimed: List[Member] = []
        for member in candidates.values():
            if member.is_claimed:
                continue
            member.user_id = user.id
            member.claimed_at = now
            member.updated_at = now
            self.c.members.save(member)
            claimed.append(member)

        if claimed:
            logger.info("User %s claimed %d member profiles", user.id, len(claimed))
            self._ensure_default(user, claimed[0].id)
        return claimed

    def create_basic_member_profile(self, user: User) -> Member:
        """Creates a profile named after the local part of the user's email."""
        local_part = user.email.split("@")[0]
        parts = [p for p in local_part.split(".") if p]
        first_name = parts[0].capitalize() if parts else "User"
        last_name = " ".join(p.capitalize() for p in parts[1:])
        now = self.clock()
        member = Member(
            id=self.c.members.new_id(),
            email=user.email,
            first_name=first_name,
            last_name=last_name,
            user_id=user.id,
            phone=user.phone,
            claimed_at=now,
            created_at=now,
            updated_at=now,
        )
        self.c.members.save(member)
        self._ensure_default(user, member.id)
        return member

    def _ensure_default(self, user: User, member_id: str) -> None:
        stored = self.c.users.get(user.id) or user
        if stored.default_member:
            return
        stored.default_member = member_id
        stored.updated_at = self.clock()
        self.c.users.save(stored)
        user.default_member = member_id
