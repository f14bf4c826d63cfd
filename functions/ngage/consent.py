"""
Member consent records and the data export used for privacy requests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ngage.errors import OperationError
from ngage.repositories import Collections
from ngage_shared.json_utils import to_json_ready
from ngage_shared.models import Consent, utc_now
from ngage_shared.types import ConsentType

logger = logging.getLogger(__name__)

# Actions that need a specific consent; anything else is allowed.
ACTION_CONSENTS = {
    "upload_media": ConsentType.MEDIA_USAGE,
    "process_data": ConsentType.DATA_PROCESSING,
    "send_marketing": ConsentType.MARKETING,
    "collect_analytics": ConsentType.ANALYTICS,
    "share_with_third_party": ConsentType.THIRD_PARTY_SHARING,
}


class ConsentService:
    def __init__(self, collections: Collections, clock: Callable[[], datetime] = utc_now):
        self.c = collections
        self.clock = clock

    def get_member_consents(self, member_id: str) -> List[Consent]:
        return self.c.consents.find(
            ("member_id", "==", member_id), order_by="granted_at", descending=True
        )

    def get_valid_consent(self, member_id: str, consent_type: ConsentType) -> Optional[Consent]:
        now = self.clock()
        for consent in self.c.consents.find(
            ("member_id", "==", member_id), ("consent_type", "==", ConsentType(consent_type))
        ):
            if consent.is_valid(now):
                return consent
        return None

    def has_valid_consent(self, member_id: str, consent_type: ConsentType) -> bool:
        return self.get_valid_consent(member_id, consent_type) is not None

    def grant_consent(
        self,
        member_id: str,
        consent_type: ConsentType,
        purpose: Optional[str] = None,
        description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Consent:
        consent_type = ConsentType(consent_type)
        if self.has_valid_consent(member_id, consent_type):
            raise OperationError(f"Valid consent already exists for {consent_type.value}")
        now = self.clock()
        if expires_at is not None and expires_at <= now:
            raise OperationError("Consent cannot expire in the past")
        consent = Consent(
            id=self.c.consents.new_id(),
            member_id=member_id,
            consent_type=consent_type,
            purpose=purpose,
            description=description,
            granted_at=now,
            expires_at=expires_at,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        return self.c.consents.save(consent)

    def revoke_consent(self, member_id: str, consent_type: ConsentType) -> List[Consent]:
        now = self.clock()
        revoked = []
        for consent in self.c.consents.find(
            ("member_id", "==", member_id), ("consent_type", "==", ConsentType(consent_type))
        ):
            if consent.revoked_at is None:
                consent.revoked_at = now
                consent.updated_at = now
                revoked.append(self.c.consents.save(consent))
        logger.info("Revoked %d %s consents for %s", len(revoked), consent_type, member_id)
        return revoked

    def get_consent_status(self, member_id: str) -> Dict[str, bool]:
        now = self.clock()
        status = {t.value: False for t in ConsentType}
        for consent in self.get_member_consents(member_id):
            if consent.is_valid(now):
                status[consent.consent_type.value] = True
        return status

    def validate_consent_for_action(self, member_id: str, action: str) -> bool:
        required = ACTION_CONSENTS.get(action)
        return required is None or self.has_valid_consent(member_id, required)

    def get_expiring_consents(self, days_from_now: int) -> List[Consent]:
        now = self.clock()
        horizon = now + timedelta(days=days_from_now)
        return [
            c
            for c in self.c.consents.find(
                ("expires_at", ">=", now), ("expires_at", "<=", horizon)
            )
            if c.is_valid(now)
        ]

    def export_member_data(self, member_id: str) -> Dict[str, Any]:
        """Everything stored about a member, for a data export or portability request."""
        member = self.c.members.require(member_id)
        now = self.clock()
        consents = self.get_member_consents(member_id)
        return to_json_ready(
            {
                "memberId": member_id,
                "exportedAt": now,
                "profile": member,
                "groups": self.c.memberships.find(("member_id", "==", member_id)),
                "submissions": self.c.submissions.find(("submitted_by", "==", member_id)),
                "posts": self.c.posts.find(("author_id", "==", member_id)),
                "badges": self.c.member_badges.find(("member_id", "==", member_id)),
                "consents": consents,
                "summary": {
                    "totalConsents": len(consents),
                    "validConsents": sum(1 for c in consents if c.is_valid(now)),
                    "revokedConsents": sum(1 for c in consents if c.revoked_at is not None),
                },
            }
        )
