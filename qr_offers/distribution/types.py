from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from qr_offers.db.models.offers import Offer


class OfferLifecycle(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class VendorDecision(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


TERMINAL_DECISIONS = frozenset({VendorDecision.ACCEPTED, VendorDecision.REJECTED})


def is_offer_expired(offer: Offer, *, now_utc: datetime) -> bool:
    return now_utc >= offer.expiry_date


@dataclass(slots=True)
class DecisionTally:
    accepted: int = 0
    rejected: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.accepted + self.rejected + self.pending


@dataclass(slots=True)
class AdminOfferView:
    offer: Offer
    tally: DecisionTally


@dataclass(slots=True)
class VendorOfferView:
    offer: Offer
    decision: VendorDecision
    decided_at: datetime | None
    expired: bool


@dataclass(slots=True)
class PublishResult:
    offer: Offer
    target_vendor_ids: list[UUID]


@dataclass(slots=True)
class SendToCustomersResult:
    offer_id: UUID
    vendor_id: UUID
    target_count: int
    messages_sent_count: int
    failed_count: int


@dataclass(slots=True)
class OfferAnalytics:
    offer: Offer
    vendor_id: UUID
    decision: VendorDecision
    expired: bool
    redemptions_by_status: dict[str, int] = field(default_factory=dict)
    broadcasts_total: int = 0
    messages_sent_total: int = 0
