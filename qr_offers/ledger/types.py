from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from qr_offers.db.models.offers import Offer
from qr_offers.db.models.redemptions import Redemption


class RedemptionStatus(str, Enum):
    PENDING = "pending"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


def derive_redemption_status(
    redemption: Redemption,
    *,
    offer: Offer | None,
    now_utc: datetime,
) -> RedemptionStatus:
    if (
        redemption.status == RedemptionStatus.PENDING.value
        and offer is not None
        and now_utc >= offer.expiry_date
    ):
        return RedemptionStatus.EXPIRED
    return RedemptionStatus(redemption.status)


@dataclass(slots=True)
class RedemptionDetails:
    redemption: Redemption
    offer: Offer | None
    status: RedemptionStatus


@dataclass(slots=True)
class VendorRedemptionStats:
    pending: int = 0
    redeemed: int = 0
    expired: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.redeemed + self.expired
