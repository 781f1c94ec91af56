from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class ClaimStatus(str, Enum):
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"


class LayoutVariant(str, Enum):
    LAYOUT1 = "layout1"
    LAYOUT2 = "layout2"
    LAYOUT3 = "layout3"
    LAYOUT4 = "layout4"
    LAYOUT5 = "layout5"
    LAYOUT6 = "layout6"


@dataclass(slots=True)
class TokenValidation:
    token_id: str
    valid: bool
    claimed: bool
    vendor_id: UUID | None = None


@dataclass(slots=True)
class GeneratedBatch:
    batch_id: int
    layout_variant: LayoutVariant
    token_ids: list[str]
    created_at: datetime
