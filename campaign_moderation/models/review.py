"""
Human Review data models.
Items held for human adjudication; never deleted, they form the audit trail.
"""

import secrets
import time
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from campaign_moderation.models.enums import Decision, ReviewStatus
from campaign_moderation.models.campaign import Campaign
from campaign_moderation.models.verdict import ModerationVerdict, utcnow


def new_item_id() -> str:
    """Unique id that sorts by creation time: mod_<epoch ms>_<random>."""
    return f"mod_{int(time.time() * 1000):013d}_{secrets.token_hex(5)}"


class ReviewQueueItem(BaseModel):
    """
    Review task created when the decision engine outputs HOLD.
    Replaced exactly once, by a review action; never changed in place.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_item_id)
    campaign_id: str = "new_campaign"

    # Snapshots (for reviewer context and audit)
    campaign: Campaign
    verdict: ModerationVerdict
    original_decision: Decision = Decision.HOLD

    # Status
    status: ReviewStatus = ReviewStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)

    # Set by the review action
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ReviewStatus.PENDING

    def reviewed(self, decision: Decision, reviewer_id: str, notes: Optional[str]) -> "ReviewQueueItem":
        """Return the REVIEWED copy of this item. Only the verdict decision changes."""
        return self.model_copy(update={
            "status": ReviewStatus.REVIEWED,
            "reviewed_by": reviewer_id,
            "reviewed_at": utcnow(),
            "review_notes": notes,
            "verdict": self.verdict.with_decision(decision),
        })
