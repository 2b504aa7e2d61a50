"""
Review Queue Service.
Holds HOLD decisions for human adjudication: PENDING -> REVIEWED, once.
"""

import logging
from typing import Any, List, Optional

from campaign_moderation.lib.errors import InvalidReviewDecision, ReviewItemNotFound
from campaign_moderation.lib.metrics import metrics
from campaign_moderation.lib.review_store import ReviewQueueStore, InMemoryReviewQueueStore
from campaign_moderation.models.campaign import Campaign
from campaign_moderation.models.enums import Decision, HUMAN_DECISIONS
from campaign_moderation.models.review import ReviewQueueItem
from campaign_moderation.models.verdict import ModerationVerdict

logger = logging.getLogger(__name__)


class ReviewQueueService:
    """
    Human review queue on top of a ReviewQueueStore.
    Items are never deleted; a reviewed item is immutable.
    """

    def __init__(self, store: Optional[ReviewQueueStore] = None):
        self.store = store or InMemoryReviewQueueStore()

    def enqueue(self, campaign: Campaign, verdict: ModerationVerdict) -> ReviewQueueItem:
        """Create a PENDING item from a HOLD verdict."""
        if verdict.decision != Decision.HOLD:
            raise ValueError(f"only HOLD verdicts are queued for review, got {verdict.decision.value}")

        item = ReviewQueueItem(
            campaign_id=campaign.id or "new_campaign",
            campaign=campaign,
            verdict=verdict,
            original_decision=verdict.decision,
        )
        self.store.insert(item)
        metrics.update_queue_depth(self.store.count_pending())
        logger.info(f"Added to moderation queue: {item.id} (risk: {verdict.risk:.3f})")
        return item

    def list_pending(self, limit: Optional[int] = None) -> List[ReviewQueueItem]:
        """Pending items, most recent first. Read-only."""
        return self.store.list_pending(limit=limit)

    def pending_count(self) -> int:
        return self.store.count_pending()

    def get(self, item_id: str) -> ReviewQueueItem:
        item = self.store.get_by_id(item_id)
        if item is None:
            raise ReviewItemNotFound(item_id)
        return item

    @metrics.track_processing("review")
    def review(
        self,
        item_id: str,
        decision: Any,
        notes: Optional[str],
        reviewer_id: str,
    ) -> ReviewQueueItem:
        """
        Apply the single terminal review action.

        Raises ReviewItemNotFound for an unknown id, InvalidReviewDecision
        unless decision is APPROVE or REJECT, and ItemAlreadyReviewed when
        the item has already left PENDING.
        """
        if self.store.get_by_id(item_id) is None:
            raise ReviewItemNotFound(item_id)

        human_decision = self._parse_decision(item_id, decision)
        item = self.store.transition_to_reviewed(item_id, human_decision, reviewer_id, notes)

        metrics.record_review(human_decision.value)
        metrics.update_queue_depth(self.store.count_pending())
        logger.info(f"Item {item_id} reviewed by {reviewer_id}: {human_decision.value}")
        return item

    @staticmethod
    def _parse_decision(item_id: str, decision: Any) -> Decision:
        try:
            parsed = Decision(decision)
        except ValueError:
            raise InvalidReviewDecision(item_id, decision) from None
        if parsed not in HUMAN_DECISIONS:
            raise InvalidReviewDecision(item_id, decision)
        return parsed
