"""
Review queue store abstraction and the in-process implementation.
"""
import itertools
import threading
from typing import Dict, List, Optional

from campaign_moderation.lib.errors import ReviewItemNotFound, ItemAlreadyReviewed
from campaign_moderation.models.enums import Decision
from campaign_moderation.models.review import ReviewQueueItem


class ReviewQueueStore:
    """
    Storage for review queue items.
    transition_to_reviewed must be exclusive per item: of two concurrent
    transitions on the same PENDING item, exactly one succeeds.
    """

    def insert(self, item: ReviewQueueItem) -> ReviewQueueItem:
        raise NotImplementedError

    def get_by_id(self, item_id: str) -> Optional[ReviewQueueItem]:
        raise NotImplementedError

    def list_pending(self, limit: Optional[int] = None) -> List[ReviewQueueItem]:
        """Pending items, most recent first."""
        raise NotImplementedError

    def count_pending(self) -> int:
        raise NotImplementedError

    def transition_to_reviewed(
        self,
        item_id: str,
        decision: Decision,
        reviewer_id: str,
        notes: Optional[str],
    ) -> ReviewQueueItem:
        raise NotImplementedError


class InMemoryReviewQueueStore(ReviewQueueStore):
    """Process-local store with a lock per item for the review transition."""

    def __init__(self):
        self._items: Dict[str, ReviewQueueItem] = {}
        self._order: Dict[str, int] = {}
        self._item_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count()

    def insert(self, item: ReviewQueueItem) -> ReviewQueueItem:
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"duplicate review item id: {item.id}")
            self._items[item.id] = item
            self._order[item.id] = next(self._seq)
            self._item_locks[item.id] = threading.Lock()
        return item

    def get_by_id(self, item_id: str) -> Optional[ReviewQueueItem]:
        with self._lock:
            return self._items.get(item_id)

    def list_pending(self, limit: Optional[int] = None) -> List[ReviewQueueItem]:
        with self._lock:
            pending = [item for item in self._items.values() if item.is_pending]
            pending.sort(key=lambda item: (item.created_at, self._order[item.id]), reverse=True)
        return pending[:limit] if limit is not None else pending

    def count_pending(self) -> int:
        with self._lock:
            return sum(1 for item in self._items.values() if item.is_pending)

    def transition_to_reviewed(
        self,
        item_id: str,
        decision: Decision,
        reviewer_id: str,
        notes: Optional[str],
    ) -> ReviewQueueItem:
        with self._lock:
            item_lock = self._item_locks.get(item_id)
        if item_lock is None:
            raise ReviewItemNotFound(item_id)

        # check-then-act under the item's own lock
        with item_lock:
            item = self._items[item_id]
            if not item.is_pending:
                raise ItemAlreadyReviewed(item_id)
            updated = item.reviewed(decision, reviewer_id, notes)
            with self._lock:
                self._items[item_id] = updated
        return updated
