"""
Exception hierarchy for the moderation pipeline.
"""
from typing import Any, Dict, List, Optional


class ModerationError(Exception):
    """Base class for all pipeline errors."""


class CampaignValidationError(ModerationError):
    """Campaign failed structural checks; rejected before any signal is computed."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class CollaboratorFailure(ModerationError):
    """An external collaborator (OCR, classifier) was unreachable or answered badly."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class MalformedResponse(CollaboratorFailure):
    """Collaborator answered, but the payload could not be used at all."""


class QueueTransitionError(ModerationError):
    """Review action could not be applied."""

    def __init__(self, item_id: str, message: str):
        super().__init__(message)
        self.item_id = item_id


class ReviewItemNotFound(QueueTransitionError):
    def __init__(self, item_id: str):
        super().__init__(item_id, f"Moderation item not found: {item_id}")


class InvalidReviewDecision(QueueTransitionError):
    def __init__(self, item_id: str, decision: Any):
        super().__init__(item_id, f"Invalid review decision {decision!r}; expected APPROVE or REJECT")
        self.decision = decision


class ItemAlreadyReviewed(QueueTransitionError):
    def __init__(self, item_id: str):
        super().__init__(item_id, f"Moderation item already reviewed: {item_id}")
