"""
Moderation verdict model.
Final output of the decision engine, stored with review items for audit.
"""

from datetime import datetime, timezone
from typing import List, Dict
from pydantic import BaseModel, ConfigDict, Field

from campaign_moderation.models.enums import Decision, PolicyCategory, ClassifierOutcome
from campaign_moderation.models.signals import HighlightedSpan, UrlFinding, zero_scores


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImageFinding(BaseModel):
    """Per-image summary carried on the verdict."""
    model_config = ConfigDict(frozen=True)

    image_id: str
    score: float = Field(ge=0.0, le=1.0)
    labels: List[str] = Field(default_factory=list)


class ModerationVerdict(BaseModel):
    """
    Immutable result of one moderation pass.
    risk is the maximum of all signal scores, never an average. Carries no
    timestamp: equal inputs give equal verdicts.
    """
    model_config = ConfigDict(frozen=True)

    decision: Decision
    risk: float = Field(ge=0.0, le=1.0)
    scores: Dict[PolicyCategory, float] = Field(default_factory=zero_scores)
    rationale: List[str] = Field(default_factory=list)
    required_edits: List[str] = Field(default_factory=list)
    highlighted_spans: List[HighlightedSpan] = Field(default_factory=list)

    # Producer detail
    rule_reasons: List[str] = Field(default_factory=list)
    image_findings: List[ImageFinding] = Field(default_factory=list)
    url_findings: List[UrlFinding] = Field(default_factory=list)
    classifier_outcome: ClassifierOutcome = ClassifierOutcome.OK

    def with_decision(self, decision: Decision) -> "ModerationVerdict":
        """Copy with only the actionable decision replaced."""
        return self.model_copy(update={"decision": decision})
