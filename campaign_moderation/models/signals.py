"""
Signal data models.
Every producer in the pipeline reports one of these, even on internal failure.
"""

from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field

from campaign_moderation.models.enums import Decision, PolicyCategory, ClassifierOutcome


def zero_scores() -> Dict[PolicyCategory, float]:
    return {category: 0.0 for category in PolicyCategory}


class SignalResult(BaseModel):
    """Independent risk assessment from one producer."""
    score: float = Field(ge=0.0, le=1.0, default=0.0)
    findings: List[str] = Field(default_factory=list)


class ImageSignal(SignalResult):
    """Signal for a single uploaded image."""
    image_id: str
    labels: List[str] = Field(default_factory=list)
    extracted_text: str = ""


class UrlFinding(BaseModel):
    """Reputation finding for one outbound link. Clean links produce none."""
    model_config = ConfigDict(frozen=True)

    url: str
    risk: float = Field(ge=0.0, le=1.0)
    reason: str


class HighlightedSpan(BaseModel):
    """Problematic text span pointed out by the classifier."""
    model_config = ConfigDict(frozen=True)

    field: str
    text: str
    start: Optional[int] = None
    end: Optional[int] = None


class ClassifierSignals(BaseModel):
    """
    Context handed to the policy classifier alongside the campaign.
    duplicate_text_score and similarity_to_known_scams are not computed yet;
    the prompt references them, so they are always sent.
    """
    contains_pii: bool = False
    duplicate_text_score: float = 0.0
    similarity_to_known_scams: float = 0.0
    url_reputation: Dict[str, str] = Field(default_factory=dict)
    image_ocr_findings: List[str] = Field(default_factory=list)


class ClassifierResult(BaseModel):
    """Per-category assessment from the advisory classifier, post-validation."""
    scores: Dict[PolicyCategory, float] = Field(default_factory=zero_scores)
    decision: Decision = Decision.HOLD
    rationale: List[str] = Field(default_factory=list)
    required_edits: List[str] = Field(default_factory=list)
    highlighted_spans: List[HighlightedSpan] = Field(default_factory=list)
    outcome: ClassifierOutcome = ClassifierOutcome.OK
    error: Optional[str] = None

    @property
    def max_score(self) -> float:
        return max(self.scores.values(), default=0.0)
