"""
Policy Classifier Adapter.
Sends the campaign and collected signals to an advisory classifier and
validates its answer field by field. The classifier is never trusted:
missing or bad scores become 0, bad decisions are re-derived, and any
provider failure degrades to a HOLD result.
"""

import asyncio
import logging
import math
import re
from typing import Any, Dict, List, Optional

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.lib.errors import CollaboratorFailure, MalformedResponse
from campaign_moderation.lib.llm_client import ClassifierProvider, OpenAIChatProvider
from campaign_moderation.lib.metrics import metrics
from campaign_moderation.models.campaign import Campaign
from campaign_moderation.models.enums import ClassifierOutcome, Decision, PolicyCategory
from campaign_moderation.models.signals import (
    ClassifierResult, ClassifierSignals, HighlightedSpan, zero_scores
)

logger = logging.getLogger(__name__)


PROMPT_VERSION = "campaign-policy-v1"

FAILURE_RATIONALE = "Automated policy analysis failed - manual review required"

MODERATION_INSTRUCTIONS = """You are a strict trust & safety reviewer for a crowdfunding platform.
Analyze the campaign for policy violations and return a JSON verdict with category scores (0-1) and reasoning.
If evidence is weak, lower the score. Prefer HOLD when unsure.

The input contains the campaign and pre-computed signals:
contains_pii, duplicate_text_score, similarity_to_known_scams, url_reputation, image_ocr_findings.

POLICY CATEGORIES:

SCAM_FINANCIAL: Guaranteed returns, lotteries, crypto giveaways, MLM/pyramid schemes, get-rich-quick promises, investment "opportunities"
IMPERSONATION: Pretending to be a brand/NGO/celebrity; unverifiable identities claiming authority/endorsement
MEDICAL_CLAIMS: Medical fundraising without hospital documents, doctor letters, or verifiable medical institution info
PAYMENT_BYPASS: Asking for direct payments (UPI/crypto/bank transfer/WhatsApp/Telegram) in description or images, bypassing platform
VIOLENT_ADULT_HATE: Violence, sexual content, hate speech, illegal activities
SENSITIVE_DOCS: Images of government IDs, bank statements, account details, passports
LOW_QUALITY_SPAM: Near-empty content, copy-paste text, link spam, meaningless repetition

SCORING GUIDELINES:
- 0.0-0.2: Minor concerns or false positives
- 0.3-0.5: Moderate risk, needs human review
- 0.6-0.8: High risk, likely violation
- 0.9-1.0: Clear violation, auto-reject

DECISION LOGIC:
- APPROVE: All categories < 0.3
- HOLD: Any category 0.3-0.6, needs human review
- REJECT: Any category > 0.6

Return ONLY valid JSON matching this exact structure:
{
  "scores": {
    "SCAM_FINANCIAL": 0.0,
    "IMPERSONATION": 0.0,
    "MEDICAL_CLAIMS": 0.0,
    "PAYMENT_BYPASS": 0.0,
    "VIOLENT_ADULT_HATE": 0.0,
    "SENSITIVE_DOCS": 0.0,
    "LOW_QUALITY_SPAM": 0.0
  },
  "decision": "APPROVE|HOLD|REJECT",
  "rationale": ["Brief reason for each flagged category"],
  "requiredEdits": ["Specific actions needed to fix violations"],
  "highlightedSpans": [
    {"field": "title|description", "text": "problematic text span", "start": 0, "end": 10}
  ]
}"""


def derive_decision(max_score: float, approve_below: float, hold_below: float) -> Decision:
    """Threshold policy shared with the decision engine."""
    if max_score < approve_below:
        return Decision.APPROVE
    if max_score < hold_below:
        return Decision.HOLD
    return Decision.REJECT


class HeuristicClassifierProvider(ClassifierProvider):
    """
    Deterministic local stand-in used when no provider credential is configured.
    Applies a reduced subset of keyword checks per category.
    """

    name = "heuristic"

    def __init__(self, approve_below: float = 0.3, hold_below: float = 0.6):
        self.approve_below = approve_below
        self.hold_below = hold_below

    async def classify(self, prompt_payload: Dict[str, Any]) -> Dict[str, Any]:
        campaign = prompt_payload["input"]["campaign"]
        description = campaign.get("description", "")
        text = f"{campaign.get('title', '')} {description}".lower()

        scores = {category.value: 0.0 for category in PolicyCategory}
        rationale: List[str] = []
        required_edits: List[str] = []
        spans: List[Dict[str, Any]] = []

        if any(kw in text for kw in ("guaranteed", "double your money", "investment")):
            scores[PolicyCategory.SCAM_FINANCIAL.value] = 0.8
            rationale.append("Contains financial scam language (guaranteed returns)")
            required_edits.append("Remove promises of guaranteed returns or investment opportunities")
            spans.append(self._span(campaign, "guaranteed"))

        if re.search(r'\bupi\b', text) or "send money to" in text or "paytm" in text:
            scores[PolicyCategory.PAYMENT_BYPASS.value] = 0.9
            rationale.append("Contains direct payment instructions bypassing platform")
            required_edits.append("Remove direct payment instructions - use platform payment system only")

        if any(kw in text for kw in ("surgery", "medical", "treatment")):
            if "hospital" not in text and "doctor" not in text:
                scores[PolicyCategory.MEDICAL_CLAIMS.value] = 0.5
                rationale.append("Medical fundraising without proper verification documents")
                required_edits.append("Provide hospital documents or doctor verification for medical campaigns")

        if len(description) < 50 or len(text.split()) < 20:
            scores[PolicyCategory.LOW_QUALITY_SPAM.value] = 0.4
            rationale.append("Content appears to be low quality or too brief")
            required_edits.append("Provide more detailed description of your campaign")

        decision = derive_decision(max(scores.values()), self.approve_below, self.hold_below)
        return {
            "scores": scores,
            "decision": decision.value,
            "rationale": rationale,
            "requiredEdits": required_edits,
            "highlightedSpans": [s for s in spans if s],
        }

    @staticmethod
    def _span(campaign: Dict[str, Any], needle: str) -> Optional[Dict[str, Any]]:
        for field in ("title", "description"):
            value = campaign.get(field, "")
            start = value.lower().find(needle)
            if start >= 0:
                end = start + len(needle)
                return {"field": field, "text": value[start:end], "start": start, "end": end}
        return None


class PolicyClassifier:
    """
    Advisory classifier adapter.
    Always returns a populated ClassifierResult, tagged with how it was obtained.
    """

    BATCH_SIZE = 5

    def __init__(
        self,
        settings: Optional[ModerationSettings] = None,
        provider: Optional[ClassifierProvider] = None,
    ):
        self.settings = settings or ModerationSettings()
        self.provider = provider or self._default_provider()
        self.timeout = self.settings.classifier_timeout_seconds

    def _default_provider(self) -> ClassifierProvider:
        settings = self.settings
        if not settings.classifier_configured:
            logger.info("Classifier provider not configured - using local heuristic classifier")
            return HeuristicClassifierProvider(settings.approve_below, settings.hold_below)
        return OpenAIChatProvider(
            api_key=settings.classifier_api_key,
            model=settings.classifier_model,
            base_url=settings.classifier_base_url,
            timeout=settings.classifier_timeout_seconds,
        )

    @property
    def is_mock(self) -> bool:
        return isinstance(self.provider, HeuristicClassifierProvider)

    def build_payload(self, campaign: Campaign, signals: ClassifierSignals) -> Dict[str, Any]:
        return {
            "version": PROMPT_VERSION,
            "instructions": MODERATION_INSTRUCTIONS,
            "input": {
                "campaign": campaign.model_dump(mode="json"),
                "signals": signals.model_dump(mode="json"),
            },
        }

    async def evaluate(self, campaign: Campaign, signals: ClassifierSignals) -> ClassifierResult:
        """Classify one campaign. Never raises."""
        payload = self.build_payload(campaign, signals)

        try:
            raw = await asyncio.wait_for(self.provider.classify(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Classifier timed out after {self.timeout}s")
            return self._failure(ClassifierOutcome.UNREACHABLE, "timeout")
        except MalformedResponse as e:
            logger.warning(f"Classifier returned malformed output: {e}")
            return self._failure(ClassifierOutcome.MALFORMED, str(e))
        except CollaboratorFailure as e:
            logger.warning(f"Classifier unavailable: {e}")
            return self._failure(ClassifierOutcome.UNREACHABLE, str(e))
        except Exception as e:
            logger.error(f"Classifier error: {e!r}")
            return self._failure(ClassifierOutcome.UNREACHABLE, repr(e))

        if not isinstance(raw, dict):
            logger.warning(f"Classifier output is not a JSON object: {type(raw).__name__}")
            return self._failure(ClassifierOutcome.MALFORMED, "response is not a JSON object")

        outcome = ClassifierOutcome.MOCK if self.is_mock else ClassifierOutcome.OK
        result = self.parse_result(raw, outcome)
        metrics.record_classifier(result.outcome.value)
        return result

    async def evaluate_batch(self, campaigns: List[Campaign], pause_seconds: float = 1.0) -> List[ClassifierResult]:
        """Classify campaigns in small groups to stay under provider rate limits."""
        results: List[ClassifierResult] = []
        for i in range(0, len(campaigns), self.BATCH_SIZE):
            batch = campaigns[i:i + self.BATCH_SIZE]
            results.extend(await asyncio.gather(
                *(self.evaluate(c, ClassifierSignals()) for c in batch)
            ))
            if i + self.BATCH_SIZE < len(campaigns):
                await asyncio.sleep(pause_seconds)
        return results

    def parse_result(self, raw: Dict[str, Any], outcome: ClassifierOutcome = ClassifierOutcome.OK) -> ClassifierResult:
        """Validate a decoded classifier answer field by field."""
        scores = self._clamp_scores(raw.get("scores"))

        decision = self._parse_decision(raw.get("decision"))
        if decision is None:
            max_score = max(scores.values(), default=0.0)
            decision = derive_decision(max_score, self.settings.approve_below, self.settings.hold_below)

        return ClassifierResult(
            scores=scores,
            decision=decision,
            rationale=self._string_list(raw.get("rationale")),
            required_edits=self._string_list(raw.get("requiredEdits", raw.get("required_edits"))),
            highlighted_spans=self._spans(raw.get("highlightedSpans", raw.get("highlighted_spans"))),
            outcome=outcome,
        )

    def _failure(self, outcome: ClassifierOutcome, error: str) -> ClassifierResult:
        metrics.record_classifier(outcome.value)
        return ClassifierResult(
            scores=zero_scores(),
            decision=Decision.HOLD,
            rationale=[FAILURE_RATIONALE],
            outcome=outcome,
            error=error,
        )

    @staticmethod
    def _clamp_scores(raw_scores: Any) -> Dict[PolicyCategory, float]:
        """Every category present; missing, non-numeric or out-of-range -> 0."""
        scores = zero_scores()
        if not isinstance(raw_scores, dict):
            return scores

        for category in PolicyCategory:
            value = raw_scores.get(category.value)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            value = float(value)
            if math.isnan(value) or value < 0.0 or value > 1.0:
                continue
            scores[category] = value
        return scores

    @staticmethod
    def _parse_decision(value: Any) -> Optional[Decision]:
        if not isinstance(value, str):
            return None
        try:
            return Decision(value.strip().upper())
        except ValueError:
            return None

    @staticmethod
    def _string_list(value: Any) -> List[str]:
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str) and item.strip()]

    @staticmethod
    def _spans(value: Any) -> List[HighlightedSpan]:
        spans: List[HighlightedSpan] = []
        if not isinstance(value, list):
            return spans

        for item in value:
            if not isinstance(item, dict):
                continue
            field, text = item.get("field"), item.get("text")
            if not isinstance(field, str) or not isinstance(text, str):
                continue
            start, end = item.get("start"), item.get("end")
            spans.append(HighlightedSpan(
                field=field,
                text=text,
                start=start if isinstance(start, int) and not isinstance(start, bool) else None,
                end=end if isinstance(end, int) and not isinstance(end, bool) else None,
            ))
        return spans
