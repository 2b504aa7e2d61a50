"""
Core Moderation Orchestration Service.
Runs the signal producers, fuses their scores into one risk value and
decision, and queues HOLD decisions for human review.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.lib.errors import CampaignValidationError
from campaign_moderation.lib.metrics import metrics
from campaign_moderation.models.campaign import Campaign, CampaignImage, ImageUpload
from campaign_moderation.models.enums import Decision
from campaign_moderation.models.review import ReviewQueueItem
from campaign_moderation.models.signals import (
    ClassifierResult, ClassifierSignals, ImageSignal, SignalResult, UrlFinding
)
from campaign_moderation.models.verdict import ImageFinding, ModerationVerdict, utcnow
from campaign_moderation.services.classifier_service import PolicyClassifier, derive_decision
from campaign_moderation.services.image_service import ImageSignalExtractor
from campaign_moderation.services.review_queue_service import ReviewQueueService
from campaign_moderation.services.rule_engine import RuleEngine
from campaign_moderation.services.url_reputation import UrlReputationChecker

logger = logging.getLogger(__name__)


# Rough personal/payment data indicator passed to the classifier
PII_PATTERN = re.compile(r'(?i)\bupi\b|\bifsc\b|account.*number|phone.*\+?\d{10}')


def validate_campaign(payload: Union[Campaign, Dict[str, Any]]) -> Campaign:
    """Structural validation; raises CampaignValidationError before any signal runs."""
    if isinstance(payload, Campaign):
        return payload
    try:
        return Campaign.model_validate(payload)
    except ValidationError as e:
        raise CampaignValidationError("Invalid campaign data", errors=json.loads(e.json(include_url=False))) from e


@dataclass
class ModerationPipelineResult:
    """Complete result of one moderation pass."""
    campaign: Campaign
    verdict: ModerationVerdict
    processing_time_ms: int
    review_item: Optional[ReviewQueueItem] = None
    moderated_at: datetime = field(default_factory=utcnow)


class ModerationService:
    """
    Decision engine.
    Rule, URL and image producers run concurrently; the classifier runs after
    them because it consumes their findings. Given fixed collaborator answers
    the verdict is fully deterministic.
    """

    def __init__(
        self,
        settings: Optional[ModerationSettings] = None,
        rule_engine: Optional[RuleEngine] = None,
        url_checker: Optional[UrlReputationChecker] = None,
        image_extractor: Optional[ImageSignalExtractor] = None,
        classifier: Optional[PolicyClassifier] = None,
        review_queue: Optional[ReviewQueueService] = None,
    ):
        self.settings = settings or ModerationSettings()
        self.rule_engine = rule_engine or RuleEngine(self.settings)
        self.url_checker = url_checker or UrlReputationChecker()
        self.image_extractor = image_extractor or ImageSignalExtractor(self.settings)
        self.classifier = classifier or PolicyClassifier(self.settings)
        self.review_queue = review_queue or ReviewQueueService()

    def validate(
        self,
        payload: Union[Campaign, Dict[str, Any]],
        images: Optional[List[ImageUpload]] = None,
    ) -> Campaign:
        campaign = validate_campaign(payload)
        self._check_uploads(images or [])
        return campaign

    async def moderate(
        self,
        payload: Union[Campaign, Dict[str, Any]],
        images: Optional[List[ImageUpload]] = None,
    ) -> ModerationPipelineResult:
        """Pipeline entry point: validate, then run the full pass."""
        campaign = self.validate(payload, images)
        return await self.run(campaign, images)

    async def decide(self, campaign: Campaign, images: Optional[List[ImageUpload]] = None) -> ModerationVerdict:
        result = await self.run(campaign, images)
        return result.verdict

    @metrics.track_processing("pipeline")
    async def run(self, campaign: Campaign, images: Optional[List[ImageUpload]] = None) -> ModerationPipelineResult:
        start_time = time.time()
        images = images or []
        self._check_uploads(images)
        logger.info(f'Moderating campaign: "{campaign.title}"')

        try:
            # Step 1: independent producers
            rule_result, url_findings, image_signals = await asyncio.gather(
                self._run_rules(campaign),
                self._run_url_checks(campaign.links),
                self._run_images(images),
            )

            # Step 2: classifier, with everything collected so far
            signals = self.build_signals(campaign, url_findings, image_signals)
            classifier_result = await self._run_classifier(campaign, signals)

            # Steps 3-6: fusion
            verdict = self.fuse(rule_result, url_findings, image_signals, classifier_result)
            reviewed_campaign = self._attach_extracted_text(campaign, images, image_signals)

            # Step 7: human queue; store calls may block on the database
            review_item = None
            if verdict.decision == Decision.HOLD:
                review_item = await asyncio.to_thread(self.review_queue.enqueue, reviewed_campaign, verdict)
        except Exception as e:
            metrics.record_failure()
            logger.error(f'Moderation failed for "{campaign.title}": {e!r}')
            raise

        metrics.record_decision(verdict.decision.value)
        logger.info(f"Moderation complete: {verdict.decision.value} (risk: {verdict.risk:.3f})")

        return ModerationPipelineResult(
            campaign=reviewed_campaign,
            verdict=verdict,
            processing_time_ms=int((time.time() - start_time) * 1000),
            review_item=review_item,
        )

    def fuse(
        self,
        rule_result: SignalResult,
        url_findings: List[UrlFinding],
        image_signals: List[ImageSignal],
        classifier_result: ClassifierResult,
    ) -> ModerationVerdict:
        """Combine the four signals into one verdict. Pure."""
        url_risk = UrlReputationChecker.max_risk(url_findings)
        image_risk = ImageSignalExtractor.max_score(image_signals)

        # Maximum, never an average: one strong signal is enough to block
        risk = max(rule_result.score, url_risk, image_risk, classifier_result.max_score)

        decision = derive_decision(risk, self.settings.approve_below, self.settings.hold_below)
        decision = self._apply_classifier_override(decision, classifier_result.decision)

        rationale = [
            *rule_result.findings,
            *classifier_result.rationale,
            *(f"URL risk: {f.reason}" for f in url_findings),
            *(f"Image: {', '.join(s.labels)}" for s in image_signals if s.labels),
        ]

        return ModerationVerdict(
            decision=decision,
            risk=risk,
            scores=dict(classifier_result.scores),
            rationale=rationale,
            required_edits=list(classifier_result.required_edits),
            highlighted_spans=list(classifier_result.highlighted_spans),
            rule_reasons=list(rule_result.findings),
            image_findings=[
                ImageFinding(image_id=s.image_id, score=s.score, labels=list(s.labels))
                for s in image_signals
            ],
            url_findings=list(url_findings),
            classifier_outcome=classifier_result.outcome,
        )

    @staticmethod
    def _apply_classifier_override(baseline: Decision, suggested: Decision) -> Decision:
        """The classifier can only make the outcome stricter."""
        if suggested == Decision.REJECT:
            return Decision.REJECT
        if suggested == Decision.HOLD and baseline == Decision.APPROVE:
            return Decision.HOLD
        return baseline

    @staticmethod
    def build_signals(
        campaign: Campaign,
        url_findings: List[UrlFinding],
        image_signals: List[ImageSignal],
    ) -> ClassifierSignals:
        return ClassifierSignals(
            contains_pii=bool(PII_PATTERN.search(campaign.description)),
            duplicate_text_score=0.0,
            similarity_to_known_scams=0.0,
            url_reputation={f.url: f.reason for f in url_findings},
            image_ocr_findings=[s.extracted_text for s in image_signals if s.extracted_text],
        )

    def _check_uploads(self, images: List[ImageUpload]) -> None:
        if len(images) > self.settings.max_image_count:
            raise CampaignValidationError(
                f"Too many images: {len(images)} > {self.settings.max_image_count}",
                errors=[{"loc": ["images"], "msg": "too many images", "type": "too_long"}],
            )
        ids = [img.id for img in images]
        if len(set(ids)) != len(ids):
            raise CampaignValidationError(
                "Image ids must be unique within a submission",
                errors=[{"loc": ["images"], "msg": "duplicate image id", "type": "value_error"}],
            )

    @staticmethod
    def _attach_extracted_text(
        campaign: Campaign,
        uploads: List[ImageUpload],
        image_signals: List[ImageSignal],
    ) -> Campaign:
        """Campaign snapshot with OCR text filled in for each analysed image."""
        if not image_signals:
            return campaign

        mimes = {u.id: u.mime for u in uploads}
        texts = {s.image_id: s.extracted_text or None for s in image_signals}
        images = [
            img.model_copy(update={"ocr_text": texts.pop(img.id)}) if img.id in texts else img
            for img in campaign.images
        ]
        images.extend(
            CampaignImage(id=image_id, mime=mimes.get(image_id, ""), ocr_text=text)
            for image_id, text in texts.items()
        )
        return campaign.model_copy(update={"images": images})

    # Producers. None of these may raise into the fusion step.

    async def _run_rules(self, campaign: Campaign) -> SignalResult:
        start = time.time()
        try:
            result = self.rule_engine.evaluate(campaign)
        except Exception as e:
            logger.error(f"Rule engine failed: {e!r}")
            result = SignalResult(score=0.0, findings=["Rule checks could not be completed"])
        metrics.record_producer("rules", time.time() - start)
        logger.debug(f"Rule check score: {result.score}")
        return result

    async def _run_url_checks(self, links: List[str]) -> List[UrlFinding]:
        start = time.time()
        try:
            findings = self.url_checker.evaluate(links)
        except Exception as e:
            logger.error(f"URL reputation check failed: {e!r}")
            findings = []
        metrics.record_producer("urls", time.time() - start)
        return findings

    async def _run_images(self, images: List[ImageUpload]) -> List[ImageSignal]:
        start = time.time()
        signals = await self.image_extractor.evaluate_all(images)
        metrics.record_producer("images", time.time() - start)
        return signals

    async def _run_classifier(self, campaign: Campaign, signals: ClassifierSignals) -> ClassifierResult:
        start = time.time()
        result = await self.classifier.evaluate(campaign, signals)
        metrics.record_producer("classifier", time.time() - start)
        return result
