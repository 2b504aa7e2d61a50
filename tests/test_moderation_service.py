import itertools
import threading

import pytest

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.lib.errors import CampaignValidationError
from campaign_moderation.lib.review_store import InMemoryReviewQueueStore
from campaign_moderation.models.campaign import ImageUpload
from campaign_moderation.models.enums import ClassifierOutcome, Decision, PolicyCategory, ReviewStatus
from campaign_moderation.models.signals import (
    ClassifierResult, ImageSignal, SignalResult, UrlFinding, zero_scores
)
from campaign_moderation.services.classifier_service import FAILURE_RATIONALE
from campaign_moderation.services.moderation_service import ModerationService, validate_campaign
from campaign_moderation.services.review_queue_service import ReviewQueueService

from conftest import (
    MEDICAL_DESCRIPTION, MEDICAL_TITLE, FakeProvider, FakeRecognizer, RaisingProvider, SlowProvider,
    build_service, campaign_payload, make_campaign, png_bytes, zero_response,
)


def classifier_result(score=0.0, decision=Decision.APPROVE, category=PolicyCategory.SCAM_FINANCIAL, rationale=()):
    scores = zero_scores()
    scores[category] = score
    return ClassifierResult(scores=scores, decision=decision, rationale=list(rationale))


def url_findings(risk):
    return [UrlFinding(url="https://bit.ly/x", risk=risk, reason="URL shortener")] if risk else []


def image_signals(score):
    return [ImageSignal(image_id="img_0", score=score, labels=["large_file_size"] if score else [])]


# Fusion

@pytest.mark.parametrize("rule,url,image,classifier", list(itertools.product(
    [0.0, 0.2, 0.9], [0.0, 0.4, 0.6], [0.0, 0.3], [0.0, 0.5, 1.0],
)))
def test_risk_is_maximum_of_signal_scores(rule, url, image, classifier):
    service = ModerationService(ModerationSettings())

    verdict = service.fuse(
        SignalResult(score=rule),
        url_findings(url),
        image_signals(image),
        classifier_result(classifier, decision=Decision.APPROVE),
    )

    assert verdict.risk == max(rule, url, image, classifier)
    expected = Decision.APPROVE if verdict.risk < 0.3 else Decision.HOLD if verdict.risk < 0.6 else Decision.REJECT
    assert verdict.decision == expected


@pytest.mark.parametrize("baseline_risk,suggested,expected", [
    (0.1, Decision.REJECT, Decision.REJECT),
    (0.1, Decision.HOLD, Decision.HOLD),
    (0.1, Decision.APPROVE, Decision.APPROVE),
    (0.4, Decision.APPROVE, Decision.HOLD),
    (0.4, Decision.REJECT, Decision.REJECT),
    (0.9, Decision.APPROVE, Decision.REJECT),
    (0.9, Decision.HOLD, Decision.REJECT),
])
def test_classifier_override_only_tightens(baseline_risk, suggested, expected):
    service = ModerationService(ModerationSettings())

    verdict = service.fuse(SignalResult(score=baseline_risk), [], [], classifier_result(0.0, decision=suggested))

    assert verdict.decision == expected


def test_rationale_follows_producer_order():
    service = ModerationService(ModerationSettings())

    verdict = service.fuse(
        SignalResult(score=0.3, findings=["rule finding"]),
        [UrlFinding(url="http://1.2.3.4/", risk=0.6, reason="Direct IP address instead of domain name")],
        [ImageSignal(image_id="img_0", score=0.7, labels=["unsupported_format", "risky_text_in_image"])],
        classifier_result(0.2, rationale=["classifier finding"]),
    )

    assert verdict.rationale == [
        "rule finding",
        "classifier finding",
        "URL risk: Direct IP address instead of domain name",
        "Image: unsupported_format, risky_text_in_image",
    ]
    assert verdict.rule_reasons == ["rule finding"]
    assert verdict.image_findings[0].labels == ["unsupported_format", "risky_text_in_image"]


def test_custom_thresholds_are_honoured():
    service = ModerationService(ModerationSettings(approve_below=0.1, hold_below=0.2))

    verdict = service.fuse(SignalResult(score=0.15), [], [], classifier_result())

    assert verdict.decision == Decision.HOLD


# End-to-end passes

@pytest.mark.asyncio
async def test_clean_campaign_with_zero_classifier_is_approved(zero_service, clean_campaign):
    verdict = await zero_service.decide(clean_campaign)

    assert verdict.decision == Decision.APPROVE
    assert verdict.risk < 0.3
    assert verdict.rationale == []
    assert zero_service.review_queue.pending_count() == 0


@pytest.mark.asyncio
async def test_upi_identifier_always_rejects(zero_service):
    campaign = make_campaign(description=campaign_payload()["description"] + " Donate via gardenfund@upi please.")

    verdict = await zero_service.decide(campaign)

    assert verdict.risk >= 0.9
    assert verdict.decision == Decision.REJECT
    assert zero_service.review_queue.pending_count() == 0


@pytest.mark.asyncio
async def test_medical_only_campaign_is_held_for_review(service):
    campaign = make_campaign(title=MEDICAL_TITLE, description=MEDICAL_DESCRIPTION)

    result = await service.moderate(campaign)

    assert 0.3 <= result.verdict.risk < 0.6
    assert result.verdict.decision == Decision.HOLD
    assert result.verdict.classifier_outcome == ClassifierOutcome.MOCK
    pending = service.review_queue.list_pending()
    assert len(pending) == 1
    assert pending[0].status == ReviewStatus.PENDING
    assert pending[0].id == result.review_item.id
    assert pending[0].verdict == result.verdict


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", [RaisingProvider(), SlowProvider()])
async def test_classifier_failure_holds_clean_campaign(provider, clean_campaign):
    service = build_service(provider=provider, settings=ModerationSettings(classifier_timeout_seconds=0.05))

    verdict = await service.decide(clean_campaign)

    assert verdict.decision == Decision.HOLD
    assert FAILURE_RATIONALE in verdict.rationale
    assert verdict.classifier_outcome == ClassifierOutcome.UNREACHABLE
    assert service.review_queue.pending_count() == 1


@pytest.mark.asyncio
async def test_investment_scam_scenario(service):
    payload = campaign_payload(
        title="Investment opportunity - guaranteed returns!",
        description=(
            "Send your contribution straight to raj.invest@upi and double your investment "
            "within weeks. Everyone who joins early gets paid first."
        ),
        goal=1_000_000,
        creator={"account_age_days": 1, "verified_email": False},
    )

    result = await service.moderate(payload)

    verdict = result.verdict
    assert verdict.decision == Decision.REJECT
    assert verdict.risk >= 0.9
    assert 'Detected financial scam language (guaranteed returns, MLM, etc.)' in verdict.rationale
    assert 'Direct payment instructions found (bypassing platform fees)' in verdict.rationale
    assert result.review_item is None


@pytest.mark.asyncio
async def test_images_and_links_feed_fusion_and_classifier():
    provider = FakeProvider(zero_response())
    service = build_service(provider=provider, recognizer=FakeRecognizer("Pay on whatsapp"))
    campaign = make_campaign(links=["https://bit.ly/garden"])
    uploads = [ImageUpload(id="img_0", mime="image/png", data=png_bytes())]

    result = await service.moderate(campaign, uploads)

    verdict = result.verdict
    assert verdict.risk == pytest.approx(0.7)
    assert verdict.decision == Decision.REJECT
    assert verdict.url_findings[0].url == "https://bit.ly/garden"
    assert verdict.image_findings[0].labels == ["risky_text_in_image"]
    assert result.campaign.images[0].ocr_text == "Pay on whatsapp"

    signals = provider.payloads[0]["input"]["signals"]
    assert signals["image_ocr_findings"] == ["Pay on whatsapp"]
    assert "https://bit.ly/garden" in signals["url_reputation"]


@pytest.mark.asyncio
async def test_broken_rule_engine_does_not_stop_the_pass(zero_service, clean_campaign):
    class BrokenRules:
        def evaluate(self, campaign):
            raise RuntimeError("pattern table corrupted")

    zero_service.rule_engine = BrokenRules()

    verdict = await zero_service.decide(clean_campaign)

    assert verdict.rule_reasons == ["Rule checks could not be completed"]
    assert verdict.decision == Decision.APPROVE


# Validation

def test_invalid_payload_is_rejected_before_the_pipeline():
    with pytest.raises(CampaignValidationError) as excinfo:
        validate_campaign(campaign_payload(title="ab", goal=0))

    fields = {tuple(error["loc"]) for error in excinfo.value.errors}
    assert ("title",) in fields
    assert ("goal",) in fields


def test_relative_link_is_invalid():
    with pytest.raises(CampaignValidationError):
        validate_campaign(campaign_payload(links=["/donate"]))


@pytest.mark.asyncio
async def test_too_many_images_is_a_validation_error(clean_campaign):
    service = build_service(settings=ModerationSettings(max_image_count=1))
    uploads = [ImageUpload(id=f"img_{i}", mime="image/png", data=png_bytes()) for i in range(2)]

    with pytest.raises(CampaignValidationError):
        await service.moderate(clean_campaign, uploads)


@pytest.mark.asyncio
async def test_duplicate_image_ids_are_a_validation_error(service, clean_campaign):
    uploads = [ImageUpload(id="img_0", mime="image/png", data=png_bytes()) for _ in range(2)]

    with pytest.raises(CampaignValidationError):
        await service.moderate(clean_campaign, uploads)


@pytest.mark.asyncio
async def test_repeated_decisions_are_identical(service):
    campaign = make_campaign(title=MEDICAL_TITLE, description=MEDICAL_DESCRIPTION)

    first = await service.decide(campaign)
    second = await service.decide(campaign)

    assert first == second
    assert first.decision == Decision.HOLD


@pytest.mark.asyncio
async def test_review_item_is_written_off_the_event_loop(clean_campaign):
    class RecordingStore(InMemoryReviewQueueStore):
        def __init__(self):
            super().__init__()
            self.insert_threads = []

        def insert(self, item):
            self.insert_threads.append(threading.get_ident())
            return super().insert(item)

    store = RecordingStore()
    service = build_service(provider=RaisingProvider())
    service.review_queue = ReviewQueueService(store)

    result = await service.moderate(clean_campaign)

    assert result.review_item is not None
    assert store.insert_threads and store.insert_threads[0] != threading.get_ident()


def test_duplicate_campaign_image_ids_are_invalid():
    images = [{"id": "img_0", "mime": "image/png"}, {"id": "img_0", "mime": "image/jpeg"}]

    with pytest.raises(CampaignValidationError) as excinfo:
        validate_campaign(campaign_payload(images=images))

    assert excinfo.value.errors[0]["loc"] == ["images"]
