import asyncio
import io

import pytest
from PIL import Image

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.lib.errors import CollaboratorFailure
from campaign_moderation.lib.llm_client import ClassifierProvider
from campaign_moderation.lib.ocr import TextRecognizer
from campaign_moderation.lib.review_store import InMemoryReviewQueueStore
from campaign_moderation.models.campaign import Campaign
from campaign_moderation.models.enums import PolicyCategory
from campaign_moderation.services.classifier_service import PolicyClassifier
from campaign_moderation.services.image_service import ImageSignalExtractor
from campaign_moderation.services.moderation_service import ModerationService
from campaign_moderation.services.review_queue_service import ReviewQueueService


CLEAN_TITLE = "Community garden for Riverside Elementary"
CLEAN_DESCRIPTION = (
    "We are building a community garden behind Riverside Elementary so that students can learn "
    "how vegetables grow from seed to harvest. Funds will pay for raised wooden beds, quality soil, "
    "drip irrigation, gardening tools and a small storage shed. Parents and teachers have volunteered "
    "to maintain the plots during summer break. Every class will adopt one bed and keep a journal of "
    "planting dates, weather observations and yields. Extra produce goes to the neighborhood food "
    "pantry each autumn."
)

MEDICAL_TITLE = "Help my father recover after heart surgery"
MEDICAL_DESCRIPTION = (
    "My father needs heart surgery next month after a long stretch of chest pain. Our family covered "
    "the first consultations ourselves, but the remaining costs for the operation, medicines and three "
    "weeks of recovery care are beyond what we can manage. Any contribution helps him return home to "
    "his garden, his grandchildren and the small bakery he has run for thirty years. We will post "
    "updates after the operation and share receipts for every expense."
)


def campaign_payload(**overrides):
    creator = {
        "display_name": "Priya Raman",
        "account_age_days": 400,
        "past_campaigns": 2,
        "verified_email": True,
        "verified_identity": True,
        "user_id": "user_42",
    }
    creator.update(overrides.pop("creator", {}))
    payload = {
        "title": CLEAN_TITLE,
        "description": CLEAN_DESCRIPTION,
        "goal": 5000,
        "category": "education",
        "links": [],
        "images": [],
        "creator": creator,
    }
    payload.update(overrides)
    return payload


def make_campaign(**overrides) -> Campaign:
    return Campaign.model_validate(campaign_payload(**overrides))


class FakeProvider(ClassifierProvider):
    """Returns a canned answer and remembers the payloads it was sent."""

    name = "fake"

    def __init__(self, response=None):
        self.response = response
        self.payloads = []

    async def classify(self, prompt_payload):
        self.payloads.append(prompt_payload)
        return self.response


class RaisingProvider(ClassifierProvider):
    name = "raising"

    def __init__(self, error=None):
        self.error = error or CollaboratorFailure("raising", "HTTP 503")

    async def classify(self, prompt_payload):
        raise self.error


class SlowProvider(ClassifierProvider):
    name = "slow"

    async def classify(self, prompt_payload):
        await asyncio.sleep(5)
        return {}


class FakeRecognizer(TextRecognizer):
    def __init__(self, text=""):
        self.text = text

    def recognize(self, image_bytes):
        return self.text


def zero_response(decision="APPROVE"):
    return {
        "scores": {category.value: 0.0 for category in PolicyCategory},
        "decision": decision,
        "rationale": [],
        "requiredEdits": [],
        "highlightedSpans": [],
    }


def png_bytes(size=(8, 8), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def build_service(provider=None, recognizer=None, settings=None) -> ModerationService:
    settings = settings or ModerationSettings()
    return ModerationService(
        settings=settings,
        image_extractor=ImageSignalExtractor(settings, recognizer=recognizer),
        classifier=PolicyClassifier(settings, provider=provider),
        review_queue=ReviewQueueService(InMemoryReviewQueueStore()),
    )


@pytest.fixture
def settings():
    return ModerationSettings()


@pytest.fixture
def clean_campaign():
    return make_campaign()


@pytest.fixture
def service():
    """Pipeline with the local heuristic classifier and no OCR."""
    return build_service()


@pytest.fixture
def zero_service():
    """Pipeline whose classifier always answers all-zero scores."""
    return build_service(provider=FakeProvider(zero_response()))
