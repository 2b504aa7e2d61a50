"""
Image Signal Extractor.
Per-image moderation labels plus OCR text, re-scored on risky text.
Images in a batch are processed one at a time to bound peak memory.
"""

import asyncio
import io
import logging
import re
from typing import List, Optional, Tuple

from PIL import Image

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.lib.ocr import TextRecognizer, NullTextRecognizer
from campaign_moderation.models.campaign import ImageUpload
from campaign_moderation.models.enums import ImageLabel
from campaign_moderation.models.signals import ImageSignal

logger = logging.getLogger(__name__)


LABEL_DESCRIPTIONS = {
    ImageLabel.UNSUPPORTED_FORMAT.value: "Unsupported image format",
    ImageLabel.LARGE_FILE_SIZE.value: "Image exceeds the size limit",
    ImageLabel.MODERATION_ERROR.value: "Image analysis failed",
    ImageLabel.RISKY_TEXT_IN_IMAGE.value: "Payment or scam text visible in image",
}


class ImageSignalExtractor:
    """
    Produces one ImageSignal per uploaded image.
    Fails open: an analysis fault scores 0.1 instead of blocking the campaign.
    """

    UNSUPPORTED_FORMAT_SCORE = 0.3
    LARGE_FILE_SCORE = 0.2
    ERROR_SCORE = 0.1
    RISKY_TEXT_SCORE = 0.7

    RISKY_TEXT_PATTERNS = [
        r'(?i)upi.*id|paytm|gpay|phonepe',
        r'(?i)account.*number|ifsc|\bbank\b',
        r'(?i)bitcoin|\bbtc\b|crypto|wallet',
        r'(?i)whatsapp|telegram',
        r'(?i)guaranteed.*return|double.*money',
    ]

    def __init__(
        self,
        settings: Optional[ModerationSettings] = None,
        recognizer: Optional[TextRecognizer] = None,
    ):
        self.settings = settings or ModerationSettings()
        self.recognizer = recognizer or NullTextRecognizer()
        self.risky_regex = [re.compile(p) for p in self.RISKY_TEXT_PATTERNS]

    async def evaluate(self, upload: ImageUpload) -> ImageSignal:
        """Analyse one image. Never raises."""
        try:
            score, labels = self._moderate(upload)
        except Exception as e:
            logger.error(f"Image moderation error for {upload.id}: {e}")
            score, labels = self.ERROR_SCORE, [ImageLabel.MODERATION_ERROR.value]

        text = await self._extract_text(upload)
        if text and self.has_risky_text(text):
            score = max(score, self.RISKY_TEXT_SCORE)
            labels.append(ImageLabel.RISKY_TEXT_IN_IMAGE.value)

        return ImageSignal(
            image_id=upload.id,
            score=score,
            labels=labels,
            findings=[LABEL_DESCRIPTIONS.get(label, label) for label in labels],
            extracted_text=text,
        )

    async def evaluate_all(self, uploads: List[ImageUpload]) -> List[ImageSignal]:
        """Sequential batch; never fans out over large binary payloads."""
        results: List[ImageSignal] = []
        for upload in uploads:
            results.append(await self.evaluate(upload))
        return results

    @staticmethod
    def max_score(signals: List[ImageSignal]) -> float:
        return max((s.score for s in signals), default=0.0)

    def has_risky_text(self, text: str) -> bool:
        return any(regex.search(text) for regex in self.risky_regex)

    def _moderate(self, upload: ImageUpload) -> Tuple[float, List[str]]:
        """Format, size and decodability checks."""
        if upload.mime not in self.settings.allowed_image_types:
            return self.UNSUPPORTED_FORMAT_SCORE, [ImageLabel.UNSUPPORTED_FORMAT.value]

        score = 0.0
        labels: List[str] = []

        if upload.size > self.settings.max_image_bytes:
            labels.append(ImageLabel.LARGE_FILE_SIZE.value)
            score = max(score, self.LARGE_FILE_SCORE)

        # A decode failure adds to the size finding, never replaces it
        try:
            with Image.open(io.BytesIO(upload.data)) as img:
                img.verify()
        except Exception as e:
            logger.warning(f"Image {upload.id} could not be decoded: {e}")
            labels.append(ImageLabel.MODERATION_ERROR.value)
            score = max(score, self.ERROR_SCORE)

        return score, labels

    async def _extract_text(self, upload: ImageUpload) -> str:
        try:
            text = await asyncio.to_thread(self.recognizer.recognize, upload.data)
        except Exception as e:
            logger.warning(f"Text recognition failed for {upload.id}: {e}")
            return ""
        return (text or "").strip()
