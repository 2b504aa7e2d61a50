"""
Text-recognition collaborators used by the image signal extractor.
recognize() never raises: unreadable images yield empty text.
"""
import io
import logging
from typing import Optional

import pytesseract
from PIL import Image

logger = logging.getLogger(__name__)


class TextRecognizer:
    """Interface: recognize(image_bytes) -> text."""

    def recognize(self, image_bytes: bytes) -> str:
        raise NotImplementedError


class NullTextRecognizer(TextRecognizer):
    """Used when no OCR engine is deployed."""

    def recognize(self, image_bytes: bytes) -> str:
        return ""


class TesseractTextRecognizer(TextRecognizer):
    """OCR via the Tesseract engine."""

    def __init__(self, lang: str = "eng", timeout: Optional[float] = 30):
        self.lang = lang
        self.timeout = timeout

    def recognize(self, image_bytes: bytes) -> str:
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                text = pytesseract.image_to_string(img, lang=self.lang, timeout=self.timeout or 0)
            return text.strip()
        except Exception as e:
            logger.warning(f"OCR failed, continuing with empty text: {e}")
            return ""
