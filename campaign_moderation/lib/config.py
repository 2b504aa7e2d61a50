"""
Moderation configuration, read from environment variables
"""
import os
from typing import Optional, Tuple
from pydantic import BaseModel, Field, model_validator

DEFAULT_ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")


class ModerationSettings(BaseModel):
    """Thresholds and limits consumed by the pipeline."""
    # Decision thresholds
    approve_below: float = Field(ge=0.0, le=1.0, default=0.3)
    hold_below: float = Field(ge=0.0, le=1.0, default=0.6)

    # Image limits
    max_image_bytes: int = Field(gt=0, default=10 * 1024 * 1024)  # 10MB
    max_image_count: int = Field(ge=0, default=10)
    allowed_image_types: Tuple[str, ...] = DEFAULT_ALLOWED_IMAGE_TYPES

    # Rule engine
    high_goal_threshold: int = 200_000
    unverified_goal_threshold: int = 100_000
    new_account_days: int = 3
    min_word_count: int = 50
    min_unique_ratio: float = 0.6

    # Classifier provider
    classifier_api_key: Optional[str] = None
    classifier_model: str = "gpt-4"
    classifier_base_url: str = "https://api.openai.com/v1"
    classifier_timeout_seconds: float = Field(gt=0.0, default=15.0)

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "ModerationSettings":
        if self.approve_below > self.hold_below:
            raise ValueError("approve_below must not exceed hold_below")
        return self

    @property
    def classifier_configured(self) -> bool:
        return bool(self.classifier_api_key)

    @classmethod
    def from_env(cls) -> "ModerationSettings":
        api_key = os.getenv("OPENAI_API_KEY") or None
        if api_key == "your_openai_api_key_here":
            api_key = None

        allowed = os.getenv("ALLOWED_IMAGE_TYPES")
        allowed_types = (
            tuple(t.strip() for t in allowed.split(",") if t.strip())
            if allowed else DEFAULT_ALLOWED_IMAGE_TYPES
        )

        return cls(
            approve_below=float(os.getenv("AUTO_APPROVE_THRESHOLD", "0.3")),
            hold_below=float(os.getenv("MANUAL_REVIEW_THRESHOLD", "0.6")),
            max_image_bytes=int(os.getenv("MAX_FILE_SIZE", str(10 * 1024 * 1024))),
            max_image_count=int(os.getenv("MAX_IMAGE_COUNT", "10")),
            allowed_image_types=allowed_types,
            high_goal_threshold=int(os.getenv("HIGH_GOAL_THRESHOLD", "200000")),
            unverified_goal_threshold=int(os.getenv("UNVERIFIED_GOAL_THRESHOLD", "100000")),
            classifier_api_key=api_key,
            classifier_model=os.getenv("OPENAI_MODEL", "gpt-4"),
            classifier_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            classifier_timeout_seconds=float(os.getenv("CLASSIFIER_TIMEOUT_SECONDS", "15")),
        )
