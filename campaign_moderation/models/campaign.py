"""
Campaign submission data models.
Pydantic models for type safety and validation of incoming campaigns.
"""

from typing import Optional, List
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Creator(BaseModel):
    """Campaign creator as known at submission time."""
    model_config = ConfigDict(frozen=True)

    display_name: str = Field(min_length=1)
    account_age_days: int = Field(ge=0)
    past_campaigns: int = Field(ge=0)
    verified_email: bool
    verified_identity: bool
    user_id: str
    profile_image: Optional[str] = None


class CampaignImage(BaseModel):
    """
    Image reference attached to a campaign.
    ocr_text is filled in by the image extractor, never by the caller.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    mime: str
    url: Optional[str] = None
    ocr_text: Optional[str] = None


class Campaign(BaseModel):
    """
    Fundraising campaign entering the moderation pipeline.
    Immutable for the duration of one moderation pass.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=20, max_length=5000)
    goal: int = Field(gt=0)
    category: str = Field(min_length=1)
    links: List[str] = Field(default_factory=list)
    images: List[CampaignImage] = Field(default_factory=list)
    creator: Creator

    @field_validator("links")
    @classmethod
    def _links_are_absolute(cls, links: List[str]) -> List[str]:
        for link in links:
            parsed = urlparse(link)
            if not parsed.scheme or not parsed.netloc:
                raise ValueError(f"link is not an absolute URL: {link!r}")
        return links

    @field_validator("images")
    @classmethod
    def _image_ids_unique(cls, images: List[CampaignImage]) -> List[CampaignImage]:
        ids = [img.id for img in images]
        if len(set(ids)) != len(ids):
            raise ValueError("image ids must be unique within a submission")
        return images

    @property
    def text(self) -> str:
        """Title and description as scanned by the text checks."""
        return f"{self.title}\n{self.description}"


class ImageUpload(BaseModel):
    """Raw uploaded image payload handed over by the transport layer."""
    model_config = ConfigDict(frozen=True)

    id: str
    mime: str
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)
