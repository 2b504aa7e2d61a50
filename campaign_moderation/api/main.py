"""FastAPI surface for the moderation pipeline.

These endpoints are called by the campaign creation form and the
moderation dashboard:
- POST /api/moderate
- GET  /api/moderation-queue
- POST /api/moderation-queue/{item_id}/review
- GET  /health
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from campaign_moderation.lib.config import ModerationSettings
from campaign_moderation.lib.database import PostgresReviewQueueStore
from campaign_moderation.lib.errors import (
    CampaignValidationError, InvalidReviewDecision, ItemAlreadyReviewed, ReviewItemNotFound
)
from campaign_moderation.lib.ocr import TesseractTextRecognizer
from campaign_moderation.lib.review_store import InMemoryReviewQueueStore, ReviewQueueStore
from campaign_moderation.models.campaign import ImageUpload
from campaign_moderation.services.image_service import ImageSignalExtractor
from campaign_moderation.services.moderation_service import ModerationService
from campaign_moderation.services.review_queue_service import ReviewQueueService

logger = logging.getLogger(__name__)


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    decision: str
    notes: Optional[str] = None
    reviewer_id: str = Field(alias="reviewerId")


def create_review_store() -> ReviewQueueStore:
    """Postgres when DATABASE_URL is set, otherwise process memory."""
    if os.getenv("DATABASE_URL"):
        store = PostgresReviewQueueStore()
        store.ensure_schema()
        return store
    return InMemoryReviewQueueStore()


def create_service(settings: Optional[ModerationSettings] = None) -> ModerationService:
    settings = settings or ModerationSettings.from_env()
    recognizer = TesseractTextRecognizer() if os.getenv("ENABLE_OCR", "true").lower() == "true" else None
    return ModerationService(
        settings=settings,
        image_extractor=ImageSignalExtractor(settings, recognizer=recognizer),
        review_queue=ReviewQueueService(create_review_store()),
    )


def create_app(service: Optional[ModerationService] = None) -> FastAPI:
    app = FastAPI(title="Campaign Moderation API", version="0.1.0")
    app.state.service = service or create_service()

    def _service() -> ModerationService:
        return app.state.service

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "queueSize": _service().review_queue.pending_count(),
        }

    @app.post("/api/moderate")
    async def moderate(
        campaign: str = Form(...),
        images: List[UploadFile] = File(default=[]),
    ):
        try:
            campaign_data = json.loads(campaign or "{}")
        except json.JSONDecodeError as e:
            return JSONResponse(status_code=400, content={"error": "Invalid campaign data", "details": str(e)})

        uploads = [
            ImageUpload(id=f"img_{index}", mime=upload.content_type or "", data=await upload.read())
            for index, upload in enumerate(images)
        ]

        try:
            result = await _service().moderate(campaign_data, uploads)
        except CampaignValidationError as e:
            return JSONResponse(status_code=400, content={"error": str(e), "details": e.errors})
        except Exception as e:
            logger.error(f"Moderation error: {e!r}")
            return JSONResponse(status_code=500, content={"error": "Moderation failed"})

        body = result.verdict.model_dump(mode="json")
        body["moderatedAt"] = result.moderated_at.isoformat()
        if result.review_item is not None:
            body["reviewItemId"] = result.review_item.id
        return body

    @app.get("/api/moderation-queue")
    def moderation_queue(limit: Optional[int] = Query(default=None, ge=1, le=500)) -> List[Dict[str, Any]]:
        return [item.model_dump(mode="json") for item in _service().review_queue.list_pending(limit=limit)]

    @app.post("/api/moderation-queue/{item_id}/review")
    def review(item_id: str, request: ReviewRequest):
        try:
            item = _service().review_queue.review(item_id, request.decision, request.notes, request.reviewer_id)
        except ReviewItemNotFound:
            return JSONResponse(status_code=404, content={"error": "Moderation item not found"})
        except InvalidReviewDecision:
            return JSONResponse(status_code=400, content={"error": "Invalid decision"})
        except ItemAlreadyReviewed:
            return JSONResponse(status_code=409, content={"error": "Moderation item already reviewed"})
        return {"success": True, "item": item.model_dump(mode="json")}

    return app


app = create_app()
