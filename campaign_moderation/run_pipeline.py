"""
Stream pipeline - consumes campaign submissions from Kafka and publishes verdicts
"""
import base64
import logging
import time
from typing import Dict, Any, List, Optional
import asyncio

from campaign_moderation.api.main import create_service
from campaign_moderation.lib.errors import CampaignValidationError
from campaign_moderation.lib.kafka_client import MessageBroker
from campaign_moderation.lib.metrics import metrics
from campaign_moderation.models.campaign import ImageUpload
from campaign_moderation.services.moderation_service import ModerationService

logger = logging.getLogger(__name__)


def decode_images(raw_images: Optional[List[Dict[str, Any]]]) -> List[ImageUpload]:
    """Images travel base64-encoded under "data"; ids default to img_{index}."""
    uploads = []
    for index, raw in enumerate(raw_images or []):
        uploads.append(ImageUpload(
            id=str(raw.get("id") or f"img_{index}"),
            mime=str(raw.get("mime") or ""),
            data=base64.b64decode(raw.get("data") or "", validate=True),
        ))
    return uploads


class Pipeline:
    """Kafka consumer wired to the moderation service"""

    def __init__(self, service: Optional[ModerationService] = None, broker: Optional[MessageBroker] = None,
                 start_metrics: bool = True):
        self.moderation_service = service or create_service()
        self.broker = broker or MessageBroker()

        if start_metrics:
            metrics.start()
        logger.info("Pipeline initialized")

    def handle_campaign(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        1. Validate the submission
        2. Run the moderation pass
        3. Publish the verdict (HOLD items are already queued by the service)

        Messages that cannot be moderated go to the dead letter queue.
        """
        start_time = time.time()
        campaign_data = message.get("campaign", message)

        try:
            images = decode_images(message.get("images"))
            result = asyncio.run(self.moderation_service.moderate(campaign_data, images))
        except CampaignValidationError as e:
            logger.warning(f"Rejected invalid submission: {e}")
            self.broker.publish_dlq(message, f"validation: {e}")
            return None
        except Exception as e:
            logger.error(f"Error processing campaign: {e}")
            self.broker.publish_dlq(message, str(e))
            return None

        verdict = result.verdict.model_dump(mode="json")
        verdict["campaignId"] = result.campaign.id
        if result.review_item is not None:
            verdict["reviewItemId"] = result.review_item.id

        self.broker.publish_verdict(verdict, key=result.campaign.id)

        processing_time = int((time.time() - start_time) * 1000)
        logger.info(f'Campaign "{result.campaign.title}" processed: {result.verdict.decision.value} in {processing_time}ms')
        return verdict

    def start(self):
        """Consume from the campaign stream until interrupted"""
        logger.info("Starting campaign consumer...")
        try:
            self.broker.consume_campaign_stream(self.handle_campaign)
        except KeyboardInterrupt:
            logger.info("Shutting down pipeline...")
        finally:
            self.broker.close()
            close_store = getattr(self.moderation_service.review_queue.store, "close", None)
            if close_store is not None:
                close_store()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    pipeline = Pipeline()
    pipeline.start()


if __name__ == '__main__':
    main()
