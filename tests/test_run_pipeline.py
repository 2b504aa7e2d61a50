import base64

from campaign_moderation.lib.kafka_client import DLQ_TOPIC, VERDICT_TOPIC, MessageBroker, _decode
from campaign_moderation.run_pipeline import Pipeline, decode_images

from conftest import MEDICAL_DESCRIPTION, MEDICAL_TITLE, build_service, campaign_payload, png_bytes


class FakeBroker:
    def __init__(self):
        self.verdicts = []
        self.dead_letters = []

    def publish_verdict(self, verdict, key=None):
        self.verdicts.append((key, verdict))
        return True

    def publish_dlq(self, original_message, error):
        self.dead_letters.append((original_message, error))
        return True


def make_pipeline():
    broker = FakeBroker()
    return Pipeline(service=build_service(), broker=broker, start_metrics=False), broker


def test_verdict_is_published_for_valid_submission():
    pipeline, broker = make_pipeline()

    pipeline.handle_campaign({"campaign": campaign_payload(id="camp_9")})

    key, verdict = broker.verdicts[0]
    assert key == "camp_9"
    assert verdict["decision"] == "APPROVE"
    assert verdict["campaignId"] == "camp_9"
    assert broker.dead_letters == []


def test_held_submission_carries_review_item_id():
    pipeline, broker = make_pipeline()

    verdict = pipeline.handle_campaign({
        "campaign": campaign_payload(title=MEDICAL_TITLE, description=MEDICAL_DESCRIPTION),
    })

    assert verdict["decision"] == "HOLD"
    item_id = verdict["reviewItemId"]
    assert pipeline.moderation_service.review_queue.get(item_id).is_pending


def test_invalid_submission_goes_to_dead_letter_queue():
    pipeline, broker = make_pipeline()
    message = {"campaign": campaign_payload(goal=-5)}

    assert pipeline.handle_campaign(message) is None

    assert broker.verdicts == []
    original, error = broker.dead_letters[0]
    assert original is message
    assert error.startswith("validation:")


def test_undecodable_image_payload_goes_to_dead_letter_queue():
    pipeline, broker = make_pipeline()

    pipeline.handle_campaign({"campaign": campaign_payload(), "images": [{"mime": "image/png", "data": "%%%"}]})

    assert broker.verdicts == []
    assert len(broker.dead_letters) == 1


def test_decode_images_defaults_ids():
    data = png_bytes()

    uploads = decode_images([{"mime": "image/png", "data": base64.b64encode(data).decode()}])

    assert uploads[0].id == "img_0"
    assert uploads[0].data == data
    assert decode_images(None) == []


# Broker dispatch, without a Kafka cluster

class Record:
    def __init__(self, value, topic="campaign-stream", partition=0, offset=17):
        self.value = value
        self.topic = topic
        self.partition = partition
        self.offset = offset


def capturing_broker(monkeypatch):
    broker = MessageBroker(bootstrap_servers="kafka:9092")
    published = []
    monkeypatch.setattr(broker, "publish", lambda topic, message, key=None: published.append((topic, message)) or True)
    return broker, published


def test_undecodable_record_is_dead_lettered(monkeypatch):
    broker, published = capturing_broker(monkeypatch)
    handled = []

    broker._dispatch(Record(_decode(b"\xff not json")), handled.append)

    assert handled == []
    topic, message = published[0]
    assert topic == DLQ_TOPIC
    assert message["source"] == {"topic": "campaign-stream", "partition": 0, "offset": 17}


def test_handler_error_is_dead_lettered(monkeypatch):
    broker, published = capturing_broker(monkeypatch)

    def handler(message):
        raise RuntimeError("boom")

    broker._dispatch(Record({"campaign": {}}), handler)

    topic, message = published[0]
    assert topic == DLQ_TOPIC
    assert message["original_message"] == {"campaign": {}}
    assert message["error"] == "boom"


def test_verdicts_go_to_verdict_topic(monkeypatch):
    broker, published = capturing_broker(monkeypatch)

    broker.publish_verdict({"decision": "APPROVE"}, key="camp_1")

    assert published == [(VERDICT_TOPIC, {"decision": "APPROVE"})]
