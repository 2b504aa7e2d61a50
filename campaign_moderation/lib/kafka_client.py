"""
Kafka client for the campaign submission stream
"""
import os
import json
import logging
import threading
import time
from typing import Dict, Any, Callable, Optional
from kafka import KafkaProducer, KafkaConsumer
from kafka.errors import KafkaError

logger = logging.getLogger(__name__)

CAMPAIGN_TOPIC = os.getenv('CAMPAIGN_TOPIC', 'campaign-stream')
VERDICT_TOPIC = os.getenv('VERDICT_TOPIC', 'moderation-verdicts')
DLQ_TOPIC = os.getenv('DLQ_TOPIC', 'dlq-stream')


def _decode(raw: bytes) -> Any:
    # Undecodable payloads are passed through as text so they can be dead-lettered
    try:
        return json.loads(raw.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return raw.decode('utf-8', errors='replace')


class MessageBroker:
    """
    Publishes verdicts and dead letters, consumes campaign submissions.
    Offsets are committed only after a message was handled or dead-lettered.
    """

    def __init__(self, bootstrap_servers: Optional[str] = None, group_id: Optional[str] = None):
        self.bootstrap_servers = bootstrap_servers or os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'localhost:9092')
        self.group_id = group_id or os.getenv('KAFKA_GROUP_ID', 'campaign-moderation')
        self._producer: Optional[KafkaProducer] = None
        self._consumer: Optional[KafkaConsumer] = None
        self._stopped = threading.Event()

    @property
    def producer(self) -> KafkaProducer:
        """Connect on first publish"""
        if self._producer is None:
            try:
                self._producer = KafkaProducer(
                    bootstrap_servers=self.bootstrap_servers,
                    value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
                    key_serializer=lambda k: k.encode('utf-8') if k else None,
                    acks='all',
                    retries=3,
                )
                logger.info(f"Kafka producer connected: {self.bootstrap_servers}")
            except KafkaError as e:
                logger.error(f"Failed to connect Kafka producer: {e}")
                raise
        return self._producer

    def publish(self, topic: str, message: Dict[str, Any], key: Optional[str] = None) -> bool:
        try:
            metadata = self.producer.send(topic, value=message, key=key).get(timeout=10)
        except KafkaError as e:
            logger.error(f"Failed to publish to {topic}: {e}")
            return False
        logger.debug(f"Published to {topic}[{metadata.partition}] at offset {metadata.offset}")
        return True

    def publish_verdict(self, verdict: Dict[str, Any], key: Optional[str] = None) -> bool:
        """Verdicts are keyed by campaign id so one campaign stays on one partition"""
        return self.publish(VERDICT_TOPIC, verdict, key=key)

    def publish_dlq(self, original_message: Any, error: str, source: Optional[Dict[str, Any]] = None) -> bool:
        return self.publish(DLQ_TOPIC, {
            'original_message': original_message,
            'error': error,
            'source': source or {},
            'failed_at': time.time(),
        })

    def consume_campaign_stream(self, handler: Callable[[Dict[str, Any]], Any], poll_timeout_ms: int = 1000):
        """Blocking consume loop over the campaign topic until stop() is called"""
        self._consumer = KafkaConsumer(
            CAMPAIGN_TOPIC,
            bootstrap_servers=self.bootstrap_servers,
            group_id=self.group_id,
            value_deserializer=_decode,
            auto_offset_reset='earliest',
            enable_auto_commit=False,
        )
        logger.info(f"Consuming {CAMPAIGN_TOPIC} as group {self.group_id}")

        while not self._stopped.is_set():
            batches = self._consumer.poll(timeout_ms=poll_timeout_ms)
            for records in batches.values():
                for record in records:
                    self._dispatch(record, handler)
            if batches:
                self._consumer.commit()

    def _dispatch(self, record, handler: Callable[[Dict[str, Any]], Any]):
        source = {'topic': record.topic, 'partition': record.partition, 'offset': record.offset}
        if not isinstance(record.value, dict):
            logger.warning(f"Dropping non-object message at {source} to DLQ")
            self.publish_dlq(record.value, 'message is not a JSON object', source)
            return
        try:
            handler(record.value)
        except Exception as e:
            logger.error(f"Unhandled error for message at {source}: {e}")
            self.publish_dlq(record.value, str(e), source)

    def stop(self):
        self._stopped.set()

    def close(self):
        """Flush and close producer and consumer"""
        if self._producer is not None:
            self._producer.flush()
            self._producer.close()
        if self._consumer is not None:
            self._consumer.close()
        logger.info("Kafka connections closed")
