"""
Prometheus metrics exporter
"""
import asyncio
import os
import logging
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from functools import wraps
import time

logger = logging.getLogger(__name__)

# Counters
campaigns_moderated = Counter('moderation_campaigns_total', 'Total campaigns moderated', ['decision'])
moderation_failures = Counter('moderation_failures_total', 'Moderation passes that did not produce a verdict')
classifier_results = Counter('moderation_classifier_results_total', 'Classifier results by outcome', ['outcome'])
reviews_submitted = Counter('moderation_reviews_total', 'Human review decisions', ['decision'])

# Histograms (for latency)
processing_latency = Histogram('moderation_processing_duration_seconds', 'Processing duration', ['stage'])
producer_latency = Histogram('moderation_producer_duration_seconds', 'Signal producer duration', ['producer'])

# Gauges (for current state)
queue_depth = Gauge('moderation_review_queue_depth', 'Pending items in the review queue')


class MetricsExporter:
    """Prometheus metrics exporter"""

    def __init__(self, port: int = 8000):
        self.port = port
        self.server_started = False

    def start(self):
        """Start Prometheus HTTP server"""
        if not self.server_started:
            start_http_server(self.port)
            self.server_started = True
            logger.info(f"Prometheus metrics server started on port {self.port}")

    @staticmethod
    def track_processing(stage: str):
        """Decorator to track processing time of a sync or async callable"""
        def decorator(func):
            if asyncio.iscoroutinefunction(func):
                @wraps(func)
                async def async_wrapper(*args, **kwargs):
                    start_time = time.time()
                    try:
                        result = await func(*args, **kwargs)
                    except Exception:
                        processing_latency.labels(stage=f"{stage}_error").observe(time.time() - start_time)
                        raise
                    processing_latency.labels(stage=stage).observe(time.time() - start_time)
                    return result
                return async_wrapper

            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    result = func(*args, **kwargs)
                except Exception:
                    processing_latency.labels(stage=f"{stage}_error").observe(time.time() - start_time)
                    raise
                processing_latency.labels(stage=stage).observe(time.time() - start_time)
                return result
            return wrapper
        return decorator

    @staticmethod
    def record_decision(decision: str):
        """Record a campaign moderation decision"""
        campaigns_moderated.labels(decision=decision).inc()

    @staticmethod
    def record_failure():
        moderation_failures.inc()

    @staticmethod
    def record_producer(producer: str, duration: float):
        """Record signal producer latency"""
        producer_latency.labels(producer=producer).observe(duration)

    @staticmethod
    def record_classifier(outcome: str):
        classifier_results.labels(outcome=outcome).inc()

    @staticmethod
    def record_review(decision: str):
        reviews_submitted.labels(decision=decision).inc()

    @staticmethod
    def update_queue_depth(depth: int):
        """Update queue depth gauge"""
        queue_depth.set(depth)


# Singleton instance
metrics = MetricsExporter(port=int(os.getenv('METRICS_PORT', '8000')))
