"""Métricas Prometheus del pipeline de ingesta."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

FRAMES_PROCESSED = Counter(
    "seismic_frames_processed_total",
    "Frames processed by the stream decoder",
    ["source", "result"],  # delivered, no_data, ignored, error
)

SAMPLES_DELIVERED = Counter(
    "seismic_samples_delivered_total",
    "Samples fanned out to subscribers",
    ["source"],
)

SUBSCRIBER_FAILURES = Counter(
    "seismic_subscriber_failures_total",
    "Subscriber callbacks that raised during delivery",
    ["subscriber"],
)

DISPATCH_DROPPED = Counter(
    "seismic_dispatch_dropped_total",
    "Push units dropped because the dispatch queue was full",
    ["source"],
)

ACTIVE_SUBSCRIBERS = Gauge(
    "seismic_active_subscribers",
    "Currently registered subscriber callbacks",
)
