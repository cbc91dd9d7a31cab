"""
Prometheus metrics definitions for streakkeeper.

Metrics are exposed at the /metrics endpoint for Prometheus scraping.
"""

import logging
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

# =============================================================================
# HTTP/API Metrics
# =============================================================================

http_requests_total = Counter(
    "streakkeeper_http_requests_total",
    "Total HTTP requests received",
    ["method", "endpoint", "status"],
)

# =============================================================================
# Result Cache Metrics
# =============================================================================

cache_operations_total = Counter(
    "streakkeeper_cache_operations_total",
    "Result cache lookups and invalidations",
    ["operation"],  # operation: hit/miss/error/invalidation/expired
)

# =============================================================================
# Analytics Metrics
# =============================================================================

completion_toggles_total = Counter(
    "streakkeeper_completion_toggles_total",
    "Completion toggles applied to the ledger",
    ["action"],  # action: created/deleted
)

streak_recomputations_total = Counter(
    "streakkeeper_streak_recomputations_total",
    "Per-habit streak recomputations",
    ["trigger"],  # trigger: toggle/update/stats
)

progress_computation_seconds = Histogram(
    "streakkeeper_progress_computation_seconds",
    "Time spent computing a progress overview",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0],
)

achievements_awarded_total = Counter(
    "streakkeeper_achievements_awarded_total",
    "Achievements newly awarded to users",
    ["category"],
)


def render_latest(registry: CollectorRegistry = REGISTRY) -> tuple[bytes, str]:
    """Current metrics in the Prometheus text exposition format"""
    return generate_latest(registry), CONTENT_TYPE_LATEST
