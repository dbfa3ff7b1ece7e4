"""Prometheus metrics for the search engine.

Counters and histograms tracking search outcomes, cache effectiveness,
prefetching and request latency.
"""

from prometheus_client import Counter, Gauge, Histogram

# Counters
search_requests = Counter(
    "docsville_search_requests_total",
    "Search requests by outcome",
    ["outcome"],  # success, error, aborted, stale
)

cache_lookups = Counter(
    "docsville_search_cache_lookups_total",
    "Search cache lookups by result",
    ["result"],  # fresh, stale, miss
)

prefetches = Counter(
    "docsville_search_prefetches_total",
    "Speculative next-page fetches",
    ["result"],  # issued, cached, skipped
)

stale_responses_dropped = Counter(
    "docsville_search_stale_responses_dropped_total",
    "Responses discarded because a newer generation was issued",
)

# Histograms
search_latency_seconds = Histogram(
    "docsville_search_latency_seconds",
    "Search request latency in seconds",
    buckets=(0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

result_page_size = Histogram(
    "docsville_search_result_page_size",
    "Number of results per returned page",
    buckets=(0, 1, 5, 10, 20, 50, 100, 250, 500),
)

# Gauges
search_generation = Gauge(
    "docsville_search_generation",
    "Latest search parameter generation issued",
)


def record_search(outcome: str, latency_seconds: float, result_count: int = 0) -> None:
    """Record a finished search request."""
    search_requests.labels(outcome=outcome).inc()
    search_latency_seconds.observe(latency_seconds)
    if outcome == "success":
        result_page_size.observe(result_count)


def record_cache_lookup(result: str) -> None:
    """Record a cache lookup (fresh, stale or miss)."""
    cache_lookups.labels(result=result).inc()


def record_prefetch(result: str) -> None:
    """Record a prefetch attempt."""
    prefetches.labels(result=result).inc()


def record_stale_response() -> None:
    """Record a response dropped for belonging to an old generation."""
    stale_responses_dropped.inc()


def update_generation(generation: int) -> None:
    """Update the latest generation gauge."""
    search_generation.set(generation)
