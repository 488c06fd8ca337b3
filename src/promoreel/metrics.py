from prometheus_client import Counter, REGISTRY


def safe_counter(name, documentation, **kwargs):
    """Return the already-registered collector when a module is re-imported."""
    try:
        return Counter(name, documentation, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


generation_submitted_total = safe_counter(
    "promoreel_generation_submitted_total",
    "Number of video generation jobs submitted to the AI platform",
)

status_checks_total = safe_counter(
    "promoreel_status_checks_total",
    "Number of generation status checks, by reported outcome",
    labelnames=["outcome"],
)

generation_completed_total = safe_counter(
    "promoreel_generation_completed_total",
    "Number of generation jobs that finished with a stored video",
)

generation_failed_total = safe_counter(
    "promoreel_generation_failed_total",
    "Number of generation jobs that finished in the failed state",
)

publish_total = safe_counter(
    "promoreel_publish_total",
    "Number of videos attached to a storefront product",
)

publish_failures_total = safe_counter(
    "promoreel_publish_failures_total",
    "Number of publish attempts that raised",
)

readiness_timeouts_total = safe_counter(
    "promoreel_readiness_timeouts_total",
    "Number of readiness polls that exhausted their attempt ceiling",
)

storage_cleanup_failures_total = safe_counter(
    "promoreel_storage_cleanup_failures_total",
    "Number of post-publish storage deletions that failed",
)
