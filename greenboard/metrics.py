from prometheus_client import CollectorRegistry, Counter, generate_latest, CONTENT_TYPE_LATEST

from .exceptions import GreenboardError

registry = CollectorRegistry()
allocation_responses = Counter(
    "greenboard_cost_allocation_responses", "Cost-allocation responses by data provenance", ["source"], registry=registry
)
snapshot_responses = Counter(
    "greenboard_snapshot_responses", "Cluster snapshot responses by data source", ["source"], registry=registry
)
backend_failures = Counter(
    "greenboard_backend_query_failures", "Failed or skipped metrics-backend queries", ["kind"], registry=registry
)


def record_backend_failure(error: GreenboardError):
    backend_failures.labels(kind=error.kind).inc()


def scrape_metrics():
    return generate_latest(registry), CONTENT_TYPE_LATEST
