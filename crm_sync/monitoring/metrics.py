"""
Prometheus Metrics

Counters for CRM traffic, resolution and sync outcomes.
"""

from prometheus_client import Counter

# Singleton metrics instance
_metrics: "Metrics | None" = None


class Metrics:
    """
    Prometheus metrics for the sync service.

    Tracks:
    - HTTP retries against CRM APIs
    - Search chunk outcomes and matched contacts
    - Contact update outcomes
    - Per-CRM sync runs
    """

    def __init__(self):
        self.http_retries_total = Counter(
            "crm_sync_http_retries_total",
            "Total CRM HTTP retries by CRM/operation and reason",
            ["crm", "operation", "reason", "status_code"],
        )

        self.search_chunks_total = Counter(
            "crm_sync_search_chunks_total",
            "Contact search chunks by CRM and outcome",
            ["crm", "status"],
        )

        self.contacts_matched_total = Counter(
            "crm_sync_contacts_matched_total",
            "Raw phones resolved to a CRM contact",
            ["crm"],
        )

        self.contact_updates_total = Counter(
            "crm_sync_contact_updates_total",
            "Contacts written back by CRM and outcome",
            ["crm", "status"],
        )

        self.sync_runs_total = Counter(
            "crm_sync_runs_total",
            "CRM sync runs by outcome",
            ["crm", "status"],
        )

    def track_retry(self, crm: str | None, operation: str | None, reason: str, status_code: int | str) -> None:
        self.http_retries_total.labels(
            crm=crm or "unknown",
            operation=operation or "request",
            reason=reason,
            status_code=str(status_code),
        ).inc()

    def track_chunk(self, crm: str, ok: bool) -> None:
        self.search_chunks_total.labels(crm=crm, status="ok" if ok else "failed").inc()

    def track_matches(self, crm: str, count: int) -> None:
        if count:
            self.contacts_matched_total.labels(crm=crm).inc(count)

    def track_updates(self, crm: str, updated: int, failed: int) -> None:
        if updated:
            self.contact_updates_total.labels(crm=crm, status="updated").inc(updated)
        if failed:
            self.contact_updates_total.labels(crm=crm, status="failed").inc(failed)

    def track_sync_run(self, crm: str, status: str) -> None:
        self.sync_runs_total.labels(crm=crm, status=status).inc()


def get_metrics() -> Metrics:
    """Get the metrics singleton."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
