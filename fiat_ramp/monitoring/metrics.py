"""
Prometheus metrics for the webhook pipeline.

Tracks:
- Webhook outcomes by final pipeline state
- Webhook processing duration
- Ledger upserts by result
- KYC sync attempts by result
- Onramper API calls
"""
from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_requests_total = Counter(
    "fiat_ramp_webhook_requests_total",
    "Total webhook requests by final pipeline state",
    ["state"],  # responded, degraded, rejected_signature, rejected_payload, failed
)

webhook_processing_duration_seconds = Histogram(
    "fiat_ramp_webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Ledger metrics
ledger_upserts_total = Counter(
    "fiat_ramp_ledger_upserts_total",
    "Total ledger transaction upserts",
    ["result"],  # success, storage_error, integrity_error
)

ledger_owner_mismatches_total = Counter(
    "fiat_ramp_ledger_owner_mismatches_total",
    "Upserts where the stored owner differs from the caller-supplied identity",
)

# KYC metrics
kyc_sync_total = Counter(
    "fiat_ramp_kyc_sync_total",
    "Total KYC sync attempts",
    ["result"],  # approved, pending, rejected, unsupported_status, unresolved, storage_error
)

# Upstream metrics
upstream_requests_total = Counter(
    "fiat_ramp_upstream_requests_total",
    "Total Onramper API requests",
    ["operation", "status"],
)

upstream_duration_seconds = Histogram(
    "fiat_ramp_upstream_duration_seconds",
    "Onramper API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_webhook(state: str, duration_seconds: float) -> None:
        """Record a finished webhook request."""
        webhook_requests_total.labels(state=state).inc()
        webhook_processing_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_ledger_upsert(result: str) -> None:
        """Record a ledger upsert outcome."""
        ledger_upserts_total.labels(result=result).inc()

    @staticmethod
    def record_owner_mismatch() -> None:
        """Record a stored-owner mismatch."""
        ledger_owner_mismatches_total.inc()

    @staticmethod
    def record_kyc_sync(result: str) -> None:
        """Record a KYC sync outcome."""
        kyc_sync_total.labels(result=result).inc()

    @staticmethod
    def record_upstream_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record an Onramper API call."""
        upstream_requests_total.labels(operation=operation, status=status).inc()
        upstream_duration_seconds.labels(operation=operation).observe(duration_seconds)


# Export singleton instance
metrics = MetricsCollector()
