"""Prometheus metrics definitions for serve-s3.

All custom metrics use the ``serve_s3_`` prefix. These are
*application-level* operation metrics; ``prometheus-fastapi-instrumentator``
provides the HTTP-level ones (request count, duration, sizes).

Counters reset to zero on restart; Prometheus handles gaps via ``rate()``.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Operation counter  (labels: operation, status)
# ---------------------------------------------------------------------------
operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Upload counters
# ---------------------------------------------------------------------------
bytes_uploaded_total: Counter | None = None
upload_parts_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    This must be called once when metrics are enabled. When metrics are
    disabled the module-level references stay ``None``, no collectors are
    registered and the ``record_*`` helpers do nothing.
    """
    global _initialized
    global operations_total, bytes_uploaded_total, upload_parts_total

    if _initialized:
        return

    operations_total = Counter(
        "serve_s3_operations_total",
        "Total object operations by type and outcome",
        ["operation", "status"],
    )

    bytes_uploaded_total = Counter(
        "serve_s3_bytes_uploaded_total",
        "Total bytes stored from multipart uploads",
    )

    upload_parts_total = Counter(
        "serve_s3_upload_parts_total",
        "Multipart form parts by outcome (stored, ignored, rejected)",
        ["outcome"],
    )

    _initialized = True


def record_operation(operation: str, status: int) -> None:
    """Count one finished GetObject/PutObject/DeleteObject pipeline run."""
    if operations_total is not None:
        operations_total.labels(operation=operation, status=str(status)).inc()


def record_upload_part(outcome: str, size: int = 0) -> None:
    """Count one form part; ``size`` bytes are added for stored parts."""
    if upload_parts_total is not None:
        upload_parts_total.labels(outcome=outcome).inc()
    if size and bytes_uploaded_total is not None:
        bytes_uploaded_total.inc(size)
