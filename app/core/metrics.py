"""Prometheus metrics for the escrow service."""

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Audit pipeline (end-to-end)
# ---------------------------------------------------------------------------

escrow_audit_requests_total = Counter(
    "escrow_audit_requests_total",
    "Total audit requests",
    ["outcome"],  # responded | rejected | errored | replayed
)

escrow_audit_latency_seconds = Histogram(
    "escrow_audit_latency_seconds",
    "End-to-end audit latency in seconds",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

escrow_evidence_bytes_total = Counter(
    "escrow_evidence_bytes_total",
    "Bytes of evidence staged",
    ["role"],
)

# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

escrow_inference_calls_total = Counter(
    "escrow_inference_calls_total",
    "Total inference attempts",
    ["status"],  # success | fallback | disabled
)

escrow_inference_latency_seconds = Histogram(
    "escrow_inference_latency_seconds",
    "Inference call latency in seconds",
    buckets=[0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 30.0],
)

# ---------------------------------------------------------------------------
# Settlement / ledger
# ---------------------------------------------------------------------------

escrow_settlements_total = Counter(
    "escrow_settlements_total",
    "Settlement outcomes",
    ["status"],  # SKIPPED | PAID | FAILED | FROZEN
)

escrow_ledger_rpc_failures_total = Counter(
    "escrow_ledger_rpc_failures_total",
    "Failed ledger JSON-RPC calls",
    ["method"],
)

escrow_ledger_rpc_latency_seconds = Histogram(
    "escrow_ledger_rpc_latency_seconds",
    "Ledger JSON-RPC latency in seconds",
    ["method"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)
