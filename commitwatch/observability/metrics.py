from prometheus_client import Counter, Gauge, Histogram, start_http_server

# Sweeps
SWEEPS_TOTAL = Counter("commitwatch_sweeps_total", "Completed sweeps", ["result"])
SWEEP_DURATION = Histogram("commitwatch_sweep_duration_seconds", "Sweep wall time",
                           buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0])
TRIGGERS_DROPPED = Counter("commitwatch_triggers_dropped_total", "Scheduled triggers dropped while a sweep was running")
DISCOVERED = Gauge("commitwatch_discovered_commitments", "Commitment ids known after the last discovery")

# Per item
FETCH_FAILURES = Counter("commitwatch_fetch_failures_total", "Commitment state fetches that came back unavailable", ["reason"])
SETTLEMENTS_TOTAL = Counter("commitwatch_settlements_total", "Settlement outcomes", ["outcome"])

# Signer
SIGNER_BALANCE = Gauge("commitwatch_signer_balance", "Signer balance in base units")


def start_metrics_server(port: int) -> bool:
    if port <= 0:
        return False
    start_http_server(port)
    return True
