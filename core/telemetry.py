# ABOUTME: Per-request query telemetry: one structured JSON log line per storage call.
# ABOUTME: Records route, latency, row count, storage kind and outcome.

import json
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class QueryLogEntry:
    """Structured telemetry entry for one storage-touching request."""

    timestamp: str
    route: str
    latency_ms: float
    rows: int | None
    storage: str
    success: bool
    error: str | None = None

    def to_json(self) -> str:
        return json.dumps(
            {
                "timestamp": self.timestamp,
                "route": self.route,
                "latency_ms": round(self.latency_ms, 2),
                "rows": self.rows,
                "storage": self.storage,
                "success": self.success,
                "error": self.error,
            }
        )


def count_rows(result) -> int | None:
    """Row count for a query result: list length, 1 for a single row, 0 for None."""
    if result is None:
        return 0
    if isinstance(result, list):
        return len(result)
    if isinstance(result, dict):
        return 1
    return None


def log_query(
    *,
    route: str,
    latency_ms: float,
    rows: int | None,
    storage: str,
    success: bool,
    error: str | None = None,
) -> None:
    """Print a structured JSON log line to stdout for one storage call."""
    entry = QueryLogEntry(
        timestamp=datetime.now(tz=timezone.utc).isoformat(),
        route=route,
        latency_ms=latency_ms,
        rows=rows,
        storage=storage,
        success=success,
        error=error,
    )
    print(entry.to_json(), flush=True)
