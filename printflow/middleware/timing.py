"""
Request timing middleware.

Records request duration, logs slow requests and keeps a small in-memory
ring buffer of recent requests for the admin metrics endpoint.
Adds X-Request-ID and X-Request-Duration-Ms headers to all responses.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Endpoints excluded from timing logs (high frequency, low value)
_SKIP_LOG = frozenset({"/api/v1/health"})

# Slow request threshold (ms)
SLOW_THRESHOLD_MS = 1000


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")

        project_id = _extract_project_id()
        _record_metric(request.method, request.path, response.status_code, duration_ms,
                       project_id=project_id)

        if request.path not in _SKIP_LOG:
            extra = {
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "remote_addr": request.remote_addr,
                "request_id": getattr(g, "request_id", ""),
                "role": getattr(g, "current_user_role", None),
                "project_id": project_id,
            }
            if duration_ms > SLOW_THRESHOLD_MS:
                logger.warning("Slow request: %s %s %d (%.0fms)",
                               request.method, request.path,
                               response.status_code, duration_ms, extra=extra)
            elif response.status_code >= 500:
                logger.error("Server error: %s %s %d (%.0fms)",
                             request.method, request.path,
                             response.status_code, duration_ms, extra=extra)
            else:
                logger.debug("Request: %s %s %d (%.0fms)",
                             request.method, request.path,
                             response.status_code, duration_ms, extra=extra)

        return response


# ── In-memory metrics ring buffer ──────────────────────────────────────────
_metrics_buffer: list[dict] = []
_MAX_BUFFER = 10_000


def _extract_project_id() -> int | None:
    view_args = request.view_args or {}
    project_id = view_args.get("project_id")
    try:
        return int(project_id) if project_id is not None else None
    except (TypeError, ValueError):
        return None


def _record_metric(method: str, path: str, status_code: int, duration_ms: float,
                   *, project_id: int | None = None):
    """Append to the in-memory ring buffer."""
    _metrics_buffer.append({
        "ts": time.time(),
        "method": method,
        "path": path,
        "status": status_code,
        "ms": round(duration_ms, 1),
        "project_id": project_id,
    })
    if len(_metrics_buffer) > _MAX_BUFFER:
        del _metrics_buffer[:_MAX_BUFFER // 2]  # trim oldest half


def get_recent_metrics(seconds: int = 3600) -> list[dict]:
    """Return metrics from the last N seconds."""
    cutoff = time.time() - seconds
    return [m for m in _metrics_buffer if m["ts"] >= cutoff]


def summarize_metrics(seconds: int = 3600) -> dict:
    """Request count, error count and latency percentiles over the window."""
    recent = get_recent_metrics(seconds)
    durations = sorted(m["ms"] for m in recent)

    def _pct(p):
        if not durations:
            return None
        return durations[min(len(durations) - 1, int(len(durations) * p))]

    return {
        "window_seconds": seconds,
        "requests": len(recent),
        "errors": sum(1 for m in recent if m["status"] >= 500),
        "p50_ms": _pct(0.50),
        "p95_ms": _pct(0.95),
        "slowest": sorted(recent, key=lambda m: m["ms"], reverse=True)[:5],
    }


def reset_metrics():
    """Clear metrics buffer (for testing)."""
    _metrics_buffer.clear()
