"""Prometheus-compatible metrics endpoint and request tracking middleware."""
from __future__ import annotations

import time
from collections import defaultdict
from threading import Lock

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response


class _Metrics:
    """Thread-safe in-memory metrics collector."""

    def __init__(self):
        self._lock = Lock()
        self.request_count: dict[tuple[str, str, int], int] = defaultdict(int)
        self.request_duration_sum: dict[tuple[str, str], float] = defaultdict(float)
        self.request_duration_count: dict[tuple[str, str], int] = defaultdict(int)
        self.redirect_outcomes: dict[str, int] = defaultdict(int)
        self.click_write_failures = 0
        self.active_requests = 0
        self.startup_time = time.time()

    def record(self, method: str, path: str, status: int, duration: float):
        with self._lock:
            self.request_count[(method, path, status)] += 1
            self.request_duration_sum[(method, path)] += duration
            self.request_duration_count[(method, path)] += 1

    def record_redirect(self, state: str, click_recorded: bool | None = None):
        with self._lock:
            self.redirect_outcomes[state] += 1
            if click_recorded is False:
                self.click_write_failures += 1

    def inc_active(self):
        with self._lock:
            self.active_requests += 1

    def dec_active(self):
        with self._lock:
            self.active_requests -= 1

    def reset(self):
        with self._lock:
            self.request_count.clear()
            self.request_duration_sum.clear()
            self.request_duration_count.clear()
            self.redirect_outcomes.clear()
            self.click_write_failures = 0
            self.active_requests = 0

    def render(self) -> str:
        lines: list[str] = []
        lines.append("# HELP tradetrends_http_requests_total Total HTTP requests")
        lines.append("# TYPE tradetrends_http_requests_total counter")
        with self._lock:
            for (method, path, status), count in sorted(self.request_count.items()):
                lines.append(
                    f'tradetrends_http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}'
                )

            lines.append("")
            lines.append("# HELP tradetrends_http_request_duration_seconds HTTP request duration")
            lines.append("# TYPE tradetrends_http_request_duration_seconds summary")
            for (method, path), total in sorted(self.request_duration_sum.items()):
                count = self.request_duration_count[(method, path)]
                lines.append(
                    f'tradetrends_http_request_duration_seconds_sum{{method="{method}",path="{path}"}} {total:.6f}'
                )
                lines.append(
                    f'tradetrends_http_request_duration_seconds_count{{method="{method}",path="{path}"}} {count}'
                )

            lines.append("")
            lines.append("# HELP tradetrends_go_outcomes_total /go requests by terminal state")
            lines.append("# TYPE tradetrends_go_outcomes_total counter")
            for state, count in sorted(self.redirect_outcomes.items()):
                lines.append(f'tradetrends_go_outcomes_total{{state="{state}"}} {count}')

            lines.append("")
            lines.append("# HELP tradetrends_click_write_failures_total Clicks redirected without being recorded")
            lines.append("# TYPE tradetrends_click_write_failures_total counter")
            lines.append(f"tradetrends_click_write_failures_total {self.click_write_failures}")

            lines.append("")
            lines.append("# HELP tradetrends_active_requests Current in-flight requests")
            lines.append("# TYPE tradetrends_active_requests gauge")
            lines.append(f"tradetrends_active_requests {self.active_requests}")

            lines.append("")
            lines.append("# HELP tradetrends_uptime_seconds Seconds since process start")
            lines.append("# TYPE tradetrends_uptime_seconds gauge")
            lines.append(f"tradetrends_uptime_seconds {time.time() - self.startup_time:.1f}")

        return "\n".join(lines) + "\n"


metrics = _Metrics()


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return PlainTextResponse(metrics.render(), media_type="text/plain; version=0.0.4")

        metrics.inc_active()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start
            # Query-driven routes, so the raw path has low cardinality already
            metrics.record(request.method, request.url.path, response.status_code, duration)
            return response
        except Exception:
            duration = time.perf_counter() - start
            metrics.record(request.method, request.url.path, 500, duration)
            raise
        finally:
            metrics.dec_active()
