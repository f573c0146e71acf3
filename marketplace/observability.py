from __future__ import annotations

import contextvars
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from flask import g, has_request_context, request


HTTP_DURATION_BUCKETS_MS = (5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0)

_REQUEST_ID: contextvars.ContextVar[str] = contextvars.ContextVar("marketplace_request_id", default="")

# Attributes every LogRecord carries; anything else on a record came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


def set_log_request_id(request_id: str | None) -> None:
    """Request id stamped on log lines emitted outside a Flask request (CLI, tests)."""
    _REQUEST_ID.set(str(request_id or "").strip())


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line with the request id and any ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": self._request_id(record),
        }
        if has_request_context():
            entry["method"] = request.method
            entry["path"] = request.path

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in entry or callable(value):
                continue
            entry[key] = value

        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=True, separators=(",", ":"), default=str)

    @staticmethod
    def _request_id(record: logging.LogRecord) -> str:
        if has_request_context():
            return current_request_id()
        explicit = str(getattr(record, "request_id", "") or "").strip()
        return explicit or _REQUEST_ID.get() or "n/a"


def configure_json_logging(app) -> None:
    if not bool(app.config.get("LOG_JSON", True)):
        return
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).strip().upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    # Flask attaches its own handler to app.logger; route it through the root handler instead.
    app.logger.handlers = []
    app.logger.propagate = True


def ensure_request_id() -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if not request_id:
        request_id = str(request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
        g.request_id = request_id
    _REQUEST_ID.set(request_id)
    return request_id


def current_request_id(default: str = "n/a") -> str:
    if has_request_context():
        return str(getattr(g, "request_id", "") or "").strip() or default
    return _REQUEST_ID.get() or default


LabelValues = Tuple[str, ...]


class Counter:
    def __init__(self, name: str, help_text: str, labelnames: Iterable[str]) -> None:
        self.name = name
        self.help_text = help_text
        self.labelnames = tuple(labelnames)
        self.values: Dict[LabelValues, int] = {}

    def inc(self, *labels: str) -> None:
        self.values[labels] = self.values.get(labels, 0) + 1

    def by_first_label(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for labels, value in self.values.items():
            totals[labels[0]] = totals.get(labels[0], 0) + value
        return dict(sorted(totals.items()))

    def render(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help_text}", f"# TYPE {self.name} counter"]
        for labels, value in sorted(self.values.items()):
            lines.append(_sample(self.name, value, dict(zip(self.labelnames, labels))))
        return lines

    def clear(self) -> None:
        self.values.clear()


class Histogram:
    def __init__(self, name: str, help_text: str, labelnames: Iterable[str], buckets: Tuple[float, ...]) -> None:
        self.name = name
        self.help_text = help_text
        self.labelnames = tuple(labelnames)
        self.buckets = buckets
        self.series: Dict[LabelValues, dict] = {}

    def observe(self, value: float, *labels: str) -> None:
        value = max(0.0, float(value))
        state = self.series.setdefault(
            labels,
            {"count": 0, "sum": 0.0, "max": 0.0, "buckets": [0] * len(self.buckets)},
        )
        state["count"] += 1
        state["sum"] += value
        state["max"] = max(state["max"], value)
        for index, limit in enumerate(self.buckets):
            if value <= limit:
                state["buckets"][index] += 1

    def render(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help_text}", f"# TYPE {self.name} histogram"]
        for labels, state in sorted(self.series.items()):
            base = dict(zip(self.labelnames, labels))
            for limit, count in zip(self.buckets, state["buckets"]):
                lines.append(_sample(f"{self.name}_bucket", count, base | {"le": f"{limit:g}"}))
            lines.append(_sample(f"{self.name}_bucket", state["count"], base | {"le": "+Inf"}))
            lines.append(_sample(f"{self.name}_sum", round(state["sum"], 3), base))
            lines.append(_sample(f"{self.name}_count", state["count"], base))
        return lines

    def clear(self) -> None:
        self.series.clear()


def _escape_label(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _sample(name: str, value: int | float, labels: Dict[str, object]) -> str:
    if not labels:
        return f"{name} {value}"
    rendered = ",".join(f'{key}="{_escape_label(val)}"' for key, val in sorted(labels.items()))
    return f"{name}{{{rendered}}} {value}"


class MetricsRegistry:
    """In-process counters for HTTP traffic, domain events and rolled-back writes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.http_requests = Counter(
            "http_request_total", "HTTP requests by method, route and status.", ("method", "route", "status")
        )
        self.http_duration = Histogram(
            "http_request_duration_ms",
            "HTTP request duration in milliseconds.",
            ("method", "route"),
            HTTP_DURATION_BUCKETS_MS,
        )
        self.domain_events = Counter(
            "domain_event_emitted_total", "Domain events published on the event bus.", ("event_type",)
        )
        self.lifecycle_failures = Counter(
            "lifecycle_write_failed_total", "Multi-step writes rolled back after a failure.", ("operation",)
        )

    def _metrics(self):
        return (self.http_requests, self.http_duration, self.domain_events, self.lifecycle_failures)

    def observe_http(self, method: str, route: str, status_code: int, duration_ms: float) -> None:
        method = (method or "GET").upper()
        route = route or "unknown"
        with self._lock:
            self.http_requests.inc(method, route, str(int(status_code)))
            self.http_duration.observe(duration_ms, method, route)

    def observe_domain_event(self, event_type: str) -> None:
        with self._lock:
            self.domain_events.inc(event_type or "unknown")

    def observe_lifecycle_failure(self, operation: str) -> None:
        with self._lock:
            self.lifecycle_failures.inc(operation or "unknown")

    def _route_stats(self) -> List[dict]:
        errors: Dict[LabelValues, int] = {}
        for (method, route, status), value in self.http_requests.values.items():
            if int(status) >= 400:
                errors[(method, route)] = errors.get((method, route), 0) + value
        stats = []
        for (method, route), state in self.http_duration.series.items():
            stats.append(
                {
                    "route": f"{method} {route}",
                    "requests": state["count"],
                    "errors": errors.get((method, route), 0),
                    "avg_latency_ms": round(state["sum"] / state["count"], 2) if state["count"] else 0.0,
                    "max_latency_ms": round(state["max"], 2),
                }
            )
        stats.sort(key=lambda item: item["requests"], reverse=True)
        return stats[:40]

    def snapshot(self) -> dict:
        with self._lock:
            by_type = self.domain_events.by_first_label()
            return {
                "requests_total": sum(self.http_requests.values.values()),
                "errors_total": sum(
                    value for (_m, _r, status), value in self.http_requests.values.items() if int(status) >= 400
                ),
                "by_route": self._route_stats(),
                "domain_events": {"emitted_total": sum(by_type.values()), "by_type": by_type},
                "lifecycle_write_failed": self.lifecycle_failures.by_first_label(),
            }

    def render_prometheus(self) -> str:
        with self._lock:
            lines: List[str] = []
            for metric in self._metrics():
                lines.extend(metric.render())
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            for metric in self._metrics():
                metric.clear()


_METRICS = MetricsRegistry()


def mark_request_start() -> None:
    g._request_started_at = time.perf_counter()


def observe_response(response):
    started = getattr(g, "_request_started_at", None)
    elapsed_ms = (time.perf_counter() - started) * 1000.0 if started else 0.0
    route = request.url_rule.rule if request.url_rule is not None else "unmatched"
    _METRICS.observe_http(request.method, route, response.status_code, elapsed_ms)
    response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.2f}"
    return response


def metrics_snapshot() -> dict:
    return _METRICS.snapshot()


def prometheus_metrics_text() -> str:
    return _METRICS.render_prometheus()


def observe_domain_event_emitted(event_type: str) -> None:
    _METRICS.observe_domain_event(event_type)


def observe_lifecycle_write_failed(operation: str) -> None:
    _METRICS.observe_lifecycle_failure(operation)


def reset_metrics_for_tests() -> None:
    _METRICS.reset()
    set_log_request_id(None)
