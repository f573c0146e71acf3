from __future__ import annotations

import hmac
import math
import secrets
import threading
import time
from collections import deque
from typing import Deque, Dict

from flask import current_app, request, session

from marketplace.errors import ValidationError


CSRF_SESSION_KEY = "_csrf_token"
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

_UNSAFE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
# Bodies a browser will post cross-site without a CORS preflight.
_SIMPLE_FORM_TYPES = {"application/x-www-form-urlencoded", "multipart/form-data", "text/plain"}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cache-Control": "no-store",
}


def csrf_token() -> str:
    """Session-bound token for clients that post form-encoded bodies."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(24)
        session[CSRF_SESSION_KEY] = token
    return token


def enforce_form_csrf() -> None:
    if not current_app.config.get("CSRF_ENABLED", True):
        return
    if request.method not in _UNSAFE_METHODS or request.mimetype not in _SIMPLE_FORM_TYPES:
        return
    expected = str(session.get(CSRF_SESSION_KEY) or "")
    provided = str(request.headers.get(CSRF_HEADER) or request.form.get(CSRF_FORM_FIELD) or "")
    if expected and provided and hmac.compare_digest(expected, provided):
        return
    raise ValidationError(code="csrf_invalid", message_key="csrf_invalid")


class SlidingWindowRateLimiter:
    """Per-key request log; a key may make ``limit`` requests in any ``window`` seconds."""

    def __init__(self, max_keys: int = 10_000) -> None:
        self._lock = threading.Lock()
        self._hits: Dict[str, Deque[float]] = {}
        self._max_keys = max_keys

    def hit(self, key: str, *, limit: int, window: float) -> float | None:
        """Record a request; return seconds to wait when over the limit, else None."""
        now = time.monotonic()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= window:
                hits.popleft()
            if len(hits) >= limit:
                return window - (now - hits[0])
            hits.append(now)
            if len(self._hits) > self._max_keys:
                self._evict_idle(now, window)
            return None

    def _evict_idle(self, now: float, window: float) -> None:
        self._hits = {key: hits for key, hits in self._hits.items() if hits and now - hits[-1] < window}

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_LIMITER = SlidingWindowRateLimiter()


def _client_key() -> str:
    who = session.get("user_id") or request.remote_addr or "unknown"
    route = request.url_rule.rule if request.url_rule is not None else request.path
    return f"{who}:{request.method}:{route}"


def enforce_rate_limit() -> None:
    config = current_app.config
    if not config.get("RATE_LIMIT_ENABLED", True) or request.method == "OPTIONS":
        return
    wait = _LIMITER.hit(
        _client_key(),
        limit=max(1, int(config.get("RATE_LIMIT_MAX_REQUESTS") or 300)),
        window=max(1, int(config.get("RATE_LIMIT_WINDOW_SECONDS") or 60)),
    )
    if wait is None:
        return
    raise ValidationError(
        code="rate_limit_exceeded",
        message_key="rate_limit_exceeded",
        http_status=429,
        payload={"retry_after": max(1, math.ceil(wait))},
    )


def apply_security_headers(response):
    if not current_app.config.get("SECURITY_HEADERS_ENABLED", True):
        return response
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _LIMITER.reset()
