from __future__ import annotations

import hashlib
import json
import os
import time
import uuid
from datetime import datetime

from flask import g, has_request_context, request


_SCRUBBED_HEADERS = ("authorization", "x-api-key", "cookie", "set-cookie")
_MAX_REQUEST_ID_LEN = 128


def _hash_ip(ip: str, salt: str) -> str:
    raw = f"{salt}:{ip or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def get_request_id() -> str:
    if not has_request_context():
        return ""
    return getattr(g, "request_id", "") or ""


def _incoming_request_id() -> str:
    rid = (request.headers.get("X-Request-Id") or "").strip()
    if not rid or len(rid) > _MAX_REQUEST_ID_LEN:
        return uuid.uuid4().hex
    return rid


def note_request(**fields) -> None:
    """Attach listing facts (cache outcome, degraded flag, result size) to this request's access log line."""
    if not has_request_context():
        return
    notes = getattr(g, "access_notes", None)
    if notes is None:
        notes = {}
        g.access_notes = notes
    notes.update(fields)


def _sample_rate(raw: str | None) -> float:
    try:
        value = float((raw or "0.0").strip())
    except ValueError:
        value = 0.0
    return max(0.0, min(value, 1.0))


def init_sentry(app) -> None:
    dsn = (os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=dsn,
            environment=(os.getenv("SENTRY_ENVIRONMENT") or os.getenv("MARKETPLACE_ENV") or "dev"),
            release=(os.getenv("GIT_SHA") or "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=_sample_rate(os.getenv("SENTRY_TRACES_SAMPLE_RATE")),
            before_send=_before_send_scrub,
        )
        sentry_sdk.set_tag("service", "marketplace-listings")
        app.logger.info("sentry_enabled")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _before_send_scrub(event, hint):
    try:
        req = event.get("request") or {}
        headers = req.get("headers") or {}
        for key in list(headers.keys()):
            if key.lower() in _SCRUBBED_HEADERS:
                headers[key] = "[REDACTED]"
        req["headers"] = headers
        event["request"] = req
    except Exception:
        pass
    return event


def capture_exception(exc: BaseException) -> None:
    """Report a handled failure; a no-op until init_sentry has run with a DSN."""
    try:
        import sentry_sdk

        rid = get_request_id()
        if rid:
            sentry_sdk.set_tag("request_id", rid)
        sentry_sdk.capture_exception(exc)
    except Exception:
        pass


def _access_log_payload(app, response) -> dict:
    started = getattr(g, "request_started_at", None)
    latency_ms = None
    if started is not None:
        latency_ms = round((time.perf_counter() - float(started)) * 1000.0, 2)
    payload = {
        "ts": datetime.utcnow().isoformat(),
        "request_id": getattr(g, "request_id", ""),
        "path": request.path,
        "method": request.method,
        "status": int(response.status_code),
        "latency_ms": latency_ms,
        "ip_hash": _hash_ip(
            request.headers.get("X-Forwarded-For", request.remote_addr or ""),
            app.config.get("SECRET_KEY", "marketplace"),
        ),
        "user_agent": (request.user_agent.string or "")[:180],
    }
    payload.update(getattr(g, "access_notes", None) or {})
    return payload


def install_request_observers(app) -> None:
    @app.before_request
    def _request_observer_begin():
        g.request_id = _incoming_request_id()
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        if not getattr(g, "request_id", ""):
            g.request_id = uuid.uuid4().hex
        response.headers["X-Request-Id"] = g.request_id
        app.logger.info(json.dumps(_access_log_payload(app, response), default=str))
        return response
