"""Tests for the HTTP middleware: health, request timing, actor resolution, logging and rate limits."""

import json
import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from printflow.middleware.logging_config import JSONFormatter, ReadableFormatter
from printflow.middleware.rate_limiter import READ_LIMIT, WRITE_LIMIT, init_rate_limits
from printflow.middleware.timing import summarize_metrics

pytestmark = pytest.mark.integration

METRICS_URL = "/api/v1/admin/metrics/requests"


# ── Health ──────────────────────────────────────────────────────────────


class TestHealth:

    def test_health(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_health_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["database"]["status"] == "ok"

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ── Request timing ──────────────────────────────────────────────────────


class TestRequestTiming:

    def test_headers_present(self, client):
        res = client.get("/api/v1/health")
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0
        assert res.headers["X-Request-ID"]

    def test_client_request_id_preserved(self, client):
        res = client.get("/api/v1/health", headers={"X-Request-ID": "job-77"})
        assert res.headers["X-Request-ID"] == "job-77"

    def test_project_id_recorded(self, client, make_project):
        project = make_project()
        client.get(f"/api/v1/projects/{project.id}/forms/dependency-graph")
        (entry,) = summarize_metrics(60)["slowest"]
        assert entry["project_id"] == project.id
        assert entry["status"] == 200

    def test_admin_metrics(self, client):
        for _ in range(3):
            client.get("/api/v1/health")
        client.get("/api/v1/projects/999/forms/dependency-graph")

        res = client.get(METRICS_URL, headers={"X-User-Role": "ADMIN"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["requests"] == 4
        assert data["errors"] == 0
        assert data["p50_ms"] is not None

    def test_admin_metrics_forbidden_for_manager(self, client):
        res = client.get(METRICS_URL, headers={"X-User-Role": "MANAGER"})
        assert res.status_code == 403

    def test_admin_metrics_bad_window(self, client):
        assert client.get(f"{METRICS_URL}?seconds=0").status_code == 400


# ── Actor resolution ────────────────────────────────────────────────────


class TestAuth:

    @pytest.fixture()
    def keys(self, monkeypatch):
        monkeypatch.setenv("API_AUTH_ENABLED", "true")
        monkeypatch.setenv("API_KEYS", "k-admin:ADMIN,k-ops:user,k-plain")

    def test_missing_key_is_401(self, client, keys):
        res = client.get(METRICS_URL)
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHORIZED"

    def test_invalid_key_is_401(self, client, keys):
        assert client.get(METRICS_URL, headers={"X-API-Key": "nope"}).status_code == 401

    def test_role_from_key(self, client, keys):
        assert client.get(METRICS_URL, headers={"X-API-Key": "k-admin"}).status_code == 200
        assert client.get(METRICS_URL, headers={"X-API-Key": "k-ops"}).status_code == 403

    def test_key_without_role_is_user(self, client, keys):
        assert client.get(METRICS_URL, headers={"X-API-Key": "k-plain"}).status_code == 403

    def test_header_role_ignored_when_enabled(self, client, keys):
        res = client.get(METRICS_URL, headers={"X-API-Key": "k-ops", "X-User-Role": "ADMIN"})
        assert res.status_code == 403

    def test_health_is_public(self, client, keys):
        assert client.get("/api/v1/health").status_code == 200

    def test_keys_not_configured_is_500(self, client, monkeypatch):
        monkeypatch.setenv("API_AUTH_ENABLED", "true")
        monkeypatch.delenv("API_KEYS", raising=False)
        assert client.get(METRICS_URL, headers={"X-API-Key": "any"}).status_code == 500

    def test_non_json_body_is_415(self, client):
        res = client.patch(
            "/api/v1/forms/instances/1/status", data="status=ACTIVE", content_type="text/plain",
        )
        assert res.status_code == 415

    def test_role_header_case_insensitive(self, client):
        assert client.get(METRICS_URL, headers={"X-User-Role": "admin"}).status_code == 200


# ── Logging ─────────────────────────────────────────────────────────────


class TestLogFormatters:

    def _record(self, **extra):
        return logging.makeLogRecord({
            "name": "printflow.services.form_status_service",
            "levelname": "INFO",
            "levelno": logging.INFO,
            "msg": "Form status updated forms=%s",
            "args": ([3, 4],),
            **extra,
        })

    def test_json_formatter_lifts_scope(self):
        line = JSONFormatter().format(self._record(project_id=3, form_id=4, request_id="abc"))
        entry = json.loads(line)
        assert entry["message"] == "Form status updated forms=[3, 4]"
        assert entry["project_id"] == 3
        assert entry["form_id"] == 4
        assert entry["request_id"] == "abc"
        assert "task_id" not in entry

    def test_readable_formatter_shows_scope(self):
        text = ReadableFormatter().format(self._record(task_id=9, duration_ms=12.4))
        assert "(task_id=9)" in text
        assert "[12ms]" in text


# ── Rate limits ─────────────────────────────────────────────────────────


class TestRateLimits:

    def _app(self, testing):
        return SimpleNamespace(
            config={"TESTING": testing},
            blueprints={"forms": "forms-bp", "tasks": "tasks-bp", "admin": "admin-bp", "health": "health-bp"},
            logger=logging.getLogger("test"),
        )

    def test_limits_per_blueprint(self):
        limiter = MagicMock()
        init_rate_limits(self._app(False), limiter)
        limits = [c.args[0] for c in limiter.limit.call_args_list]
        assert limits == [WRITE_LIMIT, WRITE_LIMIT, READ_LIMIT]
        limiter.exempt.assert_called_once_with("health-bp")

    def test_skipped_when_testing(self):
        limiter = MagicMock()
        init_rate_limits(self._app(True), limiter)
        limiter.limit.assert_not_called()
