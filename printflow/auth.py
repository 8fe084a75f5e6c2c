"""
PrintFlow Workflow Engine
Actor resolution middleware.

Provides:
    - API key authentication via X-API-Key header
    - The acting role (g.current_user_role) and user id (g.current_user_id)
      consumed by the authorization policy in printflow.services.authorization
    - CSRF mitigation for state-changing requests (JSON Content-Type only)

Configuration (env vars / app config):
    API_KEYS          comma-separated "<key>:<role>" pairs
                      e.g. "k1:ADMIN,k2:MANAGER,k3:USER"
                      Keys without a role default to USER.
    API_AUTH_ENABLED  "false" disables key checks (development / tests). The
                      role is then read from X-User-Role, defaulting to ADMIN.

The user id is always taken from X-User-Id when present; it is recorded as
``changed_by`` / ``user_id`` on history and activity rows.
"""

import logging
import os
from typing import Optional

from flask import current_app, g, jsonify, request

from printflow.services.authorization import ADMIN, USER, normalize_role

logger = logging.getLogger(__name__)

_PUBLIC_PREFIXES = ("/api/v1/health",)


def _parse_api_keys() -> dict[str, str]:
    """
    Parse API_KEYS into {key: role}.

    Format: "key1:ADMIN,key2:USER". Unknown roles fall back to USER.
    """
    raw = os.getenv("API_KEYS", "") or current_app.config.get("API_KEYS", "")
    if not raw.strip():
        return {}

    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" in entry:
            key, role = entry.rsplit(":", 1)
            normalized = normalize_role(role)
            if normalized is None:
                logger.warning("Unknown role '%s' for API key, defaulting to '%s'", role, USER)
                normalized = USER
            keys[key.strip()] = normalized
        else:
            keys[entry] = USER
    return keys


def _is_auth_enabled() -> bool:
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in ("false", "0", "no", "off")


def _get_api_key_from_request() -> Optional[str]:
    return request.headers.get("X-API-Key", "").strip() or None


def _check_content_type():
    """Reject non-JSON bodies on state-changing requests."""
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests",
                "code": "ERR_VALIDATION_INVALID",
            }), 415
    return None


def init_auth(app):
    """
    Install the actor-resolution hook on the Flask app.

    Skips non-API routes, health checks and CORS pre-flight requests.
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith(_PUBLIC_PREFIXES):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        g.current_user_id = request.headers.get("X-User-Id", "").strip() or None

        if not _is_auth_enabled():
            header_role = request.headers.get("X-User-Role")
            # An unrecognised header role stays as given so the policy denies it
            g.current_user_role = normalize_role(header_role) or (header_role or ADMIN)
            g.api_key = "dev-mode"
            return None

        api_key = _get_api_key_from_request()
        if not api_key:
            return jsonify({"error": "Authentication required. Provide X-API-Key header.",
                            "code": "ERR_UNAUTHORIZED"}), 401

        api_keys = _parse_api_keys()
        if not api_keys:
            logger.error("API_KEYS is not configured but API_AUTH_ENABLED=true")
            return jsonify({"error": "Server authentication not configured",
                            "code": "ERR_INTERNAL"}), 500

        role = api_keys.get(api_key)
        if role is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return jsonify({"error": "Invalid API key", "code": "ERR_UNAUTHORIZED"}), 401

        g.current_user_role = role
        g.api_key = api_key
        return None

    logger.info("Auth middleware installed (config API_AUTH_ENABLED=%s)", app.config.get("API_AUTH_ENABLED", "true"))


def current_role() -> str | None:
    return getattr(g, "current_user_role", None)


def current_user_id() -> str | None:
    return getattr(g, "current_user_id", None)
