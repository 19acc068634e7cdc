from __future__ import annotations

import logging
import os
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlparse

from .api_http import (
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    check_api_key,
    origin_allowed,
    read_json_body,
    send_empty_response,
    send_error_response,
    send_json_response,
)
from .api_routes import backup as api_routes_backup
from .api_routes import collections as api_routes_collections
from .api_routes import conversations as api_routes_conversations
from .api_routes import settings as api_routes_settings
from .api_routes import snippets as api_routes_snippets
from .config import SaveMyChatConfig, load_config
from .deadline import Deadline
from .errors import Cancelled, NotFound, Timeout, ValidationError
from .rate_limit import RateLimiter
from .store import ChatStore

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/health"
HEALTH_TIMEOUT_S = 5.0

_GET_ROUTES = (
    api_routes_conversations,
    api_routes_snippets,
    api_routes_collections,
    api_routes_settings,
    api_routes_backup,
)
_POST_ROUTES = _GET_ROUTES
_PUT_ROUTES = (api_routes_conversations, api_routes_snippets, api_routes_collections)
_DELETE_ROUTES = _PUT_ROUTES


class ApiHandler(BaseHTTPRequestHandler):
    config: SaveMyChatConfig = SaveMyChatConfig()
    limiter: RateLimiter = RateLimiter(0)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        if os.environ.get("SAVEMYCHAT_ACCESS_LOGS") == "1":
            super().log_message(format, *args)

    def end_headers(self) -> None:
        origin = self.headers.get("Origin")
        if origin_allowed(origin, self.config.cors_origins):
            self.send_header("Access-Control-Allow-Origin", origin or "")
            self.send_header("Access-Control-Allow-Credentials", "true")
            self.send_header("Vary", "Origin")
        super().end_headers()

    def _open_store(self) -> ChatStore:
        return ChatStore.from_config(self.config, initialize=False, check_same_thread=False)

    def _not_found(self) -> None:
        send_error_response(self, 404, "Not found")

    def _preflight_ok(self) -> bool:
        client = self.client_address[0] if self.client_address else "unknown"
        if not self.limiter.allow(client):
            send_error_response(self, 429, "Too many requests")
            return False
        return True

    def _authorised(self) -> bool:
        message = check_api_key(self, self.config.api_key)
        if message is not None:
            send_error_response(self, 401, message)
            return False
        return True

    def _send_health(self) -> None:
        store: ChatStore | None = None
        try:
            store = self._open_store()
            store.ping(Deadline(HEALTH_TIMEOUT_S))
        except Exception:
            logger.exception("health check failed")
            send_json_response(
                self,
                {"status": "unhealthy", "error": "Database connection failed"},
                status=503,
            )
            return
        finally:
            if store is not None:
                store.close()
        send_json_response(self, {"status": "healthy"})

    def _dispatch(self, method: str) -> None:
        parsed = urlparse(self.path)
        if not self._preflight_ok():
            return
        if method == "GET" and parsed.path == HEALTH_PATH:
            self._send_health()
            return
        if not parsed.path.startswith("/api/"):
            self._not_found()
            return
        if not self._authorised():
            return
        payload: dict[str, Any] | None = None
        if method in {"POST", "PUT"}:
            payload = read_json_body(self)
        deadline = Deadline(self.config.store_timeout_s)
        store: ChatStore | None = None
        try:
            store = self._open_store()
            if self._route(method, store, parsed.path, parsed.query, payload, deadline):
                return
            self._not_found()
        except ValidationError as exc:
            send_error_response(self, 400, str(exc))
        except NotFound as exc:
            send_error_response(self, 404, str(exc))
        except Timeout:
            send_error_response(self, 504, "Request timed out")
        except Cancelled:
            send_error_response(self, 503, "Request cancelled")
        except Exception as exc:
            logger.exception("%s %s failed", method, parsed.path)
            extra: dict[str, Any] = {}
            if os.environ.get("SAVEMYCHAT_DEBUG") == "1":
                extra["detail"] = str(exc)
            send_error_response(self, 500, "Internal server error", **extra)
        finally:
            if store is not None:
                store.close()

    def _route(
        self,
        method: str,
        store: ChatStore,
        path: str,
        query: str,
        payload: dict[str, Any] | None,
        deadline: Deadline,
    ) -> bool:
        if method == "GET":
            return any(route.handle_get(self, store, path, query, deadline) for route in _GET_ROUTES)
        if method == "POST":
            return any(
                route.handle_post(self, store, path, payload, deadline) for route in _POST_ROUTES
            )
        if method == "PUT":
            return any(
                route.handle_put(self, store, path, payload, deadline) for route in _PUT_ROUTES
            )
        if method == "DELETE":
            return any(route.handle_delete(self, store, path, deadline) for route in _DELETE_ROUTES)
        return False

    def do_OPTIONS(self) -> None:  # noqa: N802
        self.send_response(204)
        self.send_header("Access-Control-Allow-Methods", CORS_ALLOW_METHODS)
        self.send_header("Access-Control-Allow-Headers", CORS_ALLOW_HEADERS)
        self.send_header("Access-Control-Max-Age", "600")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_GET(self) -> None:  # noqa: N802
        self._dispatch("GET")

    def do_POST(self) -> None:  # noqa: N802
        self._dispatch("POST")

    def do_PUT(self) -> None:  # noqa: N802
        self._dispatch("PUT")

    def do_DELETE(self) -> None:  # noqa: N802
        self._dispatch("DELETE")


def make_handler(cfg: SaveMyChatConfig) -> type[ApiHandler]:
    """Bind a handler class to ``cfg`` and a fresh rate limiter."""
    return type(
        "BoundApiHandler",
        (ApiHandler,),
        {"config": cfg, "limiter": RateLimiter(cfg.rate_limit_max)},
    )


def build_server(cfg: SaveMyChatConfig | None = None) -> ThreadingHTTPServer:
    cfg = cfg or load_config()
    # Schema creation happens once here; request handlers open existing tables.
    ChatStore.from_config(cfg).close()
    server = ThreadingHTTPServer((cfg.host, cfg.port), make_handler(cfg))
    server.daemon_threads = True
    return server


def serve(cfg: SaveMyChatConfig | None = None) -> None:
    server = build_server(cfg)
    host, port = server.server_address[:2]
    logger.info("savemychat api listening on http://%s:%s", host, port)
    try:
        server.serve_forever()
    finally:
        server.server_close()
