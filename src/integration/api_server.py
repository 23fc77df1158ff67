"""
Minimal HTTP API server for the position valuation service.

This server is intentionally small and dependency-free (stdlib only).
It serves:
- container health checks
- ``GET /positions`` and ``GET /tokens`` over the configured snapshot file

Every request re-reads the snapshot and recomputes from scratch; the server
keeps no derived state between requests.

Security posture:
- Default-deny CORS (no wildcard by default)
- Basic rate limiting (per-IP, token bucket)
- Tight request parsing and bounded request sizes
"""

from __future__ import annotations

import logging
import os
import json
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional, Sequence, Set
from urllib.parse import parse_qs

from ..core.valuation import EngineConfig, ValuationError, default_config, load_config
from .pipeline import positions_payload, run_pipeline, tokens_payload
from .snapshot import load_snapshot

logger = logging.getLogger(__name__)

SERVICE_NAME = "perp-valuation-api"


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def _env_str(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip()
    return v if v else default


def _parse_cors_origins(value: str) -> Set[str]:
    """
    Parse CORS origins list. Supports comma-separated values.

    Default is empty (deny CORS); '*' is ignored.
    """
    out: Set[str] = set()
    s = (value or "").strip()
    if not s:
        return out
    for item in s.split(","):
        origin = item.strip()
        if not origin or origin == "*":
            continue
        out.add(origin)
    return out


def _query_flag(query: Dict[str, List[str]], name: str) -> bool:
    values = query.get(name)
    if not values:
        return False
    return values[-1].strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RateLimitBucket:
    tokens: float
    updated_at: float


class TokenBucketRateLimiter:
    """
    Per-IP token bucket.

    Target complexity: O(1) per request while below ``max_buckets`` keys. At
    the cap a new key first drops buckets that have refilled to capacity, then
    the least recently used ones.
    """

    def __init__(self, *, rpm: int, max_buckets: int = 10_000) -> None:
        self._rpm = int(max(0, rpm))
        self._capacity = float(max(1, rpm)) if rpm > 0 else 0.0
        self._refill_per_s = float(rpm) / 60.0 if rpm > 0 else 0.0
        self._max_buckets = int(max(1, max_buckets))
        self._buckets: dict[str, RateLimitBucket] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def _is_full(self, b: RateLimitBucket, now: float) -> bool:
        dt = max(0.0, now - float(b.updated_at))
        return float(b.tokens) + dt * self._refill_per_s >= self._capacity

    def _prune(self, now: float) -> None:
        for key in [k for k, b in self._buckets.items() if self._is_full(b, now)]:
            del self._buckets[key]
        while len(self._buckets) >= self._max_buckets:
            oldest = min(self._buckets, key=lambda k: self._buckets[k].updated_at)
            del self._buckets[oldest]

    def allow(self, key: str) -> bool:
        if self._rpm <= 0:
            return True
        with self._lock:
            now = time.time()
            b = self._buckets.get(key)
            if b is None:
                if len(self._buckets) >= self._max_buckets:
                    self._prune(now)
                self._buckets[key] = RateLimitBucket(tokens=self._capacity - 1.0, updated_at=now)
                return True
            dt = max(0.0, now - float(b.updated_at))
            b.tokens = min(self._capacity, float(b.tokens) + dt * self._refill_per_s)
            b.updated_at = now
            if b.tokens >= 1.0:
                b.tokens -= 1.0
                return True
            return False


class _Handler(BaseHTTPRequestHandler):
    server_version = "PerpValuationApi/1"

    # BaseHTTPRequestHandler uses these to cap request line / header size.
    max_requestline = 8192
    max_headers = 100

    def _client_ip(self) -> str:
        # We do NOT trust X-Forwarded-For in-container.
        try:
            return str(self.client_address[0])
        except (IndexError, TypeError):
            return "unknown"

    def _write_json(self, status: int, obj: object, *, cors_origin: Optional[str]) -> None:
        body = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        self.send_response(int(status))
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        if cors_origin is not None:
            self.send_header("Access-Control-Allow-Origin", cors_origin)
            self.send_header("Vary", "Origin")
        self.end_headers()
        self.wfile.write(body)

    def _maybe_rate_limit(self) -> bool:
        limiter: TokenBucketRateLimiter = getattr(self.server, "rate_limiter")  # type: ignore[attr-defined]
        return limiter.allow(self._client_ip())

    def _allowed_cors_origin_or_none(self) -> Optional[str]:
        allowed: Set[str] = getattr(self.server, "cors_origins")  # type: ignore[attr-defined]
        origin = self.headers.get("Origin")
        if not isinstance(origin, str) or not origin:
            return None
        return origin if origin in allowed else None

    def do_OPTIONS(self) -> None:  # noqa: N802
        cors_origin = self._allowed_cors_origin_or_none()
        self.send_response(204)
        if cors_origin is not None:
            self.send_header("Access-Control-Allow-Origin", cors_origin)
            self.send_header("Access-Control-Allow-Methods", "GET,OPTIONS")
            self.send_header("Access-Control-Allow-Headers", "Content-Type")
            self.send_header("Access-Control-Max-Age", "600")
            self.send_header("Vary", "Origin")
        self.end_headers()

    def _valuate(self, query: Dict[str, List[str]], *, cors_origin: Optional[str], tokens_only: bool) -> None:
        snapshot_path: str = getattr(self.server, "snapshot_path")  # type: ignore[attr-defined]
        config: EngineConfig = getattr(self.server, "engine_config")  # type: ignore[attr-defined]
        account = (query.get("account") or [""])[-1].strip() or None
        try:
            snapshot = load_snapshot(snapshot_path)
            result = run_pipeline(
                snapshot,
                account=account,
                show_pnl_after_fees=_query_flag(query, "showPnlAfterFees"),
                include_delta=_query_flag(query, "includeDelta"),
                config=config,
            )
        except (ValuationError, OSError) as e:
            logger.warning("valuation failed: %s", e)
            self._write_json(400, {"success": False, "message": str(e)}, cors_origin=cors_origin)
            return
        except Exception:
            logger.exception("valuation crashed")
            self._write_json(500, {"success": False, "message": "internal_error"}, cors_origin=cors_origin)
            return

        if tokens_only:
            self._write_json(200, {"success": True, "tokens": tokens_payload(result)}, cors_origin=cors_origin)
        else:
            self._write_json(
                200, {"success": True, "positions": positions_payload(result)}, cors_origin=cors_origin
            )

    def do_GET(self) -> None:  # noqa: N802
        if not self._maybe_rate_limit():
            self._write_json(429, {"success": False, "message": "rate_limited"}, cors_origin=None)
            return

        cors_origin = self._allowed_cors_origin_or_none()
        path, _, raw_query = (self.path or "").partition("?")
        try:
            query = parse_qs(raw_query, max_num_fields=16)
        except ValueError:
            self._write_json(400, {"success": False, "message": "bad_query"}, cors_origin=cors_origin)
            return

        if path == "/health":
            self._write_json(200, {"status": "healthy", "service": SERVICE_NAME}, cors_origin=cors_origin)
            return
        if path == "/positions":
            self._valuate(query, cors_origin=cors_origin, tokens_only=False)
            return
        if path == "/tokens":
            self._valuate(query, cors_origin=cors_origin, tokens_only=True)
            return

        self._write_json(404, {"success": False, "message": "not_found"}, cors_origin=cors_origin)

    def log_message(self, fmt: str, *args: object) -> None:
        # Keep logs minimal (no query strings: they carry account addresses).
        msg = fmt % args if args else fmt
        logger.info("%s %s => %s", self.command, (self.path or "").split("?", 1)[0], msg)


def make_server(
    host: str,
    port: int,
    *,
    snapshot_path: str,
    config: Optional[EngineConfig] = None,
    cors_origins: Optional[Set[str]] = None,
    rpm: int = 600,
) -> ThreadingHTTPServer:
    httpd = ThreadingHTTPServer((host, port), _Handler)
    # Attach config to server instance (used by handler).
    httpd.snapshot_path = snapshot_path  # type: ignore[attr-defined]
    httpd.engine_config = config or default_config()  # type: ignore[attr-defined]
    httpd.cors_origins = set(cors_origins or ())  # type: ignore[attr-defined]
    httpd.rate_limiter = TokenBucketRateLimiter(rpm=rpm)  # type: ignore[attr-defined]
    return httpd


def main(argv: Optional[Sequence[str]] = None) -> int:
    _ = argv
    logging.basicConfig(level=_env_str("LOG_LEVEL", "INFO").upper())
    host = _env_str("API_HOST", "127.0.0.1")
    port = _env_int("API_PORT", 5000, lo=1, hi=65535)
    cors_origins = _parse_cors_origins(_env_str("CORS_ORIGINS", ""))
    rpm = _env_int("RATE_LIMIT_RPM", 600, lo=0, hi=1_000_000)
    snapshot_path = _env_str("VALUATION_SNAPSHOT", "snapshot.json")
    config_path = _env_str("VALUATION_CONFIG", "")
    config = load_config(config_path) if config_path else default_config()

    httpd = make_server(host, port, snapshot_path=snapshot_path, config=config, cors_origins=cors_origins, rpm=rpm)
    logger.info(
        "%s listening on http://%s:%d (snapshot=%s, cors_origins=%s, rpm=%d)",
        SERVICE_NAME, host, port, snapshot_path, sorted(cors_origins), rpm,
    )
    httpd.serve_forever(poll_interval=0.25)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
