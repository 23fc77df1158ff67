from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request

import pytest

from src.integration import api_server
from src.integration.api_server import TokenBucketRateLimiter, _parse_cors_origins, make_server

from conftest import USD


@pytest.fixture
def server(snapshot_file):
    httpd = make_server("127.0.0.1", 0, snapshot_path=str(snapshot_file), cors_origins={"https://app.example"})
    thread = threading.Thread(target=httpd.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    thread.start()
    try:
        yield httpd
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)


def _get(httpd, path, headers=None):
    host, port = httpd.server_address[:2]
    req = urllib.request.Request(f"http://{host}:{port}{path}", headers=headers or {})
    opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
    try:
        with opener.open(req, timeout=5) as resp:
            return resp.status, dict(resp.headers), json.loads(resp.read())
    except urllib.error.HTTPError as e:
        return e.code, dict(e.headers), json.loads(e.read())


def test_health(server):
    status, _, body = _get(server, "/health")
    assert status == 200
    assert body["status"] == "healthy"


def test_positions(server):
    status, _, body = _get(server, "/positions?showPnlAfterFees=true")
    assert status == 200
    assert body["success"] is True
    (pos,) = body["positions"]
    assert pos["size"] == str(1000 * USD)
    assert pos["deltaStr"] == "-$2.05"


def test_tokens(server):
    status, _, body = _get(server, "/tokens")
    assert status == 200
    assert len(body["tokens"]) == 2


def test_account_query(server):
    _, _, body = _get(server, "/positions?account=0xother")
    assert body["positions"][0]["account"] == "0xother"


def test_unknown_route(server):
    status, _, body = _get(server, "/nope")
    assert status == 404
    assert body["success"] is False


def test_too_many_query_fields_is_400(server):
    query = "&".join(f"f{i}=1" for i in range(20))
    status, _, body = _get(server, f"/positions?{query}")
    assert status == 400
    assert body == {"success": False, "message": "bad_query"}
    # the server keeps serving afterwards
    assert _get(server, "/health")[0] == 200


def test_bad_snapshot_is_400(server, snapshot_file):
    snapshot_file.write_text("{", encoding="utf-8")
    status, _, body = _get(server, "/positions")
    assert status == 400
    assert "not valid JSON" in body["message"]


def test_cors_allowed_origin(server):
    _, headers, _ = _get(server, "/health", {"Origin": "https://app.example"})
    assert headers.get("Access-Control-Allow-Origin") == "https://app.example"


def test_cors_other_origin(server):
    _, headers, _ = _get(server, "/health", {"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in headers


def test_rate_limiter():
    limiter = TokenBucketRateLimiter(rpm=2)
    assert limiter.allow("a")
    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")
    assert TokenBucketRateLimiter(rpm=0).allow("a")


def test_parse_cors_origins():
    assert _parse_cors_origins(" https://a , *, ,https://b") == {"https://a", "https://b"}
    assert _parse_cors_origins("") == set()


def test_rate_limiter_map_is_bounded():
    limiter = TokenBucketRateLimiter(rpm=600, max_buckets=4)
    for i in range(100):
        assert limiter.allow(f"10.0.0.{i}")
        assert len(limiter) <= 4


def test_rate_limiter_evicts_refilled_buckets_first(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(api_server.time, "time", lambda: now[0])
    limiter = TokenBucketRateLimiter(rpm=60, max_buckets=3)
    limiter.allow("idle")
    now[0] += 120.0
    limiter.allow("busy-1")
    limiter.allow("busy-2")
    for _ in range(59):
        limiter.allow("busy-1")
    # at the cap: "idle" has refilled and goes first, the drained bucket is kept
    limiter.allow("new")
    assert len(limiter) == 3
    assert not limiter.allow("busy-1")


def test_rate_limiter_is_thread_safe():
    limiter = TokenBucketRateLimiter(rpm=100)
    allowed = []

    def worker():
        for _ in range(50):
            allowed.append(limiter.allow("shared"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    # 100 tokens of capacity; refill during the run is at most a few tokens
    assert 100 <= sum(allowed) <= 105
