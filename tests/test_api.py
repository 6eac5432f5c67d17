"""HTTP and WebSocket endpoint tests."""

import time

from fastapi.testclient import TestClient

from pagecrawl.main import create_app
from tests.fakes import FakeCrawler


def _wait_for_status(client, job_id, statuses=("completed", "failed"), timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/status/{job_id}").json()
        if body["status"] in statuses:
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} did not reach {statuses}")


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert "timestamp" in body


def test_about(client):
    body = client.get("/about").json()
    assert body["name"] == "pagecrawl"
    assert "version" in body


def test_crawl_requires_url(client):
    resp = client.post("/crawl", json={"options": {}})
    assert resp.status_code == 400
    assert resp.json() == {"error": "URL is required"}


def test_crawl_rejects_non_string_url(client):
    resp = client.post("/crawl", json={"url": 42})
    assert resp.status_code == 400
    assert resp.json() == {"error": "URL is required"}


def test_crawl_rejects_bad_proxy(client):
    resp = client.post("/crawl", json={"url": "https://example.com", "options": {"proxy": "ftp://p.example:21"}})
    assert resp.status_code == 400
    assert "Unsupported proxy protocol" in resp.json()["error"]


def test_crawl_rejects_negative_depth(client):
    resp = client.post("/crawl", json={"url": "https://example.com", "options": {"maxDepth": -1}})
    assert resp.status_code == 400
    assert "maxDepth" in resp.json()["error"]


def test_malformed_body_is_400(client):
    resp = client.post("/crawl", content="not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_crawl_accepted_and_completes(client, fake_crawler):
    resp = client.post("/crawl", json={"url": "https://example.com/a"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "pending"
    assert body["url"] == "https://example.com/a"

    job = _wait_for_status(client, body["jobId"])
    assert job["status"] == "completed"
    assert job["result"]["title"] == "Fake page"
    assert job["completedAt"] is not None


def test_options_are_converted(client, fake_crawler):
    options = {
        "maxDepth": 2,
        "timeout": 5,
        "render": False,
        "userAgent": "ua/1",
        "proxy": ["p1.example:8080", "socks5://p2.example"],
        "extractionSchema": {
            "title": "h2",
            "custom": [{"name": "price", "selector": ".price", "transform": "int"}],
        },
    }
    resp = client.post("/crawl", json={"url": "https://example.com/b", "options": options})
    _wait_for_status(client, resp.json()["jobId"])

    request = fake_crawler.requests[0]
    assert request.max_depth == 2
    assert request.timeout == 5
    assert request.render is False
    assert request.user_agent == "ua/1"
    assert request.proxy == ["p1.example:8080", "socks5://p2.example"]
    assert request.extraction_schema.title == "h2"
    assert request.extraction_schema.custom[0].transform("1,234") == 1234


def test_failed_job_reports_error():
    crawler = FakeCrawler(error=RuntimeError("navigation exploded"))
    with TestClient(create_app(crawler=crawler)) as client:
        job_id = client.post("/crawl", json={"url": "https://example.com"}).json()["jobId"]
        job = _wait_for_status(client, job_id)
    assert job["status"] == "failed"
    assert job["error"] == "navigation exploded"


def test_status_unknown_job(client):
    resp = client.get("/status/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Job not found"}


def test_events_unknown_job(client):
    resp = client.get("/status/does-not-exist/events")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Job not found"}


def test_jobs_list(client):
    job_id = client.post("/crawl", json={"url": "https://example.com/c"}).json()["jobId"]
    _wait_for_status(client, job_id)

    jobs = client.get("/jobs").json()["jobs"]
    assert len(jobs) == 1
    assert jobs[0]["id"] == job_id
    assert set(jobs[0]) == {"id", "status", "url", "createdAt", "completedAt"}


def test_websocket_pushes_subscribed_job_events():
    crawler = FakeCrawler(delay=0.5)
    with TestClient(create_app(crawler=crawler)) as client:
        job_id = client.post("/crawl", json={"url": "https://example.com/ws"}).json()["jobId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_text("garbage")
            ws.send_json({"type": "subscribe"})
            ws.send_json({"type": "subscribe", "jobId": job_id})

            message = ws.receive_json()
            while message["event"] != "job:completed":
                message = ws.receive_json()

    assert message["jobId"] == job_id
    assert message["job"]["status"] == "completed"
    assert "timestamp" in message


def test_websocket_ignores_binary_frames_and_keeps_serving():
    crawler = FakeCrawler(delay=0.5)
    with TestClient(create_app(crawler=crawler)) as client:
        job_id = client.post("/crawl", json={"url": "https://example.com/binary"}).json()["jobId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\xff\xfe\x00")
            ws.send_bytes(b'{"type": "subscribe", "jobId": "' + job_id.encode() + b'"}')

            message = ws.receive_json()
            while message["event"] != "job:completed":
                message = ws.receive_json()

    assert message["jobId"] == job_id
