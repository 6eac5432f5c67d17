"""Job store, event fan-out and job service tests."""

import asyncio
import json

import pytest

from pagecrawl.api.service import JobService
from pagecrawl.crawl import CrawlError, CrawlRequest
from pagecrawl.crawl.models import ScrapedData
from pagecrawl.jobs.events import (
    JobEvent,
    JobEventType,
    QueueSubscriber,
    SubscriptionRegistry,
    parse_client_message,
)
from pagecrawl.jobs.store import InvalidTransitionError, JobNotFoundError, JobStatus, JobStore
from tests.fakes import FakeCrawler

URL = "https://example.com/page"


class RecordingRegistry(SubscriptionRegistry):
    def __init__(self):
        super().__init__()
        self.published: list[JobEvent] = []

    def publish(self, event):
        self.published.append(event)
        return super().publish(event)


async def _drain(subscriber: QueueSubscriber, count: int, timeout: float = 2.0) -> list[dict]:
    return [await asyncio.wait_for(subscriber.get(), timeout) for _ in range(count)]


# --- JobStore ---


def test_create_starts_pending():
    store = JobStore()
    job = store.create(URL)
    assert job.status is JobStatus.PENDING
    assert job.url == URL
    assert job.completed_at is None
    assert store.get(job.id) == job


def test_happy_path_transitions():
    store = JobStore()
    job = store.create(URL)
    store.transition(job.id, JobStatus.PROCESSING)
    result = ScrapedData(url=URL, content="body")
    done = store.transition(job.id, JobStatus.COMPLETED, result=result)

    assert done.status is JobStatus.COMPLETED
    assert done.result.content == "body"
    assert done.completed_at is not None


def test_pending_may_fail_directly():
    store = JobStore()
    job = store.create(URL)
    failed = store.transition(job.id, JobStatus.FAILED, error="boom")
    assert failed.error == "boom"
    assert failed.completed_at is not None


@pytest.mark.parametrize(
    "path",
    [
        [JobStatus.COMPLETED],
        [JobStatus.PROCESSING, JobStatus.PENDING],
        [JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED],
        [JobStatus.FAILED, JobStatus.PROCESSING],
    ],
)
def test_invalid_transitions_rejected(path):
    store = JobStore()
    job = store.create(URL)
    *allowed, forbidden = path
    for status in allowed:
        store.transition(job.id, status)
    with pytest.raises(InvalidTransitionError):
        store.transition(job.id, forbidden)


def test_transition_unknown_job():
    with pytest.raises(JobNotFoundError):
        JobStore().transition("nope", JobStatus.PROCESSING)


def test_reads_are_copies():
    store = JobStore()
    job = store.create(URL)
    snapshot = store.get(job.id)
    snapshot.status = JobStatus.FAILED
    assert store.get(job.id).status is JobStatus.PENDING


def test_wire_projection_is_camel_case():
    job = JobStore().create(URL)
    wire = job.to_wire()
    assert wire["status"] == "pending"
    assert "createdAt" in wire and "completedAt" in wire
    assert set(job.summary()) == {"id", "status", "url", "createdAt", "completedAt"}


# --- SubscriptionRegistry ---


def test_publish_reaches_only_subscribers_of_that_job():
    registry = SubscriptionRegistry()
    a, b = QueueSubscriber(), QueueSubscriber()
    registry.subscribe(a, "job-1")
    registry.subscribe(b, "job-2")

    job = JobStore().create(URL)
    event = JobEvent(event=JobEventType.CREATED, job_id="job-1", job=job.to_wire())
    assert registry.publish(event) == 1
    assert a._queue.qsize() == 1
    assert b._queue.qsize() == 0


def test_disconnect_removes_subscriber_everywhere():
    registry = SubscriptionRegistry()
    subscriber, other = QueueSubscriber(), QueueSubscriber()
    registry.subscribe(subscriber, "job-1")
    registry.subscribe(subscriber, "job-2")
    registry.subscribe(other, "job-2")

    registry.disconnect(subscriber)

    assert registry.subscribers("job-1") == frozenset()
    assert registry.subscribers("job-2") == frozenset({other})
    assert registry.subscriptions(subscriber) == frozenset()
    assert registry.job_count == 1


def test_unsubscribe_single_job():
    registry = SubscriptionRegistry()
    subscriber = QueueSubscriber()
    registry.subscribe(subscriber, "job-1")
    registry.subscribe(subscriber, "job-2")
    registry.unsubscribe(subscriber, "job-1")
    assert registry.subscriptions(subscriber) == frozenset({"job-2"})
    assert registry.job_count == 1


def test_event_message_shape():
    job = JobStore().create(URL)
    message = JobEvent.for_job(job).to_message()
    assert message["event"] == "job:created"
    assert message["jobId"] == job.id
    assert message["job"]["url"] == URL
    assert "timestamp" in message


@pytest.mark.parametrize(
    "raw",
    ["not json", "{}", '{"type": "subscribe"}', '{"type": "shout", "jobId": "x"}', "[]"],
)
def test_malformed_client_messages_ignored(raw):
    assert parse_client_message(raw) is None


def test_client_message_parsed():
    message = parse_client_message(json.dumps({"type": "unsubscribe", "jobId": "abc"}))
    assert message.type == "unsubscribe"
    assert message.job_id == "abc"


# --- JobService ---


@pytest.mark.asyncio
async def test_submit_emits_events_in_order():
    registry = RecordingRegistry()
    service = JobService(FakeCrawler(), JobStore(), registry)
    subscriber = QueueSubscriber()

    job = service.submit(CrawlRequest(url=URL))
    registry.subscribe(subscriber, job.id)
    assert job.status is JobStatus.PENDING

    messages = await _drain(subscriber, 2)

    assert [m["event"] for m in messages] == ["job:processing", "job:completed"]
    assert messages[1]["job"]["result"]["title"] == "Fake page"
    assert [e.event for e in registry.published] == [
        JobEventType.CREATED,
        JobEventType.PROCESSING,
        JobEventType.COMPLETED,
    ]
    assert service.get(job.id).status is JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_crawl_failure_marks_job_failed():
    crawler = FakeCrawler(error=CrawlError(URL, f"Failed to crawl {URL}: HTTP 500"))
    service = JobService(crawler, JobStore(), SubscriptionRegistry())
    subscriber = QueueSubscriber()

    job = service.submit(CrawlRequest(url=URL))
    service.registry.subscribe(subscriber, job.id)
    messages = await _drain(subscriber, 2)

    assert messages[-1]["event"] == "job:failed"
    stored = service.get(job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.error == f"Failed to crawl {URL}: HTTP 500"
    assert stored.completed_at is not None


@pytest.mark.asyncio
async def test_list_jobs(job_service):
    first = job_service.submit(CrawlRequest(url=URL))
    second = job_service.submit(CrawlRequest(url=URL + "/2"))
    assert [j.id for j in job_service.list_jobs()] == [first.id, second.id]


@pytest.mark.asyncio
async def test_stream_yields_until_terminal():
    service = JobService(FakeCrawler(delay=0.05), JobStore(), SubscriptionRegistry())
    job = service.submit(CrawlRequest(url=URL))

    events = [item async for item in service.stream(job.id)]

    assert [e["event"] for e in events] == ["job:processing", "job:completed"]
    assert json.loads(events[-1]["data"])["jobId"] == job.id
    assert service.registry.job_count == 0


@pytest.mark.asyncio
async def test_stream_of_finished_job_yields_final_event_once():
    service = JobService(FakeCrawler(), JobStore(), SubscriptionRegistry())
    job = service.submit(CrawlRequest(url=URL))
    await asyncio.sleep(0.05)

    events = [item async for item in service.stream(job.id)]

    assert [e["event"] for e in events] == ["job:completed"]


@pytest.mark.asyncio
async def test_shutdown_cancels_running_jobs():
    service = JobService(FakeCrawler(delay=10), JobStore(), SubscriptionRegistry())
    job = service.submit(CrawlRequest(url=URL))
    await asyncio.sleep(0)

    await service.shutdown()

    stored = service.get(job.id)
    assert stored.status is JobStatus.FAILED
    assert stored.error == "Job cancelled"
