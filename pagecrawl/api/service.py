"""Service layer: job lifecycle around the crawler for the API routes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator

from pagecrawl.crawl import Crawler, CrawlRequest
from pagecrawl.jobs.events import JobEvent, JobEventType, QueueSubscriber, SubscriptionRegistry
from pagecrawl.jobs.store import CrawlJob, JobStatus, JobStore

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({JobEventType.COMPLETED.value, JobEventType.FAILED.value})


class JobService:
    """Submit crawl jobs, run them in the background and fan out their events.

    Every status change goes through :meth:`_transition`, which stores the
    new snapshot and publishes exactly one event for it.
    """

    def __init__(self, crawler: Crawler, store: JobStore, registry: SubscriptionRegistry) -> None:
        self._crawler = crawler
        self._store = store
        self._registry = registry
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def submit(self, request: CrawlRequest) -> CrawlJob:
        """Record a pending job, announce it and start processing it.

        The pending record exists before any network activity; the returned
        snapshot is always ``pending``.
        """
        job = self._store.create(request.url)
        self._registry.publish(JobEvent.for_job(job))
        logger.info("crawl job submitted", extra={"job_id": job.id, "url": request.url})

        task = asyncio.create_task(self._process(job.id, request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    def get(self, job_id: str) -> CrawlJob | None:
        return self._store.get(job_id)

    def list_jobs(self) -> list[CrawlJob]:
        return self._store.list_jobs()

    async def _process(self, job_id: str, request: CrawlRequest) -> None:
        try:
            self._transition(job_id, JobStatus.PROCESSING)
            result = await self._crawler.crawl(request)
        except asyncio.CancelledError:
            self._transition(job_id, JobStatus.FAILED, error="Job cancelled")
            raise
        except Exception as exc:
            logger.exception("crawl job failed", extra={"job_id": job_id, "url": request.url})
            self._transition(job_id, JobStatus.FAILED, error=str(exc) or type(exc).__name__)
            return

        self._transition(job_id, JobStatus.COMPLETED, result=result)
        logger.info("crawl job completed", extra={"job_id": job_id, "url": request.url})

    def _transition(self, job_id: str, status: JobStatus, **changes: Any) -> CrawlJob:
        job = self._store.transition(job_id, status, **changes)
        self._registry.publish(JobEvent.for_job(job))
        return job

    async def stream(self, job_id: str) -> AsyncGenerator[dict[str, str], None]:
        """Yield SSE-formatted events for one job until it reaches a terminal state.

        A job that is already terminal yields its final event once.
        """
        subscriber = QueueSubscriber()
        self._registry.subscribe(subscriber, job_id)
        try:
            job = self._store.get(job_id)
            if job is not None and job.status.is_terminal:
                event = JobEvent.for_job(job)
                yield {"event": event.event.value, "data": json.dumps(event.to_message())}
                return

            async for message in subscriber.messages():
                yield {"event": message["event"], "data": json.dumps(message)}
                if message["event"] in TERMINAL_EVENTS:
                    return
        finally:
            self._registry.disconnect(subscriber)

    async def shutdown(self) -> None:
        """Cancel in-flight jobs and wait for them to settle."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("cancelled in-flight crawl jobs", extra={"count": len(tasks)})
