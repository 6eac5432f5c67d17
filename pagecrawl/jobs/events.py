"""Job events and per-job subscriber fan-out."""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .store import CrawlJob, JobStatus

logger = logging.getLogger(__name__)


class JobEventType(str, Enum):
    CREATED = "job:created"
    PROCESSING = "job:processing"
    COMPLETED = "job:completed"
    FAILED = "job:failed"


EVENT_FOR_STATUS = {
    JobStatus.PENDING: JobEventType.CREATED,
    JobStatus.PROCESSING: JobEventType.PROCESSING,
    JobStatus.COMPLETED: JobEventType.COMPLETED,
    JobStatus.FAILED: JobEventType.FAILED,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobEvent(_CamelModel):
    event: JobEventType
    job_id: str
    job: dict[str, Any]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_job(cls, job: CrawlJob) -> JobEvent:
        """Build the event announcing *job*'s current status."""
        return cls(event=EVENT_FOR_STATUS[job.status], job_id=job.id, job=job.to_wire())

    @property
    def is_terminal(self) -> bool:
        return self.event in (JobEventType.COMPLETED, JobEventType.FAILED)

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ClientMessage(_CamelModel):
    type: Literal["subscribe", "unsubscribe"]
    job_id: str


def parse_client_message(raw: str | bytes) -> ClientMessage | None:
    """Parse a subscribe/unsubscribe frame; anything else yields ``None``."""
    try:
        return ClientMessage.model_validate_json(raw)
    except ValueError:
        logger.debug("ignoring malformed client message")
        return None


class Subscriber(Protocol):
    """Anything that can receive published job events."""

    def deliver(self, message: dict[str, Any]) -> None: ...


_subscriber_ids = itertools.count(1)


class QueueSubscriber:
    """Subscriber that buffers messages in an unbounded ``asyncio.Queue``.

    ``deliver`` never blocks, so one slow consumer cannot stall publishing
    to the others. ``close`` enqueues a ``None`` sentinel that ends
    :meth:`messages`.
    """

    def __init__(self) -> None:
        self.id = next(_subscriber_ids)
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

    def __repr__(self) -> str:
        return f"QueueSubscriber(id={self.id})"

    def deliver(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    def close(self) -> None:
        self._queue.put_nowait(None)

    async def get(self) -> dict[str, Any] | None:
        return await self._queue.get()

    async def messages(self):
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item


class SubscriptionRegistry:
    """Job id -> subscribers, plus the reverse index used for cleanup.

    Subscriptions are always scoped to one job id. ``disconnect`` removes a
    subscriber from every job it was part of and drops empty entries.
    """

    def __init__(self) -> None:
        self._by_job: dict[str, set[Subscriber]] = {}
        self._by_subscriber: dict[Subscriber, set[str]] = {}

    def subscribe(self, subscriber: Subscriber, job_id: str) -> None:
        self._by_job.setdefault(job_id, set()).add(subscriber)
        self._by_subscriber.setdefault(subscriber, set()).add(job_id)
        logger.debug("subscribed", extra={"job_id": job_id, "subscriber": repr(subscriber)})

    def unsubscribe(self, subscriber: Subscriber, job_id: str) -> None:
        subscribers = self._by_job.get(job_id)
        if subscribers is not None:
            subscribers.discard(subscriber)
            if not subscribers:
                del self._by_job[job_id]
        job_ids = self._by_subscriber.get(subscriber)
        if job_ids is not None:
            job_ids.discard(job_id)
            if not job_ids:
                del self._by_subscriber[subscriber]

    def disconnect(self, subscriber: Subscriber) -> None:
        for job_id in list(self._by_subscriber.get(subscriber, ())):
            self.unsubscribe(subscriber, job_id)
        self._by_subscriber.pop(subscriber, None)

    def subscribers(self, job_id: str) -> frozenset[Subscriber]:
        return frozenset(self._by_job.get(job_id, ()))

    def subscriptions(self, subscriber: Subscriber) -> frozenset[str]:
        return frozenset(self._by_subscriber.get(subscriber, ()))

    @property
    def job_count(self) -> int:
        return len(self._by_job)

    def publish(self, event: JobEvent) -> int:
        """Deliver *event* to the job's current subscribers; return how many."""
        message = event.to_message()
        delivered = 0
        for subscriber in self.subscribers(event.job_id):
            try:
                subscriber.deliver(message)
                delivered += 1
            except Exception:
                logger.warning(
                    "event delivery failed",
                    extra={"job_id": event.job_id, "subscriber": repr(subscriber)},
                    exc_info=True,
                )
        logger.debug(
            "event published",
            extra={"job_id": event.job_id, "event": event.event.value, "delivered": delivered},
        )
        return delivered
