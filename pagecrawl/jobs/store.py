"""In-memory job records with an enforced status state machine."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pagecrawl.crawl.models import ScrapedData

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class InvalidTransitionError(Exception):
    def __init__(self, job_id: str, current: JobStatus, target: JobStatus) -> None:
        super().__init__(f"Job {job_id} cannot move from {current.value} to {target.value}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobNotFoundError(KeyError):
    pass


class CrawlJob(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    url: str
    status: JobStatus = JobStatus.PENDING
    result: ScrapedData | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        """Public projection of the job, as sent to HTTP and event consumers."""
        return self.model_dump(mode="json", by_alias=True)

    def summary(self) -> dict[str, Any]:
        return self.model_dump(
            mode="json",
            by_alias=True,
            include={"id", "status", "url", "created_at", "completed_at"},
        )


def _generate_job_id() -> str:
    return uuid.uuid4().hex[:12]


class JobStore:
    """Owns every job record for the life of the process.

    Readers always get copies, so a snapshot handed to a subscriber never
    changes underneath it.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, CrawlJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def create(self, url: str) -> CrawlJob:
        job = CrawlJob(id=_generate_job_id(), url=url)
        self._jobs[job.id] = job
        logger.debug("job created", extra={"job_id": job.id, "url": url})
        return job.model_copy(deep=True)

    def get(self, job_id: str) -> CrawlJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def list_jobs(self) -> list[CrawlJob]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    def transition(
        self,
        job_id: str,
        status: JobStatus,
        *,
        result: ScrapedData | None = None,
        error: str | None = None,
    ) -> CrawlJob:
        """Move a job to *status* and return the updated snapshot.

        Raises:
            JobNotFoundError: If no job has that id.
            InvalidTransitionError: If the state machine forbids the move.
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if status not in ALLOWED_TRANSITIONS[job.status]:
            raise InvalidTransitionError(job_id, job.status, status)

        update: dict[str, Any] = {"status": status}
        if status is JobStatus.COMPLETED:
            update["result"] = result
        if status is JobStatus.FAILED:
            update["error"] = error or "Unknown error"
        if status.is_terminal:
            update["completed_at"] = datetime.now(timezone.utc)

        job = job.model_copy(update=update)
        self._jobs[job_id] = job
        logger.debug("job transition", extra={"job_id": job_id, "status": status.value})
        return job.model_copy(deep=True)
