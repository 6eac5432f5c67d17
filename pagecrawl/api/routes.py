"""POST /crawl, GET /status/{id}, GET /jobs and WS /ws handlers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, WebSocket
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from pagecrawl.api.schemas import CrawlAccepted, CrawlOptions, validation_message
from pagecrawl.api.service import JobService
from pagecrawl.jobs.events import QueueSubscriber, parse_client_message

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(request: Request) -> JobService:
    return request.app.state.service


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/crawl")
async def create_crawl(
    body: dict[str, Any] | None = Body(default=None),
    service: JobService = Depends(_get_service),
):
    body = body or {}
    url = body.get("url")
    if not url or not isinstance(url, str):
        return _error(400, "URL is required")

    try:
        options = CrawlOptions.model_validate(body.get("options") or {})
        crawl_request = options.to_request(url)
    except ValidationError as exc:
        return _error(400, validation_message(exc))
    except ValueError as exc:
        return _error(400, str(exc))

    job = service.submit(crawl_request)
    return CrawlAccepted(job_id=job.id, status=job.status.value, url=job.url).model_dump(by_alias=True)


@router.get("/status/{job_id}")
async def get_status(job_id: str, service: JobService = Depends(_get_service)):
    job = service.get(job_id)
    if job is None:
        return _error(404, "Job not found")
    return job.to_wire()


@router.get("/status/{job_id}/events")
async def stream_status(job_id: str, service: JobService = Depends(_get_service)):
    if service.get(job_id) is None:
        return _error(404, "Job not found")
    return EventSourceResponse(service.stream(job_id))


@router.get("/jobs")
async def list_jobs(service: JobService = Depends(_get_service)):
    return {"jobs": [job.summary() for job in service.list_jobs()]}


@router.websocket("/ws")
async def job_events(websocket: WebSocket):
    """Push job events for the ids this connection subscribed to."""
    service: JobService = websocket.app.state.service
    registry = service.registry
    subscriber = QueueSubscriber()
    await websocket.accept()
    logger.debug("websocket connected", extra={"subscriber": repr(subscriber)})

    async def forward() -> None:
        async for message in subscriber.messages():
            await websocket.send_json(message)

    sender = asyncio.create_task(forward())
    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break
            raw = frame.get("text") or frame.get("bytes")
            if raw is None:
                continue
            message = parse_client_message(raw)
            if message is None:
                continue
            if message.type == "subscribe":
                registry.subscribe(subscriber, message.job_id)
            else:
                registry.unsubscribe(subscriber, message.job_id)
    finally:
        logger.debug("websocket disconnected", extra={"subscriber": repr(subscriber)})
        registry.disconnect(subscriber)
        subscriber.close()
        sender.cancel()
