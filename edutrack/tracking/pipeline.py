"""
Event tracking pipeline

Buffers tracking events in memory, enriches them with client context and
ships them to the collector in batches. A flush happens when the queue
reaches the batch size or on a fixed timer, whichever comes first. Failed
batches are put back at the front of the queue and retried on the next
trigger.
"""

import asyncio
from collections import deque
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import httpx
import structlog
from pydantic import BaseModel, Field

from edutrack.core.config import Settings, settings
from edutrack.schemas.event import (
    CourseEventPayload,
    EventCategory,
    EventPayload,
    EventType,
    LLMEventPayload,
    ProficiencyEventPayload,
    TrackingEvent,
)
from edutrack.tracking.environment import EnvironmentContext, ServerEnvironment, enrich

logger = structlog.get_logger()

Payload = BaseModel | Mapping[str, Any]


class CollectorError(Exception):
    """Collector answered with a non-2xx status"""

    def __init__(self, status_code: int, reason: str):
        super().__init__(f"Server returned {status_code}: {reason}")
        self.status_code = status_code


class PipelineOptions(BaseModel):
    """Construction options for an EventPipeline"""

    batch_size: int = Field(default=10, ge=1)
    flush_interval: int = Field(default=5000, gt=0)  # milliseconds
    debug: bool = False
    endpoint: str = "/api/tracking/event"
    request_timeout: float | None = 10.0  # seconds

    @classmethod
    def from_settings(cls, config: Settings) -> "PipelineOptions":
        return cls(
            batch_size=config.tracking_batch_size,
            flush_interval=config.tracking_flush_interval,
            debug=config.tracking_debug,
            endpoint=config.tracking_endpoint,
            request_timeout=config.tracking_request_timeout
        )


def coerce_payload(model_cls: type[EventPayload], payload: Payload | None) -> EventPayload:
    if payload is None:
        return model_cls()
    if isinstance(payload, model_cls):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(by_alias=True, exclude_unset=True)
    return model_cls.model_validate(payload)


class EventPipeline:
    """Batches tracking events and flushes them to the collector.

    One pipeline is meant to be shared by everything in a process (see
    PipelineRegistry) so there is a single queue and a single timer.

    Usage:
        async with EventPipeline(options, environment=env) as pipeline:
            await pipeline.track_event(EventType.RESOURCE_CLICK, {"eventCategory": "INTERACTION"})
    """

    def __init__(
            self,
            options: PipelineOptions | None = None,
            client: httpx.AsyncClient | None = None,
            environment: EnvironmentContext | None = None,
            base_url: str | None = None
    ):
        self.options = options or PipelineOptions()
        self.environment = environment or ServerEnvironment()

        self._queue: deque[TrackingEvent] = deque()
        self._is_processing = False
        self._timer: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._disposed = False

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.collector_base_url,
            timeout=self.options.request_timeout
        )

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def queued_events(self) -> list[TrackingEvent]:
        return list(self._queue)

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def is_running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        """Start the periodic flush timer. Must be called from a running loop."""
        if self._timer is not None or self._disposed:
            return
        self._timer = asyncio.create_task(self._run_timer())
        logger.info(
            "pipeline_started",
            batch_size=self.options.batch_size,
            flush_interval_ms=self.options.flush_interval,
            endpoint=self.options.endpoint
        )

    async def __aenter__(self) -> "EventPipeline":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    async def submit(self, event_type: EventType | str, payload: Payload | None = None) -> None:
        """
        Turn a payload into a TrackingEvent and queue it.

        Assigns id and timestamp, enriches with client context and triggers a
        background flush once the batch size is reached. Never waits on the
        network.

        Raises:
            pydantic.ValidationError: the payload has no eventCategory
        """
        if self._disposed:
            logger.warning("submit_after_dispose", event_type=getattr(event_type, "value", event_type))

        data = coerce_payload(EventPayload, payload).model_dump(by_alias=True)
        event = TrackingEvent.model_validate({
            **data,
            "id": str(uuid4()),
            "timestamp": datetime.now(timezone.utc),
            "eventType": event_type
        })
        event = enrich(event, self.environment)

        if self.options.debug:
            logger.info(
                "event_tracked",
                event_id=event.id,
                event_type=event.event_type.value,
                event_category=event.event_category.value
            )

        self._queue.append(event)

        if len(self._queue) >= self.options.batch_size:
            self._schedule_flush()

    async def track_event(self, event_type: EventType | str, payload: Payload | None = None) -> None:
        await self.submit(event_type, coerce_payload(EventPayload, payload))

    async def track_course_event(self, event_type: EventType | str, payload: Payload) -> None:
        course = coerce_payload(CourseEventPayload, payload)
        if course.event_category is None:
            course = course.model_copy(update={"event_category": EventCategory.NAVIGATION})
        await self.submit(event_type, course)

    async def track_llm_event(self, event_type: EventType | str, payload: Payload) -> None:
        llm = coerce_payload(LLMEventPayload, payload)
        llm = llm.model_copy(update={"event_category": EventCategory.LLM_INTERACTION})
        await self.submit(event_type, llm)

    async def track_proficiency_event(self, event_type: EventType | str, payload: Payload) -> None:
        proficiency = coerce_payload(ProficiencyEventPayload, payload)
        proficiency = proficiency.model_copy(update={"event_category": EventCategory.PROFICIENCY})
        await self.submit(event_type, proficiency)

    async def flush(self) -> None:
        """
        Send everything queued so far in one request.

        No-op when a flush is already running or the queue is empty. On
        failure the batch goes back to the front of the queue, ahead of
        anything queued while the request was in flight.
        """
        if self._is_processing or not self._queue:
            return

        self._is_processing = True
        events = list(self._queue)
        self._queue.clear()

        try:
            await self._persist(events)

            if self.options.debug:
                logger.info("events_flushed", count=len(events))

        except asyncio.CancelledError:
            self._requeue(events)
            raise
        except Exception as e:
            self._requeue(events)
            logger.error(
                "flush_failed",
                error=str(e),
                requeued=len(events),
                queue_size=len(self._queue)
            )
        finally:
            self._is_processing = False

    async def wait_idle(self) -> None:
        """Wait for background flushes scheduled so far"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def dispose(self) -> None:
        """Stop the timer and make one last attempt to send what is left"""
        if self._disposed:
            return
        self._disposed = True

        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        await self.wait_idle()

        if self._queue:
            await self.flush()

        if self._queue:
            logger.warning("events_dropped_on_dispose", count=len(self._queue))

        if self._owns_client:
            await self._client.aclose()

        logger.info("pipeline_disposed")

    def _requeue(self, events: list[TrackingEvent]) -> None:
        self._queue.extendleft(reversed(events))

    def _schedule_flush(self) -> None:
        task = asyncio.create_task(self.flush())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _tick(self) -> None:
        if self._queue:
            self._schedule_flush()

    async def _run_timer(self) -> None:
        interval = self.options.flush_interval / 1000
        while True:
            await asyncio.sleep(interval)
            self._tick()

    async def _persist(self, events: list[TrackingEvent]) -> None:
        if not self.environment.can_send:
            # Pre-render / server passes never talk to the collector
            return

        response = await self._client.post(
            self.options.endpoint,
            json={"events": [event.to_wire() for event in events]},
            headers={"Content-Type": "application/json"}
        )

        if not response.is_success:
            raise CollectorError(response.status_code, response.reason_phrase)


class PipelineRegistry:
    """Holds the process-wide pipeline.

    The first get_or_create() call decides the configuration; later calls get
    the same pipeline back and anything else they pass is logged and ignored.
    """

    def __init__(self):
        self._pipeline: EventPipeline | None = None

    def get_or_create(self, options: PipelineOptions | None = None, **kwargs) -> EventPipeline:
        if self._pipeline is None:
            self._pipeline = EventPipeline(options, **kwargs)
            return self._pipeline

        if options is not None and options != self._pipeline.options:
            logger.info(
                "pipeline_options_ignored",
                requested=options.model_dump(),
                active=self._pipeline.options.model_dump()
            )
        if kwargs:
            logger.info("pipeline_arguments_ignored", arguments=sorted(kwargs))
        return self._pipeline

    @property
    def pipeline(self) -> EventPipeline | None:
        return self._pipeline
