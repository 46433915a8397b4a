"""
Tracker context

EventTracker sits between application code and the pipeline: it knows who
the current user is and which session the events belong to, and fills those
in on every call. Inside `async with tracker:` the tracker is reachable from
anywhere through use_event_tracking().
"""

from contextvars import ContextVar, Token
from typing import Any

import structlog

from edutrack.schemas.event import (
    CourseEventPayload,
    EventCategory,
    EventPayload,
    EventType,
    LLMEventPayload,
    ProficiencyEventPayload,
)
from edutrack.core.config import Settings
from edutrack.tracking.environment import EnvironmentContext
from edutrack.tracking.pipeline import EventPipeline, Payload, PipelineOptions, PipelineRegistry, coerce_payload
from edutrack.tracking.session import FileSessionStore, SessionStore, resolve_session_id

logger = structlog.get_logger()

_current_tracker: ContextVar["EventTracker | None"] = ContextVar("edutrack_tracker", default=None)


class TrackingContextError(RuntimeError):
    """Tracking used outside an active EventTracker"""


class EventTracker:
    """Fills in identity fields and forwards events to a shared pipeline"""

    def __init__(
            self,
            pipeline: EventPipeline,
            store: SessionStore | None = None,
            user_id: str | None = None
    ):
        self.pipeline = pipeline
        self.store = store or SessionStore()
        self.user_id = user_id
        self.session_id = resolve_session_id(self.store, pipeline.environment)
        self._last_path: str | None = None
        self._token: Token | None = None

    @classmethod
    def from_settings(
            cls,
            config: Settings,
            environment: EnvironmentContext,
            registry: PipelineRegistry,
            user_id: str | None = None
    ) -> "EventTracker":
        """Tracker on the registry's shared pipeline, with the session id kept on disk"""
        pipeline = registry.get_or_create(
            PipelineOptions.from_settings(config),
            environment=environment,
            base_url=config.collector_base_url
        )
        return cls(pipeline, store=FileSessionStore(config.session_store_path), user_id=user_id)

    async def __aenter__(self) -> "EventTracker":
        self.pipeline.start()
        self._token = _current_tracker.set(self)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._token is not None:
            _current_tracker.reset(self._token)
            self._token = None
        await self.pipeline.dispose()

    def set_session_id(self, session_id: str) -> None:
        self.session_id = session_id

    def set_user(self, user_id: str | None) -> None:
        self.user_id = user_id

    def _identify(self, model_cls: type[EventPayload], payload: Payload | None) -> EventPayload:
        data = coerce_payload(model_cls, payload)
        return data.model_copy(update={"user_id": self.user_id, "session_id": self.session_id})

    async def track_event(self, event_type: EventType | str, payload: Payload | None = None) -> None:
        await self.pipeline.track_event(event_type, self._identify(EventPayload, payload))

    async def track_course_event(self, event_type: EventType | str, payload: Payload) -> None:
        await self.pipeline.track_course_event(event_type, self._identify(CourseEventPayload, payload))

    async def track_llm_event(self, event_type: EventType | str, payload: Payload) -> None:
        await self.pipeline.track_llm_event(event_type, self._identify(LLMEventPayload, payload))

    async def track_proficiency_event(self, event_type: EventType | str, payload: Payload) -> None:
        await self.pipeline.track_proficiency_event(
            event_type, self._identify(ProficiencyEventPayload, payload)
        )

    async def track_page_view(
            self,
            path: str,
            referrer: str | None = None,
            query: dict[str, Any] | None = None
    ) -> bool:
        """
        Record a PAGE_VIEW for a path change.

        Repeated paths and API routes are ignored. /course/<course>/<module>/<lesson>
        paths carry their identifiers as course fields.

        Returns:
            True if an event was queued
        """
        if path == self._last_path or path.startswith("/api/"):
            return False
        self._last_path = path

        data: dict[str, Any] = {
            "eventCategory": EventCategory.NAVIGATION,
            "metadata": {
                "path": path,
                "referrer": referrer or "",
                "query": query or {}
            }
        }

        parts = [part for part in path.split("/") if part]
        if parts and parts[0] == "course":
            for key, index in (("courseId", 1), ("moduleId", 2), ("lessonId", 3)):
                if len(parts) > index:
                    data[key] = parts[index]

        await self.track_event(EventType.PAGE_VIEW, data)
        return True


class _DebugTracker:
    """Logs every call before handing it to the real tracker"""

    def __init__(self, tracker: EventTracker):
        self._tracker = tracker

    def __getattr__(self, name: str):
        attr = getattr(self._tracker, name)
        if not name.startswith("track_"):
            return attr

        async def logged(target, *args, **kwargs):
            logger.info("tracking_call", method=name, target=str(target))
            return await attr(target, *args, **kwargs)

        return logged


def use_event_tracking(debug: bool = False) -> EventTracker | _DebugTracker:
    """
    Return the tracker of the enclosing `async with EventTracker(...)` block.

    Raises:
        TrackingContextError: no tracker is active
    """
    tracker = _current_tracker.get()
    if tracker is None:
        raise TrackingContextError(
            "use_event_tracking() must be called inside an active EventTracker context"
        )
    if debug:
        return _DebugTracker(tracker)
    return tracker
