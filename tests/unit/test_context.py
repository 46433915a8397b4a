import pytest

from edutrack.core.config import Settings
from edutrack.schemas.event import EventCategory, EventType
from edutrack.tracking.context import EventTracker, TrackingContextError, use_event_tracking
from edutrack.tracking.environment import ServerEnvironment
from edutrack.tracking.pipeline import PipelineRegistry
from edutrack.tracking.session import SESSION_KEY, SessionStore


@pytest.fixture
def store():
    store = SessionStore()
    store.set(SESSION_KEY, "session_1700000000000_abc1234")
    return store


def test_use_outside_context_fails():
    with pytest.raises(TrackingContextError):
        use_event_tracking()


@pytest.mark.asyncio
async def test_context_exposes_tracker(make_pipeline, store):
    tracker = EventTracker(make_pipeline(flush_interval=1000), store=store)

    async with tracker:
        assert use_event_tracking() is tracker
        assert tracker.pipeline.is_running

    assert not tracker.pipeline.is_running
    with pytest.raises(TrackingContextError):
        use_event_tracking()


@pytest.mark.asyncio
async def test_tracker_fills_identity(make_pipeline, collector, store):
    tracker = EventTracker(make_pipeline(), store=store, user_id="educator-1")

    async with tracker:
        await use_event_tracking().track_event(EventType.RESOURCE_CLICK, {"eventCategory": "INTERACTION"})
        tracker.set_user(None)
        await tracker.track_event(EventType.RESOURCE_CLICK, {"eventCategory": "INTERACTION"})

    first, second = collector.requests[0]
    assert first["userId"] == "educator-1"
    assert first["sessionId"] == "session_1700000000000_abc1234"
    assert second["userId"] is None


@pytest.mark.asyncio
async def test_tracker_overrides_caller_identity(make_pipeline, store):
    pipeline = make_pipeline()
    tracker = EventTracker(pipeline, store=store, user_id="educator-1")
    tracker.set_session_id("session_custom")

    await tracker.track_event(EventType.QUIZ_START, {"eventCategory": "ASSESSMENT", "userId": "someone-else"})

    event = pipeline.queued_events[0]
    assert event.user_id == "educator-1"
    assert event.session_id == "session_custom"


@pytest.mark.asyncio
async def test_tracker_wrappers(make_pipeline, store):
    pipeline = make_pipeline()
    tracker = EventTracker(pipeline, store=store)

    await tracker.track_course_event(EventType.LESSON_COMPLETE, {"courseId": "c1", "lessonId": "l2"})
    await tracker.track_llm_event(EventType.LLM_RESPONSE, {"prompt": "p", "response": "r"})
    await tracker.track_proficiency_event(EventType.COURSE_COMPLETE, {
        "courseId": "c1", "skillId": "s1", "proficiencyLevel": 4.5
    })

    categories = [event.event_category for event in pipeline.queued_events]
    assert categories == [EventCategory.NAVIGATION, EventCategory.LLM_INTERACTION, EventCategory.PROFICIENCY]
    assert all(event.session_id == tracker.session_id for event in pipeline.queued_events)


@pytest.mark.asyncio
async def test_page_view_parses_course_path(make_pipeline, store):
    pipeline = make_pipeline()
    tracker = EventTracker(pipeline, store=store)

    assert await tracker.track_page_view("/course/ai-basics/prompting/lesson-3", referrer="https://x.test")

    event = pipeline.queued_events[0]
    assert event.event_type == EventType.PAGE_VIEW
    assert event.event_category == EventCategory.NAVIGATION
    assert event.extra_field("courseId") == "ai-basics"
    assert event.extra_field("moduleId") == "prompting"
    assert event.extra_field("lessonId") == "lesson-3"
    assert event.metadata == {"path": "/course/ai-basics/prompting/lesson-3", "referrer": "https://x.test", "query": {}}


@pytest.mark.asyncio
async def test_page_view_skips_repeats_and_api(make_pipeline, store):
    pipeline = make_pipeline()
    tracker = EventTracker(pipeline, store=store)

    assert await tracker.track_page_view("/resources")
    assert not await tracker.track_page_view("/resources")
    assert not await tracker.track_page_view("/api/prompts")
    assert await tracker.track_page_view("/my-prompts")

    assert pipeline.queue_size == 2
    assert pipeline.queued_events[0].extra_field("courseId") is None


@pytest.mark.asyncio
async def test_server_tracker_uses_server_session(make_pipeline):
    tracker = EventTracker(make_pipeline(environment_override=ServerEnvironment()))

    assert tracker.session_id == "server"


@pytest.mark.asyncio
async def test_debug_tracker_delegates(make_pipeline, store):
    pipeline = make_pipeline()

    async with EventTracker(pipeline, store=store) as tracker:
        debug_tracker = use_event_tracking(debug=True)
        await debug_tracker.track_event(EventType.VIDEO_PLAY, {"eventCategory": "INTERACTION"})

        assert debug_tracker.session_id == tracker.session_id
        assert pipeline.queue_size == 1


@pytest.mark.asyncio
async def test_from_settings_shares_registry_pipeline(environment, tmp_path):
    config = Settings(
        _env_file=None,
        tracking_batch_size=3,
        session_store_path=str(tmp_path / "session.json")
    )
    registry = PipelineRegistry()

    first = EventTracker.from_settings(config, environment, registry, user_id="educator-1")
    second = EventTracker.from_settings(config, environment, registry)

    assert first.pipeline is second.pipeline is registry.pipeline
    assert first.pipeline.options.batch_size == 3
    assert first.session_id == second.session_id
    assert (tmp_path / "session.json").exists()

    await registry.pipeline.dispose()
