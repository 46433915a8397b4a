#!/usr/bin/env python3
"""
Session simulator for the Edutrack collector

Runs tracking pipelines against a live collector the way a browser client
would: page views, course navigation, LLM prompt round-trips and skill
assessments, flushed by size and by timer.

Usage:
    python scripts/simulate_sessions.py [sessions] [events_per_session]
"""

import asyncio
import random
import sys
import time
from pathlib import Path

import httpx

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from edutrack.core.config import settings
from edutrack.core.logging import configure_logging
from edutrack.schemas.event import EventCategory, EventType
from edutrack.tracking.context import EventTracker
from edutrack.tracking.environment import ClientEnvironment
from edutrack.tracking.pipeline import EventPipeline, PipelineOptions

USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_4) AppleWebKit/605.1.15 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/124.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
]

PATHS = [
    "/",
    "/resources",
    "/example-prompts",
    "/my-prompts",
    "/course/ai-basics/prompting/lesson-1",
    "/course/ai-basics/prompting/lesson-2",
    "/course/ai-basics/evaluation",
]


async def simulate_session(index: int, events_per_session: int, options: PipelineOptions) -> int:
    """Run one client session and return the number of events submitted"""
    environment = ClientEnvironment(
        user_agent=random.choice(USER_AGENTS),
        language="en-US",
        viewport=(1440, 900),
        referrer="https://www.google.com/"
    )
    pipeline = EventPipeline(options, environment=environment, base_url=settings.collector_base_url)
    user_id = f"educator_{index}" if index % 3 else None
    submitted = 0

    async with EventTracker(pipeline, user_id=user_id) as tracker:
        while submitted < events_per_session:
            roll = random.random()

            if roll < 0.4:
                if await tracker.track_page_view(random.choice(PATHS)):
                    submitted += 1
                continue

            if roll < 0.6:
                await tracker.track_event(
                    EventType.RESOURCE_CLICK,
                    {"eventCategory": EventCategory.INTERACTION, "metadata": {"resource": "prompt-guide"}}
                )
            elif roll < 0.85:
                await tracker.track_llm_event(EventType.LLM_PROMPT, {
                    "prompt": "Write a rubric for a 5th grade essay on volcanoes",
                    "model": "gemini-pro",
                    "courseId": "ai-basics"
                })
            else:
                await tracker.track_proficiency_event(EventType.SKILL_ASSESSMENT, {
                    "courseId": "ai-basics",
                    "skillId": "prompt-specificity",
                    "proficiencyLevel": round(random.uniform(1, 5), 1)
                })
            submitted += 1

            await asyncio.sleep(random.uniform(0.01, 0.05))

    return submitted


async def run(sessions: int, events_per_session: int):
    options = PipelineOptions.from_settings(settings)

    print(f"\n{'=' * 60}")
    print(f"SIMULATION: {sessions} sessions x {events_per_session} events")
    print(f"{'=' * 60}")

    start_time = time.time()
    results = await asyncio.gather(*[
        simulate_session(i, events_per_session, options) for i in range(sessions)
    ])
    total_time = time.time() - start_time
    total_events = sum(results)

    print(f"\n{'=' * 60}")
    print(f"SIMULATION RESULTS")
    print(f"{'=' * 60}")
    print(f"Sessions:            {sessions:,}")
    print(f"Events submitted:    {total_events:,}")
    print(f"Total time:          {total_time:.2f}s")
    print(f"Events/sec:          {total_events / total_time:,.0f}")
    print(f"{'=' * 60}\n")


def main():
    sessions = int(sys.argv[1]) if len(sys.argv) > 1 else 20
    events_per_session = int(sys.argv[2]) if len(sys.argv) > 2 else 25
    base_url = settings.collector_base_url

    configure_logging(settings.tracking_debug)

    print(f"Target: {base_url}")

    # Test connection
    try:
        response = httpx.get(f"{base_url}/health", timeout=5)
        if response.status_code != 200:
            print("Error: collector is not healthy")
            sys.exit(1)
    except Exception as e:
        print(f"Error: Cannot connect to collector: {e}")
        sys.exit(1)

    asyncio.run(run(sessions, events_per_session))


if __name__ == "__main__":
    main()
