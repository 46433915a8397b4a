import asyncio
import json

import httpx
import pytest
import pytest_asyncio

from edutrack.tracking.environment import ClientEnvironment
from edutrack.tracking.pipeline import EventPipeline, PipelineOptions


class RecordingCollector:
    """Stand-in collector: records every batch and answers with scripted statuses.

    statuses entries are HTTP status codes, or "error" for a connection failure.
    Set gate to an asyncio.Event to hold requests in flight until it is set.
    """

    def __init__(self):
        self.requests: list[list[dict]] = []
        self.headers: list[httpx.Headers] = []
        self.statuses: list[int | str] = []
        self.gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content)["events"])
        self.headers.append(request.headers)

        if self.gate is not None:
            await self.gate.wait()

        status = self.statuses.pop(0) if self.statuses else 200
        if status == "error":
            raise httpx.ConnectError("collector unreachable", request=request)
        return httpx.Response(status, json={"success": status < 300})

    def ids(self, index: int) -> list[str]:
        return [event["id"] for event in self.requests[index]]


async def _wait_until(condition, timeout: float = 2.0):
    """Poll condition() while letting the loop run background tasks"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def collector():
    return RecordingCollector()


@pytest.fixture
def environment():
    return ClientEnvironment(
        user_agent="pytest-agent/1.0",
        language="en-US",
        viewport=(1280, 720),
        referrer="https://example.com/start"
    )


@pytest_asyncio.fixture
async def http_client(collector):
    transport = httpx.MockTransport(collector.handler)
    async with httpx.AsyncClient(transport=transport, base_url="http://collector.test") as client:
        yield client


@pytest_asyncio.fixture
async def make_pipeline(http_client, environment):
    """Factory for pipelines wired to the recording collector; disposed after the test"""
    created = []

    def factory(environment_override=None, **options):
        pipeline = EventPipeline(
            PipelineOptions(**options),
            client=http_client,
            environment=environment_override or environment
        )
        created.append(pipeline)
        return pipeline

    yield factory

    for pipeline in created:
        await pipeline.dispose()
