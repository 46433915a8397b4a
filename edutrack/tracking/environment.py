"""
Execution environments the pipeline can run in.

An environment answers two questions: what client context should be attached
to an event, and is this process allowed to talk to the collector at all.
"""

import structlog

from edutrack.schemas.event import ClientInfo, TrackingEvent, Viewport

logger = structlog.get_logger()

SERVER_USER_AGENT = "server"
UNKNOWN_LANGUAGE = "unknown"


class EnvironmentContext:
    """Capability provider injected into the pipeline"""

    can_send: bool = False

    def client_info(self) -> ClientInfo:
        raise NotImplementedError


class ServerEnvironment(EnvironmentContext):
    """Non-interactive context (pre-render passes, workers, scripts without a user).

    Browser-only fields get sentinels or are left out, and nothing is sent.
    """

    can_send = False

    def client_info(self) -> ClientInfo:
        return ClientInfo(user_agent=SERVER_USER_AGENT, language=UNKNOWN_LANGUAGE)


class ClientEnvironment(EnvironmentContext):
    """Interactive client with a user agent and (optionally) a display"""

    can_send = True

    def __init__(
            self,
            user_agent: str,
            language: str | None = None,
            viewport: tuple[int, int] | None = None,
            referrer: str | None = None
    ):
        self.user_agent = user_agent
        self.language = language
        self.viewport = viewport
        self.referrer = referrer

    def client_info(self) -> ClientInfo:
        viewport = None
        if self.viewport is not None:
            width, height = self.viewport
            viewport = Viewport(width=width, height=height)

        return ClientInfo(
            user_agent=self.user_agent,
            language=self.language or UNKNOWN_LANGUAGE,
            viewport=viewport,
            referrer=self.referrer
        )


def enrich(event: TrackingEvent, environment: EnvironmentContext) -> TrackingEvent:
    """Attach a client snapshot to the event.

    Never raises. Fields the caller already set on clientInfo are kept; the
    snapshot only fills the gaps.
    """
    try:
        snapshot = environment.client_info()
    except Exception as e:
        logger.warning("client_info_unavailable", error=str(e))
        snapshot = ServerEnvironment().client_info()

    if event.client_info is not None:
        supplied = {name: value for name, value in event.client_info if value is not None}
        snapshot = snapshot.model_copy(update=supplied)

    event.client_info = snapshot
    return event
