from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from typing import Any
from edutrack.models.event import TrackingEventRecord, User
from edutrack.schemas.event import TrackingEvent
import structlog

logger = structlog.get_logger()

ANONYMOUS_USER_ID = "anon-tracking-user"
ANONYMOUS_USER_EMAIL = "anonymous@tracking.internal"
UNKNOWN_SESSION_ID = "unknown"
UNKNOWN_SOURCE = "unknown"

# wire key -> column
COURSE_FIELDS = (
    ("courseId", "course_id"),
    ("moduleId", "module_id"),
    ("lessonId", "lesson_id"),
    ("courseVersion", "course_version"),
    ("contentType", "content_type"),
)


def insert_for(session: AsyncSession):
    """Dialect specific INSERT supporting ON CONFLICT DO NOTHING"""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


def to_record(event: TrackingEvent, ip_address: str | None = None) -> dict[str, Any]:
    """Normalize a wire event into a tracking_events row"""
    user_agent = event.client_info.user_agent if event.client_info else None

    record = {
        "id": event.id,
        "user_id": event.user_id or ANONYMOUS_USER_ID,
        "session_id": event.session_id or UNKNOWN_SESSION_ID,
        "event_category": event.event_category.value,
        "event_type": event.event_type.value,
        "timestamp": event.timestamp,
        "source": user_agent or UNKNOWN_SOURCE,
        "user_agent": user_agent,
        "ip_address": ip_address,
        "event_metadata": {
            **event.metadata,
            # Lets a later sign-in link anonymous events back to the user
            "trackingSessionId": event.session_id,
            "isAnonymous": not event.user_id
        }
    }

    for wire_key, column in COURSE_FIELDS:
        value = event.extra_field(wire_key)
        record[column] = str(value) if value is not None else None

    return record


class IngestionService:
    """Stores batches flushed by tracking pipelines"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def ensure_users(self, user_ids: set[str]) -> None:
        """Create placeholder user rows for ids not seen before"""
        if not user_ids:
            return

        rows = [
            {
                "id": user_id,
                "email": ANONYMOUS_USER_EMAIL if user_id == ANONYMOUS_USER_ID else None,
                "name": "Anonymous Tracking User" if user_id == ANONYMOUS_USER_ID else None
            }
            for user_id in sorted(user_ids)
        ]
        stmt = insert_for(self.db)(User).values(rows)
        stmt = stmt.on_conflict_do_nothing(index_elements=['id'])
        await self.db.execute(stmt)

    async def store_events(self, events: list[TrackingEvent], ip_address: str | None = None) -> dict[str, int]:
        """
        Store a batch in one transaction, ignoring event ids already stored.

        Returns:
            dict with 'stored' and 'duplicates' counts
        """
        if not events:
            return {"stored": 0, "duplicates": 0}

        records = [to_record(event, ip_address) for event in events]

        existing_stmt = select(TrackingEventRecord.id).where(
            TrackingEventRecord.id.in_([record["id"] for record in records])
        )
        result = await self.db.execute(existing_stmt)
        existing_ids = {row[0] for row in result.fetchall()}

        try:
            await self.ensure_users({record["user_id"] for record in records})

            stmt = insert_for(self.db)(TrackingEventRecord).values(records)
            stmt = stmt.on_conflict_do_nothing(index_elements=['id'])
            await self.db.execute(stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        duplicates = len(existing_ids)
        stored = len(records) - duplicates
        anonymous = sum(1 for record in records if record["user_id"] == ANONYMOUS_USER_ID)

        logger.info(
            "events_stored",
            total=len(records),
            stored=stored,
            duplicates=duplicates,
            anonymous=anonymous
        )

        return {"stored": stored, "duplicates": duplicates}
