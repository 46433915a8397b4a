from datetime import datetime, timezone
from uuid import uuid4
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from edutrack.models.event import AnonymousTrackingProfile, TrackingEventRecord
from edutrack.services.ingestion import ANONYMOUS_USER_ID, IngestionService
import structlog

logger = structlog.get_logger()


class AnonymousLinkService:
    """Links activity recorded before sign-in to the signed-in user"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(
            self,
            anonymous_id: str,
            user_id: str,
            user_agent: str | None = None,
            ip_address: str | None = None
    ) -> int:
        """
        Upsert the anonymous profile and re-assign matching anonymous events.

        Returns:
            number of events moved to the user
        """
        try:
            await IngestionService(self.db).ensure_users({user_id})

            result = await self.db.execute(
                select(AnonymousTrackingProfile).where(
                    AnonymousTrackingProfile.anonymous_id == anonymous_id
                )
            )
            profile = result.scalar_one_or_none()

            if profile is not None:
                profile.user_id = user_id
                profile.last_seen = datetime.now(timezone.utc)
            else:
                self.db.add(AnonymousTrackingProfile(
                    id=str(uuid4()),
                    anonymous_id=anonymous_id,
                    user_id=user_id,
                    profile_metadata={
                        "userAgent": user_agent or "unknown",
                        "ipAddress": ip_address or "unknown"
                    }
                ))

            link_stmt = (
                update(TrackingEventRecord)
                .where(
                    TrackingEventRecord.user_id == ANONYMOUS_USER_ID,
                    TrackingEventRecord.event_metadata["trackingSessionId"].as_string() == anonymous_id
                )
                .values(user_id=user_id)
                .execution_options(synchronize_session=False)
            )
            linked = await self.db.execute(link_stmt)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "anonymous_id_registered",
            anonymous_id=anonymous_id,
            user_id=user_id,
            created=profile is None,
            linked_events=linked.rowcount
        )

        return linked.rowcount
