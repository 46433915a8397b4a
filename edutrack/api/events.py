from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from edutrack.core.database import get_db
from edutrack.schemas.event import (
    BatchStoredResponse,
    EventBatch,
    RegisterAnonymousRequest,
    RegisterAnonymousResponse,
)
from edutrack.services.anonymous import AnonymousLinkService
from edutrack.services.ingestion import IngestionService
import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/tracking", tags=["tracking"])


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


@router.post("/event", response_model=BatchStoredResponse)
async def store_events(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Store a batch of tracking events flushed by a pipeline.

    - **events**: non-empty list of tracking events
    - Missing userId is stored under the anonymous tracking user
    - Event ids already stored are ignored
    """
    try:
        batch = EventBatch.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("invalid_event_batch", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "No events provided"}
        )

    try:
        result = await IngestionService(db).store_events(batch.events, client_ip(request))
    except Exception as e:
        logger.error("event_storage_failed", error=str(e), count=len(batch.events))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Internal server error", "error": str(e)}
        )

    return BatchStoredResponse(
        message=f"Successfully stored {result['stored']} events",
        success=True,
        stored=result["stored"]
    )


@router.post("/register-user", response_model=RegisterAnonymousResponse)
async def register_user(
        request: Request,
        x_user_id: str | None = Header(default=None),
        db: AsyncSession = Depends(get_db)
):
    """
    Link an anonymous tracking id to the signed-in user.

    The user is identified by the X-User-Id header set by the auth layer.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        body = RegisterAnonymousRequest.model_validate(await request.json())
    except (ValueError, ValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Anonymous ID is required"}
        )

    try:
        linked = await AnonymousLinkService(db).register(
            body.anonymous_id,
            x_user_id,
            user_agent=request.headers.get("user-agent"),
            ip_address=client_ip(request)
        )
    except Exception as e:
        logger.error("anonymous_registration_failed", error=str(e), anonymous_id=body.anonymous_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register anonymous id"
        )

    return RegisterAnonymousResponse(
        message="Anonymous tracking ID registered with user account",
        success=True,
        linked_events=linked
    )
