import logging

from fastapi import APIRouter, Header, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.security import verify_cron_secret
from app.schemas.tick import RowOutcomeRead, TickMessage
from app.services.publishing.manager import process_tick
from app.services.publishing.types import TickIdle

router = APIRouter(prefix="/cron", tags=["cron"])
logger = logging.getLogger(__name__)


@router.api_route("/tick", methods=["GET", "POST"], response_model=list[RowOutcomeRead] | TickMessage)
def cron_tick(
    limit: int | None = Query(default=None, ge=1),
    secret: str | None = Query(default=None),
    x_cron_secret: str | None = Header(default=None),
) -> list[RowOutcomeRead] | TickMessage:
    if not verify_cron_secret(secret or x_cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    settings = get_settings()
    effective_limit = min(limit or settings.tick_default_limit, settings.tick_max_limit)
    try:
        result = process_tick(effective_limit)
    except SQLAlchemyError as exc:
        logger.exception("cron_tick_failed", extra={"limit": effective_limit})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Tick failed") from exc

    if isinstance(result, TickIdle):
        return TickMessage(message=result.message)
    return [RowOutcomeRead.model_validate(outcome) for outcome in result]
