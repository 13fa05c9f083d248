from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.catalog import load_model_catalog, sync_model_catalog
from app.services.publishing.errors import ApiKeyMissing, PublishingError
from app.services.sites import resolve_openai_api_key

router = APIRouter(prefix="/models", tags=["models"])


@router.get("")
def list_models() -> dict:
    return load_model_catalog()


@router.post("/sync")
def sync_models(db: Session = Depends(get_db)) -> dict:
    try:
        api_key = resolve_openai_api_key(db)
        return sync_model_catalog(api_key)
    except ApiKeyMissing as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PublishingError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
