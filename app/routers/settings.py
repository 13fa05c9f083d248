from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.security import mask_secret
from app.db.session import get_db
from app.schemas.setting import SettingDelete, SettingStatus, SettingUpdate
from app.services.sites import ALLOWED_SETTING_KEYS, OPENAI_API_KEY_SETTING, delete_setting, get_setting, set_setting

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingStatus)
def get_settings_status(db: Session = Depends(get_db)) -> SettingStatus:
    value = get_setting(db, OPENAI_API_KEY_SETTING)
    return SettingStatus(has_key=bool(value), masked_key=mask_secret(value))


@router.post("")
def save_setting(payload: SettingUpdate, db: Session = Depends(get_db)) -> dict:
    _ensure_allowed(payload.key)
    set_setting(db, payload.key, payload.value)
    return {"success": True}


@router.delete("")
def remove_setting(payload: SettingDelete, db: Session = Depends(get_db)) -> dict:
    _ensure_allowed(payload.key)
    deleted = delete_setting(db, payload.key)
    return {"success": True, "deleted": deleted}


def _ensure_allowed(key: str) -> None:
    if key not in ALLOWED_SETTING_KEYS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid setting key")
