from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.security import decrypt_text, encrypt_text
from app.models.common import utcnow
from app.models.setting import Setting
from app.models.site import Site
from app.services.publishing.errors import ApiKeyMissing
from app.services.wordpress import SiteConfig

OPENAI_API_KEY_SETTING = "openai_api_key"
ALLOWED_SETTING_KEYS = {OPENAI_API_KEY_SETTING}


def get_site_config(db: Session, site_id: str) -> SiteConfig | None:
    site = db.scalar(select(Site).where(Site.id == site_id))
    if not site:
        return None
    return SiteConfig(
        id=site.id,
        url=site.url,
        username=site.username,
        app_password=decrypt_text(site.encrypted_app_password),
    )


def get_setting(db: Session, key: str) -> str:
    record = db.scalar(select(Setting).where(Setting.key == key))
    if not record:
        return ""
    return decrypt_text(record.encrypted_value)


def set_setting(db: Session, key: str, value: str) -> None:
    record = db.scalar(select(Setting).where(Setting.key == key))
    if record:
        record.encrypted_value = encrypt_text(value)
        record.updated_at = utcnow()
    else:
        record = Setting(key=key, encrypted_value=encrypt_text(value))
    db.add(record)
    db.commit()


def delete_setting(db: Session, key: str) -> bool:
    record = db.scalar(select(Setting).where(Setting.key == key))
    if not record:
        return False
    db.delete(record)
    db.commit()
    return True


def resolve_openai_api_key(db: Session) -> str:
    api_key = get_setting(db, OPENAI_API_KEY_SETTING) or get_settings().openai_api_key
    if not api_key:
        raise ApiKeyMissing("OpenAI API key not found in settings or environment variables.")
    return api_key
