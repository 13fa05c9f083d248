from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.security import encrypt_text
from app.db.session import get_db
from app.models.site import Site
from app.schemas.site import SiteCreate, SiteRead, SiteUpdate

router = APIRouter(prefix="/sites", tags=["sites"])


@router.get("", response_model=list[SiteRead])
def list_sites(db: Session = Depends(get_db)) -> list[Site]:
    return list(db.scalars(select(Site).order_by(Site.created_at)).all())


@router.post("", response_model=SiteRead, status_code=status.HTTP_201_CREATED)
def create_site(payload: SiteCreate, db: Session = Depends(get_db)) -> Site:
    if payload.id and db.scalar(select(Site).where(Site.id == payload.id)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Site already exists")
    site = Site(
        name=payload.name,
        url=str(payload.url).rstrip("/"),
        username=payload.username,
        encrypted_app_password=encrypt_text(payload.app_password),
    )
    if payload.id:
        site.id = payload.id
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


@router.put("/{site_id}", response_model=SiteRead)
def update_site(site_id: str, payload: SiteUpdate, db: Session = Depends(get_db)) -> Site:
    site = _get_site_or_404(db, site_id)
    if payload.name is not None:
        site.name = payload.name
    if payload.url is not None:
        site.url = str(payload.url).rstrip("/")
    if payload.username is not None:
        site.username = payload.username
    if payload.app_password is not None:
        site.encrypted_app_password = encrypt_text(payload.app_password)
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


@router.delete("/{site_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_site(site_id: str, db: Session = Depends(get_db)) -> None:
    site = _get_site_or_404(db, site_id)
    db.delete(site)
    db.commit()
    return None


def _get_site_or_404(db: Session, site_id: str) -> Site:
    site = db.scalar(select(Site).where(Site.id == site_id))
    if not site:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Site not found")
    return site
