from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.db import get_db, unit_of_work
from core.deps import get_now
from models.promo_modal import PromoModal
from schemas.promo import ActivePromoOut, PromoCreate, PromoOut, PromoUpdate
from services.promos import check_window, get_active_promo

router = APIRouter(prefix="/promos", tags=["promos"])


@router.get("/active", response_model=ActivePromoOut)
def active_promo(db: Session = Depends(get_db), now: datetime = Depends(get_now)):
    return {"promo": get_active_promo(db, now)}


@router.post("/", response_model=PromoOut, status_code=201)
def create_promo(data: PromoCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        promo = PromoModal(**data.model_dump())
        db.add(promo)
    return promo


@router.patch("/{promo_id}", response_model=PromoOut)
def update_promo(promo_id: int, data: PromoUpdate, db: Session = Depends(get_db)):
    promo = db.get(PromoModal, promo_id)
    if not promo:
        raise HTTPException(status_code=404, detail="Promo not found")
    with unit_of_work(db):
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(promo, key, value)
        check_window(promo.starts_at, promo.expires_at)
    return promo
