from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.errors import ValidationError
from models.promo_modal import PromoModal


def is_effective(promo: PromoModal, now: datetime) -> bool:
    """Active flag plus scheduling window: starts_at <= now < expires_at, either bound optional."""
    if not promo.is_active:
        return False
    if promo.starts_at is not None and promo.starts_at > now:
        return False
    if promo.expires_at is not None and promo.expires_at <= now:
        return False
    return True


def check_window(starts_at: Optional[datetime], expires_at: Optional[datetime]) -> None:
    if starts_at is not None and expires_at is not None and expires_at <= starts_at:
        raise ValidationError("expires_at must be after starts_at")


def get_active_promo(db: Session, now: datetime) -> Optional[PromoModal]:
    """Newest promo that is visible at ``now``."""
    return (
        db.query(PromoModal)
        .filter(
            PromoModal.is_active.is_(True),
            or_(PromoModal.starts_at.is_(None), PromoModal.starts_at <= now),
            or_(PromoModal.expires_at.is_(None), PromoModal.expires_at > now),
        )
        .order_by(PromoModal.created_at.desc(), PromoModal.id.desc())
        .first()
    )
