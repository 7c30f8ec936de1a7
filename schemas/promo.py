from datetime import datetime
from pydantic import BaseModel, model_validator
from typing import Optional


class PromoCreate(BaseModel):
    title: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.starts_at and self.expires_at and self.expires_at <= self.starts_at:
            raise ValueError("expires_at must be after starts_at")
        return self


class PromoUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class PromoOut(BaseModel):
    id: int
    title: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivePromoOut(BaseModel):
    promo: Optional[PromoOut] = None
