from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class ProductCreate(BaseModel):
    name: str
    slug: str
    sku: Optional[str] = None
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    description: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    # Absolute stock level; the difference is written to the ledger as a manual adjustment
    stock: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ProductOut(BaseModel):
    id: int
    name: str
    slug: str
    sku: Optional[str] = None
    price: float
    stock: int
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class VariantCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=100)
    name: str
    price: Optional[float] = Field(default=None, ge=0)
    stock: int = Field(default=0, ge=0)
    attributes: Optional[Dict[str, Any]] = None
    images: Optional[List[str]] = None
    is_active: bool = True


class VariantUpdate(BaseModel):
    sku: Optional[str] = Field(default=None, min_length=1, max_length=100)
    name: Optional[str] = None
    # Explicit null clears the override so the variant inherits the product price
    price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    attributes: Optional[Dict[str, Any]] = None
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None


class VariantOut(BaseModel):
    id: int
    product_id: int
    sku: str
    name: str
    price: Optional[float] = None
    effective_price: float
    stock: int
    attributes: Optional[Dict[str, Any]] = None
    images: Optional[List[str]] = None
    is_active: bool
