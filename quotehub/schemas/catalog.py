import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from ..services.decimal_bridge import from_storage
from .quotes import Money, NonNegative


class ProductIn(BaseModel):
    name: str
    description: Optional[str] = None
    unit: Optional[str] = None
    unit_price: NonNegative = Decimal("0")
    notes: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("description", "unit", "notes", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class ProductOut(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    unit: Optional[str] = None
    unit_price: Money
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, p) -> "ProductOut":
        return cls(
            id=p.id,
            name=p.name,
            description=p.description,
            unit=p.unit,
            unit_price=from_storage(p.unit_price),
            notes=p.notes,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class CustomerIn(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("email", "phone", "address", "notes", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class CustomerOut(BaseModel):
    id: uuid.UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
