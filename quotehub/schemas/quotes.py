import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, PlainSerializer, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from ..errors import ValidationError
from ..services.decimal_bridge import from_storage
from ..services.pricing import MaterialType, TaskLine, Totals, line_total
from ..services.workflow import QuoteStatus


MAX_AMOUNT = Decimal("999999999999.99")
MAX_QUANTITY = 1_000_000

# Decimals travel as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
NonNegative = Annotated[Decimal, Field(ge=0, le=MAX_AMOUNT)]
Percentage = Annotated[Decimal, Field(ge=0, le=100)]

T = TypeVar("T", bound=BaseModel)

LOCATION_ROOTS = ("body", "query", "path")


def error_fields(errors: Iterable[dict]) -> List[str]:
    """
    Field paths named by pydantic errors.

    Model-level validators have no location of their own; they list the
    offending fields in ``ctx["fields"]`` instead.
    """
    fields = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p != "__root__"]
        if loc and loc[0] in LOCATION_ROOTS:
            loc = loc[1:]
        prefix = ".".join(loc)
        named = (err.get("ctx") or {}).get("fields")
        if named:
            fields.extend(f"{prefix}.{f}" if prefix else f for f in named)
        else:
            fields.append(prefix or "body")
    return fields


def validate_payload(model: Type[T], payload: Any) -> T:
    """Validate a dict (or model) and turn pydantic errors into ValidationError(fields)."""
    if isinstance(payload, model):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(error_fields(e.errors()))


def _not_null(v):
    if v is None:
        raise ValueError("cannot be null")
    return v


def _strip_required(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    if not v:
        raise ValueError("must not be blank")
    return v


def _empty_to_none(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


def _require_changes(model: BaseModel) -> None:
    if not model.model_fields_set:
        raise ValueError("no fields to update")


# ===================== Inputs =====================

class QuoteCreate(BaseModel):
    title: str
    customer_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    complexity_charge: NonNegative = Decimal("0")
    markup_percentage: Optional[Percentage] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_required(cls, v):
        return _strip_required(v)

    @field_validator("notes", mode="before")
    @classmethod
    def notes_empty_to_none(cls, v):
        return _empty_to_none(v)


class QuoteUpdate(BaseModel):
    title: Optional[str] = None
    customer_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def title_not_blank(cls, v):
        return _strip_required(_not_null(v))

    @model_validator(mode="after")
    def not_empty(self):
        _require_changes(self)
        return self


class QuoteChargesUpdate(BaseModel):
    complexity_charge: NonNegative
    markup_percentage: Percentage


class QuoteStatusUpdate(BaseModel):
    status: QuoteStatus


class MaterialCreate(BaseModel):
    product_id: Optional[uuid.UUID] = None
    name: Optional[str] = None
    description: Optional[str] = None
    quantity: int = Field(default=1, ge=1, le=MAX_QUANTITY)
    unit_price: Optional[NonNegative] = None
    notes: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        return _strip_required(v)

    @field_validator("description", "notes", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        return _empty_to_none(v)

    @model_validator(mode="after")
    def catalog_or_ad_hoc(self):
        # Ad hoc materials must carry their own name and price; catalog ones may inherit them
        if self.product_id is None:
            missing = [f for f in ("name", "unit_price") if getattr(self, f) is None]
            if missing:
                raise PydanticCustomError(
                    "missing_without_product",
                    "name and unit_price are required without product_id",
                    {"fields": missing},
                )
        return self


class MaterialUpdate(BaseModel):
    product_id: Optional[uuid.UUID] = None
    name: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1, le=MAX_QUANTITY)
    unit_price: Optional[NonNegative] = None
    notes: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def name_not_blank(cls, v):
        return _strip_required(_not_null(v))

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def not_null(cls, v):
        return _not_null(v)

    @model_validator(mode="after")
    def not_empty(self):
        _require_changes(self)
        return self


class TaskCreate(BaseModel):
    description: str
    price: NonNegative
    estimated_materials_cost: NonNegative = Decimal("0")
    order: Optional[int] = Field(default=None, ge=0)
    material_type: MaterialType = MaterialType.LUMPSUM
    materials: List[MaterialCreate] = []

    @field_validator("description", mode="before")
    @classmethod
    def description_not_blank(cls, v):
        return _strip_required(v)

    @model_validator(mode="after")
    def materials_only_when_itemized(self):
        if self.materials and self.material_type is not MaterialType.ITEMIZED:
            raise PydanticCustomError(
                "materials_on_lumpsum",
                "materials can only be listed on an itemized task",
                {"fields": ["materials"]},
            )
        return self


class TaskUpdate(BaseModel):
    description: Optional[str] = None
    price: Optional[NonNegative] = None
    estimated_materials_cost: Optional[NonNegative] = None
    order: Optional[int] = Field(default=None, ge=0)
    material_type: Optional[MaterialType] = None

    @field_validator("description", mode="before")
    @classmethod
    def description_not_blank(cls, v):
        return _strip_required(_not_null(v))

    @field_validator("price", "estimated_materials_cost", "order", "material_type", mode="before")
    @classmethod
    def not_null(cls, v):
        return _not_null(v)

    @model_validator(mode="after")
    def not_empty(self):
        _require_changes(self)
        return self


# ===================== Outputs =====================

class TaskOut(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    description: str
    price: Money
    estimated_materials_cost: Money
    order: int
    material_type: MaterialType
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, task) -> "TaskOut":
        return cls(
            id=task.id,
            quote_id=task.quote_id,
            description=task.description,
            price=from_storage(task.price),
            estimated_materials_cost=from_storage(task.estimated_materials_cost),
            order=task.order,
            material_type=task.material_type,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class MaterialOut(BaseModel):
    id: uuid.UUID
    task_id: uuid.UUID
    quote_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    name: str
    description: Optional[str] = None
    quantity: int
    unit_price: Money
    line_total: Money
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, material, quote_id: uuid.UUID) -> "MaterialOut":
        return cls(
            id=material.id,
            task_id=material.task_id,
            quote_id=quote_id,
            product_id=material.product_id,
            name=material.name,
            description=material.description,
            quantity=material.quantity,
            unit_price=from_storage(material.unit_price),
            line_total=line_total(material),
            notes=material.notes,
            created_at=material.created_at,
            updated_at=material.updated_at,
        )


class DeletedOut(BaseModel):
    id: uuid.UUID
    quote_id: uuid.UUID
    status: str = "ok"


class QuoteOut(BaseModel):
    id: uuid.UUID
    display_id: str
    owner_id: uuid.UUID
    customer_id: Optional[uuid.UUID] = None
    title: str
    status: QuoteStatus
    complexity_charge: Money
    markup_percentage: Money
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, quote) -> "QuoteOut":
        return cls(
            id=quote.id,
            display_id=quote.display_id,
            owner_id=quote.owner_id,
            customer_id=quote.customer_id,
            title=quote.title,
            status=quote.status,
            complexity_charge=from_storage(quote.complexity_charge),
            markup_percentage=from_storage(quote.markup_percentage),
            notes=quote.notes,
            created_at=quote.created_at,
            updated_at=quote.updated_at,
        )


class TotalsOut(BaseModel):
    task_subtotal: Money
    materials_subtotal: Money
    combined_subtotal: Money
    complexity_charge: Money
    markup_percentage: Money
    markup_charge: Money
    grand_total: Money

    @classmethod
    def from_totals(cls, totals: Totals) -> "TotalsOut":
        return cls(**totals.as_dict())


class TaskLineOut(BaseModel):
    labor: Money
    materials: Money
    total: Money

    @classmethod
    def from_line(cls, line: TaskLine) -> "TaskLineOut":
        return cls(labor=line.labor, materials=line.materials, total=line.total)


class TaskDetail(TaskOut):
    materials: List[MaterialOut] = []
    line: Optional[TaskLineOut] = None


class QuoteDetail(BaseModel):
    quote: QuoteOut
    tasks: List[TaskDetail]
    totals: TotalsOut
    formatted: Dict[str, str]


class QuoteSummary(QuoteOut):
    grand_total: Money
