"""
Quote total calculation.

``compute_totals`` is the only place quote figures are derived. It reads
decimal strings (or Decimals) off quote, task and material objects, does all
arithmetic at full precision, and rounds each output figure once at the end.

    task_subtotal      = sum(task.price)
    materials_subtotal = sum(lump-sum estimate | itemized lines, per task)
    combined_subtotal  = task_subtotal + materials_subtotal
    markup_charge      = (combined_subtotal + complexity_charge) * markup% / 100
    grand_total        = combined_subtotal + complexity_charge + markup_charge
"""
import uuid
from dataclasses import dataclass, asdict
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Sequence, Union

from .decimal_bridge import ZERO, round_money, to_decimal


HUNDRED = Decimal("100")


class MaterialType(str, Enum):
    LUMPSUM = "LUMPSUM"
    ITEMIZED = "ITEMIZED"


@dataclass(frozen=True)
class LumpSum:
    estimated_materials_cost: Decimal


@dataclass(frozen=True)
class Itemized:
    materials: Sequence


MaterialBasis = Union[LumpSum, Itemized]


@dataclass(frozen=True)
class Totals:
    task_subtotal: Decimal
    materials_subtotal: Decimal
    combined_subtotal: Decimal
    complexity_charge: Decimal
    markup_percentage: Decimal
    markup_charge: Decimal
    grand_total: Decimal

    def as_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


@dataclass(frozen=True)
class TaskLine:
    task_id: uuid.UUID
    labor: Decimal
    materials: Decimal
    total: Decimal


def material_basis(task, materials: Iterable) -> MaterialBasis:
    """Pick the single source of a task's material cost from its material_type."""
    material_type = MaterialType(task.material_type)
    if material_type is MaterialType.LUMPSUM:
        return LumpSum(to_decimal(task.estimated_materials_cost))
    if material_type is MaterialType.ITEMIZED:
        return Itemized(list(materials))
    raise TypeError(f"Unhandled material type: {material_type!r}")


def line_total(material) -> Decimal:
    return Decimal(int(material.quantity)) * to_decimal(material.unit_price)


def basis_cost(basis: MaterialBasis) -> Decimal:
    if isinstance(basis, LumpSum):
        return basis.estimated_materials_cost
    if isinstance(basis, Itemized):
        return sum((line_total(m) for m in basis.materials), ZERO)
    raise TypeError(f"Unhandled material basis: {type(basis).__name__}")


def _task_costs(tasks: Iterable, materials_by_task: Mapping) -> List[tuple]:
    rows = []
    for task in tasks:
        basis = material_basis(task, materials_by_task.get(task.id, ()))
        rows.append((task, to_decimal(task.price), basis_cost(basis)))
    return rows


def compute_totals(quote, tasks: Iterable, materials_by_task: Mapping) -> Totals:
    rows = _task_costs(tasks, materials_by_task)
    task_subtotal = sum((price for _, price, _ in rows), ZERO)
    materials_subtotal = sum((cost for _, _, cost in rows), ZERO)
    combined = task_subtotal + materials_subtotal

    complexity = to_decimal(quote.complexity_charge)
    markup_pct = to_decimal(quote.markup_percentage)
    markup_charge = (combined + complexity) * markup_pct / HUNDRED
    grand_total = combined + complexity + markup_charge

    return Totals(
        task_subtotal=round_money(task_subtotal),
        materials_subtotal=round_money(materials_subtotal),
        combined_subtotal=round_money(combined),
        complexity_charge=round_money(complexity),
        markup_percentage=round_money(markup_pct),
        markup_charge=round_money(markup_charge),
        grand_total=round_money(grand_total),
    )


def task_line_totals(tasks: Iterable, materials_by_task: Mapping) -> Dict[uuid.UUID, TaskLine]:
    lines = {}
    for task, price, cost in _task_costs(tasks, materials_by_task):
        lines[task.id] = TaskLine(
            task_id=task.id,
            labor=round_money(price),
            materials=round_money(cost),
            total=round_money(price + cost),
        )
    return lines


def group_materials(materials: Iterable) -> Dict[uuid.UUID, list]:
    grouped: Dict[uuid.UUID, list] = {}
    for m in materials:
        grouped.setdefault(m.task_id, []).append(m)
    return grouped
