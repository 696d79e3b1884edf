import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from quotehub.config import settings
from quotehub.errors import Forbidden, NotFound, PersistenceError, ValidationError
from quotehub.models.models import AuditLog, Product, Quote, QuoteMaterial, QuoteTask
from quotehub.services import mutations, quote_service
from quotehub.services.store import SqlQuoteStore

from .conftest import make_material, make_quote, make_task


@pytest.fixture
def seeded(memory_store, owner_id):
    quote = make_quote(owner_id, complexity="50", markup="10")
    task = make_task(quote, price="100", material_type="ITEMIZED")
    material = make_material(task, 2, "7.50")
    memory_store.seed(quote, task, material)
    return quote, task, material


# --- validation happens before anything is read or written ---

def test_invalid_task_payload_never_touches_the_store(memory_store, owner_id):
    missing_quote = uuid.uuid4()
    with pytest.raises(ValidationError) as exc:
        mutations.create_task(memory_store, owner_id, missing_quote, {"description": "", "price": -1})
    assert exc.value.fields == ["description", "price"]
    assert memory_store.writes == 0


def test_zero_quantity_is_rejected(memory_store, owner_id, seeded):
    _, task, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.create_material(memory_store, owner_id, task.id, {"name": "Tile", "quantity": 0, "unit_price": "2"})
    assert exc.value.fields == ["quantity"]
    assert memory_store.writes == 0


def test_negative_unit_price_is_rejected(memory_store, owner_id, seeded):
    _, _, material = seeded
    with pytest.raises(ValidationError):
        mutations.update_material(memory_store, owner_id, material.id, {"unit_price": -1})
    assert material.unit_price == "7.50"


def test_empty_update_is_rejected(memory_store, owner_id, seeded):
    _, task, _ = seeded
    with pytest.raises(ValidationError):
        mutations.update_task(memory_store, owner_id, task.id, {})


@pytest.mark.parametrize("field", ["price", "estimated_materials_cost", "order", "material_type", "description"])
def test_explicit_null_names_the_field(memory_store, owner_id, seeded, field):
    _, task, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.update_task(memory_store, owner_id, task.id, {field: None})
    assert exc.value.fields == [field]


def test_null_material_fields_are_named(memory_store, owner_id, seeded):
    _, _, material = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.update_material(memory_store, owner_id, material.id, {"quantity": None, "unit_price": None})
    assert exc.value.fields == ["quantity", "unit_price"]


@pytest.mark.parametrize("amount", ["1e30", "1000000000000"])
def test_oversized_amount_is_a_validation_error(memory_store, owner_id, seeded, amount):
    quote, _, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.create_task(memory_store, owner_id, quote.id, {"description": "Framing", "price": amount})
    assert exc.value.fields == ["price"]
    assert memory_store.writes == 0


def test_oversized_quantity_is_rejected(memory_store, owner_id, seeded):
    _, task, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.create_material(memory_store, owner_id, task.id, {"name": "Nail", "quantity": 10**12, "unit_price": 1})
    assert exc.value.fields == ["quantity"]


# --- tasks ---

def test_create_task_appends_after_existing_tasks(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    out = mutations.create_task(memory_store, owner_id, quote.id, {"description": "Framing", "price": "125.5"})

    assert out.quote_id == quote.id
    assert out.order == 1
    assert out.price == Decimal("125.50")
    assert out.material_type.value == "LUMPSUM"
    assert memory_store.rows[out.id].price == "125.50"
    assert memory_store.audit[-1].action == "CREATE"


def test_create_task_on_missing_quote(memory_store, owner_id):
    with pytest.raises(NotFound):
        mutations.create_task(memory_store, owner_id, uuid.uuid4(), {"description": "Framing", "price": 10})
    assert not [r for r in memory_store.rows.values() if isinstance(r, QuoteTask)]


def test_update_task_records_a_diff(memory_store, owner_id, seeded):
    _, task, _ = seeded
    out = mutations.update_task(memory_store, owner_id, task.id, {"price": 150, "material_type": "LUMPSUM"})

    assert out.price == Decimal("150.00")
    assert task.material_type == "LUMPSUM"
    entry = memory_store.audit[-1]
    assert entry.changes_json["price"] == {"before": "100", "after": "150.00"}


def test_delete_task_takes_its_materials(memory_store, owner_id, seeded):
    quote, task, material = seeded
    out = mutations.delete_task(memory_store, owner_id, task.id)

    assert out.quote_id == quote.id
    assert task.id not in memory_store.rows
    assert material.id not in memory_store.rows


def test_other_user_cannot_delete_task(memory_store, other_user_id, seeded):
    _, task, _ = seeded
    with pytest.raises(Forbidden):
        mutations.delete_task(memory_store, other_user_id, task.id)
    assert task.id in memory_store.rows


# --- materials ---

def test_update_material_by_non_owner_leaves_it_unchanged(memory_store, other_user_id, seeded):
    _, _, material = seeded
    with pytest.raises(Forbidden):
        mutations.update_material(memory_store, other_user_id, material.id, {"quantity": 9})
    assert material.quantity == 2
    assert memory_store.writes == 0


def test_create_material_returns_quote_id_and_line_total(memory_store, owner_id, seeded):
    quote, task, _ = seeded
    out = mutations.create_material(memory_store, owner_id, task.id, {"name": "Screws", "quantity": 4, "unit_price": "0.25"})

    assert out.quote_id == quote.id
    assert out.line_total == Decimal("1.00")
    assert memory_store.rows[out.id].unit_price == "0.25"


def test_catalog_material_inherits_product_fields(memory_store, owner_id, seeded):
    _, task, _ = seeded
    product = Product(id=uuid.uuid4(), created_by=owner_id, name="Drywall 4x8", description="1/2 inch", unit_price="14.99")
    memory_store.seed(product)

    out = mutations.create_material(memory_store, owner_id, task.id, {"product_id": str(product.id), "quantity": 3})

    assert out.name == "Drywall 4x8"
    assert out.unit_price == Decimal("14.99")
    assert out.product_id == product.id


def test_catalog_material_with_unknown_product(memory_store, owner_id, seeded):
    _, task, _ = seeded
    with pytest.raises(NotFound):
        mutations.create_material(memory_store, owner_id, task.id, {"product_id": str(uuid.uuid4())})


def test_ad_hoc_material_needs_name_and_price(memory_store, owner_id, seeded):
    _, task, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.create_material(memory_store, owner_id, task.id, {"quantity": 2})
    assert exc.value.fields == ["name", "unit_price"]


def test_catalog_material_from_another_users_catalog(memory_store, owner_id, other_user_id, seeded):
    _, task, _ = seeded
    product = Product(id=uuid.uuid4(), created_by=other_user_id, name="Grout", unit_price="9.00")
    memory_store.seed(product)

    with pytest.raises(NotFound):
        mutations.create_material(memory_store, owner_id, task.id, {"product_id": str(product.id)})
    assert memory_store.writes == 0


def test_material_on_lumpsum_task_is_stored_by_default(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    lump = make_task(quote, estimate="40", order=5)
    memory_store.seed(lump)

    out = mutations.create_material(memory_store, owner_id, lump.id, {"name": "Paint", "unit_price": 30})
    assert out.id in memory_store.rows


def test_material_on_lumpsum_task_can_be_refused(memory_store, owner_id, seeded, monkeypatch):
    quote, _, _ = seeded
    lump = make_task(quote, estimate="40", order=5)
    memory_store.seed(lump)
    monkeypatch.setattr(settings, "reject_materials_on_lumpsum", True)

    with pytest.raises(ValidationError):
        mutations.create_material(memory_store, owner_id, lump.id, {"name": "Paint", "unit_price": 30})
    assert memory_store.writes == 0


def test_delete_material(memory_store, owner_id, seeded):
    quote, _, material = seeded
    out = mutations.delete_material(memory_store, owner_id, material.id)
    assert out.id == material.id
    assert out.quote_id == quote.id
    assert material.id not in memory_store.rows


# --- quote charges and status ---

def test_update_charges(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    out = mutations.update_quote_charges(memory_store, owner_id, quote.id, {"complexity_charge": "75.255", "markup_percentage": 12})
    assert quote.complexity_charge == "75.26"
    assert out.markup_percentage == Decimal("12.00")


def test_markup_above_100_is_rejected(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.update_quote_charges(memory_store, owner_id, quote.id, {"complexity_charge": 0, "markup_percentage": 101})
    assert exc.value.fields == ["markup_percentage"]


def test_status_change_is_audited(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    out = mutations.update_quote_status(memory_store, owner_id, quote.id, {"status": "SENT"})
    assert out.status.value == "SENT"
    assert memory_store.audit[-1].changes_json == {"status": {"before": "DRAFT", "after": "SENT"}}


def test_same_status_is_a_no_op(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    mutations.update_quote_status(memory_store, owner_id, quote.id, {"status": "DRAFT"})
    assert memory_store.writes == 0


def test_backward_status_respects_enforcement(memory_store, owner_id, seeded, monkeypatch):
    quote, _, _ = seeded
    quote.status = "ACCEPTED"
    monkeypatch.setattr(settings, "enforce_status_transitions", True)
    with pytest.raises(ValidationError):
        mutations.update_quote_status(memory_store, owner_id, quote.id, {"status": "DRAFT"})
    assert quote.status == "ACCEPTED"


# --- persistence failures ---

def test_failed_write_is_reported(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    memory_store.fail_next_write = True
    with pytest.raises(PersistenceError):
        mutations.create_task(memory_store, owner_id, quote.id, {"description": "Trim", "price": 5})
    assert len([r for r in memory_store.rows.values() if isinstance(r, QuoteTask)]) == 1
    assert memory_store.audit == []


def test_sql_commit_failure_rolls_back(db, alice, monkeypatch):
    store = SqlQuoteStore(db)
    quote = make_quote(alice.id)
    db.add(quote)
    db.commit()

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(PersistenceError):
        mutations.create_task(store, alice.id, quote.id, {"description": "Trim", "price": 5})

    monkeypatch.undo()
    assert db.query(QuoteTask).count() == 0


# --- updates that change nothing ---

def test_unchanged_task_update_is_not_written(memory_store, owner_id, seeded):
    _, task, _ = seeded
    task.price = "100.00"
    out = mutations.update_task(memory_store, owner_id, task.id, {"price": "100", "material_type": "ITEMIZED"})
    assert out.price == Decimal("100.00")
    assert memory_store.writes == 0
    assert memory_store.audit == []


def test_unchanged_material_update_is_not_written(memory_store, owner_id, seeded):
    _, _, material = seeded
    mutations.update_material(memory_store, owner_id, material.id, {"quantity": 2, "unit_price": "7.50"})
    assert memory_store.writes == 0


def test_unchanged_charges_are_not_written(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    quote.complexity_charge, quote.markup_percentage = "50.00", "10.00"
    mutations.update_quote_charges(memory_store, owner_id, quote.id, {"complexity_charge": 50, "markup_percentage": 10})
    assert memory_store.writes == 0


# --- itemized task created with its materials ---

def test_itemized_task_with_initial_materials(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    product = Product(id=uuid.uuid4(), created_by=owner_id, name="Tile box", unit_price="42.00")
    memory_store.seed(product)

    out = mutations.create_task(memory_store, owner_id, quote.id, {
        "description": "Floor tiling",
        "price": 300,
        "material_type": "ITEMIZED",
        "materials": [
            {"product_id": str(product.id), "quantity": 2},
            {"name": "Thinset", "quantity": 3, "unit_price": "12.5"},
        ],
    })

    assert [m.name for m in out.materials] == ["Tile box", "Thinset"]
    assert all(m.task_id == out.id for m in out.materials)
    assert out.line.materials == Decimal("121.50")
    assert out.line.total == Decimal("421.50")
    assert memory_store.writes == 1
    assert [a.entity_type for a in memory_store.audit] == ["task", "material", "material"]


def test_initial_materials_are_validated_per_item(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.create_task(memory_store, owner_id, quote.id, {
            "description": "Floor tiling",
            "price": 300,
            "material_type": "ITEMIZED",
            "materials": [{"name": "Thinset", "quantity": 0, "unit_price": 1}, {"quantity": 1}],
        })
    assert exc.value.fields == ["materials.0.quantity", "materials.1.name", "materials.1.unit_price"]


def test_initial_materials_need_an_itemized_task(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    with pytest.raises(ValidationError) as exc:
        mutations.create_task(memory_store, owner_id, quote.id, {
            "description": "Painting",
            "price": 100,
            "materials": [{"name": "Paint", "unit_price": 30}],
        })
    assert exc.value.fields == ["materials"]


def test_unknown_product_in_initial_materials_creates_nothing(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    with pytest.raises(NotFound):
        mutations.create_task(memory_store, owner_id, quote.id, {
            "description": "Floor tiling",
            "price": 300,
            "material_type": "ITEMIZED",
            "materials": [{"product_id": str(uuid.uuid4())}],
        })
    assert memory_store.writes == 0


# --- failed commits leave stored rows as they were ---

@pytest.fixture
def sql_seeded(db, alice):
    quote = make_quote(alice.id, complexity="50.00", markup="10.00")
    task = make_task(quote, price="100.00", material_type="ITEMIZED")
    material = make_material(task, 2, "7.50")
    db.add_all([quote, task, material])
    db.commit()
    return quote.id, task.id, material.id


@pytest.fixture
def failing_commit(db, monkeypatch):
    def flush_then_fail():
        db.flush()
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", flush_then_fail)
    yield
    monkeypatch.undo()


def test_failed_task_update_keeps_the_stored_row(db, alice, sql_seeded, failing_commit):
    _, task_id, _ = sql_seeded
    with pytest.raises(PersistenceError):
        mutations.update_task(SqlQuoteStore(db), alice.id, task_id, {"price": 999, "description": "Changed"})

    task = db.get(QuoteTask, task_id)
    assert task.price == "100.00"
    assert task.description == "Demolition"
    assert db.query(AuditLog).count() == 0


def test_failed_material_update_keeps_the_stored_row(db, alice, sql_seeded, failing_commit):
    _, _, material_id = sql_seeded
    with pytest.raises(PersistenceError):
        mutations.update_material(SqlQuoteStore(db), alice.id, material_id, {"quantity": 40, "unit_price": 1})

    material = db.get(QuoteMaterial, material_id)
    assert material.quantity == 2
    assert material.unit_price == "7.50"


def test_failed_charges_update_keeps_the_stored_row(db, alice, sql_seeded, failing_commit):
    quote_id, _, _ = sql_seeded
    with pytest.raises(PersistenceError):
        mutations.update_quote_charges(SqlQuoteStore(db), alice.id, quote_id, {"complexity_charge": 0, "markup_percentage": 0})

    quote = db.get(Quote, quote_id)
    assert quote.complexity_charge == "50.00"
    assert quote.markup_percentage == "10.00"


# --- quote metadata ---

def test_null_title_is_rejected_before_ownership(memory_store, other_user_id, seeded):
    quote, _, _ = seeded
    with pytest.raises(ValidationError) as exc:
        quote_service.update_quote(memory_store, other_user_id, quote.id, {"title": None})
    assert exc.value.fields == ["title"]


def test_unchanged_quote_update_is_not_written(memory_store, owner_id, seeded):
    quote, _, _ = seeded
    out = quote_service.update_quote(memory_store, owner_id, quote.id, {"title": "Kitchen remodel"})
    assert out.title == "Kitchen remodel"
    assert memory_store.writes == 0
