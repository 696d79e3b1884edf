import os
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "0")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("RATE_LIMIT", "10000/minute")

import uuid
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quotehub.auth.security import create_access_token
from quotehub.db import Base, get_db
from quotehub.errors import PersistenceError
from quotehub.main import app
from quotehub.models.models import AuditLog, Customer, Product, Quote, QuoteMaterial, QuoteTask, User
from quotehub.services.store import QuoteStore


# --- SQL fixtures: one in-memory database per test, a fresh Session per request ---

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, username):
    user = User(id=uuid.uuid4(), username=username, email=f"{username}@example.com", is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def alice(db):
    return _make_user(db, "alice")


@pytest.fixture
def bob(db):
    return _make_user(db, "bob")


def auth_headers_for(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
def alice_headers(alice):
    return auth_headers_for(alice)


@pytest.fixture
def bob_headers(bob):
    return auth_headers_for(bob)


# --- In-memory store for service tests that do not need a database ---

class MemoryStore(QuoteStore):
    def __init__(self):
        self.rows = {}
        self.audit = []
        self.fail_next_write = False
        self.writes = 0
        self._pending = None

    def _get(self, model, ident):
        obj = self.rows.get(ident)
        return obj if isinstance(obj, model) else None

    def get_quote(self, quote_id):
        return self._get(Quote, quote_id)

    def get_task(self, task_id):
        return self._get(QuoteTask, task_id)

    def get_material(self, material_id):
        return self._get(QuoteMaterial, material_id)

    def get_product(self, product_id):
        return self._get(Product, product_id)

    def get_customer(self, customer_id):
        return self._get(Customer, customer_id)

    def list_tasks(self, quote_id):
        tasks = [r for r in self.rows.values() if isinstance(r, QuoteTask) and r.quote_id == quote_id]
        return sorted(tasks, key=lambda t: t.order)

    def list_materials(self, task_ids):
        return [r for r in self.rows.values() if isinstance(r, QuoteMaterial) and r.task_id in task_ids]

    def list_quotes(self, owner_id, status=None, limit=None):
        return [
            r for r in self.rows.values()
            if isinstance(r, Quote) and r.owner_id == owner_id and (status is None or r.status == status)
        ]

    def next_task_order(self, quote_id):
        tasks = self.list_tasks(quote_id)
        return tasks[-1].order + 1 if tasks else 0

    def next_sequential_id(self, owner_id):
        return len(self.list_quotes(owner_id)) + 1

    def seed(self, *objs):
        for obj in objs:
            self.rows[obj.id] = obj

    def add(self, obj):
        self._pending.append(("add", obj))

    def delete(self, obj):
        self._pending.append(("delete", obj))

    def _remove(self, obj):
        self.rows.pop(obj.id, None)
        if isinstance(obj, Quote):
            for task in self.list_tasks(obj.id):
                self._remove(task)
        elif isinstance(obj, QuoteTask):
            for m in self.list_materials([obj.id]):
                self._remove(m)

    @contextmanager
    def transaction(self):
        self._pending = []
        try:
            yield self
            if self.fail_next_write:
                self.fail_next_write = False
                raise PersistenceError()
            for op, obj in self._pending:
                if isinstance(obj, AuditLog):
                    self.audit.append(obj)
                elif op == "add":
                    self.rows[obj.id] = obj
                else:
                    self._remove(obj)
            self.writes += 1
        finally:
            self._pending = None


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def other_user_id():
    return uuid.uuid4()


def make_quote(owner_id, complexity="0.00", markup="0.00", status="DRAFT", seq=1):
    return Quote(
        id=uuid.uuid4(),
        owner_id=owner_id,
        sequential_id=seq,
        title="Kitchen remodel",
        status=status,
        complexity_charge=complexity,
        markup_percentage=markup,
    )


def make_task(quote, price="0.00", estimate="0.00", material_type="LUMPSUM", order=0):
    return QuoteTask(
        id=uuid.uuid4(),
        quote_id=quote.id,
        description="Demolition",
        price=price,
        estimated_materials_cost=estimate,
        order=order,
        material_type=material_type,
    )


def make_material(task, quantity=1, unit_price="0.00", name="Drywall sheet"):
    return QuoteMaterial(
        id=uuid.uuid4(),
        task_id=task.id,
        name=name,
        quantity=quantity,
        unit_price=unit_price,
    )

