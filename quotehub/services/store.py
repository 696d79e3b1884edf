"""
Data store seam for the quote services.

Services read and write through a ``QuoteStore`` so the authorization walk
and mutation flow can be exercised against an in-memory store in tests.
``SqlQuoteStore`` is the SQLAlchemy implementation used by the API.
"""
import uuid
from contextlib import contextmanager
from typing import Iterator, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import PersistenceError
from ..models.models import Customer, Product, Quote, QuoteMaterial, QuoteTask


logger = structlog.get_logger(__name__)


class QuoteStore:
    def get_quote(self, quote_id: uuid.UUID) -> Optional[Quote]:
        raise NotImplementedError

    def get_task(self, task_id: uuid.UUID) -> Optional[QuoteTask]:
        raise NotImplementedError

    def get_material(self, material_id: uuid.UUID) -> Optional[QuoteMaterial]:
        raise NotImplementedError

    def get_product(self, product_id: uuid.UUID) -> Optional[Product]:
        raise NotImplementedError

    def get_customer(self, customer_id: uuid.UUID) -> Optional[Customer]:
        raise NotImplementedError

    def list_tasks(self, quote_id: uuid.UUID) -> List[QuoteTask]:
        raise NotImplementedError

    def list_materials(self, task_ids: List[uuid.UUID]) -> List[QuoteMaterial]:
        raise NotImplementedError

    def list_quotes(self, owner_id: uuid.UUID, status: Optional[str] = None, limit: Optional[int] = 500) -> List[Quote]:
        raise NotImplementedError

    def next_task_order(self, quote_id: uuid.UUID) -> int:
        raise NotImplementedError

    def next_sequential_id(self, owner_id: uuid.UUID) -> int:
        raise NotImplementedError

    def add(self, obj) -> None:
        raise NotImplementedError

    def delete(self, obj) -> None:
        raise NotImplementedError

    def transaction(self):
        """Context manager: commit on success, roll back and raise PersistenceError on failure."""
        raise NotImplementedError


class SqlQuoteStore(QuoteStore):
    def __init__(self, db: Session):
        self.db = db

    # Point reads always hit the database and overwrite any identity-map state,
    # so an authorization hop never trusts a parent loaded earlier in the session.
    def _fresh(self, model, ident: uuid.UUID):
        try:
            return (
                self.db.query(model)
                .populate_existing()
                .filter(model.id == ident)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error("store_read_failed", model=model.__name__, id=str(ident), error=str(e))
            raise PersistenceError("Could not read from the data store") from e

    def get_quote(self, quote_id):
        return self._fresh(Quote, quote_id)

    def get_task(self, task_id):
        return self._fresh(QuoteTask, task_id)

    def get_material(self, material_id):
        return self._fresh(QuoteMaterial, material_id)

    def get_product(self, product_id):
        return self._fresh(Product, product_id)

    def get_customer(self, customer_id):
        return self._fresh(Customer, customer_id)

    def list_tasks(self, quote_id):
        return (
            self.db.query(QuoteTask)
            .filter(QuoteTask.quote_id == quote_id)
            .order_by(QuoteTask.order.asc(), QuoteTask.created_at.asc())
            .all()
        )

    def list_materials(self, task_ids):
        if not task_ids:
            return []
        return (
            self.db.query(QuoteMaterial)
            .filter(QuoteMaterial.task_id.in_(task_ids))
            .order_by(QuoteMaterial.created_at.asc())
            .all()
        )

    def list_quotes(self, owner_id, status=None, limit=500):
        q = self.db.query(Quote).filter(Quote.owner_id == owner_id)
        if status:
            q = q.filter(Quote.status == status)
        q = q.order_by(Quote.updated_at.desc())
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def next_task_order(self, quote_id):
        current = self.db.query(func.max(QuoteTask.order)).filter(QuoteTask.quote_id == quote_id).scalar()
        return 0 if current is None else current + 1

    def next_sequential_id(self, owner_id):
        current = self.db.query(func.max(Quote.sequential_id)).filter(Quote.owner_id == owner_id).scalar()
        return (current or 0) + 1

    def add(self, obj):
        self.db.add(obj)

    def delete(self, obj):
        self.db.delete(obj)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("store_write_failed", error=str(e))
            raise PersistenceError() from e
        except Exception:
            self.db.rollback()
            raise
