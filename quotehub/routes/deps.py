from fastapi import Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.store import SqlQuoteStore


def get_store(db: Session = Depends(get_db)) -> SqlQuoteStore:
    return SqlQuoteStore(db)
