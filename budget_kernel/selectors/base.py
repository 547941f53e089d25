"""
Read-only query objects over the budget ledger's tables.

Selectors take the caller's Session and only SELECT.  They never add,
delete, flush or commit; writes belong to services/.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from budget_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Queries centred on ModelType; returns rows, ids or plain values."""

    def __init__(self, session: Session):
        self.session = session
