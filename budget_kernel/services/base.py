"""
BaseService -- shared shape of the kernel's Session-taking services.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush inside the caller's transaction and never commit or
      roll it back.  Partial-failure isolation uses ``session.begin_nested()``
      so a failed step unwinds only its own writes.  BudgetActions (through
      ``session_scope()``) or the test harness owns commit and rollback.
    - Every row a service loads by id is loaded together with its
      workspace id, so an id from another tenant reads as "not found".
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from budget_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
Scoped = TypeVar("Scoped", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Holds the caller's Session; ModelType names the rows the service owns."""

    def __init__(self, session: Session):
        self.session = session

    def _in_workspace(
        self, model: type[Scoped], entity_id: UUID, workspace_id: UUID
    ) -> Scoped | None:
        """``model`` row with this id inside the workspace, or None."""
        return self.session.scalar(
            select(model).where(
                model.id == entity_id,
                model.workspace_id == workspace_id,
            )
        )
