"""
Module: budget_kernel.models.workspace
Responsibility: ORM persistence for the tenant boundary (Workspace) and the
    spending classification budgets hang off (Subcategory).
Architecture position: Kernel > Models.  May import from db/base.py only.

Both relations are owned by collaborators outside the budget ledger
(workspace management, category CRUD); the ledger only reads them.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from budget_kernel.db.base import Base


class Workspace(Base):
    """
    Tenant boundary.  Every budget, ledger entry and transaction carries a
    workspace_id, and every service query is scoped by it.

    Guarantees:
        - currency is the reporting currency for workspace-level figures.
    """

    __tablename__ = "workspaces"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Reporting currency (ISO 4217)
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    def __repr__(self) -> str:
        return f"<Workspace {self.name} ({self.currency})>"


class Subcategory(Base):
    """Spending classification.  Supplies the default budget name."""

    __tablename__ = "subcategories"

    __table_args__ = (
        Index("idx_subcategory_workspace", "workspace_id"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Parent category, managed outside the ledger
    category_id: Mapped[UUID | None] = mapped_column(nullable=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Subcategory {self.name}>"
