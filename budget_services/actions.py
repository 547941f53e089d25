"""
BudgetActions -- the request-facing surface of the budget ledger.

Responsibility:
    One method per user-facing action.  Each call authenticates, checks
    workspace permission for writes, runs the kernel services inside one
    session scope, and returns a uniform ``ActionResult`` envelope.
    Nothing escapes as an exception.

Architecture position:
    Services -- the single point where kernel services are constructed and
    wired for a request, and where settings from ``budget_config`` are
    translated into kernel arguments.  The kernel never imports this module.

Invariants enforced:
    - Every call gets a fresh correlation id, bound into LogContext for the
      duration of the call and returned with any error.
    - Failures are converted to the typed taxonomy.  Datastore errors and
      anything else an injected collaborator raises become DependencyError;
      their text is logged, never returned.
    - A delete that matched nothing reads "not found or no permission" and
      never says which.
    - A monthly apply with any per-budget failure returns success=False
      with the per-budget outcome still attached as ``data``.

Usage:
    actions = BudgetActions.from_config(
        auth_provider=auth,
        permission_oracle=permissions,
    )
    result = actions.create_budget(workspace_id, {...})
    if not result.success:
        show(result.error.message, result.error.correlation_id)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from budget_config import BudgetConfig, get_active_config
from budget_config.schema import BudgetLedgerSettings
from budget_kernel.db.engine import init_engine_from_url, session_scope
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.domain.dtos import (
    ApplyContributionsResult,
    BudgetInfo,
    BudgetListing,
    BudgetPatch,
    ConfirmationResult,
    CreateBudgetInput,
    DashboardFigures,
    UserInfo,
)
from budget_kernel.domain.ports import (
    AuditSink,
    AuthProvider,
    FxOracle,
    PermissionOracle,
    TransactionStore,
)
from budget_kernel.exceptions import (
    AlreadyConfirmedError,
    BudgetLedgerError,
    ConflictError,
    DependencyError,
    PermissionDeniedError,
    UnauthenticatedError,
    ValidationError,
)
from budget_kernel.logging_config import LogContext, configure_logging, get_logger
from budget_kernel.services.audit_sink import LoggingAuditSink
from budget_kernel.services.budget_catalog import BudgetCatalog
from budget_kernel.services.funding_ledger import FundingLedger
from budget_kernel.services.payment_confirmation import PaymentConfirmation
from budget_kernel.services.transaction_store import SqlTransactionStore
from budget_services.fx import ExchangeRateOracle
from budget_services.reservation_aggregator import ReservationAggregator

logger = get_logger("services.actions")

T = TypeVar("T")

DELETE_CONFLICT_MESSAGE = "Budget not found or you don't have permission to delete it."
PERMISSION_MESSAGE = "You don't have permission to manage this workspace."
ALREADY_CONFIRMED_MESSAGE = "This payment has already been confirmed."
DEPENDENCY_MESSAGE = "A required service is unavailable. Please try again."
MONTHLY_APPLY_MESSAGE = "Some budgets could not be funded this month."

SessionScope = Callable[[], AbstractContextManager[Session]]


@dataclass(frozen=True)
class SafeError:
    """What a caller may show: a message, a correlation id and a code."""

    message: str
    correlation_id: str
    code: str


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    success: bool
    data: T | None = None
    error: SafeError | None = None


def _decimal(value: Any, field: str) -> Any:
    """Parse request amounts; floats go through their repr, not binary."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValidationError(f"{field} must be a number", field=field) from exc
    raise ValidationError(f"{field} must be a number", field=field)


_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def _bool(value: Any, field: str, default: bool = False) -> bool:
    """Parse request flags; the string ``"false"`` is False."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{field} must be true or false", field=field)


def _uuid(value: Any, field: str) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"{field} must be a UUID", field=field) from exc


def build_create_input(
    payload: CreateBudgetInput | Mapping[str, Any],
    settings: BudgetLedgerSettings,
) -> CreateBudgetInput:
    """A CreateBudgetInput from a request payload, with settings defaults."""
    if isinstance(payload, CreateBudgetInput):
        return payload

    required = ("subcategory_id", "currency", "budget_type", "amount")
    missing = [key for key in required if payload.get(key) is None]
    if missing:
        raise ValidationError(f"Missing required field: {missing[0]}", field=missing[0])

    return CreateBudgetInput(
        subcategory_id=_uuid(payload["subcategory_id"], "subcategory_id"),
        currency=str(payload["currency"]),
        budget_type=str(payload["budget_type"]),
        amount=_decimal(payload["amount"], "amount"),
        name=payload.get("name"),
        due_date=payload.get("due_date"),
        recurrence_type=payload.get("recurrence_type") or settings.default_recurrence_type,
        start_policy=payload.get("start_policy") or settings.default_start_policy,
        allow_use_safe=_bool(payload.get("allow_use_safe"), "allow_use_safe"),
        is_recurring=_bool(payload.get("is_recurring"), "is_recurring"),
        auto_fund=_bool(
            payload.get("auto_fund"), "auto_fund", default=settings.auto_fund_by_default
        ),
        funding_account_id=_uuid(payload.get("funding_account_id"), "funding_account_id"),
    )


def build_patch(payload: BudgetPatch | Mapping[str, Any]) -> BudgetPatch:
    if isinstance(payload, BudgetPatch):
        return payload
    unknown = set(payload) - {"name", "monthly_cap", "is_recurring", "target_amount"}
    if unknown:
        field = sorted(unknown)[0]
        raise ValidationError(f"Field cannot be updated: {field}", field=field)
    is_recurring = payload.get("is_recurring")
    return BudgetPatch(
        name=payload.get("name"),
        monthly_cap=_decimal(payload.get("monthly_cap"), "monthly_cap"),
        is_recurring=None if is_recurring is None else _bool(is_recurring, "is_recurring"),
        target_amount=_decimal(payload.get("target_amount"), "target_amount"),
    )


class BudgetActions:
    """
    Wires kernel services per request and wraps every outcome.

    Contract:
        ``session_scope`` yields a Session and commits on clean exit, rolling
        back on exception (budget_kernel.db.engine.session_scope).  The
        auth provider and permission oracle are required; every other
        collaborator has a default.
    """

    def __init__(
        self,
        auth_provider: AuthProvider,
        permission_oracle: PermissionOracle,
        session_scope: SessionScope = session_scope,
        clock: Clock | None = None,
        fx_oracle: FxOracle | None = None,
        audit_sink: AuditSink | None = None,
        transaction_store_factory: Callable[[Session, Clock], TransactionStore] | None = None,
        config: BudgetConfig | None = None,
    ) -> None:
        self._auth = auth_provider
        self._permissions = permission_oracle
        self._session_scope = session_scope
        self._clock = clock or SystemClock()
        self._fx_oracle = fx_oracle
        self._audit_sink = audit_sink if audit_sink is not None else LoggingAuditSink()
        self._transaction_store_factory = transaction_store_factory or SqlTransactionStore
        self._settings = config.ledger if config is not None else BudgetLedgerSettings()
        self._reporting_currency = config.reporting.reporting_currency if config else None
        self._fallback_to_identity = config.fx.fallback_to_identity if config else True

    @classmethod
    def from_config(
        cls,
        auth_provider: AuthProvider,
        permission_oracle: PermissionOracle,
        config: BudgetConfig | None = None,
        **kwargs: Any,
    ) -> BudgetActions:
        """Initialise engine and logging from settings, then build actions."""
        config = config or get_active_config()
        configure_logging(level=config.logging.level)
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        register_immutability_listeners()
        return cls(auth_provider, permission_oracle, config=config, **kwargs)

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _ledger(self, session: Session) -> FundingLedger:
        return FundingLedger(session, self._clock, self._audit_sink)

    def _catalog(self, session: Session) -> BudgetCatalog:
        return BudgetCatalog(
            session,
            self._clock,
            ledger=self._ledger(session),
            transaction_store=self._transaction_store_factory(session, self._clock),
            audit_sink=self._audit_sink,
        )

    def _payments(self, session: Session) -> PaymentConfirmation:
        return PaymentConfirmation(
            session,
            self._clock,
            ledger=self._ledger(session),
            transaction_store=self._transaction_store_factory(session, self._clock),
            audit_sink=self._audit_sink,
        )

    def _aggregator(self, session: Session) -> ReservationAggregator:
        return ReservationAggregator(
            session,
            fx_oracle=self._fx_oracle or ExchangeRateOracle(session, self._clock),
            clock=self._clock,
            ledger=self._ledger(session),
            transaction_store=self._transaction_store_factory(session, self._clock),
            reporting_currency=self._reporting_currency,
            fallback_to_identity=self._fallback_to_identity,
        )

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    def _authenticate(self, workspace_id: UUID) -> UserInfo:
        try:
            user = self._auth.current_user()
        except BudgetLedgerError:
            raise
        except Exception as exc:
            raise DependencyError("auth", str(exc)) from exc
        if user is None:
            raise UnauthenticatedError(str(workspace_id))
        return user

    def _authorize(self, workspace_id: UUID) -> None:
        try:
            allowed = self._permissions.can_manage_workspace(workspace_id)
        except BudgetLedgerError:
            raise
        except Exception as exc:
            raise DependencyError("permissions", str(exc)) from exc
        if not allowed:
            raise PermissionDeniedError(str(workspace_id))

    def _run(
        self,
        action: str,
        workspace_id: UUID,
        operation: Callable[[Session, UserInfo], T],
        *,
        mutates: bool,
        conflict_message: str | None = None,
        partial_failure: Callable[[T], tuple[str, str] | None] | None = None,
    ) -> ActionResult[T]:
        correlation_id = str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            workspace_id=str(workspace_id),
            action=action,
        ):
            try:
                user = self._authenticate(workspace_id)
                with LogContext.bind(actor_id=str(user.id)):
                    if mutates:
                        self._authorize(workspace_id)
                    with self._session_scope() as session:
                        data = operation(session, user)
            except BudgetLedgerError as exc:
                return self._failure(exc, correlation_id, conflict_message)
            except SQLAlchemyError as exc:
                return self._dependency_failure("database", exc, correlation_id)
            except Exception as exc:
                # Injected collaborators may raise anything
                return self._dependency_failure("collaborator", exc, correlation_id)

            failure = partial_failure(data) if partial_failure is not None else None
            if failure is not None:
                message, code = failure
                logger.warning("action_partially_failed", extra={"error_code": code})
                return ActionResult(
                    success=False,
                    data=data,
                    error=SafeError(message=message, correlation_id=correlation_id, code=code),
                )

            logger.info("action_succeeded")
            return ActionResult(success=True, data=data)

    def _dependency_failure(
        self, dependency: str, exc: Exception, correlation_id: str
    ) -> ActionResult[Any]:
        logger.error(
            "action_dependency_failed",
            extra={"dependency": dependency, "error_type": type(exc).__name__},
            exc_info=True,
        )
        return self._failure(DependencyError(dependency, str(exc)), correlation_id, None)

    def _failure(
        self,
        exc: BudgetLedgerError,
        correlation_id: str,
        conflict_message: str | None,
    ) -> ActionResult[Any]:
        message = self._safe_message(exc, conflict_message)
        extra = {"error_code": exc.code, "error_type": type(exc).__name__}
        if isinstance(exc, DependencyError):
            extra["dependency"] = exc.dependency
            logger.error("action_failed", extra=extra)
        else:
            logger.warning("action_failed", extra=extra)
        return ActionResult(
            success=False,
            error=SafeError(message=message, correlation_id=correlation_id, code=exc.code),
        )

    @staticmethod
    def _safe_message(exc: BudgetLedgerError, conflict_message: str | None) -> str:
        if isinstance(exc, UnauthenticatedError):
            return str(exc)
        if isinstance(exc, PermissionDeniedError):
            return PERMISSION_MESSAGE
        if isinstance(exc, AlreadyConfirmedError):
            return ALREADY_CONFIRMED_MESSAGE
        if isinstance(exc, ConflictError) and conflict_message:
            return conflict_message
        if isinstance(exc, DependencyError):
            return DEPENDENCY_MESSAGE
        return str(exc)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    def create_budget(
        self,
        workspace_id: UUID,
        payload: CreateBudgetInput | Mapping[str, Any],
    ) -> ActionResult[BudgetInfo]:
        def operation(session: Session, user: UserInfo) -> BudgetInfo:
            data = build_create_input(payload, self._settings)
            return self._catalog(session).create(workspace_id, data, user.id)

        return self._run("create_budget", workspace_id, operation, mutates=True)

    def update_budget(
        self,
        workspace_id: UUID,
        budget_id: UUID,
        payload: BudgetPatch | Mapping[str, Any],
    ) -> ActionResult[BudgetInfo]:
        def operation(session: Session, user: UserInfo) -> BudgetInfo:
            patch = build_patch(payload)
            if patch.is_empty():
                raise ValidationError("Nothing to update")
            catalog = self._catalog(session)
            catalog.update(workspace_id, budget_id, patch)
            return catalog.get(workspace_id, budget_id)

        return self._run("update_budget", workspace_id, operation, mutates=True)

    def delete_budget(self, workspace_id: UUID, budget_id: UUID) -> ActionResult[None]:
        def operation(session: Session, user: UserInfo) -> None:
            self._catalog(session).delete(workspace_id, budget_id)

        return self._run(
            "delete_budget",
            workspace_id,
            operation,
            mutates=True,
            conflict_message=DELETE_CONFLICT_MESSAGE,
        )

    def list_budgets(self, workspace_id: UUID) -> ActionResult[list[BudgetListing]]:
        def operation(session: Session, user: UserInfo) -> list[BudgetListing]:
            return self._catalog(session).list(workspace_id)

        return self._run("list_budgets", workspace_id, operation, mutates=False)

    def preview_contribution(
        self,
        workspace_id: UUID,
        target_amount: Any,
        due_date: Any,
        start_policy: str | None = None,
        currency: str = "USD",
    ) -> ActionResult[Decimal]:
        def operation(session: Session, user: UserInfo) -> Decimal:
            return self._catalog(session).preview_contribution(
                _decimal(target_amount, "target_amount"),
                due_date,
                start_policy or self._settings.default_start_policy,
                currency,
            )

        return self._run("preview_contribution", workspace_id, operation, mutates=False)

    # ------------------------------------------------------------------
    # Ledger and payments
    # ------------------------------------------------------------------

    def apply_monthly_contributions(
        self,
        workspace_id: UUID,
        now: datetime | None = None,
    ) -> ActionResult[ApplyContributionsResult]:
        def operation(session: Session, user: UserInfo) -> ApplyContributionsResult:
            return self._ledger(session).apply_monthly_contributions(
                workspace_id, user.id, now=now
            )

        def any_failed(outcome: ApplyContributionsResult) -> tuple[str, str] | None:
            if not outcome.has_failures:
                return None
            return MONTHLY_APPLY_MESSAGE, outcome.failed[0].code

        return self._run(
            "apply_monthly_contributions",
            workspace_id,
            operation,
            mutates=True,
            partial_failure=any_failed,
        )

    def confirm_payment(
        self,
        workspace_id: UUID,
        payment_due_id: UUID,
        account_id: UUID,
    ) -> ActionResult[ConfirmationResult]:
        def operation(session: Session, user: UserInfo) -> ConfirmationResult:
            return self._payments(session).confirm(
                workspace_id, payment_due_id, account_id, user.id
            )

        return self._run("confirm_payment", workspace_id, operation, mutates=True)

    def get_dashboard(self, workspace_id: UUID) -> ActionResult[DashboardFigures]:
        def operation(session: Session, user: UserInfo) -> DashboardFigures:
            return self._aggregator(session).dashboard(workspace_id)

        return self._run("get_dashboard", workspace_id, operation, mutates=False)
