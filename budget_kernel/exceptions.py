"""
Typed Exception Hierarchy for the Budget Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Budget operations are surfaced to users through a uniform result envelope.
The envelope layer must decide, per failure, what the user may see and
whether the row or figure should degrade.  That decision is made by TYPE
and by the machine-readable CODE, never by parsing messages.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BudgetLedgerError (base)
    |
    +-- ValidationError
    |   +-- InvalidCurrencyError
    |   +-- InvalidAmountError
    |   +-- DueDateInPastError
    |
    +-- PermissionDeniedError
    |   +-- UnauthenticatedError
    |
    +-- NotFoundError
    |   +-- BudgetNotFoundError
    |   +-- PaymentDueNotFoundError
    |   +-- SubcategoryNotFoundError
    |   +-- AccountNotFoundError
    |
    +-- ConflictError
    |   +-- AlreadyConfirmedError
    |   +-- DuplicateContributionError
    |
    +-- ConfigIntegrityError
    |
    +-- DependencyError
    |   +-- ExchangeRateNotFoundError
    |   +-- TransactionStoreError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                     | When Raised
----------------|--------------------------|-------------------------------------------
Validation      | VALIDATION_ERROR         | Bad input shape or range
                | INVALID_CURRENCY         | Not a known ISO 4217 code
                | INVALID_AMOUNT           | Amount missing, zero, negative or float
                | DUE_DATE_IN_PAST         | Zero fundable months at creation time
----------------|--------------------------|-------------------------------------------
Permission      | PERMISSION_DENIED        | Actor may not manage the workspace
                | UNAUTHENTICATED          | No current user
----------------|--------------------------|-------------------------------------------
Not found       | BUDGET_NOT_FOUND         | Budget id unknown in this workspace
                | PAYMENT_DUE_NOT_FOUND    | Payment due id unknown in this workspace
                | SUBCATEGORY_NOT_FOUND    | Subcategory id unknown in this workspace
                | ACCOUNT_NOT_FOUND        | Account id unknown in this workspace
----------------|--------------------------|-------------------------------------------
Conflict        | CONFLICT                 | Scoped delete/update touched zero rows
                | ALREADY_CONFIRMED        | Payment due already confirmed
                | DUPLICATE_CONTRIBUTION   | Second automatic fund in the same month
----------------|--------------------------|-------------------------------------------
Integrity       | CONFIG_INTEGRITY         | Budget has neither, both, or wrong config
----------------|--------------------------|-------------------------------------------
Dependency      | DEPENDENCY_ERROR         | Datastore or collaborator failure
                | EXCHANGE_RATE_NOT_FOUND  | No cached rate for the currency pair
                | TRANSACTION_STORE_ERROR  | Transaction store write/read failed
----------------|--------------------------|-------------------------------------------
Immutability    | IMMUTABILITY_VIOLATION   | Ledger entry or confirmed payment modified
"""


class BudgetLedgerError(Exception):
    """
    Base exception for all budget kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BUDGET_LEDGER_ERROR"


# Validation


class ValidationError(BudgetLedgerError):
    """Input failed shape or range validation.  Never retried automatically."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidCurrencyError(ValidationError):
    """Currency code is not a recognised ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'", field="currency")


class InvalidAmountError(ValidationError):
    """Amount is missing, non-positive, or not a Decimal-compatible value."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object):
        self.value = str(value)
        super().__init__(f"{field} must be a positive amount, got {value!r}", field=field)


class DueDateInPastError(ValidationError):
    """Due date yields zero fundable months under the chosen start policy."""

    code: str = "DUE_DATE_IN_PAST"

    def __init__(self, due_date: str, start_policy: str):
        self.due_date = due_date
        self.start_policy = start_policy
        super().__init__(
            f"Due date must be in the future: {due_date} leaves no fundable "
            f"months under {start_policy}",
            field="due_date",
        )


# Permission


class PermissionDeniedError(BudgetLedgerError):
    """Actor lacks manage rights on the workspace."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, workspace_id: str, message: str | None = None):
        self.workspace_id = workspace_id
        super().__init__(message or f"Not allowed to manage workspace {workspace_id}")


class UnauthenticatedError(PermissionDeniedError):
    """No authenticated user is attached to the request."""

    code: str = "UNAUTHENTICATED"

    def __init__(self, workspace_id: str = ""):
        super().__init__(workspace_id, "Unauthorized")


# Not found


class NotFoundError(BudgetLedgerError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class BudgetNotFoundError(NotFoundError):
    code: str = "BUDGET_NOT_FOUND"

    def __init__(self, budget_id: str):
        self.budget_id = budget_id
        super().__init__(f"Budget not found: {budget_id}")


class PaymentDueNotFoundError(NotFoundError):
    code: str = "PAYMENT_DUE_NOT_FOUND"

    def __init__(self, payment_due_id: str):
        self.payment_due_id = payment_due_id
        super().__init__(f"Payment due not found: {payment_due_id}")


class SubcategoryNotFoundError(NotFoundError):
    code: str = "SUBCATEGORY_NOT_FOUND"

    def __init__(self, subcategory_id: str):
        self.subcategory_id = subcategory_id
        super().__init__(f"Subcategory not found: {subcategory_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


# Conflict


class ConflictError(BudgetLedgerError):
    """
    A workspace-scoped write affected zero rows.

    The message never says whether the record is missing or belongs to
    another workspace.
    """

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            f"{operation} of {entity_type} {entity_id} affected no rows"
        )


class AlreadyConfirmedError(ConflictError):
    """PaymentDue has already transitioned to confirmed."""

    code: str = "ALREADY_CONFIRMED"

    def __init__(self, payment_due_id: str, transaction_id: str | None):
        self.payment_due_id = payment_due_id
        self.transaction_id = transaction_id
        super().__init__("PaymentDue", payment_due_id, "confirm")


class DuplicateContributionError(ConflictError):
    """An automatic fund entry already exists for this budget and month."""

    code: str = "DUPLICATE_CONTRIBUTION"

    def __init__(self, budget_id: str, month: str):
        self.budget_id = budget_id
        self.month = month
        super().__init__("LedgerEntry", budget_id, f"fund for {month}")


# Integrity


class ConfigIntegrityError(BudgetLedgerError):
    """
    Budget row exists without exactly the config its type requires.

    Never defaulted to an amount of 0: callers render a degraded row and
    offer delete-and-recreate.
    """

    code: str = "CONFIG_INTEGRITY"

    def __init__(
        self,
        budget_id: str,
        budget_type: str,
        has_payg_config: bool,
        has_plan_config: bool,
    ):
        self.budget_id = budget_id
        self.budget_type = budget_type
        self.has_payg_config = has_payg_config
        self.has_plan_config = has_plan_config
        super().__init__(
            f"Budget {budget_id} of type {budget_type} has inconsistent config "
            f"(payg={has_payg_config}, plan={has_plan_config})"
        )


# Dependency


class DependencyError(BudgetLedgerError):
    """An external collaborator or the datastore failed."""

    code: str = "DEPENDENCY_ERROR"

    def __init__(self, dependency: str, message: str):
        self.dependency = dependency
        super().__init__(f"{dependency}: {message}")


class ExchangeRateNotFoundError(DependencyError):
    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(
            "fx", f"No exchange rate for {from_currency} -> {to_currency}"
        )


class TransactionStoreError(DependencyError):
    code: str = "TRANSACTION_STORE_ERROR"

    def __init__(self, message: str):
        super().__init__("transaction_store", message)


# Immutability


class ImmutabilityViolationError(BudgetLedgerError):
    """Attempted to modify or delete an append-only or finalized record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
