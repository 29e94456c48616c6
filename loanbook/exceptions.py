"""Custom exceptions for LoanBook."""
from loanbook.result import ErrorType


class LoanBookError(Exception):
    """Base exception for all LoanBook errors."""

    error_type = ErrorType.INTERNAL

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# STORAGE
# =============================================================================

class DatabaseError(LoanBookError):
    """Raised when a database operation fails."""
    error_type = ErrorType.DATABASE


class TransactionError(DatabaseError):
    """Raised when a database transaction fails to complete."""
    pass


class IntegrityViolationError(DatabaseError):
    """Raised when the store rejects a write that would break a ledger invariant.

    Reaching this means a bug in the ledger, not a user error.
    """
    error_type = ErrorType.INTEGRITY


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(LoanBookError):
    """Raised when a requested record does not exist."""
    error_type = ErrorType.NOT_FOUND

    def __init__(self, kind: str, key, message: str = None):
        details = {f"{kind.lower()}_id": key}
        super().__init__(message or f"{kind} '{key}' not found", details)


class LoanNotFoundError(NotFoundError):
    def __init__(self, loan_id):
        super().__init__("Loan", loan_id)


class PaymentNotFoundError(NotFoundError):
    def __init__(self, payment_id):
        super().__init__("Payment", payment_id)


class CollateralNotFoundError(NotFoundError):
    def __init__(self, collateral_id):
        super().__init__("Collateral", collateral_id)


class ClientNotFoundError(NotFoundError):
    def __init__(self, client_id):
        super().__init__("Client", client_id)


class RateNotFoundError(NotFoundError):
    """Raised when no active rate entry exists for a principal."""

    def __init__(self, principal=None, rate_id=None):
        if rate_id is not None:
            super().__init__("Rate", rate_id)
        else:
            super().__init__("Rate", None, f"No active rate for principal {principal}")
            self.details = {'principal': str(principal)}


# =============================================================================
# CONFLICTS
# =============================================================================

class ConflictError(LoanBookError):
    """Raised when an operation clashes with the current state of a record."""
    error_type = ErrorType.CONFLICT


class CollateralAlreadyPledgedError(ConflictError):
    """Raised when pledging collateral that is not AVAILABLE."""

    def __init__(self, collateral_id, status: str):
        details = {'collateral_id': collateral_id, 'status': status}
        message = f"Collateral {collateral_id} cannot be pledged (status: {status})"
        super().__init__(message, details)


class CollateralUnavailableError(ConflictError):
    """Raised when a loan cannot take its collateral.

    Identifies the loan currently holding it, when there is one.
    """

    def __init__(self, collateral_id, status: str, held_by_loan_id=None):
        details = {'collateral_id': collateral_id, 'status': status}
        message = f"Collateral {collateral_id} is unavailable (status: {status})"
        if held_by_loan_id is not None:
            details['held_by_loan_id'] = held_by_loan_id
            message += f", held by loan {held_by_loan_id}"
        super().__init__(message, details)


class CollateralNotPledgedError(ConflictError):
    def __init__(self, collateral_id, status: str):
        details = {'collateral_id': collateral_id, 'status': status}
        message = f"Collateral {collateral_id} is not pledged (status: {status})"
        super().__init__(message, details)


class CollateralInUseError(ConflictError):
    """Raised when retiring or deleting collateral that a loan still needs."""

    def __init__(self, collateral_id, reason: str, held_by_loan_id=None):
        details = {'collateral_id': collateral_id}
        if held_by_loan_id is not None:
            details['held_by_loan_id'] = held_by_loan_id
        super().__init__(f"Collateral {collateral_id} is in use: {reason}", details)


class LoanNotActiveError(ConflictError):
    """Raised when an operation requires an active loan but the loan is not."""

    def __init__(self, loan_id, status: str):
        details = {
            'loan_id': loan_id,
            'status': status
        }
        message = f"Loan {loan_id} is not active (status: {status})"
        super().__init__(message, details)


class AmountExceedsBalanceError(ConflictError):
    """Raised when a payment is larger than the remaining balance.

    The exact balance is exposed so the caller can retry with a valid amount.
    """

    def __init__(self, loan_id, amount, balance):
        self.amount = amount
        self.balance = balance
        details = {
            'loan_id': loan_id,
            'amount': str(amount),
            'balance': str(balance)
        }
        message = f"Payment {amount} exceeds remaining balance {balance}"
        super().__init__(message, details)


class LoanHasPaymentsError(ConflictError):
    def __init__(self, loan_id, payment_count: int):
        details = {'loan_id': loan_id, 'payment_count': payment_count}
        message = f"Loan {loan_id} has {payment_count} payment(s) and cannot be deleted"
        super().__init__(message, details)


class OpenLoanExistsError(ConflictError):
    def __init__(self, client_id, loan_id):
        details = {'client_id': client_id, 'loan_id': loan_id}
        message = f"Client {client_id} already has an active loan ({loan_id})"
        super().__init__(message, details)


class RateConflictError(ConflictError):
    """Raised when a rate catalog change clashes with other entries or loans."""
    pass


# =============================================================================
# INVALID INPUT
# =============================================================================

class InvalidError(LoanBookError):
    """Raised when input is malformed or out of range."""
    error_type = ErrorType.INVALID


class InvalidAmountError(InvalidError):
    def __init__(self, amount, reason: str = "amount must be greater than zero"):
        super().__init__(f"Invalid amount {amount!r}: {reason}", {'amount': str(amount)})


class InvalidInputError(InvalidError):
    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}", {'field': field})
