"""Result values for the LoanBook library boundary.

Ledger services raise typed errors. ``LoanEngine.execute`` folds those into
a Result for callers that would rather branch on a value, e.g. a form that
shows the remaining balance after a rejected overpayment.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TypeVar, Generic

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """Outcome of one engine operation.

    Attributes:
        success: True when the operation committed.
        value: What the operation returned (usually a snapshot).
        error: Human readable reason for a failure.
        error_type: One of the ErrorType constants.
        details: Structured context copied from the error, e.g. ``balance``.

    Usage:
        result = engine.execute(engine.apply_payment, loan_id, "105.00")
        if not result:
            suggested = result.details.get('balance')
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: T = None) -> 'Result[T]':
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, error_type: str = None, details: dict = None) -> 'Result[T]':
        """Build a failed result. ``details`` is copied, never shared."""
        return cls(success=False, error=error, error_type=error_type, details=dict(details or {}))

    @classmethod
    def from_error(cls, exc) -> 'Result[T]':
        """Build a failed result from a LoanBookError."""
        return cls.fail(exc.message, exc.error_type, exc.details)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        """Return the value of a successful result.

        Raises:
            ValueError: If the result is a failure.
        """
        if self.success:
            return self.value
        raise ValueError(f"Cannot unwrap failed result ({self.error_type}): {self.error}")

    def unwrap_or(self, default: T) -> T:
        if self.success:
            return self.value
        return default


class ErrorType:
    """Error categories shared by exceptions and results."""
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID = "INVALID"
    INTEGRITY = "INTEGRITY"
    DATABASE = "DATABASE"
    INTERNAL = "INTERNAL"
