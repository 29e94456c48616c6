from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from loanbook.money import from_cents
from loanbook.dates import from_storage


class LoanStatus:
    """Stored loan states. OVERDUE is a read-time view of ACTIVE, never stored."""
    ACTIVE = "ACTIVE"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    OVERDUE = "OVERDUE"

    STORED = (ACTIVE, PAID, CANCELLED)


class CollateralStatus:
    AVAILABLE = "AVAILABLE"
    PLEDGED = "PLEDGED"
    RETIRED = "RETIRED"

    ALL = (AVAILABLE, PLEDGED, RETIRED)


@dataclass(frozen=True)
class Client:
    id: int
    name: str
    document_number: str
    phone: str
    created_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Client':
        return cls(
            id=row['id'],
            name=row['name'],
            document_number=row.get('document_number') or "",
            phone=row.get('phone') or "",
            created_at=from_storage(row.get('created_at')),
        )


@dataclass(frozen=True)
class RateEntry:
    """Catalog row mapping a principal to its weekly installment plan."""
    id: int
    principal: Decimal
    weekly_installment: Decimal
    installment_count: int
    active: bool

    @property
    def total_amount(self) -> Decimal:
        return self.weekly_installment * self.installment_count

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'RateEntry':
        return cls(
            id=row['id'],
            principal=from_cents(row['principal_cents']),
            weekly_installment=from_cents(row['weekly_installment_cents']),
            installment_count=row['installment_count'],
            active=bool(row['active']),
        )


@dataclass(frozen=True)
class Collateral:
    id: int
    name: str
    estimated_value: Decimal
    status: str
    created_at: Optional[datetime]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Collateral':
        return cls(
            id=row['id'],
            name=row.get('name') or "",
            estimated_value=from_cents(row['estimated_value_cents']),
            status=row['status'],
            created_at=from_storage(row.get('created_at')),
        )


@dataclass(frozen=True)
class Payment:
    id: int
    loan_id: int
    amount: Decimal
    payment_date: datetime
    recorded_at: datetime
    notes: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Payment':
        return cls(
            id=row['id'],
            loan_id=row['loan_id'],
            amount=from_cents(row['amount_cents']),
            payment_date=from_storage(row['payment_date']),
            recorded_at=from_storage(row['recorded_at']),
            notes=row.get('notes') or "",
        )


@dataclass(frozen=True)
class LoanSnapshot:
    """Read projection of a loan.

    Monetary fields are exact Decimals. The overdue fields are computed
    at the moment the snapshot is taken and are not stored anywhere.
    """
    id: int
    client_id: int
    collateral_id: int
    guarantor_id: Optional[int]
    rate_id: Optional[int]
    principal: Decimal
    weekly_installment: Decimal
    installment_count: int
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: str
    issue_date: datetime
    due_date: datetime
    completed_at: Optional[datetime]
    payment_count: int = 0
    is_overdue: bool = False
    days_overdue: int = 0
    remaining_weeks: int = 0

    @property
    def interest_amount(self) -> Decimal:
        return self.total_amount - self.principal

    @property
    def display_status(self) -> str:
        """Status for listings, with OVERDUE derived from ACTIVE."""
        return LoanStatus.OVERDUE if self.is_overdue else self.status

    @property
    def progress(self) -> Decimal:
        """Percentage of the total already paid, two places."""
        if not self.total_amount:
            return Decimal("0.00")
        return (self.paid_amount * 100 / self.total_amount).quantize(Decimal("0.01"))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['interest_amount'] = self.interest_amount
        data['display_status'] = self.display_status
        data['progress'] = self.progress
        return data
