"""Loan lifecycle service for LoanBook.

This service owns every change to a loan's financial state:
- Loan issuance from a rate catalog entry
- Payment application
- Payment reversal (administrative)
- Cancellation and deletion
- Due date adjustment

Each operation runs as one ``DatabaseManager.transaction()``. The loan row,
its payment rows and the collateral status commit together or not at all.
"""
import logging
from datetime import datetime
from typing import List, Optional

from loanbook.config import SETTING_SINGLE_OPEN_LOAN
from loanbook.data_structures import LoanSnapshot, LoanStatus, Payment
from loanbook.dates import to_datetime, to_storage, from_storage, add_weeks
from loanbook.exceptions import (
    LoanNotFoundError,
    LoanNotActiveError,
    LoanHasPaymentsError,
    PaymentNotFoundError,
    ClientNotFoundError,
    AmountExceedsBalanceError,
    CollateralAlreadyPledgedError,
    CollateralUnavailableError,
    OpenLoanExistsError,
    InvalidInputError,
)
from loanbook.money import to_cents, from_cents, to_positive_money
from loanbook.services import overdue_monitor

logger = logging.getLogger(__name__)


class LoanService:
    """Handles loan lifecycle operations.

    This class is responsible for creating, paying, cancelling and deleting
    loans. It delegates collateral transitions to the CollateralRegistry and
    balance derivation to the BalanceRecalculator.
    """

    def __init__(self, db_manager, rate_catalog, collateral_registry,
                 balance_recalculator=None, clock=None):
        """Initialize LoanService.

        Args:
            db_manager: DatabaseManager instance for data persistence.
            rate_catalog: RateCatalog used at origination.
            collateral_registry: CollateralRegistry for pledge/release.
            balance_recalculator: Optional BalanceRecalculator instance.
            clock: Callable returning "now"; defaults to ``datetime.now``.
        """
        self.db = db_manager
        self.rate_catalog = rate_catalog
        self.collateral_registry = collateral_registry
        self._balance_recalculator = balance_recalculator
        self.clock = clock or datetime.now

    @property
    def balance_recalculator(self):
        """Lazy-load balance recalculator to avoid circular imports."""
        if self._balance_recalculator is None:
            from .balance_calculator import BalanceRecalculator
            self._balance_recalculator = BalanceRecalculator(self.db)
        return self._balance_recalculator

    def _now(self) -> datetime:
        return to_datetime(self.clock())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_loan(self, client_id, principal, collateral_id, guarantor_id=None,
                    issue_date=None) -> LoanSnapshot:
        """Issue a loan from the active rate entry for ``principal``.

        The loan copies the entry's installment plan, so later catalog edits
        never change it.

        Args:
            client_id: Borrower.
            principal: Principal amount; must match an active rate entry.
            collateral_id: Item to pledge.
            guarantor_id: Optional guarantor (another client).
            issue_date: Defaults to now.

        Returns:
            Snapshot of the new ACTIVE loan.

        Raises:
            ClientNotFoundError: Unknown client or guarantor.
            RateNotFoundError: No active rate entry for the principal.
            OpenLoanExistsError: The client already has an active loan.
            CollateralUnavailableError: The collateral cannot be pledged.
        """
        issue = to_datetime(issue_date, "issue_date") if issue_date is not None else self._now()

        with self.db.transaction():
            self._require_client(client_id)
            if guarantor_id is not None:
                self._require_client(guarantor_id)

            rate = self.rate_catalog.get(principal)

            if self._single_open_loan_enforced():
                open_loan = self.db.get_active_loan_for_client(client_id)
                if open_loan:
                    raise OpenLoanExistsError(client_id, open_loan['id'])

            self._pledge_for_loan(collateral_id)

            weekly_cents = to_cents(rate.weekly_installment)
            loan_id = self.db.add_loan_record(
                client_id, collateral_id, guarantor_id, rate.id,
                to_cents(rate.principal), weekly_cents, rate.installment_count,
                weekly_cents * rate.installment_count,
                to_storage(issue), to_storage(add_weeks(issue, rate.installment_count))
            )

        logger.info("Loan %s issued to client %s: principal=%s total=%s collateral=%s",
                    loan_id, client_id, rate.principal, rate.total_amount, collateral_id)
        return self.get_loan(loan_id)

    def apply_payment(self, loan_id, amount, payment_date=None, notes="") -> LoanSnapshot:
        """Record a payment and update the loan's totals in one transaction.

        Late payments are accepted: an overdue loan is still ACTIVE.

        Args:
            loan_id: Loan being paid.
            amount: Positive amount, at most the remaining balance.
            payment_date: When the money was received; defaults to now.
            notes: Free text stored with the payment.

        Returns:
            Updated loan snapshot.

        Raises:
            InvalidAmountError: If the amount is not positive.
            LoanNotFoundError: If the loan doesn't exist.
            LoanNotActiveError: If the loan is PAID or CANCELLED.
            AmountExceedsBalanceError: If the amount is above the balance.
        """
        amount = to_positive_money(amount)
        amount_cents = to_cents(amount)
        now = self._now()
        paid_on = to_datetime(payment_date, "payment_date") if payment_date is not None else now

        with self.db.transaction():
            loan = self._require_loan(loan_id)
            if loan['status'] != LoanStatus.ACTIVE:
                logger.debug("Payment rejected: loan %s is %s", loan_id, loan['status'])
                raise LoanNotActiveError(loan_id, loan['status'])
            if amount_cents > loan['balance_cents']:
                logger.debug("Payment rejected: %s exceeds balance of loan %s", amount, loan_id)
                raise AmountExceedsBalanceError(loan_id, amount, from_cents(loan['balance_cents']))

            self.db.add_payment(loan_id, amount_cents, to_storage(paid_on), to_storage(now), notes)

            totals = self.balance_recalculator.derive_totals(
                loan['total_amount_cents'],
                loan['paid_amount_cents'] + amount_cents,
                loan['status'],
                loan['completed_at'],
                to_storage(now)
            )
            self.db.update_loan_totals(
                loan_id, totals.paid_amount_cents, totals.balance_cents,
                totals.status, totals.completed_at
            )
            if totals.status == LoanStatus.PAID:
                self.collateral_registry.release(loan['collateral_id'])

        logger.info("Payment of %s applied to loan %s (balance %s)",
                    amount, loan_id, from_cents(totals.balance_cents))
        if totals.status == LoanStatus.PAID:
            logger.info("Loan %s paid off; collateral %s released", loan_id, loan['collateral_id'])
        return self.get_loan(loan_id)

    def delete_payment(self, payment_id) -> LoanSnapshot:
        """Reverse a payment and re-derive the loan from its remaining payments.

        A PAID loan that regains a balance becomes ACTIVE again and takes its
        collateral back.

        Raises:
            PaymentNotFoundError: If the payment doesn't exist.
            LoanNotActiveError: If the loan was cancelled.
            CollateralUnavailableError: If the collateral was pledged elsewhere
                after the payoff.
        """
        now_str = to_storage(self._now())

        with self.db.transaction():
            payment = self.db.get_payment(payment_id)
            if not payment:
                raise PaymentNotFoundError(payment_id)
            loan_id = payment['loan_id']
            loan = self._require_loan(loan_id)
            if loan['status'] == LoanStatus.CANCELLED:
                raise LoanNotActiveError(loan_id, loan['status'])

            self.db.delete_payment(payment_id)

            reopens = (loan['status'] == LoanStatus.PAID
                       and self.db.sum_payments(loan_id) < loan['total_amount_cents'])
            if reopens:
                self._pledge_for_loan(loan['collateral_id'])

            _, totals = self.balance_recalculator.recalculate_loan(loan_id, now_str)

        logger.info("Payment %s reversed on loan %s (balance %s, status %s)",
                    payment_id, loan_id, from_cents(totals.balance_cents), totals.status)
        return self.get_loan(loan_id)

    def delete_loan(self, loan_id):
        """Delete a loan entered by mistake.

        Raises:
            LoanNotFoundError: If the loan doesn't exist.
            LoanHasPaymentsError: If any payment was recorded.
        """
        with self.db.transaction():
            loan = self._require_loan(loan_id)
            payment_count = self.db.count_payments(loan_id)
            if payment_count:
                raise LoanHasPaymentsError(loan_id, payment_count)

            self.db.delete_loan(loan_id)
            if loan['status'] == LoanStatus.ACTIVE:
                self.collateral_registry.release(loan['collateral_id'])

        logger.info("Loan %s deleted", loan_id)

    def cancel_loan(self, loan_id) -> LoanSnapshot:
        """Cancel an active loan and release its collateral. Irreversible.

        Raises:
            LoanNotFoundError: If the loan doesn't exist.
            LoanNotActiveError: If the loan is already PAID or CANCELLED.
        """
        with self.db.transaction():
            loan = self._require_loan(loan_id)
            if loan['status'] != LoanStatus.ACTIVE:
                raise LoanNotActiveError(loan_id, loan['status'])
            self.db.update_loan_status(loan_id, LoanStatus.CANCELLED)
            self.collateral_registry.release(loan['collateral_id'])

        logger.info("Loan %s cancelled with balance %s", loan_id, from_cents(loan['balance_cents']))
        return self.get_loan(loan_id)

    def update_due_date(self, loan_id, due_date) -> LoanSnapshot:
        """Move the due date of an active loan.

        Raises:
            LoanNotActiveError: If the loan is not ACTIVE.
            InvalidInputError: If the new date is not after the issue date.
        """
        new_due = to_datetime(due_date, "due_date")

        with self.db.transaction():
            loan = self._require_loan(loan_id)
            if loan['status'] != LoanStatus.ACTIVE:
                raise LoanNotActiveError(loan_id, loan['status'])
            if new_due <= from_storage(loan['issue_date']):
                raise InvalidInputError("due_date", "must be after the issue date")
            self.db.update_loan_due_date(loan_id, to_storage(new_due))

        logger.info("Loan %s due date moved to %s", loan_id, new_due)
        return self.get_loan(loan_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_loan(self, loan_id, now=None) -> LoanSnapshot:
        """Read a loan with its overdue view computed for ``now``."""
        loan = self._require_loan(loan_id)
        return self._snapshot(loan, self._resolve_now(now))

    def list_loans(self, status: Optional[str] = None, client_id=None, now=None) -> List[LoanSnapshot]:
        """List loans, newest first.

        ``status`` may be any stored status or OVERDUE, which selects the
        ACTIVE loans that are past due at ``now``.
        """
        now = self._resolve_now(now)
        if status is not None and status not in LoanStatus.STORED and status != LoanStatus.OVERDUE:
            raise InvalidInputError("status", f"unknown loan status {status!r}")

        stored_status = LoanStatus.ACTIVE if status == LoanStatus.OVERDUE else status
        snapshots = [self._snapshot(row, now) for row in self.db.get_loans(stored_status, client_id)]
        if status == LoanStatus.OVERDUE:
            return [snap for snap in snapshots if snap.is_overdue]
        return snapshots

    def overdue_loans(self, now=None) -> List[LoanSnapshot]:
        """Active loans past their due date, most overdue first. Read-only."""
        now = self._resolve_now(now)
        rows = self.db.get_active_loans_due_before(to_storage(now))
        return overdue_monitor.find_overdue((self._snapshot(row, now) for row in rows), now)

    def list_payments(self, loan_id) -> List[Payment]:
        """Payments of a loan, newest first."""
        self._require_loan(loan_id)
        return [Payment.from_row(row) for row in self.db.get_payments(loan_id)]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_now(self, now) -> datetime:
        return to_datetime(now, "now") if now is not None else self._now()

    def _require_loan(self, loan_id):
        loan = self.db.get_loan(loan_id)
        if not loan:
            raise LoanNotFoundError(loan_id)
        return loan

    def _require_client(self, client_id):
        client = self.db.get_client(client_id)
        if not client:
            raise ClientNotFoundError(client_id)
        return client

    def _pledge_for_loan(self, collateral_id):
        """Pledge collateral, naming the holding loan when it is taken."""
        try:
            self.collateral_registry.pledge(collateral_id)
        except CollateralAlreadyPledgedError as e:
            holder = self.db.get_active_loan_for_collateral(collateral_id)
            raise CollateralUnavailableError(
                collateral_id, e.details['status'], holder['id'] if holder else None
            ) from e

    def _single_open_loan_enforced(self):
        return self.db.get_setting(SETTING_SINGLE_OPEN_LOAN, "true").lower() == "true"

    def _snapshot(self, loan, now) -> LoanSnapshot:
        due_date = from_storage(loan['due_date'])
        status = loan['status']
        overdue = overdue_monitor.is_overdue(now, due_date, status)
        return LoanSnapshot(
            id=loan['id'],
            client_id=loan['client_id'],
            collateral_id=loan['collateral_id'],
            guarantor_id=loan['guarantor_id'],
            rate_id=loan['rate_id'],
            principal=from_cents(loan['principal_cents']),
            weekly_installment=from_cents(loan['weekly_installment_cents']),
            installment_count=loan['installment_count'],
            total_amount=from_cents(loan['total_amount_cents']),
            paid_amount=from_cents(loan['paid_amount_cents']),
            balance=from_cents(loan['balance_cents']),
            status=status,
            issue_date=from_storage(loan['issue_date']),
            due_date=due_date,
            completed_at=from_storage(loan['completed_at']),
            payment_count=loan.get('payment_count') or 0,
            is_overdue=overdue,
            days_overdue=overdue_monitor.days_overdue(now, due_date) if overdue else 0,
            remaining_weeks=overdue_monitor.remaining_weeks(now, due_date, status),
        )
