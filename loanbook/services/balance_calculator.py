"""Balance calculation service for LoanBook.

This service derives a loan's ``paid_amount``, ``balance``, ``status`` and
``completed_at`` from its payments. Applying a payment and reversing one
both go through ``derive_totals`` so there is a single definition of a
consistent loan.
"""
from collections import namedtuple
from typing import List

from loanbook.data_structures import LoanStatus

LoanTotals = namedtuple('LoanTotals', ['paid_amount_cents', 'balance_cents', 'status', 'completed_at'])


class BalanceRecalculator:
    """Handles balance recalculation operations.

    Works in integer cents, the unit the store keeps, so repeated weekly
    additions never drift.
    """

    def __init__(self, db_manager):
        """Initialize BalanceRecalculator.

        Args:
            db_manager: DatabaseManager instance for data persistence.
        """
        self.db = db_manager

    @staticmethod
    def derive_totals(total_amount_cents, paid_amount_cents, status, completed_at, now_str):
        """Compute the totals a loan must carry after ``paid_amount_cents`` is known.

        Args:
            total_amount_cents: Fixed total owed.
            paid_amount_cents: Sum of all recorded payments.
            status: Current stored status.
            completed_at: Current completion timestamp, if any.
            now_str: Storage timestamp used if the loan becomes PAID now.

        Returns:
            LoanTotals for the loan.
        """
        balance_cents = max(total_amount_cents - paid_amount_cents, 0)
        if balance_cents == 0:
            if status == LoanStatus.PAID and completed_at:
                return LoanTotals(paid_amount_cents, 0, LoanStatus.PAID, completed_at)
            return LoanTotals(paid_amount_cents, 0, LoanStatus.PAID, now_str)

        if status == LoanStatus.CANCELLED:
            return LoanTotals(paid_amount_cents, balance_cents, LoanStatus.CANCELLED, None)
        return LoanTotals(paid_amount_cents, balance_cents, LoanStatus.ACTIVE, None)

    def recalculate_loan(self, loan_id, now_str):
        """Re-derive a loan's totals from its payment rows and persist them.

        Must run inside the caller's transaction.

        Returns:
            (previous loan row, LoanTotals written)
        """
        loan = self.db.get_loan(loan_id)
        paid_cents = self.db.sum_payments(loan_id)
        totals = self.derive_totals(
            loan['total_amount_cents'], paid_cents, loan['status'], loan['completed_at'], now_str
        )
        self.db.update_loan_totals(
            loan_id, totals.paid_amount_cents, totals.balance_cents, totals.status, totals.completed_at
        )
        return loan, totals

    def verify_loan(self, loan_id) -> List[str]:
        """List every invariant the stored loan currently breaks.

        An empty list means the loan is consistent with its payments.
        """
        loan = self.db.get_loan(loan_id)
        if not loan:
            return [f"loan {loan_id} does not exist"]

        problems = []
        total = loan['total_amount_cents']
        paid = loan['paid_amount_cents']
        balance = loan['balance_cents']

        if total != loan['weekly_installment_cents'] * loan['installment_count']:
            problems.append("total_amount does not match weekly_installment * installment_count")
        if paid != self.db.sum_payments(loan_id):
            problems.append("paid_amount does not match the sum of payments")
        if balance != max(total - paid, 0):
            problems.append("balance does not match total_amount - paid_amount")
        if (loan['status'] == LoanStatus.PAID) != (balance == 0):
            problems.append("status PAID does not match a zero balance")
        if (loan['status'] == LoanStatus.PAID) != bool(loan['completed_at']):
            problems.append("completed_at does not match status PAID")
        return problems
