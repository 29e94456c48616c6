"""Tests for concurrent payments against one loan."""
import os
import sys
import threading
import unittest
from decimal import Decimal

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loanbook.data_structures import LoanStatus, CollateralStatus
from loanbook.database import DatabaseManager
from loanbook.engine import LoanEngine
from loanbook.exceptions import LoanNotActiveError


class TestConcurrentPayments(unittest.TestCase):
    """Test that payments on the same loan are applied one after the other."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.engine = LoanEngine(self.db)
        self.engine.seed_rates()
        client = self.engine.add_client("Marta Huaman")
        self.collateral = self.engine.intake_collateral("700", "Sewing machine")
        self.loan = self.engine.create_loan(client.id, 500, self.collateral.id)

    def tearDown(self):
        self.db.close()

    def _pay_concurrently(self, amounts):
        barrier = threading.Barrier(len(amounts))
        errors = []
        lock = threading.Lock()

        def pay(amount):
            barrier.wait()
            try:
                self.engine.apply_payment(self.loan.id, amount)
            except Exception as e:
                with lock:
                    errors.append(e)

        threads = [threading.Thread(target=pay, args=(amount,)) for amount in amounts]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        return errors

    def test_two_half_balance_payments_sum_exactly(self):
        errors = self._pay_concurrently(["315.00", "315.00"])

        self.assertEqual(errors, [])
        loan = self.engine.get_loan(self.loan.id)
        self.assertEqual(loan.paid_amount, Decimal("630.00"))
        self.assertEqual(loan.balance, Decimal("0.00"))
        self.assertEqual(loan.status, LoanStatus.PAID)
        self.assertEqual(loan.payment_count, 2)
        self.assertEqual(self.engine.get_collateral(self.collateral.id).status,
                         CollateralStatus.AVAILABLE)

    def test_no_payment_applies_against_stale_balance(self):
        """Test that a third half-balance payment is rejected, never double counted."""
        errors = self._pay_concurrently(["315.00", "315.00", "315.00"])

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], LoanNotActiveError)
        loan = self.engine.get_loan(self.loan.id)
        self.assertEqual(loan.paid_amount, Decimal("630.00"))
        self.assertEqual(loan.payment_count, 2)
        self.assertEqual(self.engine.verify_loan(self.loan.id), [])

    def test_many_small_payments(self):
        errors = self._pay_concurrently(["10.50"] * 20)

        self.assertEqual(errors, [])
        loan = self.engine.get_loan(self.loan.id)
        self.assertEqual(loan.paid_amount, Decimal("210.00"))
        self.assertEqual(loan.balance, Decimal("420.00"))
        self.assertEqual(self.engine.verify_loan(self.loan.id), [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
