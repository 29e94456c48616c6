"""Tests for transaction safety and structured error handling."""
import os
import sys
import unittest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loanbook.database import DatabaseManager
from loanbook.engine import LoanEngine
from loanbook.exceptions import (
    LoanBookError,
    LoanNotFoundError,
    LoanNotActiveError,
    IntegrityViolationError,
    DatabaseError,
    ConflictError,
)
from loanbook.result import ErrorType


class TestExceptions(unittest.TestCase):
    """Test that custom exceptions work correctly."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.engine = LoanEngine(self.db)
        self.engine.seed_rates()
        self.client_id = self.engine.add_client("Test User", "123").id
        self.collateral_id = self.engine.intake_collateral("500", "Watch").id

    def tearDown(self):
        self.db.close()

    def test_loan_not_found_error(self):
        """Test that get_loan raises LoanNotFoundError with the id in details."""
        with self.assertRaises(LoanNotFoundError) as context:
            self.engine.get_loan(4242)

        self.assertIn("4242", str(context.exception))
        self.assertEqual(context.exception.details, {'loan_id': 4242})
        self.assertEqual(context.exception.error_type, ErrorType.NOT_FOUND)

    def test_loan_not_active_error(self):
        """Test that paying a paid loan raises LoanNotActiveError."""
        loan = self.engine.create_loan(self.client_id, 500, self.collateral_id)
        self.engine.apply_payment(loan.id, "630")

        with self.assertRaises(LoanNotActiveError) as context:
            self.engine.apply_payment(loan.id, "1")

        self.assertEqual(context.exception.details['status'], "PAID")
        self.assertIsInstance(context.exception, ConflictError)
        self.assertIsInstance(context.exception, LoanBookError)

    def test_error_str_includes_details(self):
        error = LoanBookError("Something failed", {'loan_id': 7})
        self.assertEqual(str(error), "Something failed - {'loan_id': 7}")
        self.assertEqual(str(LoanBookError("Plain")), "Plain")
        self.assertEqual(error.error_type, ErrorType.INTERNAL)


class TestConnectionManagement(unittest.TestCase):
    """Test database connection management."""

    def test_context_manager(self):
        """Test that DatabaseManager works as a context manager."""
        with DatabaseManager(":memory:") as db:
            db.add_client("Context Test", "123")
            self.assertEqual(len(db.get_clients()), 1)

        # Connection should be closed after exiting context
        self.assertTrue(db._closed)

    def test_explicit_close(self):
        """Test explicit close() method."""
        db = DatabaseManager(":memory:")
        db.add_client("Close Test")

        self.assertFalse(db._closed)
        db.close()
        self.assertTrue(db._closed)

        # Calling close again should not raise
        db.close()

    def test_default_settings_are_seeded(self):
        with DatabaseManager(":memory:") as db:
            self.assertEqual(db.get_setting("single_open_loan_per_client"), "true")
            self.assertEqual(db.get_setting("missing", "fallback"), "fallback")
            db.set_setting("single_open_loan_per_client", False)
            self.assertEqual(db.get_setting("single_open_loan_per_client"), "False")


class TestTransactionContextManager(unittest.TestCase):
    """Test the transaction context manager."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")

    def tearDown(self):
        self.db.close()

    def test_transaction_commit_on_success(self):
        """Test that successful transactions are committed."""
        with self.db.transaction():
            self.assertTrue(self.db.in_transaction)
            self.db.conn.execute(
                "INSERT INTO clients (name, document_number, phone, created_at) VALUES (?, ?, ?, ?)",
                ("Trans Test", "123", "555", "2026-01-01 00:00:00")
            )

        # Verify the data persisted
        self.assertFalse(self.db.in_transaction)
        clients = self.db.get_clients()
        self.assertEqual(len(clients), 1)
        self.assertEqual(clients[0]['name'], "Trans Test")

    def test_transaction_rollback_on_failure(self):
        """Test that failed transactions are rolled back."""
        try:
            with self.db.transaction():
                self.db.add_client("Rollback Test")
                # Force an error
                raise ValueError("Simulated error")
        except ValueError:
            pass

        # Verify the data was rolled back
        self.assertEqual(self.db.get_clients(), [])
        self.assertFalse(self.db.in_transaction)

    def test_nested_transaction_joins_outer(self):
        """Test that an inner block's work is undone when the outer block fails."""
        with self.assertRaises(ValueError):
            with self.db.transaction():
                self.db.add_client("Outer")
                with self.db.transaction():
                    self.db.add_client("Inner")
                raise ValueError("Simulated error")

        self.assertEqual(self.db.count_clients(), 0)

    def test_constraint_failure_becomes_integrity_error(self):
        """Test that SQLite CHECK failures surface as IntegrityViolationError."""
        with self.assertRaises(IntegrityViolationError) as context:
            with self.db.transaction():
                self.db.add_client("Kept only if committed")
                self.db.add_collateral("Worthless", 0)

        self.assertIsInstance(context.exception, DatabaseError)
        self.assertEqual(context.exception.error_type, ErrorType.INTEGRITY)
        self.assertEqual(self.db.count_clients(), 0)
        self.assertEqual(self.db.count_collaterals(), 0)

    def test_rejection_is_logged(self):
        with self.assertLogs('loanbook.database', level='WARNING'):
            with self.assertRaises(IntegrityViolationError):
                self.db.add_rate_entry(50000, -1, 6)

    def test_special_characters_are_stored_safely(self):
        """Test that parameterized queries keep quotes out of the SQL."""
        name = "Test'; DROP TABLE loans; --"
        client_id = self.db.add_client(name)

        self.assertEqual(self.db.get_client(client_id)['name'], name)
        self.assertEqual(self.db.get_loans(), [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
