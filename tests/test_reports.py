"""Tests for payment statistics and the dashboard summary."""
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

import pandas as pd

from loanbook.database import DatabaseManager
from loanbook.engine import LoanEngine
from loanbook.money import ZERO

# Wednesday; the reporting week runs Sunday 2024-03-03 to Saturday 2024-03-09
NOW = datetime(2024, 3, 6, 15, 0, 0)


class TestPaymentStats(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.engine = LoanEngine(self.db, clock=lambda: NOW)
        self.engine.seed_rates()
        client = self.engine.add_client("Sofia Ramos")
        item = self.engine.intake_collateral("800", "Tablet")
        self.loan = self.engine.create_loan(client.id, 500, item.id,
                                            issue_date=datetime(2024, 2, 28, 9, 0, 0))

    def tearDown(self):
        self.db.close()

    def _pay(self, amount, when):
        self.engine.apply_payment(self.loan.id, amount, payment_date=when)

    def test_empty_ledger(self):
        stats = self.engine.payment_stats()
        self.assertEqual(stats['total'], {'amount': ZERO, 'count': 0, 'average': ZERO})
        self.assertEqual(stats['today'], {'amount': ZERO, 'count': 0})
        self.assertEqual(stats['week'], {'amount': ZERO, 'count': 0})

    def test_total_today_and_week(self):
        self._pay("105", datetime(2024, 3, 1, 10, 0))   # previous week
        self._pay("105", datetime(2024, 3, 4, 11, 0))   # this week
        self._pay("100", datetime(2024, 3, 6, 9, 30))   # today

        stats = self.engine.payment_stats()
        self.assertEqual(stats['total']['amount'], Decimal("310.00"))
        self.assertEqual(stats['total']['count'], 3)
        self.assertEqual(stats['total']['average'], Decimal("103.33"))
        self.assertEqual(stats['today'], {'amount': Decimal("100.00"), 'count': 1})
        self.assertEqual(stats['week'], {'amount': Decimal("205.00"), 'count': 2})

    def test_week_starts_on_sunday(self):
        self._pay("50", datetime(2024, 3, 3, 0, 0))     # Sunday, counted
        self._pay("50", datetime(2024, 3, 2, 23, 59))   # Saturday before, not counted

        stats = self.engine.payment_stats()
        self.assertEqual(stats['week'], {'amount': Decimal("50.00"), 'count': 1})

    def test_payments_frame_filters(self):
        self._pay("105", datetime(2024, 3, 1, 10, 0))
        self._pay("105", datetime(2024, 3, 4, 11, 0))

        frame = self.engine.report_generator.payments_frame(start_date="2024-03-02")
        self.assertEqual(len(frame), 1)
        self.assertEqual(frame['amount'].iloc[0], Decimal("105.00"))
        self.assertEqual(frame['payment_date'].iloc[0], pd.Timestamp("2024-03-04 11:00:00"))

        frame = self.engine.report_generator.payments_frame(end_date="2024-03-02")
        self.assertEqual(len(frame), 1)

    def test_weekly_collections(self):
        self._pay("105", datetime(2024, 3, 1, 10, 0))
        self._pay("105", datetime(2024, 3, 4, 11, 0))
        self._pay("100", datetime(2024, 3, 6, 9, 30))

        weekly = self.engine.report_generator.weekly_collections()
        self.assertEqual(list(weekly['week_start']),
                         [pd.Timestamp("2024-02-25"), pd.Timestamp("2024-03-03")])
        self.assertEqual(list(weekly['amount']), [Decimal("105.00"), Decimal("205.00")])
        self.assertEqual(list(weekly['count']), [1, 2])

    def test_weekly_collections_empty(self):
        weekly = self.engine.report_generator.weekly_collections()
        self.assertTrue(weekly.empty)
        self.assertEqual(list(weekly.columns), ['week_start', 'amount', 'count'])


class TestDashboardSummary(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.engine = LoanEngine(self.db, clock=lambda: NOW)
        self.engine.seed_rates()

    def tearDown(self):
        self.db.close()

    def _loan(self, name, principal, issue_date):
        client = self.engine.add_client(name)
        item = self.engine.intake_collateral("1000", f"{name} item")
        return self.engine.create_loan(client.id, principal, item.id, issue_date=issue_date)

    def test_summary(self):
        overdue = self._loan("Overdue Client", 500, NOW - timedelta(weeks=7))
        due_soon = self._loan("Due Soon Client", 500, NOW - timedelta(weeks=6) + timedelta(days=3))
        self._loan("Later Client", 600, NOW)
        paid = self._loan("Paid Client", 500, NOW - timedelta(weeks=2))

        self.engine.apply_payment(overdue.id, "105")
        self.engine.apply_payment(paid.id, "630")

        summary = self.engine.dashboard_summary()
        self.assertEqual(summary['clients'], 4)
        self.assertEqual(summary['active_loans'], 3)
        self.assertEqual(summary['overdue_loans'], 1)
        self.assertEqual(summary['total_revenue'], Decimal("735.00"))
        self.assertEqual(summary['outstanding_balance'], Decimal("1815.00"))
        self.assertEqual(summary['collaterals'], 4)
        self.assertEqual(summary['pledged_collaterals'], 3)
        self.assertEqual([loan.id for loan in summary['upcoming_due']], [due_soon.id])

    def test_empty_summary(self):
        summary = self.engine.dashboard_summary()
        self.assertEqual(summary['active_loans'], 0)
        self.assertEqual(summary['total_revenue'], ZERO)
        self.assertEqual(summary['outstanding_balance'], ZERO)
        self.assertEqual(summary['upcoming_due'], [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
