"""
Report generation module for LoanBook.
Read-only payment statistics and dashboard figures. Nothing here mutates
a loan.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pandas as pd

from loanbook.config import UPCOMING_DUE_DAYS, UPCOMING_DUE_LIMIT, DATETIME_FORMAT_STORAGE
from loanbook.data_structures import LoanStatus, CollateralStatus
from loanbook.dates import to_datetime, to_storage
from loanbook.money import from_cents, ZERO


class ReportGenerator:
    def __init__(self, db_manager, loan_service=None, clock=None):
        self.db = db_manager
        self.loan_service = loan_service
        self.clock = clock or datetime.now

    def _now(self, now=None):
        return to_datetime(now if now is not None else self.clock())

    @staticmethod
    def _day_bounds(now):
        start = datetime(now.year, now.month, now.day)
        return start, start + timedelta(days=1)

    @staticmethod
    def _week_bounds(now):
        """Sunday-to-Saturday week containing ``now``."""
        today = datetime(now.year, now.month, now.day)
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=7)

    def payments_frame(self, start_date=None, end_date=None, loan_id=None):
        """Payments as a DataFrame with Decimal amounts and parsed dates."""
        df = self.db.get_payments_df(
            to_storage(start_date) if start_date is not None else None,
            to_storage(end_date) if end_date is not None else None,
            loan_id
        )
        df['amount'] = df['amount_cents'].map(from_cents)
        df['payment_date'] = pd.to_datetime(df['payment_date'], format=DATETIME_FORMAT_STORAGE)
        return df

    @staticmethod
    def _aggregate(df):
        count = int(len(df))
        total = from_cents(int(df['amount_cents'].sum())) if count else ZERO
        return total, count

    def payment_stats(self, now=None):
        """Totals for all time, today, and the current week.

        Returns:
            dict with 'total' (amount, count, average), 'today' and 'week'
            (amount, count). Amounts are Decimals.
        """
        now = self._now(now)
        df = self.payments_frame()

        total_amount, total_count = self._aggregate(df)
        average = (total_amount / total_count).quantize(Decimal("0.01")) if total_count else ZERO

        day_start, day_end = self._day_bounds(now)
        today = df[(df['payment_date'] >= day_start) & (df['payment_date'] < day_end)]
        today_amount, today_count = self._aggregate(today)

        week_start, week_end = self._week_bounds(now)
        week = df[(df['payment_date'] >= week_start) & (df['payment_date'] < week_end)]
        week_amount, week_count = self._aggregate(week)

        return {
            'total': {'amount': total_amount, 'count': total_count, 'average': average},
            'today': {'amount': today_amount, 'count': today_count},
            'week': {'amount': week_amount, 'count': week_count},
        }

    def weekly_collections(self, start_date=None, end_date=None):
        """Collected amount per week (weeks starting Sunday) as a DataFrame."""
        df = self.payments_frame(start_date, end_date)
        if df.empty:
            return pd.DataFrame(columns=['week_start', 'amount', 'count'])

        df['week_start'] = df['payment_date'].dt.normalize() - pd.to_timedelta(
            (df['payment_date'].dt.weekday + 1) % 7, unit='D'
        )
        grouped = df.groupby('week_start').agg(
            amount_cents=('amount_cents', 'sum'), count=('id', 'count')
        ).reset_index()
        grouped['amount'] = grouped['amount_cents'].map(lambda cents: from_cents(int(cents)))
        return grouped[['week_start', 'amount', 'count']]

    def dashboard_summary(self, now=None):
        """Figures for the landing dashboard.

        Overdue counts are derived from ACTIVE loans and their due dates at
        ``now``; no stored status is consulted for them.
        """
        now = self._now(now)
        loans = self.db.get_loans_df()
        payments = self.db.get_payments_df()

        active = loans[loans['status'] == LoanStatus.ACTIVE]
        overdue = active[active['due_date'] < to_storage(now)]
        revenue = from_cents(int(payments['amount_cents'].sum())) if len(payments) else ZERO
        outstanding = from_cents(int(active['balance_cents'].sum())) if len(active) else ZERO

        summary = {
            'clients': self.db.count_clients(),
            'active_loans': int(len(active)),
            'overdue_loans': int(len(overdue)),
            'total_revenue': revenue,
            'outstanding_balance': outstanding,
            'collaterals': self.db.count_collaterals(),
            'pledged_collaterals': self.db.count_collaterals(CollateralStatus.PLEDGED),
            'upcoming_due': [],
        }

        if self.loan_service is not None:
            horizon = now + timedelta(days=UPCOMING_DUE_DAYS)
            upcoming = [
                loan for loan in self.loan_service.list_loans(LoanStatus.ACTIVE, now=now)
                if now <= loan.due_date <= horizon
            ]
            upcoming.sort(key=lambda loan: loan.due_date)
            summary['upcoming_due'] = upcoming[:UPCOMING_DUE_LIMIT]
        return summary
