"""Overdue monitor for LoanBook.

Delinquency is never stored. It is derived from a loan's status and due
date at read time, so a loan paid after its due date stops reporting as
overdue as soon as the payment commits.
"""
import math
from datetime import datetime, timedelta
from typing import Iterable, List

from loanbook.config import INSTALLMENT_PERIOD_DAYS
from loanbook.data_structures import LoanStatus

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=INSTALLMENT_PERIOD_DAYS)


def is_overdue(now: datetime, due_date: datetime, status: str) -> bool:
    """True iff the loan is ACTIVE and ``now`` is past its due date."""
    return status == LoanStatus.ACTIVE and now > due_date


def days_overdue(now: datetime, due_date: datetime) -> int:
    """Whole days past due, rounded up; 0 when not yet due."""
    elapsed = now - due_date
    if elapsed <= timedelta(0):
        return 0
    return math.ceil(elapsed / ONE_DAY)


def remaining_weeks(now: datetime, due_date: datetime, status: str) -> int:
    """Weeks left until the due date, rounded up; 0 for closed loans."""
    if status != LoanStatus.ACTIVE:
        return 0
    left = due_date - now
    if left <= timedelta(0):
        return 0
    return math.ceil(left / ONE_WEEK)


def find_overdue(loans: Iterable, now: datetime) -> List:
    """Filter snapshots down to the overdue ones, most overdue first."""
    overdue = [loan for loan in loans if is_overdue(now, loan.due_date, loan.status)]
    return sorted(overdue, key=lambda loan: (loan.due_date, loan.id))
