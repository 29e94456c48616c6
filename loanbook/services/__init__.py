"""Services package for LoanBook business logic.

This package contains the focused service classes behind the LoanEngine
facade: the rate catalog, the collateral registry, the loan ledger and its
balance recalculator, and the read-time overdue monitor.
"""

from . import overdue_monitor
from .rate_catalog import RateCatalog
from .collateral_registry import CollateralRegistry
from .balance_calculator import BalanceRecalculator, LoanTotals
from .loan_service import LoanService

__all__ = ['overdue_monitor', 'RateCatalog', 'CollateralRegistry', 'BalanceRecalculator',
           'LoanTotals', 'LoanService']
