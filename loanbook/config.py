"""Centralized configuration for LoanBook.

This module contains the default values and business rule constants used
by the ledger services and the storage layer.
"""
from decimal import Decimal

# =============================================================================
# STORAGE
# =============================================================================

# Default SQLite database file
DEFAULT_DB_PATH = "loanbook.db"

# Timestamp format for storage (ISO 8601, seconds)
DATETIME_FORMAT_STORAGE = "%Y-%m-%d %H:%M:%S"

# Date format for display
DATE_FORMAT_DISPLAY = "%d/%m/%Y"

# =============================================================================
# MONEY
# =============================================================================

# All amounts are quantized to cents
MONEY_QUANTUM = Decimal("0.01")

# Cents per currency unit (storage keeps integer cents)
CENTS_PER_UNIT = 100

# Largest amount accepted anywhere; keeps cents inside a signed 64-bit column
MAX_MONEY = Decimal("999999999999.99")

# Currency symbol used by the contract renderer
CURRENCY_SYMBOL = "S/"

# =============================================================================
# LOAN DEFAULTS
# =============================================================================

# Days between two installments
INSTALLMENT_PERIOD_DAYS = 7

# Installment count used when a rate entry does not specify one
DEFAULT_INSTALLMENT_COUNT = 6

# Standard rate catalog: (principal, weekly installment, installment count)
DEFAULT_RATE_CATALOG = (
    (500, 105, 6),
    (600, 110, 6),
    (700, 145, 6),
    (800, 165, 6),
    (1000, 210, 6),
    (1500, 320, 6),
)

# =============================================================================
# RUNTIME SETTINGS (settings table defaults)
# =============================================================================

# A client may hold only one ACTIVE loan at a time
SETTING_SINGLE_OPEN_LOAN = "single_open_loan_per_client"

DEFAULT_SETTINGS = {
    SETTING_SINGLE_OPEN_LOAN: "true",
}

# =============================================================================
# REPORTS
# =============================================================================

# Window used by the dashboard "due soon" list
UPCOMING_DUE_DAYS = 7

# Number of rows in the dashboard "due soon" list
UPCOMING_DUE_LIMIT = 5
