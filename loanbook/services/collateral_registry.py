"""Collateral registry service for LoanBook.

The registry is the only place that moves a collateral item between
AVAILABLE, PLEDGED and RETIRED. It never looks at loans to decide a
transition; the loan ledger calls ``pledge`` and ``release`` from inside its
own transactions so both sides commit together.
"""
import logging
from typing import List, Optional

from loanbook.data_structures import Collateral, CollateralStatus
from loanbook.exceptions import (
    CollateralNotFoundError,
    CollateralAlreadyPledgedError,
    CollateralNotPledgedError,
    CollateralInUseError,
    InvalidInputError,
)
from loanbook.money import to_cents, to_positive_money

logger = logging.getLogger(__name__)


class CollateralRegistry:
    """Tracks each pledged item's lifecycle and estimated value."""

    def __init__(self, db_manager):
        self.db = db_manager

    def intake(self, estimated_value, name: str = "") -> Collateral:
        """Register a new item as AVAILABLE."""
        value_cents = to_cents(to_positive_money(estimated_value))
        collateral_id = self.db.add_collateral(name.strip(), value_cents, CollateralStatus.AVAILABLE)
        logger.info("Collateral %s taken in (value %s)", collateral_id, estimated_value)
        return self.get(collateral_id)

    def get(self, collateral_id) -> Collateral:
        row = self.db.get_collateral(collateral_id)
        if not row:
            raise CollateralNotFoundError(collateral_id)
        return Collateral.from_row(row)

    def list(self, status: Optional[str] = None) -> List[Collateral]:
        if status is not None and status not in CollateralStatus.ALL:
            raise InvalidInputError("status", f"unknown collateral status {status!r}")
        return [Collateral.from_row(row) for row in self.db.get_collaterals(status)]

    def pledge(self, collateral_id) -> Collateral:
        """Mark an AVAILABLE item as PLEDGED.

        Raises:
            CollateralNotFoundError: If the item does not exist.
            CollateralAlreadyPledgedError: If the item is not AVAILABLE.
        """
        with self.db.transaction():
            collateral = self.get(collateral_id)
            if collateral.status != CollateralStatus.AVAILABLE:
                raise CollateralAlreadyPledgedError(collateral_id, collateral.status)
            self.db.update_collateral_status(collateral_id, CollateralStatus.PLEDGED)
        logger.debug("Collateral %s pledged", collateral_id)
        return self.get(collateral_id)

    def release(self, collateral_id) -> Collateral:
        """Return a PLEDGED item to AVAILABLE.

        Raises:
            CollateralNotPledgedError: If the item is not currently PLEDGED.
        """
        with self.db.transaction():
            collateral = self.get(collateral_id)
            if collateral.status != CollateralStatus.PLEDGED:
                raise CollateralNotPledgedError(collateral_id, collateral.status)
            self.db.update_collateral_status(collateral_id, CollateralStatus.AVAILABLE)
        logger.debug("Collateral %s released", collateral_id)
        return self.get(collateral_id)

    def retire(self, collateral_id) -> Collateral:
        """Take an item out of circulation.

        Raises:
            CollateralInUseError: If the item is PLEDGED.
        """
        with self.db.transaction():
            collateral = self.get(collateral_id)
            if collateral.status == CollateralStatus.PLEDGED:
                raise CollateralInUseError(collateral_id, "it is pledged to a loan")
            self.db.update_collateral_status(collateral_id, CollateralStatus.RETIRED)
        logger.info("Collateral %s retired", collateral_id)
        return self.get(collateral_id)

    def update_value(self, collateral_id, estimated_value) -> Collateral:
        value_cents = to_cents(to_positive_money(estimated_value))
        with self.db.transaction():
            self.get(collateral_id)
            self.db.update_collateral_value(collateral_id, value_cents)
        return self.get(collateral_id)

    def delete(self, collateral_id):
        """Delete an item that no loan references.

        Raises:
            CollateralInUseError: If any loan, past or present, references it.
        """
        with self.db.transaction():
            self.get(collateral_id)
            loan_count = self.db.count_loans_for_collateral(collateral_id)
            if loan_count:
                raise CollateralInUseError(collateral_id, f"referenced by {loan_count} loan(s)")
            self.db.delete_collateral(collateral_id)
        logger.info("Collateral %s deleted", collateral_id)
