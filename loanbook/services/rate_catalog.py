"""Rate catalog service for LoanBook.

The catalog maps a principal to a fixed weekly installment plan. Loans copy
the values they need when they are issued, so editing or deactivating an
entry never reaches back into existing loans.
"""
import logging
from typing import List

from loanbook.config import DEFAULT_RATE_CATALOG, DEFAULT_INSTALLMENT_COUNT
from loanbook.data_structures import RateEntry
from loanbook.exceptions import RateNotFoundError, RateConflictError, InvalidInputError
from loanbook.money import to_cents, to_positive_money

logger = logging.getLogger(__name__)


class RateCatalog:
    """Reads and maintains the rate catalog."""

    def __init__(self, db_manager):
        self.db = db_manager

    def list_active(self) -> List[RateEntry]:
        """Active entries ordered by principal ascending."""
        return [RateEntry.from_row(row) for row in self.db.get_rate_entries(active_only=True)]

    def list_all(self) -> List[RateEntry]:
        return [RateEntry.from_row(row) for row in self.db.get_rate_entries()]

    def get(self, principal) -> RateEntry:
        """Get the active entry for a principal.

        Raises:
            RateNotFoundError: If no active entry exists for the principal.
        """
        amount = to_positive_money(principal)
        row = self.db.get_active_rate_by_principal(to_cents(amount))
        if not row:
            raise RateNotFoundError(principal=amount)
        return RateEntry.from_row(row)

    def get_by_id(self, rate_id) -> RateEntry:
        row = self.db.get_rate_entry(rate_id)
        if not row:
            raise RateNotFoundError(rate_id=rate_id)
        return RateEntry.from_row(row)

    def create(self, principal, weekly_installment, installment_count=DEFAULT_INSTALLMENT_COUNT,
               active=True) -> RateEntry:
        """Add a catalog entry.

        Raises:
            RateConflictError: If an active entry already covers the principal.
            InvalidInputError: If the installment count is not positive.
        """
        principal_cents, weekly_cents, count = self._validate(
            principal, weekly_installment, installment_count
        )
        with self.db.transaction():
            if active and self.db.get_active_rate_by_principal(principal_cents):
                raise RateConflictError(
                    f"An active rate already exists for principal {principal}",
                    {'principal': str(principal)}
                )
            rate_id = self.db.add_rate_entry(principal_cents, weekly_cents, count, active)

        logger.info("Rate %s created: principal=%s weekly=%s x%d",
                    rate_id, principal, weekly_installment, count)
        return self.get_by_id(rate_id)

    def update(self, rate_id, principal, weekly_installment, installment_count) -> RateEntry:
        """Change an entry's values. Loans already issued keep their own copy."""
        principal_cents, weekly_cents, count = self._validate(
            principal, weekly_installment, installment_count
        )
        with self.db.transaction():
            entry = self.get_by_id(rate_id)
            if entry.active and self.db.get_active_rate_by_principal(principal_cents, exclude_id=rate_id):
                raise RateConflictError(
                    f"Another active rate already exists for principal {principal}",
                    {'principal': str(principal), 'rate_id': rate_id}
                )
            self.db.update_rate_entry(rate_id, principal_cents, weekly_cents, count)

        logger.info("Rate %s updated", rate_id)
        return self.get_by_id(rate_id)

    def deactivate(self, rate_id) -> RateEntry:
        with self.db.transaction():
            self.get_by_id(rate_id)
            self.db.set_rate_active(rate_id, False)
        logger.info("Rate %s deactivated", rate_id)
        return self.get_by_id(rate_id)

    def activate(self, rate_id) -> RateEntry:
        with self.db.transaction():
            entry = self.get_by_id(rate_id)
            other = self.db.get_active_rate_by_principal(to_cents(entry.principal), exclude_id=rate_id)
            if other:
                raise RateConflictError(
                    f"Rate {other['id']} is already active for principal {entry.principal}",
                    {'rate_id': rate_id, 'active_rate_id': other['id']}
                )
            self.db.set_rate_active(rate_id, True)
        logger.info("Rate %s activated", rate_id)
        return self.get_by_id(rate_id)

    def delete(self, rate_id):
        """Remove an entry no loan was ever issued from.

        Raises:
            RateConflictError: If any loan references the entry.
        """
        with self.db.transaction():
            self.get_by_id(rate_id)
            loan_count = self.db.count_loans_for_rate(rate_id)
            if loan_count:
                raise RateConflictError(
                    f"Rate {rate_id} is used by {loan_count} loan(s)",
                    {'rate_id': rate_id, 'loan_count': loan_count}
                )
            self.db.delete_rate_entry(rate_id)
        logger.info("Rate %s deleted", rate_id)

    def seed_defaults(self) -> int:
        """Insert the standard catalog, skipping principals already active.

        Returns:
            Number of entries created.
        """
        created = 0
        with self.db.transaction():
            for principal, weekly, count in DEFAULT_RATE_CATALOG:
                if self.db.get_active_rate_by_principal(to_cents(principal)):
                    continue
                self.create(principal, weekly, count)
                created += 1
        return created

    @staticmethod
    def _validate(principal, weekly_installment, installment_count):
        principal_cents = to_cents(to_positive_money(principal))
        weekly_cents = to_cents(to_positive_money(weekly_installment))
        if isinstance(installment_count, bool) or not isinstance(installment_count, int) \
                or installment_count <= 0:
            raise InvalidInputError("installment_count", "must be a positive integer")
        return principal_cents, weekly_cents, installment_count
