"""Business logic engine for LoanBook.

This module provides the LoanEngine class which acts as a facade over
the focused service classes in loanbook/services/.

Service Classes:
    - RateCatalog: Rate catalog reads and maintenance
    - CollateralRegistry: Collateral lifecycle
    - LoanService: Loan lifecycle operations
    - BalanceRecalculator: Balance derivation and consistency checks

Reports and contract rendering are read-only and sit beside the services.
"""
import logging
from datetime import datetime

from loanbook import contract_renderer
from loanbook.config import DEFAULT_INSTALLMENT_COUNT
from loanbook.data_structures import Client
from loanbook.exceptions import (
    LoanBookError, ClientNotFoundError, InvalidInputError, CollateralInUseError,
)
from loanbook.reports import ReportGenerator
from loanbook.result import Result
from loanbook.services import RateCatalog, CollateralRegistry, BalanceRecalculator, LoanService

logger = logging.getLogger(__name__)


class LoanEngine:
    """Handles business logic, interfacing with DatabaseManager.

    Attributes:
        db: DatabaseManager instance for data persistence.
        clock: Callable returning the current time, shared by all services.
        rate_catalog: RateCatalog instance (lazy-loaded).
        collateral_registry: CollateralRegistry instance (lazy-loaded).
        loan_service: LoanService instance (lazy-loaded).
        balance_recalculator: BalanceRecalculator instance (lazy-loaded).
        report_generator: ReportGenerator instance (lazy-loaded).
    """

    def __init__(self, db_manager, clock=None):
        self.db = db_manager
        self.clock = clock or datetime.now
        self._rate_catalog = None
        self._collateral_registry = None
        self._balance_recalculator = None
        self._loan_service = None
        self._report_generator = None

    @property
    def rate_catalog(self):
        """Lazy-load RateCatalog instance."""
        if self._rate_catalog is None:
            self._rate_catalog = RateCatalog(self.db)
        return self._rate_catalog

    @property
    def collateral_registry(self):
        """Lazy-load CollateralRegistry instance."""
        if self._collateral_registry is None:
            self._collateral_registry = CollateralRegistry(self.db)
        return self._collateral_registry

    @property
    def balance_recalculator(self):
        """Lazy-load BalanceRecalculator instance."""
        if self._balance_recalculator is None:
            self._balance_recalculator = BalanceRecalculator(self.db)
        return self._balance_recalculator

    @property
    def loan_service(self):
        """Lazy-load LoanService instance."""
        if self._loan_service is None:
            self._loan_service = LoanService(
                self.db,
                self.rate_catalog,
                self.collateral_registry,
                self.balance_recalculator,
                clock=self.clock
            )
        return self._loan_service

    @property
    def report_generator(self):
        """Lazy-load ReportGenerator instance."""
        if self._report_generator is None:
            self._report_generator = ReportGenerator(self.db, self.loan_service, clock=self.clock)
        return self._report_generator

    def execute(self, operation, *args, **kwargs) -> Result:
        """Run an engine operation and fold LoanBook errors into a Result.

        Usage:
            result = engine.execute(engine.apply_payment, loan_id, "105.00")
        """
        try:
            return Result.ok(operation(*args, **kwargs))
        except LoanBookError as e:
            logger.debug("%s failed: %s", getattr(operation, '__name__', operation), e)
            return Result.from_error(e)

    # Clients
    def add_client(self, name, document_number="", phone="") -> Client:
        name = (name or "").strip()
        if len(name) < 2:
            raise InvalidInputError("name", "must have at least 2 characters")
        client_id = self.db.add_client(name, document_number, phone)
        return self.get_client(client_id)

    def get_client(self, client_id) -> Client:
        row = self.db.get_client(client_id)
        if not row:
            raise ClientNotFoundError(client_id)
        return Client.from_row(row)

    # Rate catalog
    def list_rates(self, active_only=True):
        if active_only:
            return self.rate_catalog.list_active()
        return self.rate_catalog.list_all()

    def get_rate(self, principal):
        return self.rate_catalog.get(principal)

    def create_rate(self, principal, weekly_installment, installment_count=DEFAULT_INSTALLMENT_COUNT,
                    active=True):
        return self.rate_catalog.create(principal, weekly_installment, installment_count, active)

    def deactivate_rate(self, rate_id):
        return self.rate_catalog.deactivate(rate_id)

    def seed_rates(self):
        return self.rate_catalog.seed_defaults()

    # Collateral registry
    def intake_collateral(self, estimated_value, name=""):
        return self.collateral_registry.intake(estimated_value, name)

    def get_collateral(self, collateral_id):
        return self.collateral_registry.get(collateral_id)

    def pledge_collateral(self, collateral_id):
        return self.collateral_registry.pledge(collateral_id)

    def release_collateral(self, collateral_id):
        """Release collateral by hand. Refused while an active loan holds it."""
        with self.db.transaction():
            self._ensure_not_held(collateral_id)
            return self.collateral_registry.release(collateral_id)

    def retire_collateral(self, collateral_id):
        with self.db.transaction():
            self._ensure_not_held(collateral_id)
            return self.collateral_registry.retire(collateral_id)

    def _ensure_not_held(self, collateral_id):
        holder = self.db.get_active_loan_for_collateral(collateral_id)
        if holder is not None:
            logger.debug("Collateral %s is held by active loan %s", collateral_id, holder['id'])
            raise CollateralInUseError(collateral_id, f"active loan {holder['id']} holds it",
                                       held_by_loan_id=holder['id'])

    # Loan ledger
    def create_loan(self, client_id, principal, collateral_id, guarantor_id=None, issue_date=None):
        """Issue a new loan. Delegates to LoanService."""
        return self.loan_service.create_loan(client_id, principal, collateral_id,
                                             guarantor_id, issue_date)

    def apply_payment(self, loan_id, amount, payment_date=None, notes=""):
        """Record a payment. Delegates to LoanService."""
        return self.loan_service.apply_payment(loan_id, amount, payment_date, notes)

    def delete_payment(self, payment_id):
        """Reverse a payment with full recomputation. Delegates to LoanService."""
        return self.loan_service.delete_payment(payment_id)

    def delete_loan(self, loan_id):
        return self.loan_service.delete_loan(loan_id)

    def cancel_loan(self, loan_id):
        return self.loan_service.cancel_loan(loan_id)

    def update_due_date(self, loan_id, due_date):
        return self.loan_service.update_due_date(loan_id, due_date)

    def get_loan(self, loan_id, now=None):
        return self.loan_service.get_loan(loan_id, now)

    def list_loans(self, status=None, client_id=None, now=None):
        return self.loan_service.list_loans(status, client_id, now)

    def list_payments(self, loan_id):
        return self.loan_service.list_payments(loan_id)

    def overdue_loans(self, now=None):
        return self.loan_service.overdue_loans(now)

    def verify_loan(self, loan_id):
        """List broken invariants for a stored loan; empty when consistent."""
        return self.balance_recalculator.verify_loan(loan_id)

    # Reports and documents
    def payment_stats(self, now=None):
        return self.report_generator.payment_stats(now)

    def dashboard_summary(self, now=None):
        return self.report_generator.dashboard_summary(now)

    def render_contract(self, loan_id, template):
        """Fill a contract template from the loan, its client and its collateral."""
        loan = self.get_loan(loan_id)
        tokens = contract_renderer.contract_tokens(
            loan,
            self.get_client(loan.client_id),
            self.get_collateral(loan.collateral_id)
        )
        return contract_renderer.render(template, tokens)
