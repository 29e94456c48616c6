"""Database management module for LoanBook."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime

import pandas as pd

from loanbook.config import DEFAULT_DB_PATH, DEFAULT_SETTINGS, DATETIME_FORMAT_STORAGE
from loanbook.exceptions import TransactionError, IntegrityViolationError

logger = logging.getLogger(__name__)


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS clients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        document_number TEXT,
        phone TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rate_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        principal_cents INTEGER NOT NULL CHECK (principal_cents > 0),
        weekly_installment_cents INTEGER NOT NULL CHECK (weekly_installment_cents > 0),
        installment_count INTEGER NOT NULL CHECK (installment_count > 0),
        active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0, 1)),
        created_at TEXT
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_rate_entries_active_principal
        ON rate_entries (principal_cents) WHERE active = 1
    """,
    """
    CREATE TABLE IF NOT EXISTS collaterals (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT,
        estimated_value_cents INTEGER NOT NULL CHECK (estimated_value_cents > 0),
        status TEXT NOT NULL DEFAULT 'AVAILABLE'
            CHECK (status IN ('AVAILABLE', 'PLEDGED', 'RETIRED')),
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS loans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client_id INTEGER NOT NULL REFERENCES clients(id),
        collateral_id INTEGER NOT NULL REFERENCES collaterals(id),
        guarantor_id INTEGER REFERENCES clients(id),
        rate_id INTEGER REFERENCES rate_entries(id),
        principal_cents INTEGER NOT NULL CHECK (principal_cents > 0),
        weekly_installment_cents INTEGER NOT NULL CHECK (weekly_installment_cents > 0),
        installment_count INTEGER NOT NULL CHECK (installment_count > 0),
        total_amount_cents INTEGER NOT NULL,
        paid_amount_cents INTEGER NOT NULL DEFAULT 0,
        balance_cents INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'ACTIVE'
            CHECK (status IN ('ACTIVE', 'PAID', 'CANCELLED')),
        issue_date TEXT NOT NULL,
        due_date TEXT NOT NULL,
        completed_at TEXT,
        CHECK (total_amount_cents = weekly_installment_cents * installment_count),
        CHECK (paid_amount_cents >= 0 AND paid_amount_cents <= total_amount_cents),
        CHECK (balance_cents = MAX(total_amount_cents - paid_amount_cents, 0)),
        CHECK ((status = 'PAID') = (balance_cents = 0)),
        CHECK ((status = 'PAID') = (completed_at IS NOT NULL))
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_loans_active_collateral
        ON loans (collateral_id) WHERE status = 'ACTIVE'
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_loans_client ON loans (client_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        loan_id INTEGER NOT NULL REFERENCES loans(id) ON DELETE CASCADE,
        amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
        payment_date TEXT NOT NULL,
        recorded_at TEXT NOT NULL,
        notes TEXT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_payments_loan ON payments (loan_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT
    )
    """,
)


class DatabaseManager:
    """Handles all SQLite database operations.

    One connection is shared by every caller and guarded by a re-entrant
    lock. ``transaction()`` takes the SQLite write lock up front with
    ``BEGIN IMMEDIATE``, so a ledger mutation reads and writes a loan as a
    single writer; other threads wait until it commits or rolls back.
    """

    def __init__(self, db_name=DEFAULT_DB_PATH):
        self.db_name = db_name
        self.conn = sqlite3.connect(db_name, check_same_thread=False, isolation_level=None)
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._closed = False
        self.create_tables()

    def close(self):
        """Close the database connection."""
        if self.conn and not self._closed:
            self.conn.close()
            self._closed = True

    def __del__(self):
        """Ensure connection is closed on garbage collection."""
        self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def in_transaction(self):
        return self._tx_depth > 0

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic rollback on failure.

        Usage:
            with db.transaction():
                db.add_payment(...)
                db.update_loan_totals(...)

        Nested blocks join the outermost transaction. If any exception
        occurs, everything since the outermost ``BEGIN`` is rolled back.
        SQLite constraint failures surface as IntegrityViolationError.
        """
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield
                finally:
                    self._tx_depth -= 1
                return

            try:
                self.conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise TransactionError(f"Could not start transaction: {str(e)}") from e
            self._tx_depth = 1
            try:
                yield
                self.conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                self._rollback()
                logger.warning("Store rejected a write on %s: %s", self.db_name, e)
                raise IntegrityViolationError(f"Integrity violation: {e}") from e
            except sqlite3.Error as e:
                self._rollback()
                logger.warning("Transaction failed on %s: %s", self.db_name, e)
                raise TransactionError(f"Transaction failed: {str(e)}") from e
            except BaseException:
                self._rollback()
                raise
            finally:
                self._tx_depth = 0

    def _rollback(self):
        if self.conn.in_transaction:
            self.conn.execute("ROLLBACK")

    def _execute(self, query, params=()):
        """Run a write statement and return the cursor's lastrowid."""
        with self.transaction():
            cursor = self.conn.execute(query, params)
            return cursor.lastrowid

    def _fetchone(self, query, params=()):
        with self._lock:
            cursor = self.conn.execute(query, params)
            row = cursor.fetchone()
            if row:
                cols = [description[0] for description in cursor.description]
                return dict(zip(cols, row))
            return None

    def _fetchall(self, query, params=()):
        with self._lock:
            cursor = self.conn.execute(query, params)
            cols = [description[0] for description in cursor.description]
            return [dict(zip(cols, row)) for row in cursor.fetchall()]

    def _scalar(self, query, params=()):
        with self._lock:
            row = self.conn.execute(query, params).fetchone()
            return row[0] if row else None

    @staticmethod
    def _now():
        return datetime.now().strftime(DATETIME_FORMAT_STORAGE)

    def create_tables(self):
        with self.transaction():
            for statement in SCHEMA:
                self.conn.execute(statement)
            for key, value in DEFAULT_SETTINGS.items():
                self.conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)", (key, value)
                )

    # Client operations
    def add_client(self, name, document_number="", phone=""):
        return self._execute(
            "INSERT INTO clients (name, document_number, phone, created_at) VALUES (?, ?, ?, ?)",
            (name, document_number, phone, self._now())
        )

    def get_client(self, client_id):
        return self._fetchone("SELECT * FROM clients WHERE id=?", (client_id,))

    def get_clients(self):
        return self._fetchall("SELECT * FROM clients ORDER BY name, id")

    # Rate catalog operations
    def add_rate_entry(self, principal_cents, weekly_installment_cents, installment_count, active=True):
        return self._execute("""
            INSERT INTO rate_entries (
                principal_cents, weekly_installment_cents, installment_count, active, created_at
            )
            VALUES (?, ?, ?, ?, ?)
        """, (principal_cents, weekly_installment_cents, installment_count, int(bool(active)), self._now()))

    def get_rate_entry(self, rate_id):
        return self._fetchone("SELECT * FROM rate_entries WHERE id=?", (rate_id,))

    def get_active_rate_by_principal(self, principal_cents, exclude_id=None):
        query = "SELECT * FROM rate_entries WHERE principal_cents=? AND active=1"
        params = [principal_cents]
        if exclude_id is not None:
            query += " AND id<>?"
            params.append(exclude_id)
        return self._fetchone(query, tuple(params))

    def get_rate_entries(self, active_only=False):
        query = "SELECT * FROM rate_entries"
        if active_only:
            query += " WHERE active=1"
        query += " ORDER BY principal_cents, id"
        return self._fetchall(query)

    def update_rate_entry(self, rate_id, principal_cents, weekly_installment_cents, installment_count):
        self._execute("""
            UPDATE rate_entries
            SET principal_cents=?, weekly_installment_cents=?, installment_count=?
            WHERE id=?
        """, (principal_cents, weekly_installment_cents, installment_count, rate_id))

    def set_rate_active(self, rate_id, active):
        self._execute("UPDATE rate_entries SET active=? WHERE id=?", (int(bool(active)), rate_id))

    def delete_rate_entry(self, rate_id):
        self._execute("DELETE FROM rate_entries WHERE id=?", (rate_id,))

    def count_loans_for_rate(self, rate_id):
        return self._scalar("SELECT COUNT(*) FROM loans WHERE rate_id=?", (rate_id,))

    # Collateral operations
    def add_collateral(self, name, estimated_value_cents, status="AVAILABLE"):
        return self._execute("""
            INSERT INTO collaterals (name, estimated_value_cents, status, created_at)
            VALUES (?, ?, ?, ?)
        """, (name, estimated_value_cents, status, self._now()))

    def get_collateral(self, collateral_id):
        return self._fetchone("SELECT * FROM collaterals WHERE id=?", (collateral_id,))

    def get_collaterals(self, status=None):
        if status:
            return self._fetchall("SELECT * FROM collaterals WHERE status=? ORDER BY id", (status,))
        return self._fetchall("SELECT * FROM collaterals ORDER BY id")

    def update_collateral_status(self, collateral_id, status):
        self._execute("UPDATE collaterals SET status=? WHERE id=?", (status, collateral_id))

    def update_collateral_value(self, collateral_id, estimated_value_cents):
        self._execute(
            "UPDATE collaterals SET estimated_value_cents=? WHERE id=?",
            (estimated_value_cents, collateral_id)
        )

    def delete_collateral(self, collateral_id):
        self._execute("DELETE FROM collaterals WHERE id=?", (collateral_id,))

    def count_loans_for_collateral(self, collateral_id):
        return self._scalar("SELECT COUNT(*) FROM loans WHERE collateral_id=?", (collateral_id,))

    def get_active_loan_for_collateral(self, collateral_id):
        return self._fetchone(
            "SELECT * FROM loans WHERE collateral_id=? AND status='ACTIVE'", (collateral_id,)
        )

    # Loan operations
    def add_loan_record(self, client_id, collateral_id, guarantor_id, rate_id, principal_cents,
                        weekly_installment_cents, installment_count, total_amount_cents,
                        issue_date, due_date):
        return self._execute("""
            INSERT INTO loans (
                client_id, collateral_id, guarantor_id, rate_id, principal_cents,
                weekly_installment_cents, installment_count, total_amount_cents,
                paid_amount_cents, balance_cents, status, issue_date, due_date
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?, 'ACTIVE', ?, ?)
        """, (client_id, collateral_id, guarantor_id, rate_id, principal_cents,
              weekly_installment_cents, installment_count, total_amount_cents,
              total_amount_cents, issue_date, due_date))

    def get_loan(self, loan_id):
        return self._fetchone("""
            SELECT loans.*,
                   (SELECT COUNT(*) FROM payments WHERE payments.loan_id = loans.id) AS payment_count
            FROM loans WHERE id=?
        """, (loan_id,))

    def get_loans(self, status=None, client_id=None):
        query = """
            SELECT loans.*,
                   (SELECT COUNT(*) FROM payments WHERE payments.loan_id = loans.id) AS payment_count
            FROM loans WHERE 1=1
        """
        params = []
        if status:
            query += " AND status=?"
            params.append(status)
        if client_id is not None:
            query += " AND client_id=?"
            params.append(client_id)
        query += " ORDER BY issue_date DESC, id DESC"
        return self._fetchall(query, tuple(params))

    def get_active_loan_for_client(self, client_id):
        return self._fetchone(
            "SELECT * FROM loans WHERE client_id=? AND status='ACTIVE' ORDER BY id LIMIT 1",
            (client_id,)
        )

    def get_active_loans_due_before(self, timestamp):
        return self._fetchall("""
            SELECT loans.*,
                   (SELECT COUNT(*) FROM payments WHERE payments.loan_id = loans.id) AS payment_count
            FROM loans WHERE status='ACTIVE' AND due_date < ?
            ORDER BY due_date, id
        """, (timestamp,))

    def update_loan_totals(self, loan_id, paid_amount_cents, balance_cents, status, completed_at):
        self._execute("""
            UPDATE loans
            SET paid_amount_cents=?, balance_cents=?, status=?, completed_at=?
            WHERE id=?
        """, (paid_amount_cents, balance_cents, status, completed_at, loan_id))

    def update_loan_status(self, loan_id, status):
        self._execute("UPDATE loans SET status=? WHERE id=?", (status, loan_id))

    def update_loan_due_date(self, loan_id, due_date):
        self._execute("UPDATE loans SET due_date=? WHERE id=?", (due_date, loan_id))

    def delete_loan(self, loan_id):
        self._execute("DELETE FROM loans WHERE id=?", (loan_id,))

    # Payment operations
    def add_payment(self, loan_id, amount_cents, payment_date, recorded_at, notes=""):
        return self._execute("""
            INSERT INTO payments (loan_id, amount_cents, payment_date, recorded_at, notes)
            VALUES (?, ?, ?, ?, ?)
        """, (loan_id, amount_cents, payment_date, recorded_at, notes))

    def get_payment(self, payment_id):
        return self._fetchone("SELECT * FROM payments WHERE id=?", (payment_id,))

    def get_payments(self, loan_id):
        return self._fetchall(
            "SELECT * FROM payments WHERE loan_id=? ORDER BY payment_date DESC, id DESC", (loan_id,)
        )

    def count_payments(self, loan_id):
        return self._scalar("SELECT COUNT(*) FROM payments WHERE loan_id=?", (loan_id,))

    def sum_payments(self, loan_id):
        return self._scalar(
            "SELECT COALESCE(SUM(amount_cents), 0) FROM payments WHERE loan_id=?", (loan_id,)
        )

    def delete_payment(self, payment_id):
        self._execute("DELETE FROM payments WHERE id=?", (payment_id,))

    # DataFrame views
    def get_payments_df(self, start_date=None, end_date=None, loan_id=None):
        """Payments joined with their loan, as a DataFrame for reports."""
        query = """
            SELECT payments.id, payments.loan_id, payments.amount_cents,
                   payments.payment_date, payments.recorded_at, payments.notes,
                   loans.client_id, loans.status AS loan_status
            FROM payments JOIN loans ON loans.id = payments.loan_id
            WHERE 1=1
        """
        params = []
        if start_date:
            query += " AND payments.payment_date >= ?"
            params.append(start_date)
        if end_date:
            query += " AND payments.payment_date < ?"
            params.append(end_date)
        if loan_id is not None:
            query += " AND payments.loan_id = ?"
            params.append(loan_id)
        query += " ORDER BY payments.payment_date, payments.id"

        with self._lock:
            return pd.read_sql_query(query, self.conn, params=tuple(params))

    def get_loans_df(self):
        with self._lock:
            return pd.read_sql_query("SELECT * FROM loans ORDER BY id", self.conn)

    def count_clients(self):
        return self._scalar("SELECT COUNT(*) FROM clients")

    def count_collaterals(self, status=None):
        if status:
            return self._scalar("SELECT COUNT(*) FROM collaterals WHERE status=?", (status,))
        return self._scalar("SELECT COUNT(*) FROM collaterals")

    # Settings
    def get_setting(self, key, default=None):
        """Get a setting value."""
        value = self._scalar("SELECT value FROM settings WHERE key=?", (key,))
        return value if value is not None else default

    def set_setting(self, key, value):
        """Set a setting value."""
        self._execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value)))
