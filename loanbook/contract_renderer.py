"""Contract token rendering for LoanBook.

Builds the ``{{token}}`` map for a loan contract from a read-only snapshot
and substitutes it into a template. Unknown tokens are left as written.
"""
import re

from loanbook.dates import format_date
from loanbook.money import format_money

TOKEN_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def contract_tokens(loan, client=None, collateral=None) -> dict:
    """Token map for a LoanSnapshot and, optionally, its Client and Collateral."""
    tokens = {
        'loan_id': str(loan.id),
        'loan_amount': format_money(loan.principal),
        'weekly_payment': format_money(loan.weekly_installment),
        'installments': str(loan.installment_count),
        'total_amount': format_money(loan.total_amount),
        'interest_amount': format_money(loan.interest_amount),
        'paid_amount': format_money(loan.paid_amount),
        'balance': format_money(loan.balance),
        'loan_date': format_date(loan.issue_date),
        'due_date': format_date(loan.due_date),
        'status': loan.display_status,
    }
    if client is not None:
        tokens.update({
            'client_name': client.name,
            'client_document': client.document_number,
            'client_phone': client.phone,
        })
    if collateral is not None:
        tokens.update({
            'guarantee_name': collateral.name,
            'guarantee_value': format_money(collateral.estimated_value),
        })
    return tokens


def extract_tokens(template: str) -> list:
    """Placeholder names in order of first appearance."""
    seen = []
    for name in TOKEN_PATTERN.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


def render(template: str, tokens: dict) -> str:
    return TOKEN_PATTERN.sub(lambda m: str(tokens.get(m.group(1), m.group(0))), template)
