"""Tests for contract token rendering."""
import unittest
from datetime import datetime

from loanbook import contract_renderer
from loanbook.database import DatabaseManager
from loanbook.engine import LoanEngine

TEMPLATE = (
    "Contract {{loan_id}}\n"
    "Borrower: {{client_name}} ({{client_document}})\n"
    "Amount: {{loan_amount}} in {{installments}} payments of {{weekly_payment}}\n"
    "Total: {{total_amount}}, interest {{interest_amount}}\n"
    "From {{loan_date}} to {{due_date}}\n"
    "Guarantee: {{guarantee_name}} valued at {{guarantee_value}}\n"
    "Witness: {{witness_name}}"
)


class TestContractRenderer(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.engine = LoanEngine(self.db, clock=lambda: datetime(2024, 3, 1, 10, 0))
        self.engine.seed_rates()
        self.client = self.engine.add_client("Ana Torres", "45871236", "987654321")
        self.collateral = self.engine.intake_collateral("1250", "Gold necklace")
        self.loan = self.engine.create_loan(self.client.id, 500, self.collateral.id)

    def tearDown(self):
        self.db.close()

    def test_tokens_from_snapshot(self):
        tokens = contract_renderer.contract_tokens(self.loan, self.client, self.collateral)

        self.assertEqual(tokens['loan_id'], str(self.loan.id))
        self.assertEqual(tokens['loan_amount'], "S/ 500.00")
        self.assertEqual(tokens['weekly_payment'], "S/ 105.00")
        self.assertEqual(tokens['installments'], "6")
        self.assertEqual(tokens['total_amount'], "S/ 630.00")
        self.assertEqual(tokens['interest_amount'], "S/ 130.00")
        self.assertEqual(tokens['balance'], "S/ 630.00")
        self.assertEqual(tokens['loan_date'], "01/03/2024")
        self.assertEqual(tokens['due_date'], "12/04/2024")
        self.assertEqual(tokens['status'], "ACTIVE")
        self.assertEqual(tokens['client_phone'], "987654321")
        self.assertEqual(tokens['guarantee_value'], "S/ 1,250.00")

    def test_tokens_without_parties(self):
        tokens = contract_renderer.contract_tokens(self.loan)
        self.assertNotIn('client_name', tokens)
        self.assertNotIn('guarantee_name', tokens)

    def test_render_leaves_unknown_tokens(self):
        text = self.engine.render_contract(self.loan.id, TEMPLATE)

        self.assertIn(f"Contract {self.loan.id}\n", text)
        self.assertIn("Borrower: Ana Torres (45871236)", text)
        self.assertIn("Amount: S/ 500.00 in 6 payments of S/ 105.00", text)
        self.assertIn("From 01/03/2024 to 12/04/2024", text)
        self.assertIn("Guarantee: Gold necklace valued at S/ 1,250.00", text)
        self.assertIn("Witness: {{witness_name}}", text)

    def test_render_does_not_touch_loan(self):
        before = self.engine.get_loan(self.loan.id)
        self.engine.render_contract(self.loan.id, TEMPLATE)
        self.assertEqual(self.engine.get_loan(self.loan.id), before)

    def test_extract_tokens(self):
        names = contract_renderer.extract_tokens("{{a}} {{b}} {{a}} {c} {{ d }}")
        self.assertEqual(names, ['a', 'b'])

    def test_render_plain_mapping(self):
        self.assertEqual(contract_renderer.render("{{x}}-{{y}}", {'x': 1}), "1-{{y}}")


if __name__ == "__main__":
    unittest.main(verbosity=2)
