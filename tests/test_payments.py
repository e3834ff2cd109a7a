import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from models import Expense, Invoice
from payments import (
    StatusTransitionError,
    balance,
    can_transition,
    mark_fully_received,
    record_partial_payment,
    total_owed,
    transition,
)


def _exp(**kw):
    base = dict(id="e1", user_id="u@x.com", amount=1000, company="Acme")
    base.update(kw)
    return Expense(**base)


class TestTransitions(unittest.TestCase):
    def test_allowed_moves(self):
        self.assertTrue(can_transition("pending", "partial"))
        self.assertTrue(can_transition("pending", "received"))
        self.assertTrue(can_transition("pending", "paid"))
        self.assertTrue(can_transition("partial", "received"))
        self.assertTrue(can_transition("partial", "paid"))

    def test_settled_states_are_final(self):
        for settled in ("received", "paid"):
            for target in ("pending", "partial", "received", "paid"):
                self.assertFalse(can_transition(settled, target))

    def test_no_way_back_to_pending(self):
        self.assertFalse(can_transition("partial", "pending"))

    def test_transition_returns_new_record(self):
        e = _exp()
        moved = transition(e, "received")
        self.assertEqual(moved.status, "received")
        self.assertEqual(e.status, "pending")

    def test_invalid_transition_raises(self):
        with self.assertRaises(StatusTransitionError) as ctx:
            transition(_exp(status="received"), "partial")
        self.assertEqual(ctx.exception.current, "received")
        self.assertEqual(ctx.exception.requested, "partial")
        self.assertIsInstance(ctx.exception, ValueError)


class TestPartialPayments(unittest.TestCase):
    def setUp(self):
        self.invoice = Invoice(id="i1", invoice_number="INV-1", company_name="Acme", total=1000)

    def test_balance_after_partial(self):
        e = record_partial_payment(_exp(), 400)
        self.assertEqual(e.status, "partial")
        self.assertTrue(e.partial_payment)
        self.assertFalse(e.partial_received)
        self.assertEqual(balance(e, self.invoice), 600)

    def test_balance_without_invoice_uses_amount(self):
        e = record_partial_payment(_exp(amount=750), 250)
        self.assertEqual(total_owed(e), 750)
        self.assertEqual(balance(e), 500)

    def test_second_instalment_replaces_running_total(self):
        e = record_partial_payment(_exp(), 400)
        e = record_partial_payment(e, 700)
        self.assertEqual(e.status, "partial")
        self.assertEqual(balance(e, self.invoice), 300)

    def test_partial_amount_must_be_positive(self):
        with self.assertRaises(ValueError):
            record_partial_payment(_exp(), 0)

    def test_partial_on_settled_expense_rejected(self):
        with self.assertRaises(StatusTransitionError):
            record_partial_payment(_exp(status="paid"), 100)

    def test_mark_fully_received_zeroes_balance(self):
        e = record_partial_payment(_exp(), 400)
        done = mark_fully_received(e, self.invoice)
        self.assertEqual(done.status, "received")
        self.assertTrue(done.partial_received)
        self.assertEqual(done.partial_amount, 1000)
        self.assertEqual(balance(done, self.invoice), 0)

    def test_mark_fully_received_requires_partial_payment(self):
        with self.assertRaises(ValueError):
            mark_fully_received(_exp(), self.invoice)


if __name__ == "__main__":
    unittest.main()
