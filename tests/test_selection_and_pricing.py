import unittest
from decimal import Decimal

from marketplace.procurement.pricing import client_price, quote_total, resolve_margin, round_money, to_money, to_unit_price
from marketplace.procurement.selection import SESSION_KEY, SelectionSet


class SelectionSetTest(unittest.TestCase):
    def test_toggle_adds_with_quantity_one_and_removes(self) -> None:
        selection = SelectionSet()
        self.assertTrue(selection.toggle(7))
        self.assertIn(7, selection)
        self.assertEqual(selection.quantity(7), 1)

        self.assertFalse(selection.toggle(7))
        self.assertNotIn(7, selection)
        self.assertIsNone(selection.quantity(7))
        self.assertEqual(len(selection), 0)

    def test_ids_and_quantities_stay_in_step(self) -> None:
        selection = SelectionSet({3: 2})
        selection.set_quantity(5, 4)
        selection.remove(3)
        self.assertEqual(selection.item_ids, [5])
        self.assertEqual(selection.to_lines(), [{"item_id": 5, "quantity": 4}])

        with self.assertRaises(ValueError):
            selection.set_quantity(5, 0)
        self.assertEqual(selection.quantity(5), 4)

    def test_session_round_trip_uses_string_keys(self) -> None:
        session = {}
        selection = SelectionSet()
        selection.toggle(11)
        selection.set_quantity(12, 6)
        selection.to_session(session)
        self.assertEqual(session[SESSION_KEY], {"11": 1, "12": 6})

        restored = SelectionSet.from_session(session)
        self.assertEqual(restored.to_lines(), [{"item_id": 11, "quantity": 1}, {"item_id": 12, "quantity": 6}])

    def test_from_session_skips_garbage(self) -> None:
        restored = SelectionSet.from_session({SESSION_KEY: {"4": 2, "x": 1, "9": 0, "10": "3"}})
        self.assertEqual(restored.to_lines(), [{"item_id": 4, "quantity": 2}, {"item_id": 10, "quantity": 3}])
        self.assertEqual(len(SelectionSet.from_session({SESSION_KEY: ["bad"]})), 0)


class PricingTest(unittest.TestCase):
    def test_to_money_rounds_half_up(self) -> None:
        self.assertEqual(to_money("2.005"), Decimal("2.01"))
        self.assertEqual(to_money(3), Decimal("3.00"))
        for invalid in (None, "", "abc", 0, -1, "NaN", True, "0.004"):
            with self.subTest(value=invalid):
                self.assertIsNone(to_money(invalid))

    def test_quote_total(self) -> None:
        total = quote_total([(Decimal("2.00"), 10), (Decimal("3.00"), 5)])
        self.assertEqual(total, Decimal("35.00"))
        self.assertEqual(quote_total([]), Decimal("0.00"))

    def test_unit_prices_keep_precision_until_the_total(self) -> None:
        self.assertEqual(to_unit_price("0.125"), Decimal("0.125"))
        self.assertEqual(to_unit_price("0.004"), Decimal("0.004"))
        for invalid in (None, "abc", 0, "-0.01", "Infinity"):
            with self.subTest(value=invalid):
                self.assertIsNone(to_unit_price(invalid))
        self.assertEqual(quote_total([(to_unit_price("0.125"), 100)]), Decimal("12.50"))
        self.assertEqual(round_money("12.499"), Decimal("12.50"))
        self.assertEqual(round_money("0"), Decimal("0.00"))

    def test_resolve_margin_prefers_category_rule(self) -> None:
        rules = [
            {"category_id": None, "margin_percentage": 12, "priority": 9},
            {"category_id": 4, "margin_percentage": 25, "priority": 1},
            {"category_id": None, "margin_percentage": 8, "priority": 0},
        ]
        self.assertEqual(resolve_margin(4, rules, 15), Decimal("25"))
        self.assertEqual(resolve_margin(2, rules, 15), Decimal("12"))
        self.assertEqual(resolve_margin(None, rules, 15), Decimal("12"))
        self.assertEqual(resolve_margin(4, [], 15), Decimal("15"))

    def test_client_price(self) -> None:
        self.assertEqual(client_price(1.5, Decimal("15")), 1.73)
        self.assertEqual(client_price("80", Decimal("10")), 88.0)
        self.assertEqual(client_price(10, Decimal("0")), 10.0)


if __name__ == "__main__":
    unittest.main()
