import sqlite3
import unittest
from unittest.mock import patch

from marketplace.db import close_db, get_db
from marketplace.infrastructure.repositories import OrderRepository
from tests.helpers.marketplace_app import ADMIN, CLIENT, SUPPLIER, SUPPLIER_2, MarketplaceApiMixin, build_temp_app
from tests.helpers.temp_db import TempDbSandbox


class RfqLifecycleTest(MarketplaceApiMixin, unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="rfq_lifecycle")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()

        self.paper_id = self.create_item(SUPPLIER, "A4 paper ream", 1.50)
        self.pens_id = self.create_item(SUPPLIER, "Blue pens (box)", 2.20)
        self.approve_items(self.paper_id, self.pens_id)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _quoted_rfq(self):
        rfq = self.create_rfq([(self.paper_id, 10), (self.pens_id, 5)])
        response = self.submit_quote(SUPPLIER, rfq, {self.paper_id: "2.00", self.pens_id: "3.00"})
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        return rfq, response.get_json()["quote"]

    def test_rfq_to_shipped_order(self) -> None:
        rfq = self.create_rfq([(self.paper_id, 10), (self.pens_id, 5)])
        self.assertEqual(rfq["status"], "open")
        self.assertEqual(len(rfq["lines"]), 2)

        self.login(SUPPLIER)
        opportunities = self.client.get("/api/supplier/opportunities").get_json()["items"]
        self.assertEqual([int(item["id"]) for item in opportunities], [int(rfq["id"])])

        quote_res = self.submit_quote(SUPPLIER, rfq, {self.paper_id: "2.00", self.pens_id: "3.00"})
        self.assertEqual(quote_res.status_code, 201, msg=quote_res.get_data(as_text=True))
        quote = quote_res.get_json()["quote"]
        self.assertEqual(quote["status"], "pending")
        self.assertAlmostEqual(float(quote["total_price"]), 35.0)
        self.assertEqual(len(quote["lines"]), 2)
        self.assertTrue(quote["valid_until"])

        self.login(CLIENT)
        detail = self.client.get(f"/api/client/rfqs/{rfq['id']}").get_json()["rfq"]
        self.assertEqual(detail["status"], "quoted")
        self.assertEqual(detail["quotes"][0]["primary_action"], "accept_quote")

        accept_res = self.client.post(
            f"/api/client/quotes/{quote['id']}/accept",
            json={"delivery_address": "1 Warehouse Road"},
        )
        self.assertEqual(accept_res.status_code, 201, msg=accept_res.get_data(as_text=True))
        accepted = accept_res.get_json()
        order = accepted["order"]
        self.assertEqual(order["status"], "pending")
        self.assertAlmostEqual(float(order["total_amount"]), 35.0)
        self.assertTrue(order["order_number"].startswith("ORD-"))
        self.assertTrue(order["order_number"].endswith(f"-{rfq['id']}"))
        self.assertEqual(accepted["quote"]["status"], "accepted")
        self.assertEqual(accepted["rfq"]["status"], "closed")

        self.login(SUPPLIER)
        confirm_res = self.client.post(f"/api/supplier/orders/{order['id']}/confirm")
        self.assertEqual(confirm_res.status_code, 200, msg=confirm_res.get_data(as_text=True))
        self.assertEqual(confirm_res.get_json()["order"]["status"], "confirmed")

        no_tracking = self.client.post(f"/api/supplier/orders/{order['id']}/ship", json={})
        self.assertEqual(no_tracking.status_code, 400)
        self.assertEqual(no_tracking.get_json()["error"], "tracking_number_required")

        ship_res = self.client.post(f"/api/supplier/orders/{order['id']}/ship", json={"tracking_number": "TRK123"})
        self.assertEqual(ship_res.status_code, 200, msg=ship_res.get_data(as_text=True))
        shipped = ship_res.get_json()["order"]
        self.assertEqual(shipped["status"], "shipped")
        self.assertEqual(shipped["tracking_number"], "TRK123")
        self.assertEqual([event["to_status"] for event in shipped["history"]][-1], "shipped")

        again = self.client.post(f"/api/supplier/orders/{order['id']}/ship", json={"tracking_number": "TRK999"})
        self.assertEqual(again.status_code, 409)
        payload = again.get_json()
        self.assertEqual(payload["error"], "action_not_allowed_for_status")
        self.assertEqual(payload["status"], "shipped")

    def test_order_completion_and_rating(self) -> None:
        _rfq, quote = self._quoted_rfq()
        self.login(CLIENT)
        order = self.client.post(f"/api/client/quotes/{quote['id']}/accept", json={}).get_json()["order"]

        early = self.client.post(f"/api/client/orders/{order['id']}/rating", json={"score": 5})
        self.assertEqual(early.status_code, 409)
        self.assertEqual(early.get_json()["error"], "order_not_completed")

        self.login(SUPPLIER)
        self.client.post(f"/api/supplier/orders/{order['id']}/confirm")
        self.client.post(f"/api/supplier/orders/{order['id']}/ship", json={"tracking_number": "TRK1"})
        delivered = self.client.post(f"/api/supplier/orders/{order['id']}/deliver")
        self.assertEqual(delivered.get_json()["order"]["status"], "delivered")

        self.login(CLIENT)
        completed = self.client.post(f"/api/client/orders/{order['id']}/complete")
        self.assertEqual(completed.status_code, 200, msg=completed.get_data(as_text=True))
        self.assertEqual(completed.get_json()["order"]["status"], "completed")

        rating = self.client.post(f"/api/client/orders/{order['id']}/rating", json={"score": 4, "review": "On time"})
        self.assertEqual(rating.status_code, 201, msg=rating.get_data(as_text=True))
        self.assertEqual(int(rating.get_json()["rating"]["score"]), 4)

        duplicate = self.client.post(f"/api/client/orders/{order['id']}/rating", json={"score": 5})
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "rating_exists")

        supplier = self.login(SUPPLIER)
        self.assertEqual(int(supplier["total_orders"]), 1)
        self.assertAlmostEqual(float(supplier["rating"]), 4.0)

    def test_client_cannot_ship_and_supplier_cannot_rate(self) -> None:
        _rfq, quote = self._quoted_rfq()
        self.login(CLIENT)
        order = self.client.post(f"/api/client/quotes/{quote['id']}/accept", json={}).get_json()["order"]

        ship = self.client.post(f"/api/client/orders/{order['id']}/confirm")
        self.assertEqual(ship.status_code, 403)

        unknown = self.client.post(f"/api/client/orders/{order['id']}/teleport")
        self.assertEqual(unknown.status_code, 400)
        self.assertEqual(unknown.get_json()["error"], "action_invalid")

        self.login(SUPPLIER_2)
        foreign = self.client.get(f"/api/supplier/orders/{order['id']}")
        self.assertEqual(foreign.status_code, 403)

    def test_client_cancels_pending_order(self) -> None:
        _rfq, quote = self._quoted_rfq()
        self.login(CLIENT)
        order = self.client.post(f"/api/client/quotes/{quote['id']}/accept", json={}).get_json()["order"]

        cancelled = self.client.post(f"/api/client/orders/{order['id']}/cancel", json={"reason": "Budget cut"})
        self.assertEqual(cancelled.status_code, 200, msg=cancelled.get_data(as_text=True))
        body = cancelled.get_json()["order"]
        self.assertEqual(body["status"], "cancelled")
        self.assertEqual(body["cancel_reason"], "Budget cut")
        self.assertEqual(body["allowed_actions"], [])

    def test_rfq_creation_validation(self) -> None:
        self.login(CLIENT)
        cases = [
            ({"title": "", "lines": [{"item_id": self.paper_id, "quantity": 1}]}, 400, "title_required"),
            ({"title": "No lines", "lines": []}, 400, "items_required"),
            ({"title": "Zero", "lines": [{"item_id": self.paper_id, "quantity": 0}]}, 400, "quantity_invalid"),
            ({"title": "Unknown", "lines": [{"item_id": 99999, "quantity": 1}]}, 404, "item_not_found"),
            (
                {
                    "title": "Twice",
                    "lines": [{"item_id": self.paper_id, "quantity": 1}, {"item_id": self.paper_id, "quantity": 2}],
                },
                400,
                "items_duplicate",
            ),
            (
                {"title": "Past", "deadline": "2001-01-01", "lines": [{"item_id": self.paper_id, "quantity": 1}]},
                400,
                "deadline_invalid",
            ),
        ]
        for body, status_code, error_code in cases:
            with self.subTest(error_code=error_code):
                response = self.client.post("/api/client/rfqs", json=body)
                self.assertEqual(response.status_code, status_code, msg=response.get_data(as_text=True))
                self.assertEqual(response.get_json()["error"], error_code)

        self.assertEqual(self.client.get("/api/client/rfqs").get_json()["items"], [])

    def test_pending_item_cannot_be_requested(self) -> None:
        pending_id = self.create_item(SUPPLIER, "Stapler", 4.00)
        self.login(CLIENT)
        response = self.client.post(
            "/api/client/rfqs",
            json={"title": "Stapler", "lines": [{"item_id": pending_id, "quantity": 1}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "item_not_approved")

    def test_quote_total_mismatch_is_rejected(self) -> None:
        rfq = self.create_rfq([(self.paper_id, 10), (self.pens_id, 5)])
        response = self.submit_quote(
            SUPPLIER,
            rfq,
            {self.paper_id: "2.00", self.pens_id: "3.00"},
            total_price=30,
        )
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "quote_total_mismatch")
        self.assertAlmostEqual(payload["expected_total"], 35.0)

    def test_sub_cent_prices_round_only_the_total(self) -> None:
        rfq = self.create_rfq([(self.paper_id, 100), (self.pens_id, 10)])
        response = self.submit_quote(
            SUPPLIER,
            rfq,
            {self.paper_id: "0.125", self.pens_id: "0.004"},
            total_price="12.54",
        )
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        quote = response.get_json()["quote"]
        self.assertAlmostEqual(float(quote["total_price"]), 12.54)
        prices = {int(line["item_id"]): float(line["unit_price"]) for line in quote["lines"]}
        self.assertAlmostEqual(prices[self.paper_id], 0.125)
        self.assertAlmostEqual(prices[self.pens_id], 0.004)

        self.login(CLIENT)
        order = self.client.post(f"/api/client/quotes/{quote['id']}/accept", json={}).get_json()["order"]
        self.assertAlmostEqual(float(order["total_amount"]), 12.54)

    def test_quote_must_price_every_line(self) -> None:
        rfq = self.create_rfq([(self.paper_id, 10), (self.pens_id, 5)])
        self.login(SUPPLIER)
        response = self.client.post(
            f"/api/supplier/rfqs/{rfq['id']}/quotes",
            json={"lines": [{"rfq_item_id": rfq["lines"][0]["id"], "unit_price": "2.00"}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "quote_lines_incomplete")

        negative = self.client.post(
            f"/api/supplier/rfqs/{rfq['id']}/quotes",
            json={
                "lines": [
                    {"rfq_item_id": rfq["lines"][0]["id"], "unit_price": "2.00"},
                    {"rfq_item_id": rfq["lines"][1]["id"], "unit_price": "-1"},
                ]
            },
        )
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(negative.get_json()["error"], "price_invalid")

    def test_cancel_rfq_rejects_pending_quotes(self) -> None:
        rfq, quote = self._quoted_rfq()
        self.login(CLIENT)
        cancelled = self.client.post(f"/api/client/rfqs/{rfq['id']}/cancel")
        self.assertEqual(cancelled.status_code, 200, msg=cancelled.get_data(as_text=True))
        detail = cancelled.get_json()["rfq"]
        self.assertEqual(detail["status"], "cancelled")
        self.assertEqual([q["status"] for q in detail["quotes"]], ["rejected"])

        accept = self.client.post(f"/api/client/quotes/{quote['id']}/accept", json={})
        self.assertEqual(accept.status_code, 409)

    def test_other_client_cannot_read_rfq(self) -> None:
        rfq = self.create_rfq([(self.paper_id, 1)])
        self.client.post(
            "/api/auth/signup",
            json={"email": "other@client.com", "password": "longpassword", "role": "client"},
        )
        with self.app.app_context():
            db = get_db()
            db.execute("UPDATE user_profiles SET status = 'approved' WHERE email = ?", ("other@client.com",))
            db.commit()
            close_db()
        self.login(("other@client.com", "longpassword"))
        response = self.client.get(f"/api/client/rfqs/{rfq['id']}")
        self.assertEqual(response.status_code, 403)


class QuoteAcceptanceAtomicityTest(MarketplaceApiMixin, unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="rfq_atomicity")
        self.app = build_temp_app(self._temp_db, PROPAGATE_EXCEPTIONS=False)
        self.client = self.app.test_client()
        item_id = self.create_item(SUPPLIER, "Toner cartridge", 30.0)
        self.approve_items(item_id)
        self.rfq = self.create_rfq([(item_id, 2)])
        response = self.submit_quote(SUPPLIER, self.rfq, {item_id: "45.50"})
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        self.quote = response.get_json()["quote"]

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_failed_order_insert_rolls_back_acceptance(self) -> None:
        self.login(CLIENT)
        with patch.object(OrderRepository, "create", side_effect=sqlite3.OperationalError("disk I/O error")):
            response = self.client.post(f"/api/client/quotes/{self.quote['id']}/accept", json={})

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "lifecycle_write_failed")
        self.assertEqual(payload["operation"], "accept_quote")
        self.assertEqual(payload["failed_step"], "create_order")
        self.assertTrue(payload["rolled_back"])

        detail = self.client.get(f"/api/client/rfqs/{self.rfq['id']}").get_json()["rfq"]
        self.assertEqual(detail["status"], "quoted")
        self.assertEqual(detail["quotes"][0]["status"], "pending")
        self.assertIsNone(detail["order"])

        retry = self.client.post(f"/api/client/quotes/{self.quote['id']}/accept", json={})
        self.assertEqual(retry.status_code, 201, msg=retry.get_data(as_text=True))

    def test_second_acceptance_conflicts(self) -> None:
        self.login(CLIENT)
        first = self.client.post(f"/api/client/quotes/{self.quote['id']}/accept", json={})
        self.assertEqual(first.status_code, 201)
        second = self.client.post(f"/api/client/quotes/{self.quote['id']}/accept", json={})
        self.assertEqual(second.status_code, 409)

    def test_non_owner_cannot_accept(self) -> None:
        self.login(SUPPLIER)
        as_supplier = self.client.post(f"/api/client/quotes/{self.quote['id']}/accept", json={})
        self.assertEqual(as_supplier.status_code, 403)
        self.assertEqual(as_supplier.get_json()["error"], "permission_denied")


class SiblingQuoteRejectionTest(MarketplaceApiMixin, unittest.TestCase):
    """Quotes recorded alongside the accepted one, e.g. under RFQ_MULTI_QUOTE_ENABLED or from older data."""

    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="rfq_siblings")
        self.app = build_temp_app(self._temp_db, RFQ_MULTI_QUOTE_ENABLED=True)
        self.client = self.app.test_client()
        item_id = self.create_item(SUPPLIER, "Printer toner", 20.0)
        self.approve_items(item_id)
        self.rfq = self.create_rfq([(item_id, 3)])
        response = self.submit_quote(SUPPLIER, self.rfq, {item_id: "25.00"})
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        self.quote = response.get_json()["quote"]

        signup = self.client.post(
            "/api/auth/signup",
            json={"email": "supplier3@test.com", "password": "longpassword", "role": "supplier"},
        )
        self.assertEqual(signup.status_code, 201, msg=signup.get_data(as_text=True))
        self.supplier_2_id = int(self.login(SUPPLIER_2)["id"])
        with self.app.app_context():
            db = get_db()
            row = db.execute("SELECT id FROM user_profiles WHERE email = ?", ("supplier3@test.com",)).fetchone()
            self.supplier_3_id = int(row["id"])
            close_db()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _record_quote(self, supplier_id: int, status: str, unit_price: float) -> int:
        with self.app.app_context():
            db = get_db()
            cursor = db.execute(
                """
                INSERT INTO quotes (rfq_id, supplier_id, total_price, status, valid_until)
                VALUES (?, ?, ?, ?, '2000-01-01 00:00:00')
                """,
                (int(self.rfq["id"]), supplier_id, unit_price * 3, status),
            )
            quote_id = int(cursor.lastrowid)
            db.execute(
                "INSERT INTO quote_items (quote_id, rfq_item_id, unit_price) VALUES (?, ?, ?)",
                (quote_id, int(self.rfq["lines"][0]["id"]), unit_price),
            )
            db.commit()
            close_db()
        return quote_id

    def _quote_statuses(self) -> dict:
        self.login(CLIENT)
        detail = self.client.get(f"/api/client/rfqs/{self.rfq['id']}").get_json()["rfq"]
        return {int(quote["id"]): quote["status"] for quote in detail["quotes"]}

    def test_acceptance_rejects_every_other_quote(self) -> None:
        pending_id = self._record_quote(self.supplier_2_id, "pending", 24.0)
        expired_id = self._record_quote(self.supplier_3_id, "expired", 23.0)

        self.login(CLIENT)
        response = self.client.post(f"/api/client/quotes/{self.quote['id']}/accept", json={})
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))

        self.assertEqual(
            self._quote_statuses(),
            {int(self.quote["id"]): "accepted", pending_id: "rejected", expired_id: "rejected"},
        )
        self.login(ADMIN)
        orders = self.client.get("/api/admin/orders").get_json()["items"]
        self.assertEqual([int(order["rfq_id"]) for order in orders], [int(self.rfq["id"])])

        with self.app.app_context():
            db = get_db()
            events = db.execute(
                "SELECT entity_id, from_status FROM status_events WHERE entity = 'quote' AND to_status = 'rejected'"
            ).fetchall()
            close_db()
        self.assertEqual(
            sorted((int(row["entity_id"]), row["from_status"]) for row in events),
            [(pending_id, "pending"), (expired_id, "expired")],
        )

        self.login(SUPPLIER_2)
        kinds = [item["type"] for item in self.client.get("/api/account/notifications").get_json()["items"]]
        self.assertIn("quote_rejected", kinds)

    def test_cancel_leaves_expired_quotes_alone(self) -> None:
        expired_id = self._record_quote(self.supplier_2_id, "expired", 24.0)

        self.login(CLIENT)
        cancelled = self.client.post(f"/api/client/rfqs/{self.rfq['id']}/cancel")
        self.assertEqual(cancelled.status_code, 200, msg=cancelled.get_data(as_text=True))
        self.assertEqual(
            self._quote_statuses(),
            {int(self.quote["id"]): "rejected", expired_id: "expired"},
        )


if __name__ == "__main__":
    unittest.main()
