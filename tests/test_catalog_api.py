import unittest

from marketplace.db import close_db
from tests.helpers.marketplace_app import ADMIN, CLIENT, SUPPLIER, MarketplaceApiMixin, build_temp_app
from tests.helpers.temp_db import TempDbSandbox


class CatalogApiTest(MarketplaceApiMixin, unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="catalog_api")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()

        self.paper_id = self.create_item(SUPPLIER, "A4 paper ream", 1.50)
        self.chair_id = self.create_item(SUPPLIER, "Task chair", 80.00, category_slug="furniture")
        self.pending_id = self.create_item(SUPPLIER, "Whiteboard", 40.00)
        self.approve_items(self.paper_id, self.chair_id)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _catalog(self, query: str = ""):
        response = self.client.get(f"/api/catalog/items{query}")
        self.assertEqual(response.status_code, 200, msg=response.get_data(as_text=True))
        return {int(item["id"]): item for item in response.get_json()["items"]}

    def test_catalog_shows_only_approved_items_with_client_price(self) -> None:
        self.login(CLIENT)
        items = self._catalog()
        self.assertEqual(set(items), {self.paper_id, self.chair_id})
        paper = items[self.paper_id]
        self.assertNotIn("cost_price", paper)
        self.assertAlmostEqual(paper["price"], 1.73)

        furniture = self._catalog(f"?category_id={self.category_id('furniture')}")
        self.assertEqual(set(furniture), {self.chair_id})

        search = self._catalog("?search=paper")
        self.assertEqual(set(search), {self.paper_id})

    def test_catalog_lists_newest_first(self) -> None:
        self.login(CLIENT)
        response = self.client.get("/api/catalog/items")
        self.assertEqual([int(item["id"]) for item in response.get_json()["items"]], [self.chair_id, self.paper_id])

    def test_search_is_case_insensitive_literal_substring(self) -> None:
        self.login(SUPPLIER)
        created = self.client.post(
            "/api/supplier/items",
            json={
                "name": "Copy_paper 80gsm",
                "description": "Recycled, 100% post-consumer fibre",
                "cost_price": 3.10,
                "category_id": self.category_id(),
            },
        )
        self.assertEqual(created.status_code, 201, msg=created.get_data(as_text=True))
        recycled_id = int(created.get_json()["item"]["id"])
        self.approve_items(recycled_id)

        self.login(CLIENT)
        self.assertEqual(set(self._catalog("?search=PAPER")), {self.paper_id, recycled_id})
        self.assertEqual(set(self._catalog("?search=post-CONSUMER")), {recycled_id})
        self.assertEqual(set(self._catalog("?search=100%25")), {recycled_id})
        self.assertEqual(set(self._catalog("?search=%25")), {recycled_id})
        self.assertEqual(set(self._catalog("?search=y_p")), {recycled_id})
        self.assertEqual(self._catalog("?search=_4"), {})
        self.assertEqual(self._catalog("?search=_chair"), {})
        self.assertEqual(self._catalog("?search=%5C"), {})

    def test_sub_cent_cost_price_is_refused(self) -> None:
        self.login(SUPPLIER)
        response = self.client.post(
            "/api/supplier/items",
            json={"name": "Paper clip", "cost_price": "0.004", "category_id": self.category_id()},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "price_invalid")

    def test_margin_rules_category_beats_global(self) -> None:
        self.login(ADMIN)
        global_rule = self.client.post("/api/admin/margin-rules", json={"margin_percentage": 10, "priority": 1})
        self.assertEqual(global_rule.status_code, 201, msg=global_rule.get_data(as_text=True))
        category_rule = self.client.post(
            "/api/admin/margin-rules",
            json={"margin_percentage": 20, "category_id": self.category_id("office-supplies"), "priority": 0},
        )
        self.assertEqual(category_rule.status_code, 201)

        self.login(CLIENT)
        items = self._catalog()
        self.assertAlmostEqual(items[self.paper_id]["price"], 1.80)
        self.assertAlmostEqual(items[self.chair_id]["price"], 88.00)

        self.login(ADMIN)
        rule_id = category_rule.get_json()["rule"]["id"]
        disabled = self.client.patch(f"/api/admin/margin-rules/{rule_id}", json={"active": False})
        self.assertEqual(disabled.status_code, 200)
        self.assertFalse(disabled.get_json()["rule"]["active"])

        self.login(CLIENT)
        self.assertAlmostEqual(self._catalog()[self.paper_id]["price"], 1.65)

    def test_margin_rule_validation(self) -> None:
        self.login(ADMIN)
        negative = self.client.post("/api/admin/margin-rules", json={"margin_percentage": -5})
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(negative.get_json()["error"], "margin_invalid")

        missing = self.client.patch("/api/admin/margin-rules/999", json={"margin_percentage": 5})
        self.assertEqual(missing.status_code, 404)

    def test_selection_builds_rfq(self) -> None:
        self.login(CLIENT)
        toggled = self.client.post("/api/catalog/selection", json={"item_id": self.paper_id})
        self.assertEqual(toggled.status_code, 200)
        self.assertEqual(toggled.get_json()["count"], 1)

        self.client.post("/api/catalog/selection", json={"item_id": self.chair_id})
        sized = self.client.post(
            "/api/catalog/selection",
            json={"item_id": self.paper_id, "action": "set_quantity", "quantity": 12},
        )
        quantities = {int(line["item"]["id"]): line["quantity"] for line in sized.get_json()["items"]}
        self.assertEqual(quantities, {self.paper_id: 12, self.chair_id: 1})

        untoggled = self.client.post("/api/catalog/selection", json={"item_id": self.chair_id})
        self.assertEqual(untoggled.get_json()["count"], 1)

        rfq_res = self.client.post("/api/catalog/selection/rfq", json={"title": "From selection"})
        self.assertEqual(rfq_res.status_code, 201, msg=rfq_res.get_data(as_text=True))
        lines = rfq_res.get_json()["rfq"]["lines"]
        self.assertEqual([(int(line["item_id"]), line["quantity"]) for line in lines], [(self.paper_id, 12)])

        self.assertEqual(self.client.get("/api/catalog/selection").get_json()["count"], 0)

    def test_selection_rejects_unapproved_and_bad_quantity(self) -> None:
        self.login(CLIENT)
        pending = self.client.post("/api/catalog/selection", json={"item_id": self.pending_id})
        self.assertEqual(pending.status_code, 400)
        self.assertEqual(pending.get_json()["error"], "item_not_approved")

        zero = self.client.post(
            "/api/catalog/selection",
            json={"item_id": self.paper_id, "action": "set_quantity", "quantity": 0},
        )
        self.assertEqual(zero.status_code, 400)
        self.assertEqual(zero.get_json()["error"], "quantity_invalid")

        empty = self.client.post("/api/catalog/selection/rfq", json={"title": "Nothing"})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["error"], "items_required")

    def test_supplier_inventory_edit_and_delete(self) -> None:
        self.login(SUPPLIER)
        items = self.client.get("/api/supplier/items?status=pending").get_json()["items"]
        self.assertEqual([int(item["id"]) for item in items], [self.pending_id])
        self.assertAlmostEqual(float(items[0]["cost_price"]), 40.0)

        updated = self.client.patch(f"/api/supplier/items/{self.pending_id}", json={"cost_price": "42.5"})
        self.assertEqual(updated.status_code, 200, msg=updated.get_data(as_text=True))
        self.assertAlmostEqual(float(updated.get_json()["item"]["cost_price"]), 42.5)

        invalid = self.client.patch(f"/api/supplier/items/{self.pending_id}", json={"cost_price": 0})
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "price_invalid")

        deleted = self.client.delete(f"/api/supplier/items/{self.pending_id}")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get(f"/api/supplier/items/{self.pending_id}").status_code, 404)

    def test_item_in_rfq_cannot_be_deleted(self) -> None:
        self.create_rfq([(self.paper_id, 2)])
        self.login(SUPPLIER)
        response = self.client.delete(f"/api/supplier/items/{self.paper_id}")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "item_in_use")

    def test_admin_item_review(self) -> None:
        self.login(ADMIN)
        queue = self.client.get("/api/admin/items?status=pending").get_json()["items"]
        self.assertEqual([int(item["id"]) for item in queue], [self.pending_id])

        rejected = self.client.post(f"/api/admin/items/{self.pending_id}/review", json={"decision": "reject"})
        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.get_json()["item"]["status"], "rejected")

        again = self.client.post(f"/api/admin/items/{self.pending_id}/review", json={"decision": "approve"})
        self.assertEqual(again.status_code, 409)

        self.login(SUPPLIER)
        notifications = self.client.get("/api/account/notifications?unread=1").get_json()
        kinds = [item["type"] for item in notifications["items"]]
        self.assertEqual(kinds.count("item_reviewed"), 3)

    def test_admin_manages_taxonomy(self) -> None:
        self.login(ADMIN)
        created = self.client.post("/api/admin/categories", json={"name": "Lab Equipment"})
        self.assertEqual(created.status_code, 201)
        category = created.get_json()["category"]
        self.assertEqual(category["slug"], "lab-equipment")

        duplicate = self.client.post("/api/admin/categories", json={"name": "Lab equipment"})
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.get_json()["error"], "slug_taken")

        sub = self.client.post(f"/api/admin/categories/{category['id']}/subcategories", json={"name": "Glassware"})
        self.assertEqual(sub.status_code, 201)

        categories = self.client.get("/api/catalog/categories").get_json()["items"]
        lab = next(item for item in categories if item["slug"] == "lab-equipment")
        self.assertEqual([sub["slug"] for sub in lab["subcategories"]], ["glassware"])


if __name__ == "__main__":
    unittest.main()
