import sqlite3
import unittest
from unittest.mock import patch

from marketplace.application.catalog_service import CatalogService
from marketplace.application.lifecycle import lifecycle_step
from marketplace.db import close_db
from marketplace.errors import ConflictError, LifecycleWriteError, NotFoundError, ValidationError
from marketplace.observability import metrics_snapshot, reset_metrics_for_tests
from marketplace.ui_strings import error_message
from tests.helpers.marketplace_app import CLIENT, MarketplaceApiMixin, build_temp_app
from tests.helpers.temp_db import TempDbSandbox


class LifecycleStepTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        reset_metrics_for_tests()

    def test_integrity_error_maps_to_given_conflict(self) -> None:
        conflict = ConflictError(code="duplicate_quote", message_key="duplicate_quote")
        with self.assertRaises(ConflictError) as ctx:
            with lifecycle_step("submit_quote", "insert_quote", conflict=conflict):
                raise sqlite3.IntegrityError("UNIQUE constraint failed: quotes.rfq_id, quotes.supplier_id")
        self.assertIs(ctx.exception, conflict)
        self.assertEqual(metrics_snapshot()["lifecycle_write_failed"], {})

    def test_integrity_error_without_conflict_is_a_write_failure(self) -> None:
        with self.assertLogs("marketplace.lifecycle", level="ERROR"):
            with self.assertRaises(LifecycleWriteError) as ctx:
                with lifecycle_step("accept_quote", "create_order"):
                    raise sqlite3.IntegrityError("NOT NULL constraint failed")
        error = ctx.exception
        self.assertEqual(error.http_status, 500)
        self.assertEqual(error.payload, {"operation": "accept_quote", "failed_step": "create_order", "rolled_back": True})

    def test_operational_error_is_counted(self) -> None:
        with self.assertLogs("marketplace.lifecycle", level="ERROR"):
            with self.assertRaises(LifecycleWriteError):
                with lifecycle_step("cancel_rfq", "reject_quotes"):
                    raise sqlite3.OperationalError("database is locked")
        self.assertEqual(metrics_snapshot()["lifecycle_write_failed"], {"cancel_rfq": 1})

    def test_app_errors_pass_through(self) -> None:
        with self.assertRaises(NotFoundError):
            with lifecycle_step("accept_quote", "load_quote"):
                raise NotFoundError(code="quote_not_found", message_key="quote_not_found")


class ErrorPayloadTest(unittest.TestCase):
    def test_payload_carries_code_message_and_extras(self) -> None:
        error = ValidationError(code="quote_total_mismatch", message_key="quote_total_mismatch", payload={"expected_total": 35.0})
        payload = error.to_response_payload("req-1")
        self.assertEqual(payload["error"], "quote_total_mismatch")
        self.assertEqual(payload["message"], error_message("quote_total_mismatch"))
        self.assertEqual(payload["request_id"], "req-1")
        self.assertEqual(payload["expected_total"], 35.0)
        self.assertFalse(error.critical)

    def test_unknown_message_key_falls_back(self) -> None:
        error = ConflictError(code="mystery", message_key="mystery_key")
        self.assertEqual(error.user_message(), error_message("unexpected_error"))

    def test_lifecycle_error_is_critical(self) -> None:
        error = LifecycleWriteError("create_rfq", "insert_rfq_items")
        self.assertTrue(error.critical)
        self.assertEqual(error.code, "lifecycle_write_failed")
        self.assertEqual(error.failed_step, "insert_rfq_items")


class ErrorHandlingApiTest(MarketplaceApiMixin, unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = build_temp_app(self._temp_db, PROPAGATE_EXCEPTIONS=False)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_unexpected_exception_returns_generic_500(self) -> None:
        with patch.object(CatalogService, "list_categories", side_effect=RuntimeError("kaboom")):
            with self.assertLogs(self.app.logger, level="ERROR"):
                response = self.client.get("/api/catalog/categories")

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "unexpected_error")
        self.assertEqual(payload["message"], error_message("unexpected_error"))
        self.assertEqual(payload["request_id"], response.headers["X-Request-Id"])
        body = response.get_data(as_text=True)
        self.assertNotIn("kaboom", body)
        self.assertNotIn("Traceback", body)

    def test_not_found_and_validation_errors_are_json(self) -> None:
        self.login(CLIENT)
        missing = self.client.get("/api/client/rfqs/99999")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["error"], "rfq_not_found")

        invalid = self.client.post("/api/client/rfqs", json={"title": "", "lines": []})
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "title_required")

    def test_unknown_route_keeps_http_status(self) -> None:
        response = self.client.get("/api/nowhere")
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
