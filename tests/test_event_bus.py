import unittest
from datetime import datetime, timezone

from marketplace.application.procurement_service import ProcurementService
from marketplace.core.event_bus import EventBus, OrderStatusChanged, QuoteSubmitted, RfqCreated
from marketplace.domain.contracts import RfqCreateInput
from marketplace.errors import ValidationError
from marketplace.observability import metrics_snapshot, reset_metrics_for_tests


class EventBusTest(unittest.TestCase):
    def setUp(self) -> None:
        reset_metrics_for_tests()

    def tearDown(self) -> None:
        reset_metrics_for_tests()

    def test_handler_execution_order_is_predictable(self) -> None:
        bus = EventBus()
        execution_trace = []

        bus.subscribe(RfqCreated, lambda _event: execution_trace.append("first"))
        bus.subscribe(RfqCreated, lambda _event: execution_trace.append("second"))
        bus.publish(RfqCreated(rfq_id=1, client_id=2, title="Paper", line_count=1))

        self.assertEqual(execution_trace, ["first", "second"])

    def test_subscribe_is_idempotent_per_handler(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(QuoteSubmitted, received.append)
        bus.subscribe(QuoteSubmitted, received.append)
        bus.publish(
            QuoteSubmitted(quote_id=3, rfq_id=1, rfq_title="Paper", client_id=2, supplier_id=5, total_price=35.0)
        )
        self.assertEqual(len(received), 1)

    def test_handler_failure_does_not_stop_other_handlers(self) -> None:
        bus = EventBus()
        received = []

        def broken(_event):
            raise RuntimeError("boom")

        bus.subscribe(OrderStatusChanged, broken)
        bus.subscribe(OrderStatusChanged, received.append)
        with self.assertLogs("marketplace", level="ERROR") as logs:
            bus.publish(
                OrderStatusChanged(
                    order_id=9,
                    order_number="ORD-20261019-1",
                    client_id=2,
                    supplier_id=5,
                    from_status="pending",
                    to_status="confirmed",
                    actor_id=5,
                )
            )
        self.assertEqual(len(received), 1)
        self.assertTrue(any("event_handler_failed" in line for line in logs.output))

    def test_events_are_normalized(self) -> None:
        naive = datetime(2026, 10, 19, 12, 0, 0)
        event = RfqCreated(rfq_id=1, client_id=2, title="Paper", line_count=1, event_id="  ", occurred_at=naive)
        self.assertTrue(event.event_id)
        self.assertEqual(event.occurred_at.tzinfo, timezone.utc)

    def test_publish_counts_domain_events(self) -> None:
        bus = EventBus()
        bus.publish(RfqCreated(rfq_id=1, client_id=2, title="Paper", line_count=1))
        bus.publish(RfqCreated(rfq_id=2, client_id=2, title="Pens", line_count=1))
        snapshot = metrics_snapshot()
        self.assertEqual(snapshot["domain_events"]["by_type"]["RfqCreated"], 2)
        self.assertEqual(snapshot["domain_events"]["emitted_total"], 2)

    def test_refused_request_publishes_nothing(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(RfqCreated, received.append)
        service = ProcurementService(event_bus=bus)

        with self.assertRaises(ValidationError):
            service.create_rfq(db=None, client={"id": 1}, create_input=RfqCreateInput(title="   ", lines=[]))
        self.assertEqual(received, [])


if __name__ == "__main__":
    unittest.main()
