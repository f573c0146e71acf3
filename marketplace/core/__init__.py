from marketplace.core.event_bus import (
    DomainEvent,
    EventBus,
    ItemReviewed,
    OrderStatusChanged,
    QuoteAccepted,
    QuoteSubmitted,
    RfqCancelled,
    RfqCreated,
    UserStatusChanged,
    get_event_bus,
    reset_event_bus_for_tests,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "RfqCreated",
    "RfqCancelled",
    "QuoteSubmitted",
    "QuoteAccepted",
    "OrderStatusChanged",
    "ItemReviewed",
    "UserStatusChanged",
    "get_event_bus",
    "reset_event_bus_for_tests",
]
