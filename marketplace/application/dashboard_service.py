from __future__ import annotations

from marketplace.application.procurement_service import ProcurementService
from marketplace.infrastructure.repositories import (
    ItemRepository,
    NotificationRepository,
    OrderRepository,
    ProfileRepository,
    RfqRepository,
)


class DashboardService:
    def __init__(
        self,
        profiles: ProfileRepository | None = None,
        items: ItemRepository | None = None,
        rfqs: RfqRepository | None = None,
        orders: OrderRepository | None = None,
        notifications: NotificationRepository | None = None,
        procurement: ProcurementService | None = None,
    ) -> None:
        self.profiles = profiles or ProfileRepository()
        self.items = items or ItemRepository()
        self.rfqs = rfqs or RfqRepository()
        self.orders = orders or OrderRepository()
        self.notifications = notifications or NotificationRepository()
        self.procurement = procurement or ProcurementService()

    def admin_dashboard(self, db) -> dict:
        return {
            "users": self.profiles.count_by_status(db),
            "items": self.items.count_by_status(db),
            "rfqs": self.rfqs.count_by_status(db),
            "orders": self.orders.count_by_status(db),
            "revenue": self.orders.completed_revenue(db),
        }

    def client_dashboard(self, db, client: dict) -> dict:
        client_id = int(client["id"])
        return {
            "rfqs": self.rfqs.count_by_status(db, client_id=client_id),
            "orders": self.orders.count_by_status(db, party="client", user_id=client_id),
            "recent_rfqs": self.rfqs.list_by_client(db, client_id)[:5],
            "unread_notifications": self.notifications.unread_count(db, client_id),
        }

    def supplier_dashboard(self, db, supplier: dict) -> dict:
        supplier_id = int(supplier["id"])
        return {
            "items": self.items.count_by_status(db, supplier_id=supplier_id),
            "open_opportunities": len(self.procurement.supplier_opportunities(db, supplier)),
            "orders": self.orders.count_by_status(db, party="supplier", user_id=supplier_id),
            "rating": supplier.get("rating") or 0,
            "total_orders": supplier.get("total_orders") or 0,
            "unread_notifications": self.notifications.unread_count(db, supplier_id),
        }
