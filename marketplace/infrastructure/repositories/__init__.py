from marketplace.infrastructure.repositories.auth_repository import AuthRepository
from marketplace.infrastructure.repositories.category_repository import CategoryRepository
from marketplace.infrastructure.repositories.item_repository import ItemRepository
from marketplace.infrastructure.repositories.margin_rule_repository import MarginRuleRepository
from marketplace.infrastructure.repositories.notification_repository import NotificationRepository
from marketplace.infrastructure.repositories.order_repository import OrderRepository
from marketplace.infrastructure.repositories.profile_repository import ProfileRepository
from marketplace.infrastructure.repositories.quote_item_repository import QuoteItemRepository
from marketplace.infrastructure.repositories.quote_repository import QuoteRepository
from marketplace.infrastructure.repositories.rating_repository import RatingRepository
from marketplace.infrastructure.repositories.rfq_item_repository import RfqItemRepository
from marketplace.infrastructure.repositories.rfq_repository import RfqRepository
from marketplace.infrastructure.repositories.status_event_repository import StatusEventRepository

__all__ = [
    "AuthRepository",
    "CategoryRepository",
    "ItemRepository",
    "MarginRuleRepository",
    "NotificationRepository",
    "OrderRepository",
    "ProfileRepository",
    "QuoteItemRepository",
    "QuoteRepository",
    "RatingRepository",
    "RfqItemRepository",
    "RfqRepository",
    "StatusEventRepository",
]
