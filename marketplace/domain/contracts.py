from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class AuthLoginInput:
    email: str
    password: str


@dataclass(frozen=True)
class AuthSignupInput:
    email: str
    password: str
    role: str
    real_name: str | None = None
    company_name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class ItemInput:
    name: str | None = None
    description: str | None = None
    category_id: int | None = None
    subcategory_id: int | None = None
    unit: str | None = None
    cost_price: Any = None
    image_urls: List[str] | None = None


@dataclass(frozen=True)
class CatalogFilter:
    category_id: int | None = None
    search_text: str | None = None
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class RfqLineInput:
    item_id: Any
    quantity: Any
    notes: str | None = None


@dataclass(frozen=True)
class RfqCreateInput:
    title: str
    lines: List[RfqLineInput]
    description: str | None = None
    deadline: str | None = None


@dataclass(frozen=True)
class QuoteLineInput:
    rfq_item_id: Any
    unit_price: Any


@dataclass(frozen=True)
class QuoteSubmitInput:
    rfq_id: int
    lines: List[QuoteLineInput]
    notes: str | None = None
    delivery_days: Any = None
    total_price: Any = None


@dataclass(frozen=True)
class QuoteAcceptInput:
    quote_id: int
    delivery_address: str | None = None


@dataclass(frozen=True)
class OrderTransitionInput:
    order_id: int
    action: str
    tracking_number: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class RatingInput:
    order_id: int
    score: Any
    review: str | None = None


@dataclass(frozen=True)
class MarginRuleInput:
    margin_percentage: Any = None
    category_id: int | None = None
    priority: Any = None
    active: bool | None = None
