from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from marketplace.application.lifecycle import lifecycle_step
from marketplace.config import app_setting
from marketplace.domain.contracts import CatalogFilter, ItemInput, MarginRuleInput
from marketplace.errors import ConflictError, NotFoundError, ValidationError
from marketplace.infrastructure.repositories import (
    CategoryRepository,
    ItemRepository,
    MarginRuleRepository,
)
from marketplace.policies import ensure_owner
from marketplace.procurement.pricing import client_price, resolve_margin, to_money
from marketplace.procurement.selection import SelectionSet


logger = logging.getLogger("marketplace")

_EDITABLE_ITEM_FIELDS = ("name", "description", "category_id", "subcategory_id", "unit", "cost_price", "image_urls")


def slugify(value: str) -> str:
    normalized = value.strip().lower()
    normalized = re.sub(r"[^\w\s-]", "", normalized)
    normalized = re.sub(r"[\s_-]+", "-", normalized)
    return normalized.strip("-")


def _parse_optional_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class CatalogService:
    def __init__(
        self,
        categories: CategoryRepository | None = None,
        items: ItemRepository | None = None,
        margin_rules: MarginRuleRepository | None = None,
    ) -> None:
        self.categories = categories or CategoryRepository()
        self.items = items or ItemRepository()
        self.margin_rules = margin_rules or MarginRuleRepository()

    # Taxonomy

    def list_categories(self, db) -> List[dict]:
        return self.categories.list_with_subcategories(db)

    def create_category(self, db, *, name: str | None, slug: str | None = None, description: str | None = None) -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationError(code="name_required", message_key="name_required")
        slug = slugify(slug or name)
        if not slug:
            raise ValidationError(code="name_required", message_key="name_required")
        if self.categories.get_by_slug(db, slug):
            raise ConflictError(code="slug_taken", message_key="slug_taken")
        with db.transaction():
            with lifecycle_step("create_category", "insert_category", conflict=ConflictError(code="slug_taken")):
                category_id = self.categories.create(
                    db,
                    name=name,
                    slug=slug,
                    description=(description or "").strip() or None,
                )
        return self.categories.get_by_id(db, category_id)

    def create_subcategory(self, db, *, category_id: int, name: str | None, slug: str | None = None) -> dict:
        if self.categories.get_by_id(db, category_id) is None:
            raise NotFoundError(code="category_not_found", message_key="category_not_found")
        name = (name or "").strip()
        if not name:
            raise ValidationError(code="name_required", message_key="name_required")
        slug = slugify(slug or name)
        if self.categories.subcategory_slug_exists(db, category_id, slug):
            raise ConflictError(code="slug_taken", message_key="slug_taken")
        with db.transaction():
            with lifecycle_step("create_subcategory", "insert_subcategory", conflict=ConflictError(code="slug_taken")):
                subcategory_id = self.categories.create_subcategory(
                    db,
                    category_id=category_id,
                    name=name,
                    slug=slug,
                )
        return self.categories.get_subcategory(db, subcategory_id)

    # Supplier inventory

    def _validate_item(self, db, item_input: ItemInput, *, partial: bool = False) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        if not partial or item_input.name is not None:
            name = (item_input.name or "").strip()
            if not name:
                raise ValidationError(code="name_required", message_key="name_required")
            fields["name"] = name

        if not partial or item_input.cost_price is not None:
            cost = to_money(item_input.cost_price)
            if cost is None:
                raise ValidationError(code="price_invalid", message_key="price_invalid")
            fields["cost_price"] = float(cost)

        if not partial or item_input.category_id is not None:
            category_id = _parse_optional_int(item_input.category_id)
            if category_id is None or self.categories.get_by_id(db, category_id) is None:
                raise NotFoundError(code="category_not_found", message_key="category_not_found")
            fields["category_id"] = category_id

        if item_input.subcategory_id is not None:
            subcategory_id = _parse_optional_int(item_input.subcategory_id)
            subcategory = self.categories.get_subcategory(db, subcategory_id) if subcategory_id else None
            category_id = fields.get("category_id")
            if subcategory is None or (category_id is not None and int(subcategory["category_id"]) != category_id):
                raise NotFoundError(code="category_not_found", message_key="category_not_found")
            fields["subcategory_id"] = subcategory_id

        if item_input.description is not None or not partial:
            fields["description"] = (item_input.description or "").strip() or None
        if item_input.unit is not None or not partial:
            fields["unit"] = (item_input.unit or "").strip() or "unit"
        if item_input.image_urls is not None or not partial:
            urls = item_input.image_urls if isinstance(item_input.image_urls, list) else []
            fields["image_urls"] = [str(url).strip() for url in urls if str(url or "").strip()]
        return fields

    def create_item(self, db, supplier: dict, item_input: ItemInput) -> dict:
        fields = self._validate_item(db, item_input)
        with db.transaction():
            with lifecycle_step("create_item", "insert_item"):
                item_id = self.items.create(
                    db,
                    supplier_id=int(supplier["id"]),
                    category_id=fields["category_id"],
                    subcategory_id=fields.get("subcategory_id"),
                    name=fields["name"],
                    description=fields["description"],
                    unit=fields["unit"],
                    cost_price=fields["cost_price"],
                    image_urls=fields["image_urls"],
                )
        logger.info("item_created", extra={"item_id": item_id, "supplier_id": supplier["id"]})
        return self.items.get_by_id(db, item_id)

    def get_owned_item(self, db, user: dict, item_id: int) -> dict:
        item = self.items.get_by_id(db, item_id)
        if item is None:
            raise NotFoundError(code="item_not_found", message_key="item_not_found")
        ensure_owner(item["supplier_id"], user)
        return item

    def update_item(self, db, supplier: dict, item_id: int, item_input: ItemInput) -> dict:
        item = self.get_owned_item(db, supplier, item_id)
        fields = self._validate_item(db, item_input, partial=True)
        if "subcategory_id" in fields and "category_id" not in fields:
            subcategory = self.categories.get_subcategory(db, fields["subcategory_id"])
            if int(subcategory["category_id"]) != int(item["category_id"]):
                raise NotFoundError(code="category_not_found", message_key="category_not_found")
        if "category_id" in fields and "subcategory_id" not in fields:
            fields["subcategory_id"] = None
        updates = {key: value for key, value in fields.items() if key in _EDITABLE_ITEM_FIELDS}
        with db.transaction():
            with lifecycle_step("update_item", "update_item"):
                self.items.update(db, item_id, updates)
        return self.items.get_by_id(db, item_id)

    def delete_item(self, db, supplier: dict, item_id: int) -> None:
        self.get_owned_item(db, supplier, item_id)
        if self.items.is_referenced(db, item_id):
            raise ConflictError(code="item_in_use", message_key="item_in_use")
        with db.transaction():
            with lifecycle_step("delete_item", "delete_item", conflict=ConflictError(code="item_in_use")):
                self.items.delete(db, item_id)

    def list_supplier_items(self, db, supplier: dict, *, status: str | None = None) -> List[dict]:
        return self.items.list_by_supplier(db, int(supplier["id"]), status=status)

    # Client catalog

    def calculate_client_price(self, db, cost_price: object, category_id: int | None) -> float:
        margin = resolve_margin(
            category_id,
            self.margin_rules.list_active(db),
            app_setting("DEFAULT_MARGIN_PERCENT", 15),
        )
        return client_price(cost_price, margin)

    def _with_client_price(self, db, items: List[dict]) -> List[dict]:
        rules = self.margin_rules.list_active(db)
        default_margin = app_setting("DEFAULT_MARGIN_PERCENT", 15)
        priced = []
        for item in items:
            margin = resolve_margin(item.get("category_id"), rules, default_margin)
            view = {key: value for key, value in item.items() if key not in {"cost_price", "approved_by"}}
            view["price"] = client_price(item["cost_price"], margin)
            priced.append(view)
        return priced

    def list_approved_items(self, db, catalog_filter: CatalogFilter) -> List[dict]:
        search = (catalog_filter.search_text or "").strip() or None
        items = self.items.list_approved(
            db,
            category_id=catalog_filter.category_id,
            search=search,
            limit=max(1, int(catalog_filter.limit)),
            offset=max(0, int(catalog_filter.offset)),
        )
        return self._with_client_price(db, items)

    # Selection set

    def _approved_item(self, db, item_id: int) -> dict:
        item = self.items.get_by_id(db, item_id)
        if item is None:
            raise NotFoundError(code="item_not_found", message_key="item_not_found")
        if item["status"] != "approved":
            raise ValidationError(code="item_not_approved", message_key="item_not_approved")
        return item

    def toggle_selection(self, db, selection: SelectionSet, item_id: int) -> bool:
        if item_id not in selection:
            self._approved_item(db, item_id)
        return selection.toggle(item_id)

    def set_selection_quantity(self, db, selection: SelectionSet, item_id: int, quantity: object) -> None:
        parsed = _parse_optional_int(quantity)
        if parsed is None or parsed <= 0:
            raise ValidationError(code="quantity_invalid", message_key="quantity_invalid")
        if item_id not in selection:
            self._approved_item(db, item_id)
        selection.set_quantity(item_id, parsed)

    def selection_payload(self, db, selection: SelectionSet) -> Dict[str, Any]:
        items = self.items.get_many(db, selection.item_ids)
        visible = [items[item_id] for item_id in selection.item_ids if item_id in items]
        lines = []
        for item in self._with_client_price(db, visible):
            quantity = selection.quantity(int(item["id"])) or 1
            lines.append({"item": item, "quantity": quantity})
        return {"items": lines, "count": len(lines)}

    # Margin rules

    def _parse_margin(self, value: object) -> float:
        try:
            margin = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(code="margin_invalid", message_key="margin_invalid")
        if not margin.is_finite() or margin < 0:
            raise ValidationError(code="margin_invalid", message_key="margin_invalid")
        return float(margin)

    def list_margin_rules(self, db) -> List[dict]:
        return self.margin_rules.list(db)

    def create_margin_rule(self, db, rule_input: MarginRuleInput) -> dict:
        margin = self._parse_margin(rule_input.margin_percentage)
        category_id = _parse_optional_int(rule_input.category_id)
        if rule_input.category_id not in (None, "") and (
            category_id is None or self.categories.get_by_id(db, category_id) is None
        ):
            raise NotFoundError(code="category_not_found", message_key="category_not_found")
        priority = _parse_optional_int(rule_input.priority) or 0
        active = True if rule_input.active is None else bool(rule_input.active)
        with db.transaction():
            with lifecycle_step("create_margin_rule", "insert_margin_rule"):
                rule_id = self.margin_rules.create(
                    db,
                    category_id=category_id,
                    margin_percentage=margin,
                    priority=priority,
                    active=active,
                )
        return self.margin_rules.get_by_id(db, rule_id)

    def update_margin_rule(self, db, rule_id: int, rule_input: MarginRuleInput) -> dict:
        if self.margin_rules.get_by_id(db, rule_id) is None:
            raise NotFoundError(code="margin_rule_not_found", message_key="margin_rule_not_found")
        fields: Dict[str, Any] = {}
        if rule_input.margin_percentage is not None:
            fields["margin_percentage"] = self._parse_margin(rule_input.margin_percentage)
        if rule_input.priority is not None:
            fields["priority"] = _parse_optional_int(rule_input.priority) or 0
        if rule_input.active is not None:
            fields["active"] = bool(rule_input.active)
        with db.transaction():
            with lifecycle_step("update_margin_rule", "update_margin_rule"):
                self.margin_rules.update(db, rule_id, fields)
        return self.margin_rules.get_by_id(db, rule_id)
