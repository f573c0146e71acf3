from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Mapping, Tuple


CENT = Decimal("0.01")


def parse_amount(value: object) -> Decimal | None:
    """Exact finite decimal from user input; None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def to_unit_price(value: object) -> Decimal | None:
    """Positive unit price kept at full precision so totals round only once."""
    amount = parse_amount(value)
    if amount is None or amount <= 0:
        return None
    return amount


def to_money(value: object) -> Decimal | None:
    """Positive amount rounded half-up to the cent; None when invalid or it rounds to zero."""
    amount = parse_amount(value)
    if amount is None:
        return None
    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    return amount if amount > 0 else None


def round_money(value: object) -> Decimal | None:
    amount = parse_amount(value)
    if amount is None:
        return None
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def quote_total(lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
    """Sum of unit_price x quantity over the quote lines, rounded to the cent at the end."""
    total = Decimal("0")
    for unit_price, quantity in lines:
        total += Decimal(unit_price) * int(quantity)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_margin(
    category_id: int | None,
    active_rules: List[Mapping[str, object]],
    default_margin: object,
) -> Decimal:
    """Margin percentage for a category.

    ``active_rules`` must be sorted by priority, highest first. A rule bound to
    the category wins over a global rule (no category).
    """
    global_rule = None
    for rule in active_rules:
        rule_category = rule.get("category_id")
        if rule_category is None:
            if global_rule is None:
                global_rule = rule
            continue
        if category_id is not None and int(rule_category) == int(category_id):
            return Decimal(str(rule["margin_percentage"]))
    if global_rule is not None:
        return Decimal(str(global_rule["margin_percentage"]))
    return Decimal(str(default_margin))


def client_price(cost_price: object, margin_percentage: Decimal) -> float:
    cost = Decimal(str(cost_price))
    price = cost * (Decimal("1") + margin_percentage / Decimal("100"))
    return float(price.quantize(CENT, rounding=ROUND_HALF_UP))
