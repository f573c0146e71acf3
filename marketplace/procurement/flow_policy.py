from __future__ import annotations

from typing import Dict, Iterable, List

from marketplace.errors import ConflictError


# entity -> action -> transition. "actors" lists the roles that may trigger it;
# "system" marks transitions only the lifecycle itself performs.
TRANSITIONS: Dict[str, Dict[str, Dict[str, object]]] = {
    "rfq": {
        "submit_quote": {"from": ("open",), "to": "quoted", "actors": ("supplier",)},
        "accept_quote": {"from": ("open", "quoted"), "to": "closed", "actors": ("client",)},
        "cancel_rfq": {"from": ("open", "quoted"), "to": "cancelled", "actors": ("client",)},
        "expire_rfq": {"from": ("open", "quoted"), "to": "expired", "actors": ("system",)},
    },
    "quote": {
        "accept_quote": {"from": ("pending",), "to": "accepted", "actors": ("client",)},
        "reject_quote": {"from": ("pending",), "to": "rejected", "actors": ("system",)},
        "reject_sibling": {"from": ("pending", "expired"), "to": "rejected", "actors": ("system",)},
        "expire_quote": {"from": ("pending",), "to": "expired", "actors": ("system",)},
    },
    "order": {
        "confirm": {"from": ("pending",), "to": "confirmed", "actors": ("supplier",)},
        "ship": {"from": ("confirmed", "processing"), "to": "shipped", "actors": ("supplier",)},
        "deliver": {"from": ("shipped",), "to": "delivered", "actors": ("supplier",)},
        "complete": {"from": ("delivered",), "to": "completed", "actors": ("supplier", "client")},
        "cancel": {"from": ("pending", "confirmed", "processing"), "to": "cancelled", "actors": ("client", "supplier")},
    },
    "item": {
        "approve": {"from": ("pending",), "to": "approved", "actors": ("admin",)},
        "reject": {"from": ("pending",), "to": "rejected", "actors": ("admin",)},
    },
    "user": {
        "approve": {"from": ("pending", "rejected", "suspended"), "to": "approved", "actors": ("admin",)},
        "reject": {"from": ("pending",), "to": "rejected", "actors": ("admin",)},
        "suspend": {"from": ("approved",), "to": "suspended", "actors": ("admin",)},
    },
}


PRIMARY_ACTIONS: Dict[str, Dict[str, str]] = {
    "rfq": {"open": "submit_quote", "quoted": "accept_quote"},
    "quote": {"pending": "accept_quote"},
    "order": {"pending": "confirm", "confirmed": "ship", "processing": "ship", "shipped": "deliver", "delivered": "complete"},
    "item": {"pending": "approve"},
    "user": {"pending": "approve", "suspended": "approve"},
}


def transition(entity: str, action: str) -> Dict[str, object]:
    return TRANSITIONS.get(entity, {}).get(action) or {"from": (), "to": None, "actors": ()}


def source_statuses(entity: str, action: str, *, extra: Iterable[str] = ()) -> tuple[str, ...]:
    statuses = tuple(transition(entity, action)["from"])  # type: ignore[arg-type]
    return statuses + tuple(status for status in extra if status not in statuses)


def target_status(entity: str, action: str) -> str | None:
    target = transition(entity, action)["to"]
    return str(target) if target else None


def allowed_actions(entity: str, status: str | None, role: str | None = None) -> List[str]:
    if not status:
        return []
    actions = []
    for action, rule in TRANSITIONS.get(entity, {}).items():
        if status not in rule["from"]:  # type: ignore[operator]
            continue
        if role is not None and role not in rule["actors"]:  # type: ignore[operator]
            continue
        actions.append(action)
    return actions


def primary_action(entity: str, status: str | None, role: str | None = None) -> str | None:
    action = PRIMARY_ACTIONS.get(entity, {}).get(str(status or ""))
    if action and action in allowed_actions(entity, status, role):
        return action
    return None


def action_allowed(entity: str, status: str | None, action: str, role: str | None = None) -> bool:
    if not action:
        return False
    return action in allowed_actions(entity, status, role)


def flow_meta(entity: str, status: str | None, role: str | None = None) -> Dict[str, object]:
    return {
        "entity": entity,
        "status": status,
        "allowed_actions": allowed_actions(entity, status, role),
        "primary_action": primary_action(entity, status, role),
    }


def forbidden_action(entity: str, status: str | None, action: str, role: str | None = None):
    raise ConflictError(
        code="action_not_allowed_for_status",
        message_key="action_not_allowed_for_status",
        payload={
            "entity": entity,
            "status": status,
            "action": action,
            "allowed_actions": allowed_actions(entity, status, role),
        },
    )


def ensure_action_allowed(
    entity: str,
    status: str | None,
    action: str,
    *,
    extra_statuses: Iterable[str] = (),
) -> None:
    if status in source_statuses(entity, action, extra=extra_statuses):
        return
    forbidden_action(entity, status, action)
