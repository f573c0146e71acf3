from __future__ import annotations

from typing import Dict, List


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "rfq": [
        {"key": "open", "label": "Open", "description": "Waiting for supplier quotes."},
        {"key": "quoted", "label": "Quoted", "description": "At least one supplier has submitted a quote."},
        {"key": "closed", "label": "Closed", "description": "A quote was accepted and an order was created."},
        {"key": "cancelled", "label": "Cancelled", "description": "Cancelled by the client."},
        {"key": "expired", "label": "Expired", "description": "Deadline passed before a quote was accepted."},
    ],
    "quote": [
        {"key": "pending", "label": "Pending", "description": "Waiting for the client decision."},
        {"key": "accepted", "label": "Accepted", "description": "Chosen by the client; an order was created."},
        {"key": "rejected", "label": "Rejected", "description": "Another quote was accepted or the RFQ was cancelled."},
        {"key": "expired", "label": "Expired", "description": "Validity window elapsed."},
    ],
    "order": [
        {"key": "pending", "label": "Pending", "description": "Created from an accepted quote."},
        {"key": "confirmed", "label": "Confirmed", "description": "Supplier confirmed the order."},
        {"key": "processing", "label": "Processing", "description": "Supplier is preparing the order."},
        {"key": "shipped", "label": "Shipped", "description": "Handed to the carrier with a tracking number."},
        {"key": "delivered", "label": "Delivered", "description": "Received by the client."},
        {"key": "completed", "label": "Completed", "description": "Closed and eligible for rating."},
        {"key": "cancelled", "label": "Cancelled", "description": "Cancelled before shipping."},
    ],
    "item": [
        {"key": "pending", "label": "Pending review", "description": "Waiting for admin approval."},
        {"key": "approved", "label": "Approved", "description": "Visible in the catalog."},
        {"key": "rejected", "label": "Rejected", "description": "Not visible in the catalog."},
    ],
    "user": [
        {"key": "pending", "label": "Pending approval", "description": "Account waiting for admin review."},
        {"key": "approved", "label": "Approved", "description": "Account may use the marketplace."},
        {"key": "rejected", "label": "Rejected", "description": "Signup was rejected."},
        {"key": "suspended", "label": "Suspended", "description": "Access temporarily revoked."},
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "rfq_created": "RFQ created.",
        "rfq_cancelled": "RFQ cancelled.",
        "quote_submitted": "Quote submitted.",
        "quote_accepted": "Quote accepted and order created.",
        "order_updated": "Order updated.",
        "item_saved": "Item saved and sent for review.",
        "item_deleted": "Item deleted.",
        "rating_saved": "Thanks for rating this order.",
    },
    "error": {
        "account_inactive": "Your account is not active. Contact the marketplace administrator.",
        "account_pending": "Your account is waiting for admin approval.",
        "action_invalid": "Invalid action for this operation.",
        "action_not_allowed_for_status": "This action is not allowed for the current status.",
        "auth_invalid_credentials": "Invalid credentials. Please try again.",
        "auth_missing_credentials": "Email and password are required.",
        "auth_required": "Authentication required.",
        "category_not_found": "Category not found.",
        "csrf_invalid": "Your session expired. Reload the page and try again.",
        "deadline_invalid": "Deadline must be a future date.",
        "delivery_days_invalid": "Delivery days must be zero or more.",
        "duplicate_quote": "You have already submitted a quote for this RFQ.",
        "email_already_registered": "Email already registered. Use another email or log in.",
        "email_invalid": "Enter a valid email address.",
        "item_in_use": "This item is referenced by an RFQ and cannot be deleted.",
        "item_not_approved": "Only approved catalog items can be requested.",
        "item_not_found": "Item not found.",
        "items_duplicate": "Each item can appear only once in an RFQ.",
        "items_required": "Select at least one item.",
        "lifecycle_write_failed": "The operation stopped midway and was rolled back. Nothing was changed; please retry.",
        "margin_rule_not_found": "Margin rule not found.",
        "margin_invalid": "Margin percentage must be zero or more.",
        "name_required": "Name is required.",
        "not_found": "Resource not found.",
        "notification_not_found": "Notification not found.",
        "order_already_exists": "An order already exists for this RFQ.",
        "order_not_completed": "Only completed orders can be rated.",
        "order_not_found": "Order not found.",
        "password_too_short": "Password must have at least 8 characters.",
        "permission_denied": "You do not have permission to perform this action.",
        "price_invalid": "Every price must be greater than zero.",
        "quantity_invalid": "Every quantity must be a whole number greater than zero.",
        "quote_expired": "This quote is past its validity window.",
        "quote_lines_incomplete": "Every RFQ line must be priced exactly once.",
        "quote_not_found": "Quote not found.",
        "quote_total_mismatch": "The submitted total does not match the line prices.",
        "rate_limit_exceeded": "Too many requests. Try again shortly.",
        "rating_exists": "This order has already been rated.",
        "rating_invalid": "Score must be between 1 and 5.",
        "rfq_item_not_found": "RFQ line does not belong to this RFQ.",
        "rfq_not_covered": "You can only quote RFQs whose items are all in your approved inventory.",
        "rfq_not_found": "RFQ not found.",
        "role_invalid": "Choose client or supplier.",
        "slug_taken": "Slug already in use.",
        "status_conflict": "The record changed in the meantime. Reload and try again.",
        "status_invalid": "Invalid status.",
        "title_required": "Title is required.",
        "tracking_number_required": "A tracking number is required to ship.",
        "unexpected_error": "Could not complete the operation. Try again in a moment.",
        "user_not_found": "User not found.",
    },
}


NOTIFICATION_TEXTS: Dict[str, Dict[str, str]] = {
    "quote_received": {"title": "New quote received", "message": "A supplier quoted your RFQ \"{title}\"."},
    "quote_accepted": {"title": "Quote accepted", "message": "Your quote was accepted. Order {order_number} was created."},
    "quote_rejected": {"title": "Quote not selected", "message": "The client selected another quote for RFQ #{rfq_id}."},
    "rfq_cancelled": {"title": "RFQ cancelled", "message": "The client cancelled RFQ #{rfq_id}; your quote was closed."},
    "order_status": {"title": "Order updated", "message": "Order {order_number} is now {status}."},
    "item_reviewed": {"title": "Item reviewed", "message": "Your item \"{name}\" was {status}."},
    "account_status": {"title": "Account update", "message": "Your account is now {status}."},
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def notification_text(kind: str, **values: object) -> Dict[str, str]:
    template = NOTIFICATION_TEXTS.get(kind) or {"title": kind, "message": ""}
    return {
        "title": template["title"].format(**values),
        "message": template["message"].format(**values),
    }
