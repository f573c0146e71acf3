from __future__ import annotations

import logging
from typing import Dict, List

from marketplace.core.clock import utc_now_text
from marketplace.infrastructure.repositories import QuoteRepository, RfqRepository, StatusEventRepository
from marketplace.procurement.flow_policy import source_statuses


logger = logging.getLogger("marketplace")

_RFQS = RfqRepository()
_QUOTES = QuoteRepository()
_STATUS_EVENTS = StatusEventRepository()


def find_lifecycle_anomalies(db) -> Dict[str, object]:
    """Records a broken multi-step write could have left behind.

    Nothing is changed; the report is for manual review.
    """
    anomalies: Dict[str, List[dict]] = {
        "rfqs_without_items": _RFQS.list_without_items(db),
        "accepted_quotes_without_order": _QUOTES.list_accepted_without_order(db),
        "closed_rfqs_without_order": _RFQS.list_closed_without_order(db),
        "quotes_without_lines": _QUOTES.list_without_lines(db),
    }
    total = sum(len(rows) for rows in anomalies.values())
    if total:
        logger.warning(
            "lifecycle_anomalies_found",
            extra={"total": total, **{key: len(rows) for key, rows in anomalies.items()}},
        )
    return {"total": total, "anomalies": anomalies}


def expire_overdue(db, *, now: str | None = None) -> Dict[str, List[int]]:
    """Expire RFQs past their deadline and pending quotes past their validity."""
    now = now or utc_now_text()
    expired_rfqs: List[int] = []
    expired_quotes: List[int] = []
    rfq_statuses = source_statuses("rfq", "expire_rfq")

    with db.transaction():
        for rfq in _RFQS.list_overdue(db, now=now, statuses=rfq_statuses):
            if _RFQS.transition_status(db, int(rfq["id"]), from_statuses=rfq_statuses, to_status="expired"):
                _STATUS_EVENTS.add_event(
                    db,
                    entity="rfq",
                    entity_id=int(rfq["id"]),
                    from_status=rfq["status"],
                    to_status="expired",
                    reason="deadline_passed",
                )
                expired_rfqs.append(int(rfq["id"]))
        quote_statuses = source_statuses("quote", "expire_quote")
        for quote in _QUOTES.list_overdue_pending(db, now=now):
            if _QUOTES.transition_status(db, int(quote["id"]), from_statuses=quote_statuses, to_status="expired"):
                _STATUS_EVENTS.add_event(
                    db,
                    entity="quote",
                    entity_id=int(quote["id"]),
                    from_status="pending",
                    to_status="expired",
                    reason="validity_elapsed",
                )
                expired_quotes.append(int(quote["id"]))

    if expired_rfqs or expired_quotes:
        logger.info("overdue_expired", extra={"rfqs": len(expired_rfqs), "quotes": len(expired_quotes)})
    return {"rfqs": expired_rfqs, "quotes": expired_quotes}
