"""
Post-commit notifications (receipt printing, displays, webhooks).

Handlers run only after the transaction that produced the event has
committed. They are best-effort: a failing handler is logged and never
affects the caller or the committed data.

USAGE:
    from poscore.services import notification_service

    notification_service.register_handler("order.completed", print_receipt)
    notification_service.dispatch("order.completed", {"order_id": 7})
"""

from __future__ import annotations

from typing import Callable

from flask import current_app

ORDER_COMPLETED = "order.completed"
ORDER_REFUNDED = "order.refunded"
SHIFT_CLOSED = "shift.closed"

Handler = Callable[[str, dict], None]

_handlers: dict[str, list[Handler]] = {}


def register_handler(event: str, handler: Handler) -> None:
    _handlers.setdefault(event, []).append(handler)


def clear_handlers() -> None:
    _handlers.clear()


def dispatch(event: str, payload: dict) -> int:
    """Run every handler for event. Returns how many succeeded."""
    delivered = 0
    for handler in list(_handlers.get(event, [])):
        try:
            handler(event, payload)
            delivered += 1
        except Exception:
            current_app.logger.exception("Notification handler failed for %s", event)
    return delivered
