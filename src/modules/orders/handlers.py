"""Event handlers for Orders domain events.

Customer notifications are queued on Celery; a failure to enqueue is
logged and never propagates into the order workflow.
"""

from __future__ import annotations

import structlog

from modules.core.middleware import correlation_id_var
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderPlaced, OrderRedeemed, OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


def _enqueue_email(order_id: str, kind: str) -> None:
    from modules.notifications.tasks import send_order_email

    try:
        send_order_email.delay(order_id, kind, correlation_id=correlation_id_var.get())
    except Exception as exc:
        logger.warning(
            "notification.enqueue_failed",
            order_id=order_id,
            kind=kind,
            error=str(exc),
        )


class OrderPlacedHandler(IEventHandler[OrderPlaced]):
    def handle(self, event: OrderPlaced) -> None:
        logger.info("order.placed", order_id=str(event.aggregate_id), token=event.token)
        _enqueue_email(str(event.aggregate_id), "confirmation")


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )
        if event.new_status == OrderStatus.READY:
            _enqueue_email(str(event.aggregate_id), "ready")
        elif event.new_status == OrderStatus.COMPLETED:
            _enqueue_email(str(event.aggregate_id), "receipt")


class OrderRedeemedHandler(IEventHandler[OrderRedeemed]):
    def handle(self, event: OrderRedeemed) -> None:
        logger.info("order.token_redeemed", order_id=str(event.aggregate_id), token=event.token)
        _enqueue_email(str(event.aggregate_id), "receipt")


order_placed_handler = OrderPlacedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_redeemed_handler = OrderRedeemedHandler()
