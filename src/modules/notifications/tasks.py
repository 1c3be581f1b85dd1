"""Asynchronous notification tasks."""

from __future__ import annotations

import smtplib

import structlog
from celery import shared_task

from modules.notifications.emails import build_order_email
from modules.orders.models import Order

logger = structlog.get_logger(__name__)


@shared_task(
    name="notifications.send_order_email",
    autoretry_for=(smtplib.SMTPException, ConnectionError),
    retry_backoff=True,
    max_retries=3,
)
def send_order_email(order_id: str, kind: str, correlation_id: str = "") -> bool:
    """Send the *kind* e-mail for an order; ``False`` when there is nobody to mail."""
    if correlation_id:
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    order = Order.objects.prefetch_related("items").filter(id=order_id).first()
    if order is None:
        logger.warning("notification.order_missing", order_id=order_id, kind=kind)
        return False
    if not order.customer_email:
        logger.info("notification.no_recipient", order_id=order_id, kind=kind)
        return False

    build_order_email(order, kind).send()
    logger.info("notification.sent", order_id=order_id, kind=kind, token=order.token)
    return True
