"""Customer e-mails for the order lifecycle.

Each message kind maps to a subject line and a pair of templates
(``<kind>.txt`` / ``<kind>.html``) under ``templates/notifications``.
"""

from __future__ import annotations

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from modules.orders.dtos import OrderOutputDTO

SUBJECTS = {
    "confirmation": "Your canteen token is {token}",
    "ready": "Token {token} is ready for pickup",
    "receipt": "Picked up: token {token}",
}


def build_order_email(order, kind: str) -> EmailMultiAlternatives:
    """Render the *kind* e-mail for *order*.

    Raises ``KeyError`` for an unknown kind.
    """
    subject = SUBJECTS[kind].format(token=order.token)
    context = {
        "order": OrderOutputDTO.from_entity(order),
        "canteen_name": settings.CANTEEN_NAME,
    }
    text_body = render_to_string(f"notifications/{kind}.txt", context)
    html_body = render_to_string(f"notifications/{kind}.html", context)

    message = EmailMultiAlternatives(
        subject,
        text_body,
        settings.NOTIFICATIONS_FROM_EMAIL,
        [order.customer_email],
    )
    message.attach_alternative(html_body, "text/html")
    return message
