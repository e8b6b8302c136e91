"""E-mail rendering for member messages.

Each message in :data:`notifications.messages.MESSAGE_TEMPLATES` has an
HTML and a plain-text body under ``templates/emails/``; both are rendered
from the same context and sent as one multipart message.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from notifications.messages import get_template, render_line

logger = logging.getLogger("groupbuy")


def email_context(template_data: dict) -> dict:
    return {
        "frontend_url": settings.FRONTEND_URL,
        "currency_symbol": settings.CURRENCY_SYMBOL,
        **template_data,
    }


def build_email(template_key: str, template_data: dict, destination: str) -> EmailMultiAlternatives:
    """Render *template_key* for *destination* without sending it.

    Raises ``ValueError`` for an unknown key and
    ``TemplateDoesNotExist`` when a body file is missing.
    """
    template = get_template(template_key)
    context = email_context(template_data)

    message = EmailMultiAlternatives(
        subject=render_line(template.subject, context),
        body=render_to_string(f"{template.email_template}.txt", context).strip(),
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[destination],
        headers={"X-Groupbuy-Template": template_key},
    )
    message.attach_alternative(render_to_string(f"{template.email_template}.html", context), "text/html")
    return message


def send_templated_email(template_key: str, template_data: dict, destination: str) -> int:
    sent = build_email(template_key, template_data, destination).send(fail_silently=False)
    logger.info("Email '%s' sent to %s", template_key, destination)
    return sent
