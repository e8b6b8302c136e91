"""Outbound message templates (e-mail and SMS) keyed by ``template_key``.

Services only pick a key and hand over template data; rendering happens in
the Celery tasks of :mod:`notifications.tasks`.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class MessageTemplate:
    subject: str
    email_template: str
    sms: str = ""


MESSAGE_TEMPLATES = {
    "commitment_created": MessageTemplate(
        subject="Commitment received: {deal_name}",
        email_template="emails/commitment_created",
        sms=(
            "Your commitment to {deal_name} ({quantity} units, "
            "{currency_symbol}{total_price}) was received and is pending review."
        ),
    ),
    "commitment_updated": MessageTemplate(
        subject="Commitment updated: {deal_name}",
        email_template="emails/commitment_created",
        sms=(
            "Your commitment to {deal_name} was updated: {quantity} units, "
            "{currency_symbol}{total_price}."
        ),
    ),
    "commitment_status_changed": MessageTemplate(
        subject="Your commitment to {deal_name} was {new_status}",
        email_template="emails/commitment_status_changed",
        sms=(
            "Your commitment to {deal_name} is now {new_status}: {quantity} units, "
            "{currency_symbol}{total_price}."
        ),
    ),
    "commitment_cancelled": MessageTemplate(
        subject="Commitment cancelled: {deal_name}",
        email_template="emails/commitment_cancelled",
        sms="Your commitment to {deal_name} has been cancelled.",
    ),
    "daily_status_summary": MessageTemplate(
        subject="Your commitment updates for {date}",
        email_template="emails/daily_status_summary",
    ),
}


class _Defaults(dict):
    def __missing__(self, key):
        return ""


def get_template(template_key: str) -> MessageTemplate:
    try:
        return MESSAGE_TEMPLATES[template_key]
    except KeyError:
        raise ValueError(f"Unknown message template '{template_key}'.") from None


def render_line(text: str, template_data: dict) -> str:
    """Format *text* with *template_data*; missing keys render empty."""
    return text.format_map(_Defaults(template_data))
