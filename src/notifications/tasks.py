"""Celery tasks for the notifications app."""
import logging
from collections import defaultdict

import httpx
from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.services import safe_audit_log
from notifications.messages import get_template, render_line

logger = logging.getLogger("groupbuy")


def _record_delivery_failure(channel, destination, template_key, exc):
    safe_audit_log(
        actor=None,
        action="MESSAGE_DELIVERY_FAILED",
        entity_type="Message",
        entity_id=template_key,
        level="error",
        message=f"{channel} to {destination} failed: {exc}",
    )


@shared_task(name="notifications.tasks.send_email_message")
def send_email_message(*, destination: str, template_key: str, template_data: dict):
    """Render *template_key* and e-mail it to *destination*.

    Failures are logged and recorded in the audit log, never raised.
    """
    from notifications.email import send_templated_email

    try:
        send_templated_email(template_key, template_data, destination)
    except Exception as exc:
        logger.warning("send_email_message '%s' failed: %s", template_key, exc, exc_info=True)
        _record_delivery_failure("email", destination, template_key, exc)
        return False
    return True


@shared_task(
    bind=True,
    name="notifications.tasks.send_sms_message",
    max_retries=3,
    default_retry_delay=60,
)
def send_sms_message(self, *, destination: str, template_key: str, template_data: dict):
    """Render the SMS variant of *template_key* and send it to *destination*.

    Gateway errors are retried; once retries are exhausted the failure is
    logged and recorded.
    """
    from core.sms import send_sms

    try:
        template = get_template(template_key)
    except ValueError as exc:
        logger.warning("send_sms_message: %s", exc)
        return False
    if not template.sms:
        return False

    data = {"currency_symbol": settings.CURRENCY_SYMBOL, **template_data}
    try:
        return send_sms(destination, render_line(template.sms, data))
    except httpx.HTTPError as exc:
        if self.request.retries < self.max_retries and not self.request.is_eager:
            raise self.retry(exc=exc)
        logger.warning("send_sms_message '%s' failed: %s", template_key, exc, exc_info=True)
        _record_delivery_failure("sms", destination, template_key, exc)
        return False


@shared_task(name="notifications.tasks.send_daily_status_summaries")
def send_daily_status_summaries():
    """E-mail each member one digest of the distributor decisions not yet reported."""
    from commitments.models import CommitmentStatusChange
    from notifications.email import send_templated_email

    pending = (
        CommitmentStatusChange.objects
        .filter(processed_for_email=False)
        .select_related("user", "deal")
        .order_by("created_at")
    )

    by_user = defaultdict(list)
    for change in pending:
        by_user[change.user].append(change)

    today = timezone.localdate()
    sent = 0
    for user, changes in by_user.items():
        context = {
            "user_name": user.display_name,
            "date": today.isoformat(),
            "changes": [
                {
                    "deal_name": change.deal.name,
                    "previous_status": change.previous_status,
                    "new_status": change.new_status,
                    "distributor_response": change.distributor_response,
                    "quantity": change.commitment_details.get("quantity"),
                    "total_price": change.commitment_details.get("total_price"),
                }
                for change in changes
            ],
        }
        try:
            send_templated_email("daily_status_summary", context, user.email)
        except Exception as exc:
            logger.warning("Daily summary to %s failed: %s", user.email, exc, exc_info=True)
            _record_delivery_failure("email", user.email, "daily_status_summary", exc)
            continue

        CommitmentStatusChange.objects.filter(pk__in=[c.pk for c in changes]).update(
            processed_for_email=True,
            email_sent_at=timezone.now(),
        )
        sent += 1

    logger.info("send_daily_status_summaries completed: %d e-mails sent.", sent)
    return f"{sent} summaries sent"
