"""Service functions for the notifications app."""
import logging

from django.db import transaction
from django.utils import timezone

from notifications.models import Notification

logger = logging.getLogger("groupbuy")


def create_notification(
    recipient,
    type,
    title,
    message,
    sub_type="",
    sender=None,
    related_id=None,
    related_model="",
    priority=Notification.Priority.MEDIUM,
):
    """Create and return a new Notification for *recipient*.

    Parameters
    ----------
    recipient : accounts.models.User
        The user the notification is addressed to.
    type : str
        One of ``Notification.Type`` values.
    title : str
        Short human-readable title (max 200 chars).
    message : str
        Body of the notification.
    sub_type : str, optional
        Finer event name, e.g. ``"commitment_approved"``.
    sender : accounts.models.User, optional
        The user whose action triggered the notification.
    related_id : str, optional
        Primary key of the object the notification is about.
    related_model : str, optional
        Model name of that object, e.g. ``"Commitment"``.
    priority : str
        One of ``Notification.Priority`` values.

    Returns
    -------
    Notification
    """
    notification = Notification.objects.create(
        recipient=recipient,
        sender=sender,
        type=type,
        sub_type=sub_type,
        title=title,
        message=message,
        related_id=str(related_id) if related_id else "",
        related_model=related_model,
        priority=priority,
    )
    logger.info("Notification created: [%s] %s for %s", priority, title, recipient)
    return notification


def notify_users(recipients, **data):
    """Create the same notification for every user in *recipients*."""
    related_id = data.pop("related_id", None)
    rows = [
        Notification(
            recipient=recipient,
            related_id=str(related_id) if related_id else "",
            **data,
        )
        for recipient in recipients
    ]
    created = Notification.objects.bulk_create(rows)
    logger.info("Notification '%s' sent to %d user(s)", data.get("title", ""), len(created))
    return created


def notify_users_by_role(role, **data):
    """Create the same notification for every active user with *role*."""
    from accounts.models import User

    return notify_users(User.objects.filter(role=role, is_active=True), **data)


def mark_as_read(notification, user):
    if notification.recipient_id != user.pk:
        raise PermissionError("Only the recipient can mark a notification as read.")
    notification.mark_as_read()
    return notification


def mark_all_as_read(user) -> int:
    return Notification.objects.filter(recipient=user, is_read=False).update(
        is_read=True,
        read_at=timezone.now(),
    )


# ---------------------------------------------------------------------------
# Outbound messages (e-mail / SMS)
# ---------------------------------------------------------------------------

def queue_message(channel, destination, template_key, template_data):
    """Hand a message to the Celery workers.

    Never raises: a broker failure is logged and ``False`` is returned.
    """
    from notifications.tasks import send_email_message, send_sms_message

    if not destination:
        logger.info("No %s destination for '%s'; message skipped.", channel, template_key)
        return False

    tasks = {"email": send_email_message, "sms": send_sms_message}
    try:
        task = tasks[channel]
    except KeyError:
        logger.warning("Unknown message channel '%s' for '%s'.", channel, template_key)
        return False

    try:
        task.delay(destination=destination, template_key=template_key, template_data=template_data)
    except Exception as exc:
        logger.warning("%s dispatch failed for '%s': %s", channel, template_key, exc, exc_info=True)
        return False
    return True


def queue_member_messages(user, template_key, template_data):
    """Queue both the e-mail and the SMS version of a message to *user*."""
    queue_message("email", user.email, template_key, template_data)
    queue_message("sms", user.phone, template_key, template_data)


def run_after_commit(*effects):
    """Run each callable in *effects* once the current transaction commits.

    Every effect is isolated: an exception is logged and the remaining
    effects still run.
    """
    def _dispatch():
        for effect in effects:
            try:
                effect()
            except Exception as exc:
                logger.warning("Side effect %s failed: %s", getattr(effect, "__name__", effect), exc, exc_info=True)

    try:
        transaction.on_commit(_dispatch)
    except Exception:
        _dispatch()
