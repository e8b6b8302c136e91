"""Celery tasks for the deals app."""
import logging

from celery import shared_task

logger = logging.getLogger("groupbuy")


@shared_task(name="deals.tasks.deactivate_expired_deals")
def deactivate_expired_deals():
    """Switch off every active deal whose end date has passed."""
    from deals.services import deactivate_expired_deals as _deactivate

    count = _deactivate()
    logger.info("deactivate_expired_deals completed: %d deals deactivated.", count)
    return f"{count} deals deactivated"
