"""Celery configuration."""
import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault(
    "DJANGO_SETTINGS_MODULE",
    os.getenv("DJANGO_SETTINGS_MODULE", "config.settings.prod"),
)

app = Celery("groupbuy")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()

# Beat schedule
app.conf.beat_schedule = {
    "deactivate-expired-deals": {
        "task": "deals.tasks.deactivate_expired_deals",
        "schedule": crontab(minute=5),  # Every hour
    },
    "send-daily-status-summaries": {
        "task": "notifications.tasks.send_daily_status_summaries",
        "schedule": crontab(minute=0, hour=7),  # Daily at 7am
    },
}
