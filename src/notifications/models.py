"""Models for the notifications app."""
from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel


class Notification(TimeStampedModel):
    """An in-app notification addressed to one user.

    Created by service functions through
    :func:`notifications.services.create_notification`, usually after the
    transaction that triggered them has committed.
    """

    class Type(models.TextChoices):
        COMMITMENT = "commitment", "Commitment"
        DEAL = "deal", "Deal"
        SYSTEM = "system", "System"

    class Priority(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        verbose_name="recipient",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_notifications",
        verbose_name="sender",
    )
    type = models.CharField("type", max_length=20, choices=Type.choices)
    sub_type = models.CharField("sub-type", max_length=50, blank=True, default="")
    title = models.CharField("title", max_length=200)
    message = models.TextField("message")
    related_id = models.CharField("related object id", max_length=64, blank=True, default="")
    related_model = models.CharField("related model", max_length=50, blank=True, default="")
    priority = models.CharField(
        "priority",
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM,
    )

    # Read tracking
    is_read = models.BooleanField("read", default=False)
    read_at = models.DateTimeField("read at", null=True, blank=True)

    class Meta:
        verbose_name = "Notification"
        verbose_name_plural = "Notifications"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read", "created_at"], name="notif_recipient_read_idx"),
        ]

    def __str__(self):
        return f"[{self.get_priority_display()}] {self.title}"

    def mark_as_read(self):
        if self.is_read:
            return
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=["is_read", "read_at", "updated_at"])
