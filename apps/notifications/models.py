# notifications/models.py

from django.db import models
from utils.models import BaseModel
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# NOTIFICATION MODEL
# =============================================================================

class Notification(BaseModel):
    """In-app message delivered to a single member"""

    member = models.ForeignKey(
        'members.Member',
        on_delete=models.CASCADE,
        related_name='notifications',
        help_text="Recipient"
    )

    message = models.TextField("Message")

    is_read = models.BooleanField(
        "Is Read",
        default=False,
        db_index=True
    )

    read_at = models.DateTimeField(
        "Read At",
        null=True,
        blank=True
    )

    def __str__(self):
        return f"To {self.member_id}: {self.message[:50]}"

    class Meta:
        verbose_name = 'Notification'
        verbose_name_plural = 'Notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['member', 'is_read']),
        ]
