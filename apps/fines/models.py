# fines/models.py

from django.db import models
from django.utils import timezone
from django.core.validators import MinValueValidator
from decimal import Decimal

from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# MEMBER FINE MODEL
# =============================================================================

class MemberFine(BaseModel):
    """
    A fine owed by a member.

    Unpaid fines grow in two one-way stages, applied lazily whenever the
    fine is read (see fines.utils.compute_fine_escalation):
    NONE -> STAGE_1_20 (+20% of the original) -> STAGE_2_50 (+50% of the balance)
    """

    class InterestStage(models.TextChoices):
        NONE = 'NONE', 'No Interest'
        STAGE_1_20 = 'STAGE_1_20', 'Stage 1 (20%)'
        STAGE_2_50 = 'STAGE_2_50', 'Stage 2 (50%)'

    class Status(models.TextChoices):
        OPEN = 'OPEN', 'Open'
        CLEARED = 'CLEARED', 'Cleared'

    member = models.ForeignKey(
        'members.Member',
        on_delete=models.PROTECT,
        related_name='fines'
    )

    title = models.CharField(
        "Title",
        max_length=100
    )

    description = models.TextField(
        "Description",
        blank=True,
        default=''
    )

    original_amount = models.DecimalField(
        "Original Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text="Amount imposed; never changes"
    )

    current_balance = models.DecimalField(
        "Current Balance",
        max_digits=12,
        decimal_places=2,
        help_text="Original amount plus escalation interest"
    )

    interest_stage = models.CharField(
        "Interest Stage",
        max_length=12,
        choices=InterestStage.choices,
        default=InterestStage.NONE
    )

    date_created = models.DateTimeField(
        "Date Imposed",
        default=timezone.now,
        db_index=True
    )

    date_stage_1_applied = models.DateTimeField(
        "Stage 1 Applied",
        null=True,
        blank=True
    )

    date_stage_2_applied = models.DateTimeField(
        "Stage 2 Applied",
        null=True,
        blank=True
    )

    status = models.CharField(
        "Status",
        max_length=10,
        choices=Status.choices,
        default=Status.OPEN,
        db_index=True
    )

    def save(self, *args, **kwargs):
        if self.current_balance is None:
            self.current_balance = self.original_amount
        super().save(*args, **kwargs)

    @property
    def is_cleared(self):
        return self.status == self.Status.CLEARED

    def __str__(self):
        return f"{self.title} - {self.member.get_full_name()} ({self.current_balance})"

    class Meta:
        verbose_name = 'Member Fine'
        verbose_name_plural = 'Member Fines'
        ordering = ['-date_created']
        indexes = [
            models.Index(fields=['member', 'status']),
        ]
