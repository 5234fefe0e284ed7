# core/models.py

from django.db import models
from utils.models import BaseModel
import logging

logger = logging.getLogger(__name__)

# =============================================================================
# SYSTEM SETTING MODEL
# =============================================================================

class SystemSetting(BaseModel):
    """
    Key/value policy store for the SACCO.

    Values are stored as strings exactly as the administrator typed them;
    core.policy.PolicyStore parses them into typed values with documented
    fallbacks. The engine never writes to this table.
    """

    CATEGORY_CHOICES = (
        ('SACCO', 'SACCO Policy'),
        ('SYSTEM', 'System'),
    )

    # Known policy keys
    PROCESSING_FEE = 'loan_processing_fee'
    LOAN_MULTIPLIER = 'loan_multiplier'
    MIN_GUARANTORS = 'min_guarantors'
    GRACE_PERIOD_WEEKS = 'grace_period_weeks'
    INTEREST_RATE = 'interest_rate'
    MIN_WEEKLY_DEPOSIT = 'min_weekly_deposit'
    MISSED_DEPOSIT_PENALTY = 'penalty_missed_savings'
    CURRENCY = 'sacco_currency'

    setting_key = models.CharField(
        "Setting Key",
        max_length=100,
        unique=True,
        help_text="Unique key used by the engine to look up this setting"
    )

    setting_value = models.CharField(
        "Setting Value",
        max_length=255,
        null=True,
        blank=True,
        help_text="Raw value; parsed by the policy store"
    )

    category = models.CharField(
        "Category",
        max_length=10,
        choices=CATEGORY_CHOICES,
        default='SACCO',
        db_index=True,
        help_text="SACCO settings are owned by the chairperson, SYSTEM settings by the administrator"
    )

    description = models.TextField(
        "Description",
        null=True,
        blank=True
    )

    @classmethod
    def get_value(cls, key):
        """Return the raw string value for key, or None when unset"""
        return cls.objects.filter(setting_key=key).values_list('setting_value', flat=True).first()

    def __str__(self):
        return f"{self.setting_key} = {self.setting_value}"

    class Meta:
        verbose_name = 'System Setting'
        verbose_name_plural = 'System Settings'
        ordering = ['category', 'setting_key']
