# savings/utils.py

"""
Savings Utility Functions

Contains:
- Reference generation for deposits and transactions
- Compliance week boundaries
- Weekly compliance evaluation
"""

from django.db import transaction
from django.utils import timezone
from decimal import Decimal
from dateutil.relativedelta import relativedelta, MO
import logging

logger = logging.getLogger(__name__)

MISSED_DEPOSIT_DESCRIPTION_PREFIX = 'Missed Weekly Deposit'


# =============================================================================
# REFERENCE GENERATION
# =============================================================================

def generate_reference(prefix, model=None, field='reference_code', now=None):
    """
    Generate unique reference.

    Format: PREFIX-YYYYMMDDHHMMSS-XXXX
    Where XXXX is a counter for several references in the same second.

    Args:
        prefix (str): Reference prefix (DISB, RPY, FINE, DEP...)
        model: Model class holding the reference (default: Transaction)
        field (str): Name of the unique reference field on model
        now (datetime, optional): Timestamp to embed

    Returns:
        str: Unique reference

    Example:
        >>> generate_reference('DISB')
        'DISB-20250115143025-0001'
    """
    if model is None:
        from savings.models import Transaction
        model = Transaction

    prefix = (prefix or 'TRX').strip().upper()
    timestamp = timezone.localtime(now or timezone.now()).strftime('%Y%m%d%H%M%S')
    base_id = f"{prefix}-{timestamp}"

    with transaction.atomic():
        existing = model.objects.filter(
            **{f"{field}__startswith": base_id}
        ).select_for_update().values_list(field, flat=True)

        max_counter = 0
        for ref in existing:
            try:
                max_counter = max(max_counter, int(ref.split('-')[-1]))
            except (ValueError, IndexError):
                continue

        reference = f"{base_id}-{max_counter + 1:04d}"

    logger.debug(f"Generated reference: {reference}")
    return reference


# =============================================================================
# COMPLIANCE WEEK
# =============================================================================

def get_week_start(now):
    """
    Monday 00:00 of the week containing `now`, in the SACCO's timezone.

    Example:
        Wednesday 2025-01-15 14:30 -> Monday 2025-01-13 00:00
    """
    local_now = timezone.localtime(now)
    monday = local_now + relativedelta(weekday=MO(-1))
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def get_week_label(now):
    """ISO week label used in fine descriptions, e.g. '2025-W03'"""
    iso_year, iso_week, _ = timezone.localtime(now).isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def is_weekly_target_met(total_this_week, minimum_weekly_deposit):
    """
    Check whether a member's completed deposits for the week meet the target.

    Args:
        total_this_week (Decimal): Sum of completed deposits since Monday
        minimum_weekly_deposit (Decimal): Policy minimum

    Returns:
        bool
    """
    return Decimal(total_this_week or 0) >= Decimal(minimum_weekly_deposit or 0)


def missed_deposit_description(now):
    return f"{MISSED_DEPOSIT_DESCRIPTION_PREFIX} (Week {get_week_label(now)})"
