# core/utils.py

"""
Central utilities for SACCO operations
Prevents code duplication and ensures consistency
"""
from django.db import transaction, DatabaseError
from django.utils import timezone
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


# =============================================================================
# CURRENCY & MONEY FORMATTING
# =============================================================================

def to_decimal(value, default=Decimal('0.00')):
    """
    Convert a numeric value (or None) to Decimal.

    Floats are routed through str() so 0.1 stays 0.1.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        logger.warning(f"Could not convert {value!r} to Decimal")
        return default


def quantize_money(amount):
    """Round an amount to 2 decimal places, half up"""
    return to_decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def get_base_currency(policy=None):
    """
    Get base currency from the policy store.

    Returns:
        str: Currency code (defaults to 'KES')
    """
    try:
        if policy is None:
            from core.policy import get_policy
            policy = get_policy()
        return policy.currency
    except Exception as e:
        logger.warning(f"Could not fetch currency from settings: {e}")
        return 'KES'


def format_money(amount, include_symbol=True, currency=None):
    """
    Format money amount for messages and read models.

    Args:
        amount: Decimal or numeric value to format
        include_symbol: Whether to include currency code
        currency: Currency code; looked up from policy when omitted

    Returns:
        str: Formatted money string, e.g. 'KES 11,000.00'
    """
    formatted = f"{quantize_money(amount):,.2f}"
    if not include_symbol:
        return formatted
    return f"{currency or get_base_currency()} {formatted}"


# =============================================================================
# TIME UTILITIES
# =============================================================================

def get_sacco_now(now=None):
    """
    Current aware datetime, or the supplied one.

    Every service takes an optional `now` so that lazily computed values
    (schedules, fine escalation, compliance weeks) are deterministic in tests.
    """
    if now is None:
        return timezone.now()
    if timezone.is_naive(now):
        return timezone.make_aware(now)
    return now


# =============================================================================
# UNIT OF WORK
# =============================================================================

@contextmanager
def atomic_operation(action):
    """
    Run a state-changing operation as one database transaction.

    Precondition failures are logged as warnings and re-raised unchanged.
    Database failures roll everything back and surface as PersistenceError.

    Usage:
        with atomic_operation('verify loan'):
            loan = LoanApplication.objects.select_for_update().get(pk=pk)
            ...
    """
    from core.exceptions import PreconditionError, PersistenceError

    try:
        with transaction.atomic():
            yield
    except PreconditionError as e:
        logger.warning(f"Rejected '{action}': {e.message}")
        raise
    except DatabaseError as e:
        logger.error(f"'{action}' failed and was rolled back: {e}", exc_info=True)
        raise PersistenceError(f"Could not {action}; no changes were saved") from e
