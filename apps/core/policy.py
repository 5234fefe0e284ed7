# core/policy.py

"""
Policy Store

Single entry point for every business setting the engine consumes.
Services receive a PolicyStore (or build the default one with get_policy())
instead of reading SystemSetting rows ad hoc.

Parsing rules:
- A missing, blank or unparsable value falls back to the documented default.
- A negative value falls back to the default.
- Zero is honoured (e.g. a grace period of 0 weeks).
"""

from decimal import Decimal, InvalidOperation
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_PROCESSING_FEE = Decimal('500')
DEFAULT_LOAN_MULTIPLIER = Decimal('3')
DEFAULT_MIN_GUARANTORS = 2
DEFAULT_GRACE_PERIOD_WEEKS = 4
DEFAULT_INTEREST_RATE = Decimal('10')
DEFAULT_MIN_WEEKLY_DEPOSIT = Decimal('250')
DEFAULT_MISSED_DEPOSIT_PENALTY = Decimal('50')
DEFAULT_CURRENCY = 'KES'


class PolicyStore:
    """
    Typed, read-only view over the SystemSetting table.

    Lookups are cached for the lifetime of the instance, so one instance
    gives a consistent view of policy for a single operation.

    Usage:
        policy = get_policy()
        ceiling = savings * policy.loan_multiplier

        # In tests, without touching the database
        policy = PolicyStore.from_values({'interest_rate': '12'})
    """

    def __init__(self, values=None):
        self._values = values
        self._cache = {}

    @classmethod
    def from_values(cls, values):
        """Build a store backed by a plain dict instead of the database"""
        return cls(values={k: (None if v is None else str(v)) for k, v in values.items()})

    def get_setting(self, key):
        """
        Get the raw string value of a setting.

        Returns:
            str or None: Stored value, None when the key is not set
        """
        if key in self._cache:
            return self._cache[key]

        if self._values is not None:
            value = self._values.get(key)
        else:
            from core.models import SystemSetting
            value = SystemSetting.get_value(key)

        self._cache[key] = value
        return value

    def clear_cache(self):
        """Forget cached lookups so the next read hits the source again"""
        self._cache = {}

    # -------------------------------------------------------------------------
    # PARSING HELPERS
    # -------------------------------------------------------------------------

    def get_decimal(self, key, default):
        raw = self.get_setting(key)
        if raw is None or not str(raw).strip():
            return default

        try:
            value = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError):
            logger.warning(f"Setting '{key}' has non-numeric value {raw!r}; using default {default}")
            return default

        if not value.is_finite() or value < 0:
            logger.warning(f"Setting '{key}' has out-of-range value {raw!r}; using default {default}")
            return default

        return value

    def get_int(self, key, default):
        value = self.get_decimal(key, Decimal(default))
        return int(value)

    # -------------------------------------------------------------------------
    # TYPED ACCESSORS
    # -------------------------------------------------------------------------

    @property
    def processing_fee(self):
        """Flat loan processing fee (default 500)"""
        from core.models import SystemSetting
        return self.get_decimal(SystemSetting.PROCESSING_FEE, DEFAULT_PROCESSING_FEE)

    @property
    def loan_multiplier(self):
        """Maximum loan as a multiple of completed savings (default 3)"""
        from core.models import SystemSetting
        return self.get_decimal(SystemSetting.LOAN_MULTIPLIER, DEFAULT_LOAN_MULTIPLIER)

    @property
    def min_guarantors(self):
        """Accepted guarantors needed before final submission (default 2)"""
        from core.models import SystemSetting
        return self.get_int(SystemSetting.MIN_GUARANTORS, DEFAULT_MIN_GUARANTORS)

    @property
    def grace_period_weeks(self):
        """Weeks after disbursement before the first installment falls due (default 4)"""
        from core.models import SystemSetting
        return self.get_int(SystemSetting.GRACE_PERIOD_WEEKS, DEFAULT_GRACE_PERIOD_WEEKS)

    @property
    def interest_rate(self):
        """One-time interest charged at disbursement, percent of principal (default 10)"""
        from core.models import SystemSetting
        return self.get_decimal(SystemSetting.INTEREST_RATE, DEFAULT_INTEREST_RATE)

    @property
    def min_weekly_deposit(self):
        """Minimum completed deposits per week (default 250)"""
        from core.models import SystemSetting
        return self.get_decimal(SystemSetting.MIN_WEEKLY_DEPOSIT, DEFAULT_MIN_WEEKLY_DEPOSIT)

    @property
    def missed_deposit_penalty(self):
        """Fine charged for missing the weekly deposit (default 50)"""
        from core.models import SystemSetting
        return self.get_decimal(SystemSetting.MISSED_DEPOSIT_PENALTY, DEFAULT_MISSED_DEPOSIT_PENALTY)

    @property
    def currency(self):
        from core.models import SystemSetting
        value = self.get_setting(SystemSetting.CURRENCY)
        return value.strip().upper() if value and value.strip() else DEFAULT_CURRENCY

    def as_dict(self):
        """Snapshot of every typed setting, for display"""
        return {
            'processing_fee': self.processing_fee,
            'loan_multiplier': self.loan_multiplier,
            'min_guarantors': self.min_guarantors,
            'grace_period_weeks': self.grace_period_weeks,
            'interest_rate': self.interest_rate,
            'min_weekly_deposit': self.min_weekly_deposit,
            'missed_deposit_penalty': self.missed_deposit_penalty,
            'currency': self.currency,
        }


def get_policy():
    """Build the default database-backed policy store"""
    return PolicyStore()
