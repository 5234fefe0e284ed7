"""
test_policy.py - Tests for the policy store and seed_settings command
"""

from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command

from core.models import SystemSetting
from core.policy import PolicyStore, get_policy


class TestDefaults:

    def test_documented_defaults(self):
        policy = PolicyStore.from_values({})

        assert policy.as_dict() == {
            'processing_fee': Decimal('500'),
            'loan_multiplier': Decimal('3'),
            'min_guarantors': 2,
            'grace_period_weeks': 4,
            'interest_rate': Decimal('10'),
            'min_weekly_deposit': Decimal('250'),
            'missed_deposit_penalty': Decimal('50'),
            'currency': 'KES',
        }

    def test_configured_values(self):
        policy = PolicyStore.from_values({
            'loan_processing_fee': '750.50',
            'min_guarantors': '3',
            'sacco_currency': ' ugx ',
        })

        assert policy.processing_fee == Decimal('750.50')
        assert policy.min_guarantors == 3
        assert policy.currency == 'UGX'

    def test_zero_is_honoured(self):
        policy = PolicyStore.from_values({'grace_period_weeks': '0', 'interest_rate': '0'})

        assert policy.grace_period_weeks == 0
        assert policy.interest_rate == Decimal('0')

    @pytest.mark.parametrize('raw', ['', '   ', 'abc', '-5', 'NaN', None])
    def test_bad_values_fall_back(self, raw):
        policy = PolicyStore.from_values({'loan_multiplier': raw, 'min_guarantors': raw})

        assert policy.loan_multiplier == Decimal('3')
        assert policy.min_guarantors == 2


@pytest.mark.django_db
class TestDatabaseBacked:

    def test_reads_system_settings(self):
        SystemSetting.objects.create(setting_key=SystemSetting.INTEREST_RATE, setting_value='12.5')

        assert get_policy().interest_rate == Decimal('12.5')

    def test_missing_rows_use_defaults(self):
        assert get_policy().min_weekly_deposit == Decimal('250')

    def test_lookups_are_cached_until_cleared(self):
        setting = SystemSetting.objects.create(setting_key=SystemSetting.MIN_GUARANTORS, setting_value='3')
        policy = get_policy()
        assert policy.min_guarantors == 3

        setting.setting_value = '4'
        setting.save()
        assert policy.min_guarantors == 3

        policy.clear_cache()
        assert policy.min_guarantors == 4


@pytest.mark.django_db
class TestSeedSettings:

    def test_creates_every_setting(self):
        call_command('seed_settings', stdout=StringIO())

        assert SystemSetting.objects.count() == 8
        assert get_policy().as_dict()['processing_fee'] == Decimal('500')

    def test_keeps_existing_values(self):
        SystemSetting.objects.create(setting_key=SystemSetting.PROCESSING_FEE, setting_value='900')

        call_command('seed_settings', stdout=StringIO())
        call_command('seed_settings', stdout=StringIO())

        assert SystemSetting.objects.count() == 8
        assert SystemSetting.get_value(SystemSetting.PROCESSING_FEE) == '900'

    def test_force_resets(self):
        SystemSetting.objects.create(setting_key=SystemSetting.PROCESSING_FEE, setting_value='900')

        call_command('seed_settings', '--force', stdout=StringIO())

        assert SystemSetting.get_value(SystemSetting.PROCESSING_FEE) == '500'

    def test_dry_run_writes_nothing(self):
        out = StringIO()

        call_command('seed_settings', '--dry-run', stdout=out)

        assert not SystemSetting.objects.exists()
        assert 'would set' in out.getvalue()
