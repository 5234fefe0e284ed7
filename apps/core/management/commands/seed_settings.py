# core/management/commands/seed_settings.py

"""
Write the default SACCO policy settings.

Existing settings are left untouched unless --force is given, so the
command is safe to run on every deploy.

USAGE EXAMPLES:
===============

# Create any missing settings
python manage.py seed_settings

# Reset every setting to its default value
python manage.py seed_settings --force

# Show what would be written
python manage.py seed_settings --dry-run
"""

from django.core.management.base import BaseCommand
from django.db import transaction
import logging

from core.models import SystemSetting
from core import policy

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS = (
    # (key, value, category, description)
    (SystemSetting.PROCESSING_FEE, policy.DEFAULT_PROCESSING_FEE, 'SACCO',
     'Flat fee paid before a loan application can be submitted'),
    (SystemSetting.LOAN_MULTIPLIER, policy.DEFAULT_LOAN_MULTIPLIER, 'SACCO',
     'Maximum loan as a multiple of completed savings'),
    (SystemSetting.MIN_GUARANTORS, policy.DEFAULT_MIN_GUARANTORS, 'SACCO',
     'Accepted guarantors required before final submission'),
    (SystemSetting.GRACE_PERIOD_WEEKS, policy.DEFAULT_GRACE_PERIOD_WEEKS, 'SACCO',
     'Weeks after disbursement before the first installment is due'),
    (SystemSetting.INTEREST_RATE, policy.DEFAULT_INTEREST_RATE, 'SACCO',
     'One-time interest charged at disbursement (percent of principal)'),
    (SystemSetting.MIN_WEEKLY_DEPOSIT, policy.DEFAULT_MIN_WEEKLY_DEPOSIT, 'SACCO',
     'Minimum completed deposits expected from each member per week'),
    (SystemSetting.MISSED_DEPOSIT_PENALTY, policy.DEFAULT_MISSED_DEPOSIT_PENALTY, 'SACCO',
     'Fine charged when the weekly deposit is missed'),
    (SystemSetting.CURRENCY, policy.DEFAULT_CURRENCY, 'SYSTEM',
     'Currency code used when formatting amounts'),
)


class Command(BaseCommand):
    help = 'Create the default SACCO policy settings'

    def add_arguments(self, parser):
        parser.add_argument(
            '--force',
            action='store_true',
            help='Overwrite existing values with the defaults'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be written without writing it'
        )

    def handle(self, *args, **options):
        force = options['force']
        dry_run = options['dry_run']

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No data will be written'))

        created = updated = skipped = 0

        with transaction.atomic():
            for key, value, category, description in DEFAULT_SETTINGS:
                existing = SystemSetting.objects.filter(setting_key=key).first()

                if existing and not force:
                    skipped += 1
                    self.stdout.write(f"  - {key}: kept '{existing.setting_value}'")
                    continue

                if dry_run:
                    self.stdout.write(f"  + {key}: would set '{value}'")
                    continue

                if existing:
                    existing.setting_value = str(value)
                    existing.category = category
                    existing.description = description
                    existing.set_change_reason('Reset to default by seed_settings --force')
                    existing.save()
                    updated += 1
                else:
                    SystemSetting.objects.create(
                        setting_key=key,
                        setting_value=str(value),
                        category=category,
                        description=description,
                    )
                    created += 1

                self.stdout.write(self.style.SUCCESS(f"  ✓ {key} = {value}"))

        logger.info(f"Seeded settings: created={created}, updated={updated}, kept={skipped}")
        self.stdout.write(self.style.SUCCESS(
            f"Settings seeded: {created} created, {updated} updated, {skipped} kept"
        ))
