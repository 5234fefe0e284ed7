# savings/management/commands/run_compliance_check.py

"""
Fine members who missed this week's minimum deposit.

Meant to be scheduled (cron, Celery beat, systemd timer) for the end of the
SACCO week. Running it twice in the same week does not fine anyone twice.

USAGE EXAMPLES:
===============

# Run the check
python manage.py run_compliance_check

# List who would be fined without writing anything
python manage.py run_compliance_check --dry-run
"""

from django.core.management.base import BaseCommand, CommandError
import logging

from core.exceptions import PersistenceError
from core.policy import get_policy
from core.utils import format_money
from savings.services import ComplianceService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Fine active members who have not met the weekly minimum deposit'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List non-compliant members without fining them'
        )

    def handle(self, *args, **options):
        policy = get_policy()

        self.stdout.write(
            f"Minimum weekly deposit: {format_money(policy.min_weekly_deposit, currency=policy.currency)}, "
            f"fine: {format_money(policy.missed_deposit_penalty, currency=policy.currency)}"
        )

        if options['dry_run']:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No fines will be applied'))
            members = ComplianceService.get_non_compliant_members(policy=policy)
            for member in members:
                self.stdout.write(f"  - {member}")
            self.stdout.write(f"{len(members)} member(s) would be fined")
            return

        try:
            result = ComplianceService.run_compliance_check(policy=policy)
        except PersistenceError as e:
            raise CommandError(str(e))

        if result['fined']:
            self.stdout.write(self.style.SUCCESS(
                f"✓ Fined {result['fined']} member(s), deducted from savings for {result['deducted']}"
            ))
        else:
            self.stdout.write(self.style.SUCCESS('✓ Everyone is compliant'))
