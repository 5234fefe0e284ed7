"""
test_fines.py - Tests for fine interest escalation

Tests:
- Pure escalation rules (fines/utils.py)
- Lazy escalation on read and persistence (fines/services.py)
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from fines.models import MemberFine
from fines.services import FineService
from fines.utils import compute_fine_escalation

NOW = datetime(2025, 6, 1, 9, 0, tzinfo=dt_timezone.utc)


def escalate(original='1000', balance=None, stage='NONE', created_days_ago=0,
             stage_1_days_ago=None, status='OPEN'):
    return compute_fine_escalation(
        original_amount=Decimal(original),
        current_balance=Decimal(balance or original),
        interest_stage=stage,
        date_created=NOW - timedelta(days=created_days_ago),
        date_stage_1_applied=None if stage_1_days_ago is None else NOW - timedelta(days=stage_1_days_ago),
        now=NOW,
        status=status,
    )


# =============================================================================
# PURE RULES
# =============================================================================

class TestEscalationRules:

    def test_stage_one_after_thirty_days(self):
        result = escalate(created_days_ago=31)

        assert result['changed'] is True
        assert result['current_balance'] == Decimal('1200.00')
        assert result['interest_stage'] == 'STAGE_1_20'
        assert result['date_stage_1_applied'] == NOW

    def test_thirty_days_is_not_enough(self):
        assert escalate(created_days_ago=30)['changed'] is False

    def test_partial_days_are_rounded_down(self):
        result = compute_fine_escalation(
            original_amount=Decimal('1000'),
            current_balance=Decimal('1000'),
            interest_stage='NONE',
            date_created=NOW - timedelta(days=30, hours=23),
            date_stage_1_applied=None,
            now=NOW,
        )
        assert result['changed'] is False

    def test_second_pass_is_a_no_op(self):
        first = escalate(created_days_ago=31)
        second = compute_fine_escalation(
            original_amount=Decimal('1000'),
            current_balance=first['current_balance'],
            interest_stage=first['interest_stage'],
            date_created=NOW - timedelta(days=31),
            date_stage_1_applied=first['date_stage_1_applied'],
            now=NOW,
        )
        assert second['changed'] is False
        assert second['current_balance'] == Decimal('1200.00')

    def test_stage_two_compounds_on_current_balance(self):
        result = escalate(balance='1200', stage='STAGE_1_20', created_days_ago=400, stage_1_days_ago=366)

        assert result['changed'] is True
        assert result['current_balance'] == Decimal('1800.00')
        assert result['interest_stage'] == 'STAGE_2_50'
        assert result['date_stage_2_applied'] == NOW

    def test_stage_two_needs_more_than_a_year(self):
        assert escalate(balance='1200', stage='STAGE_1_20', stage_1_days_ago=365)['changed'] is False

    def test_old_fine_only_reaches_stage_one_in_one_pass(self):
        result = escalate(created_days_ago=800)
        assert result['interest_stage'] == 'STAGE_1_20'
        assert result['current_balance'] == Decimal('1200.00')

    def test_stage_two_is_final(self):
        result = escalate(balance='1800', stage='STAGE_2_50', created_days_ago=2000, stage_1_days_ago=1500)
        assert result['changed'] is False

    def test_cleared_fines_never_escalate(self):
        assert escalate(created_days_ago=400, status='CLEARED')['changed'] is False


# =============================================================================
# SERVICE
# =============================================================================

@pytest.mark.django_db
class TestFineService:

    def test_impose_fine(self, member):
        fine = FineService.impose_fine(member, 'Late to AGM', '1000', now=NOW)

        assert fine.status == MemberFine.Status.OPEN
        assert fine.original_amount == Decimal('1000')
        assert fine.current_balance == Decimal('1000')
        assert fine.interest_stage == MemberFine.InterestStage.NONE

    @pytest.mark.parametrize('amount', ['0', '-5', 'abc'])
    def test_impose_fine_rejects_bad_amount(self, member, amount):
        with pytest.raises(ValidationError) as exc:
            FineService.impose_fine(member, 'Late to AGM', amount)
        assert 'amount' in exc.value.errors
        assert not MemberFine.objects.exists()

    def test_reading_fines_escalates_and_persists(self, member):
        FineService.impose_fine(member, 'Late to AGM', '1000', now=NOW)
        later = NOW + timedelta(days=31)

        fines = FineService.get_member_fines(member, now=later)

        assert [f.current_balance for f in fines] == [Decimal('1200.00')]
        stored = MemberFine.objects.get()
        assert stored.current_balance == Decimal('1200.00')
        assert stored.interest_stage == MemberFine.InterestStage.STAGE_1_20
        assert stored.date_stage_1_applied == later

    def test_repeated_reads_are_idempotent(self, member):
        FineService.impose_fine(member, 'Late to AGM', '1000', now=NOW)
        later = NOW + timedelta(days=31)

        FineService.get_member_fines(member, now=later)
        fines = FineService.get_member_fines(member, now=later + timedelta(days=1))

        assert fines[0].current_balance == Decimal('1200.00')
        assert fines[0].date_stage_1_applied == later

    def test_stage_two_on_read(self, member):
        MemberFine.objects.create(
            member=member,
            title='Missed meeting',
            original_amount=Decimal('1000'),
            current_balance=Decimal('1200'),
            interest_stage=MemberFine.InterestStage.STAGE_1_20,
            date_created=NOW - timedelta(days=400),
            date_stage_1_applied=NOW - timedelta(days=366),
        )

        fine, changed = FineService.evaluate_and_persist(MemberFine.objects.get(), now=NOW)

        assert changed is True
        assert fine.current_balance == Decimal('1800.00')
        assert MemberFine.objects.get().interest_stage == MemberFine.InterestStage.STAGE_2_50

    def test_fresh_fine_is_not_saved(self, member):
        fine = FineService.impose_fine(member, 'Late to AGM', '1000', now=NOW)
        updated_at = MemberFine.objects.get().updated_at

        _, changed = FineService.evaluate_and_persist(fine, now=NOW + timedelta(days=3))

        assert changed is False
        assert MemberFine.objects.get().updated_at == updated_at

    def test_cleared_fines_are_hidden_and_frozen(self, member):
        fine = FineService.impose_fine(member, 'Late to AGM', '1000', now=NOW)
        MemberFine.objects.filter(pk=fine.pk).update(status=MemberFine.Status.CLEARED)

        assert FineService.get_member_fines(member, now=NOW + timedelta(days=90)) == []
        fines = FineService.get_member_fines(member, now=NOW + timedelta(days=90), include_cleared=True)
        assert fines[0].current_balance == Decimal('1000.00')

    def test_outstanding_total(self, member):
        FineService.impose_fine(member, 'Late to AGM', '1000', now=NOW)
        FineService.impose_fine(member, 'Absent', '200', now=NOW + timedelta(days=20))

        total = FineService.get_outstanding_total(member, now=NOW + timedelta(days=31))

        assert total == Decimal('1400.00')
