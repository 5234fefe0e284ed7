"""
conftest.py - Shared pytest fixtures for the SACCO engine tests

Provides:
- Member factories (ordinary members and officials)
- A database-free policy store with the documented defaults
- Ledger helpers (savings deposits, fee payments)
- Loans pushed to a given lifecycle stage
"""

import itertools
from decimal import Decimal

import pytest
from django.utils import timezone

from core.policy import PolicyStore
from members.models import Member
from savings.models import Deposit, Transaction


_refs = itertools.count(1)


def next_ref(prefix='REF'):
    return f"{prefix}{next(_refs):07d}"


# =============================================================================
# MEMBERS
# =============================================================================

@pytest.fixture
def make_member(db):
    def _make(full_name='Test Member', role=Member.Role.MEMBER, **kwargs):
        return Member.objects.create(full_name=full_name, role=role, **kwargs)
    return _make


@pytest.fixture
def member(make_member):
    return make_member('Wanjiku Kamau')


@pytest.fixture
def other_members(make_member):
    return [make_member(f"Member {i}") for i in range(1, 4)]


@pytest.fixture
def officials(make_member):
    return {
        'loan_officer': make_member('Otieno Loans', role=Member.Role.LOAN_OFFICER),
        'secretary': make_member('Achieng Secretary', role=Member.Role.SECRETARY),
        'chairperson': make_member('Mutua Chair', role=Member.Role.CHAIRPERSON),
        'treasurer': make_member('Njeri Treasurer', role=Member.Role.TREASURER),
        'admin': make_member('System Admin', role=Member.Role.ADMIN),
    }


# =============================================================================
# POLICY
# =============================================================================

@pytest.fixture
def policy():
    """Defaults only: fee 500, multiplier 3, 2 guarantors, grace 4, rate 10%"""
    return PolicyStore.from_values({})


@pytest.fixture
def now():
    return timezone.now()


# =============================================================================
# LEDGER HELPERS
# =============================================================================

@pytest.fixture
def add_savings(db):
    def _add(member, amount, status=Deposit.Status.COMPLETED):
        return Deposit.objects.create(
            member=member,
            amount=Decimal(str(amount)),
            deposit_type=Deposit.DepositType.DEPOSIT,
            transaction_ref=next_ref('DEP'),
            status=status,
        )
    return _add


@pytest.fixture
def add_fee_payment(db):
    def _add(member, amount='500', reference=None,
             transaction_type=Transaction.TransactionType.FEE_PAYMENT):
        return Transaction.objects.create(
            member=member,
            transaction_type=transaction_type,
            amount=Decimal(str(amount)),
            reference_code=reference or next_ref('FEE'),
        )
    return _add


# =============================================================================
# LOAN STAGES
# =============================================================================

@pytest.fixture
def loan_at(member, other_members, officials, policy, add_savings, add_fee_payment):
    """
    Build a loan for `member` and walk it to the requested status.

    The member has 10,000 in savings and the first two other_members accept
    as guarantors.
    """
    from loans.models import LoanApplication
    from loans.services import LoanLifecycleService, GuarantorService

    S = LoanApplication.Status
    order = [
        S.FEE_PENDING, S.FEE_PAID, S.PENDING_GUARANTORS, S.SUBMITTED,
        S.VERIFIED, S.TABLED, S.VOTING, S.APPROVED, S.ACTIVE,
    ]

    def _walk(target, amount='10000', weeks=10, disbursed_at=None):
        add_savings(member, '10000')
        loan = LoanLifecycleService.start_application(member, policy=policy)
        stages = order[1:order.index(target) + 1]

        for stage in stages:
            if stage == S.FEE_PAID:
                add_fee_payment(member)
                loan = LoanLifecycleService.reconcile_fee(loan)
            elif stage == S.PENDING_GUARANTORS:
                loan = LoanLifecycleService.submit_details(
                    loan, amount, 'Dairy cow purchase', weeks, actor=member, policy=policy
                )
            elif stage == S.SUBMITTED:
                for guarantor in other_members[:2]:
                    request = GuarantorService.add_guarantor(loan, guarantor, actor=member)
                    GuarantorService.respond(request, guarantor, 'ACCEPTED')
                loan = LoanLifecycleService.final_submit(loan, actor=member, policy=policy)
            elif stage == S.VERIFIED:
                loan = LoanLifecycleService.verify(loan, actor=officials['loan_officer'])
            elif stage == S.TABLED:
                loan = LoanLifecycleService.table(loan, actor=officials['secretary'])
            elif stage == S.VOTING:
                loan = LoanLifecycleService.open_voting(loan, actor=officials['chairperson'])
            elif stage == S.APPROVED:
                loan = LoanLifecycleService.finalize(loan, 'APPROVED', actor=officials['secretary'])
            elif stage == S.ACTIVE:
                loan = LoanLifecycleService.disburse(
                    loan, actor=officials['treasurer'], policy=policy,
                    now=disbursed_at or timezone.now(),
                )

        loan.refresh_from_db()
        return loan

    return _walk
