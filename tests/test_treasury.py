"""
test_treasury.py - Tests for the treasury liquidity snapshot (loans/stats.py)
"""

from decimal import Decimal

import pytest

from loans.models import LoanApplication
from loans.services import RepaymentService
from loans.stats import get_treasury_snapshot
from savings.models import Deposit, Transaction

pytestmark = pytest.mark.django_db

S = LoanApplication.Status


def add_transaction(member, transaction_type, amount, reference):
    return Transaction.objects.create(
        member=member,
        transaction_type=transaction_type,
        amount=Decimal(amount),
        reference_code=reference,
    )


class TestTreasurySnapshot:

    def test_empty_treasury(self):
        snapshot = get_treasury_snapshot()

        assert snapshot['available_funds'] == Decimal('0.00')
        assert snapshot['total_deposits'] == Decimal('0.00')
        assert snapshot['total_principal_disbursed'] == Decimal('0.00')

    def test_inflows_minus_disbursed_principal(self, loan_at, member, officials):
        # Savings 10,000 and a 500 fee come from loan_at
        loan = loan_at(S.ACTIVE, amount='10000')
        RepaymentService.record_repayment(loan, '2000', actor=officials['treasurer'])
        add_transaction(member, Transaction.TransactionType.FINE, '50', 'FINE-1')

        snapshot = get_treasury_snapshot()

        assert snapshot['total_deposits'] == Decimal('10000.00')
        assert snapshot['other_income'] == Decimal('550.00')
        assert snapshot['total_repayments'] == Decimal('2000.00')
        assert snapshot['total_principal_disbursed'] == Decimal('10000.00')
        assert snapshot['available_funds'] == Decimal('2550.00')

    def test_excluded_types_and_statuses(self, member, add_savings):
        add_savings(member, '1000')
        add_savings(member, '700', status=Deposit.Status.PENDING)
        add_transaction(member, Transaction.TransactionType.DEPOSIT, '300', 'DEP-TXN-1')
        add_transaction(member, Transaction.TransactionType.LOAN_DISBURSEMENT, '400', 'DISB-X')
        add_transaction(member, Transaction.TransactionType.REGISTRATION_FEE, '100', 'REG-1')
        Transaction.objects.create(
            member=member,
            transaction_type=Transaction.TransactionType.SHARE_CAPITAL,
            amount=Decimal('900'),
            reference_code='SHR-1',
            status=Transaction.Status.FAILED,
        )

        snapshot = get_treasury_snapshot()

        assert snapshot['total_deposits'] == Decimal('1000.00')
        assert snapshot['other_income'] == Decimal('100.00')
        assert snapshot['available_funds'] == Decimal('1100.00')

    def test_deductions_reduce_deposits(self, member, add_savings):
        add_savings(member, '1000')
        Deposit.objects.create(
            member=member,
            amount=Decimal('-50'),
            deposit_type=Deposit.DepositType.DEDUCTION,
            transaction_ref='DEDUCT-1',
        )

        assert get_treasury_snapshot()['total_deposits'] == Decimal('950.00')

    def test_approved_loans_are_not_yet_disbursed(self, loan_at):
        loan_at(S.APPROVED, amount='10000')

        snapshot = get_treasury_snapshot()

        assert snapshot['total_principal_disbursed'] == Decimal('0.00')
        assert snapshot['available_funds'] == Decimal('10500.00')

    def test_completed_loans_still_count_as_disbursed(self, loan_at, officials):
        loan = loan_at(S.ACTIVE, amount='10000')
        RepaymentService.record_repayment(loan, '11000', actor=officials['treasurer'])

        snapshot = get_treasury_snapshot()

        assert LoanApplication.objects.get().status == S.COMPLETED
        assert snapshot['total_principal_disbursed'] == Decimal('10000.00')
        assert snapshot['available_funds'] == Decimal('11500.00')

    def test_formatted_value(self, member, add_savings):
        add_savings(member, '1234.5')

        assert get_treasury_snapshot()['formatted_available_funds'] == 'KES 1,234.50'
