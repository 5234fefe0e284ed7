# savings/services.py

"""
Savings Business Logic Services

- LedgerReader: per-member and SACCO-wide aggregates over deposits and
  transactions (total savings, fee payments, weekly compliance, treasury
  inputs), plus the writes that feed those ledgers
- ComplianceService: weekly missed-deposit fines
"""

from django.db import transaction, IntegrityError, DatabaseError
from django.db.models import Sum
from decimal import Decimal
import logging

from core.exceptions import ValidationError, DuplicateReferenceError, PersistenceError
from core.policy import get_policy
from core.utils import get_sacco_now, format_money
from .forms import DepositForm, FeePaymentForm
from .models import Deposit, Transaction
from .utils import (
    generate_reference,
    get_week_start,
    is_weekly_target_met,
    missed_deposit_description,
    MISSED_DEPOSIT_DESCRIPTION_PREFIX,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


# =============================================================================
# LEDGER READER
# =============================================================================

class LedgerReader:
    """Aggregates deposit and transaction records"""

    # -------------------------------------------------------------------------
    # PER-MEMBER READS
    # -------------------------------------------------------------------------

    @staticmethod
    def sum_completed_deposits(member):
        """
        Total completed savings for a member (deductions included).

        Returns:
            Decimal
        """
        total = Deposit.objects.filter(
            member=member,
            status=Deposit.Status.COMPLETED,
        ).aggregate(total=Sum('amount'))['total']
        return total or ZERO

    @staticmethod
    def latest_unlinked_fee_payment(member):
        """
        Most recent completed processing-fee payment by the member whose
        reference is not yet linked to any loan application.

        Returns:
            Transaction or None
        """
        from loans.models import LoanApplication

        linked_refs = LoanApplication.objects.filter(
            fee_transaction_ref__isnull=False
        ).values('fee_transaction_ref')

        return (
            Transaction.objects
            .filter(
                member=member,
                transaction_type__in=Transaction.PROCESSING_FEE_TYPES,
                status=Transaction.Status.COMPLETED,
            )
            .exclude(reference_code__in=linked_refs)
            .order_by('-created_at')
            .first()
        )

    @staticmethod
    def weekly_deposit_total(member, now=None):
        """Completed deposits made since Monday 00:00 of the current week"""
        week_start = get_week_start(get_sacco_now(now))

        deposits = Deposit.objects.filter(
            member=member,
            status=Deposit.Status.COMPLETED,
            deposit_type=Deposit.DepositType.DEPOSIT,
            created_at__gte=week_start,
        ).aggregate(total=Sum('amount'))['total'] or ZERO

        deposit_txns = Transaction.objects.filter(
            member=member,
            status=Transaction.Status.COMPLETED,
            transaction_type=Transaction.TransactionType.DEPOSIT,
            created_at__gte=week_start,
        ).aggregate(total=Sum('amount'))['total'] or ZERO

        return deposits + deposit_txns

    @classmethod
    def is_weekly_compliant(cls, member, now=None, policy=None):
        """Whether the member has saved at least the weekly minimum this week"""
        policy = policy or get_policy()
        return is_weekly_target_met(cls.weekly_deposit_total(member, now), policy.min_weekly_deposit)

    # -------------------------------------------------------------------------
    # SACCO-WIDE AGGREGATES
    # -------------------------------------------------------------------------

    @staticmethod
    def total_completed_deposits():
        return Deposit.objects.filter(
            status=Deposit.Status.COMPLETED
        ).aggregate(total=Sum('amount'))['total'] or ZERO

    @staticmethod
    def total_other_income():
        """Completed transactions of every type except disbursement, deposit and repayment"""
        return Transaction.objects.filter(
            status=Transaction.Status.COMPLETED
        ).exclude(
            transaction_type__in=Transaction.NON_INCOME_TYPES
        ).aggregate(total=Sum('amount'))['total'] or ZERO

    @staticmethod
    def total_repayments():
        return Transaction.objects.filter(
            status=Transaction.Status.COMPLETED,
            transaction_type=Transaction.TransactionType.LOAN_REPAYMENT,
        ).aggregate(total=Sum('amount'))['total'] or ZERO

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    @staticmethod
    def record_transaction(member, transaction_type, amount, reference=None,
                           description='', actor=None):
        """
        Insert a completed transaction row.

        Must be called inside the caller's atomic block when it is part of a
        larger unit of work (disbursement, repayment).

        Raises:
            DuplicateReferenceError: reference already used
        """
        reference = reference or generate_reference('TRX')

        txn = Transaction(
            member=member,
            transaction_type=transaction_type,
            amount=amount,
            reference_code=reference,
            description=description[:255],
        )
        txn.stamp_actor(actor)

        try:
            with transaction.atomic():
                txn.save()
        except IntegrityError:
            raise DuplicateReferenceError(f"Transaction reference {reference} already exists")

        logger.info(f"Recorded {transaction_type} {amount} for member {member.pk} ({reference})")
        return txn

    @staticmethod
    def record_deposit(member, amount, reference=None, actor=None):
        """
        Record a completed savings deposit.

        Raises:
            ValidationError: amount below the minimum deposit
            DuplicateReferenceError: reference already used
        """
        form = DepositForm(data={'amount': amount, 'reference': reference or ''})
        if not form.is_valid():
            raise ValidationError.from_form(form)

        reference = form.cleaned_data['reference'] or generate_reference(
            'DEP', model=Deposit, field='transaction_ref'
        )

        deposit = Deposit(
            member=member,
            amount=form.cleaned_data['amount'],
            deposit_type=Deposit.DepositType.DEPOSIT,
            transaction_ref=reference,
            status=Deposit.Status.COMPLETED,
        )
        deposit.stamp_actor(actor)

        try:
            with transaction.atomic():
                deposit.save()
        except IntegrityError:
            raise DuplicateReferenceError(f"Deposit reference {reference} already exists")
        except DatabaseError as e:
            logger.error(f"Failed to record deposit for member {member.pk}: {e}")
            raise PersistenceError("Deposit could not be saved")

        logger.info(f"Recorded deposit {deposit.amount} for member {member.pk} ({reference})")
        return deposit

    @classmethod
    def record_fee_payment(cls, member, reference, amount=None, policy=None, actor=None):
        """
        Record a loan processing fee payment (e.g. a reconciled M-PESA receipt).

        The payment is not linked to any application here; linking happens on
        reconciliation or through LoanLifecycleService.pay_fee().
        """
        policy = policy or get_policy()

        form = FeePaymentForm(data={
            'reference': reference,
            'amount': amount if amount is not None else policy.processing_fee,
        })
        if not form.is_valid():
            raise ValidationError.from_form(form)

        return cls.record_transaction(
            member,
            Transaction.TransactionType.FEE_PAYMENT,
            form.cleaned_data['amount'],
            reference=form.cleaned_data['reference'],
            description='Loan processing fee',
            actor=actor,
        )


# =============================================================================
# COMPLIANCE SERVICE
# =============================================================================

class ComplianceService:
    """Weekly minimum-deposit enforcement"""

    @staticmethod
    def get_non_compliant_members(now=None, policy=None):
        """
        Active ordinary members who have not saved the weekly minimum and have
        not yet been fined for it this week.
        """
        from members.models import Member

        policy = policy or get_policy()
        now = get_sacco_now(now)
        week_start = get_week_start(now)
        minimum = policy.min_weekly_deposit

        saved = (
            Deposit.objects
            .filter(
                status=Deposit.Status.COMPLETED,
                deposit_type=Deposit.DepositType.DEPOSIT,
                created_at__gte=week_start,
            )
            .values('member')
            .annotate(total=Sum('amount'))
        )
        saved_by_member = {row['member']: row['total'] for row in saved}

        deposit_txns = (
            Transaction.objects
            .filter(
                status=Transaction.Status.COMPLETED,
                transaction_type=Transaction.TransactionType.DEPOSIT,
                created_at__gte=week_start,
            )
            .values('member')
            .annotate(total=Sum('amount'))
        )
        for row in deposit_txns:
            saved_by_member[row['member']] = saved_by_member.get(row['member'], ZERO) + row['total']

        already_fined = Transaction.objects.filter(
            transaction_type=Transaction.TransactionType.FINE,
            description__startswith=MISSED_DEPOSIT_DESCRIPTION_PREFIX,
            created_at__gte=week_start,
        ).values_list('member', flat=True)

        candidates = (
            Member.objects
            .filter(role=Member.Role.MEMBER, is_active=True)
            .exclude(pk__in=already_fined)
        )

        return [
            m for m in candidates
            if not is_weekly_target_met(saved_by_member.get(m.pk, ZERO), minimum)
        ]

    @classmethod
    def run_compliance_check(cls, now=None, policy=None):
        """
        Fine every non-compliant member and deduct the fine from savings when
        the member has a positive balance. One atomic unit: either every
        member in the batch is fined or none is.

        Returns:
            dict: {'fined': int, 'deducted': int, 'penalty': Decimal, 'members': [ids]}
        """
        from notifications.services import notify_member, queue_notification

        policy = policy or get_policy()
        now = get_sacco_now(now)
        penalty = policy.missed_deposit_penalty

        logger.info(
            f"Compliance check started. Min weekly deposit: {policy.min_weekly_deposit}, fine: {penalty}"
        )

        fined = []
        deducted = 0

        try:
            with transaction.atomic():
                for member in cls.get_non_compliant_members(now, policy):
                    fine_ref = generate_reference('AUTO-FINE', now=now)
                    LedgerReader.record_transaction(
                        member,
                        Transaction.TransactionType.FINE,
                        penalty,
                        reference=fine_ref,
                        description=missed_deposit_description(now),
                    )

                    if LedgerReader.sum_completed_deposits(member) > 0:
                        Deposit.objects.create(
                            member=member,
                            amount=-penalty,
                            deposit_type=Deposit.DepositType.DEDUCTION,
                            transaction_ref=f"DEDUCT-{fine_ref}",
                            status=Deposit.Status.COMPLETED,
                        )
                        deducted += 1

                    fined.append(member.pk)
                    queue_notification(
                        notify_member, member,
                        f"You missed this week's minimum deposit. A fine of "
                        f"{format_money(penalty, currency=policy.currency)} has been charged."
                    )
        except DatabaseError as e:
            logger.error(f"Compliance check failed and was rolled back: {e}")
            raise PersistenceError("Compliance check failed; no fines were applied")

        if fined:
            logger.info(f"Compliance check complete. Fined {len(fined)} members, deducted from {deducted}")
        else:
            logger.info("Compliance check complete. Everyone is compliant")

        return {
            'fined': len(fined),
            'deducted': deducted,
            'penalty': penalty,
            'members': fined,
        }
