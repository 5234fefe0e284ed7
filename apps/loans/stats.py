# loans/stats.py

"""
Read models for loans: vote tallies, guarantor views, role agendas and the
treasury liquidity snapshot. Nothing here writes or locks.
"""

from django.db.models import Count, Q, Sum
from decimal import Decimal
import logging

from core.utils import format_money, get_base_currency

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


# =============================================================================
# GUARANTOR & VOTE TALLY
# =============================================================================

def get_accepted_guarantor_count(loan):
    """Number of ACCEPTED guarantor requests on a loan"""
    from .models import GuarantorRequest

    return GuarantorRequest.objects.filter(
        loan_application=loan,
        status=GuarantorRequest.Status.ACCEPTED
    ).count()


def get_vote_tally(loan):
    """
    YES/NO counts for a loan.

    Display only: the outcome is recorded by the secretary, not derived
    from these numbers.

    Returns:
        dict: {'yes': int, 'no': int, 'total': int}
    """
    from .models import Vote

    counts = Vote.objects.filter(loan_application=loan).aggregate(
        yes=Count('id', filter=Q(decision=Vote.Decision.YES)),
        no=Count('id', filter=Q(decision=Vote.Decision.NO)),
    )
    return {
        'yes': counts['yes'],
        'no': counts['no'],
        'total': counts['yes'] + counts['no'],
    }


def get_open_ballots(member):
    """
    Loans currently under vote that the member may still vote on
    (not their own, not already voted).
    """
    from .models import LoanApplication

    return list(
        LoanApplication.objects
        .filter(status=LoanApplication.Status.VOTING)
        .exclude(member=member)
        .exclude(votes__member=member)
        .select_related('member')
        .order_by('created_at')
    )


def get_live_tallies():
    """Tallies for every TABLED or VOTING loan, for the meeting screen"""
    from .models import LoanApplication

    loans = (
        LoanApplication.objects
        .filter(status__in=[LoanApplication.Status.TABLED, LoanApplication.Status.VOTING])
        .select_related('member')
        .order_by('created_at')
    )
    return [
        {
            'loan': loan,
            'application_number': loan.application_number,
            'applicant': loan.member.get_full_name(),
            'amount_requested': loan.amount_requested,
            'status': loan.status,
            **get_vote_tally(loan),
        }
        for loan in loans
    ]


# =============================================================================
# GUARANTOR READ MODELS
# =============================================================================

def get_incoming_guarantor_requests(member):
    """Pending requests asking this member to guarantee someone's loan"""
    from .models import GuarantorRequest

    return list(
        GuarantorRequest.objects
        .filter(guarantor=member, status=GuarantorRequest.Status.PENDING)
        .select_related('loan_application', 'loan_application__member')
        .order_by('-created_at')
    )


def get_my_guarantors(member):
    """Guarantor requests on the member's current (non-terminal) application"""
    from .models import LoanApplication, GuarantorRequest

    loan = LoanApplication.get_open_application(member)
    if loan is None:
        return []

    return list(
        GuarantorRequest.objects
        .filter(loan_application=loan)
        .select_related('guarantor')
        .order_by('created_at')
    )


def get_guarantor_liabilities(member):
    """
    Loans the member has accepted to guarantee that are still being repaid.

    Returns:
        dict: {'loans': [...], 'total_outstanding': Decimal}
    """
    from .models import LoanApplication, GuarantorRequest

    requests = (
        GuarantorRequest.objects
        .filter(
            guarantor=member,
            status=GuarantorRequest.Status.ACCEPTED,
            loan_application__status__in=LoanApplication.REPAYABLE_STATUSES,
        )
        .select_related('loan_application', 'loan_application__member')
    )

    loans = []
    total = ZERO
    for request in requests:
        loan = request.loan_application
        loans.append({
            'loan': loan,
            'application_number': loan.application_number,
            'borrower': loan.member.get_full_name(),
            'status': loan.status,
            'outstanding_balance': loan.outstanding_balance,
        })
        total += loan.outstanding_balance

    return {'loans': loans, 'total_outstanding': total}


# =============================================================================
# ROLE AGENDAS
# =============================================================================

def _loans_in(statuses):
    from .models import LoanApplication

    return list(
        LoanApplication.objects
        .filter(status__in=statuses)
        .select_related('member')
        .order_by('created_at')
    )


def get_officer_queue():
    """Everything a loan officer follows up on"""
    from .models import LoanApplication
    S = LoanApplication.Status

    return _loans_in([
        S.SUBMITTED, S.PENDING_GUARANTORS, S.VERIFIED,
        S.ACTIVE, S.IN_ARREARS, S.OVERDUE,
    ])


def get_secretary_agenda():
    """Verified loans waiting to be tabled"""
    from .models import LoanApplication
    return _loans_in([LoanApplication.Status.VERIFIED])


def get_chair_agenda():
    """Tabled loans waiting for voting to open"""
    from .models import LoanApplication
    return _loans_in([LoanApplication.Status.TABLED])


def get_treasury_queue():
    """Approved loans waiting for disbursement"""
    from .models import LoanApplication
    return _loans_in([LoanApplication.Status.APPROVED])


def get_active_portfolio():
    from .models import LoanApplication
    return _loans_in(LoanApplication.REPAYABLE_STATUSES)


def get_loan_registry():
    """Every application ever made, newest first"""
    from .models import LoanApplication

    return list(LoanApplication.objects.select_related('member').order_by('-created_at'))


# =============================================================================
# TREASURY
# =============================================================================

def get_total_principal_disbursed():
    """Principal of every loan that has left the treasury"""
    from .models import LoanApplication

    return LoanApplication.objects.filter(
        status__in=LoanApplication.DISBURSED_STATUSES
    ).aggregate(total=Sum('amount_requested'))['total'] or ZERO


def get_treasury_snapshot():
    """
    Funds available for new disbursements, recomputed from the ledgers.

    available_funds = (deposits + other income + repayments) - principal disbursed

    Returns:
        dict: each aggregate plus available_funds and formatted values
    """
    from savings.services import LedgerReader

    deposits = LedgerReader.total_completed_deposits()
    other_income = LedgerReader.total_other_income()
    repayments = LedgerReader.total_repayments()
    disbursed = get_total_principal_disbursed()

    total_inflows = deposits + other_income + repayments
    available = total_inflows - disbursed

    currency = get_base_currency()

    snapshot = {
        'total_deposits': deposits,
        'other_income': other_income,
        'total_repayments': repayments,
        'total_inflows': total_inflows,
        'total_principal_disbursed': disbursed,
        'available_funds': available,
        'currency': currency,
        'formatted_available_funds': format_money(available, currency=currency),
    }

    logger.debug(f"Treasury snapshot: available {available} ({total_inflows} in, {disbursed} out)")
    return snapshot
