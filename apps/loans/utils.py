# loans/utils.py

"""
Loans Utility Functions

Pure utility functions with NO side effects (no database writes), apart
from the number generator which only reads under a row lock:
- Application number generation
- Lifecycle transition table and validation
- Disbursement interest calculation
- Weekly repayment schedule with grace period
- Derived loan standing

Database writes are handled by signals.py and services.py.
"""

from django.db import transaction
from django.utils import timezone
from decimal import Decimal, ROUND_HALF_UP
from datetime import timedelta
import logging

from core.exceptions import InvalidStateError
from .models import LoanApplication

logger = logging.getLogger(__name__)

Status = LoanApplication.Status

TWO_PLACES = Decimal('0.01')

# Schedule labels
GRACE_PERIOD = 'GRACE_PERIOD'
IN_ARREARS = 'IN_ARREARS'
AHEAD_OF_SCHEDULE = 'AHEAD_OF_SCHEDULE'


# =============================================================================
# NUMBER GENERATION
# =============================================================================

def generate_loan_application_number(now=None):
    """
    Generate unique loan application number.

    Format: LA-YYYYMMDDHHMMSS-XXXX

    Example:
        >>> generate_loan_application_number()
        'LA-20250129143025-0001'
    """
    timestamp = timezone.localtime(now or timezone.now()).strftime('%Y%m%d%H%M%S')
    base_id = f"LA-{timestamp}"

    with transaction.atomic():
        existing = LoanApplication.objects.filter(
            application_number__startswith=base_id
        ).select_for_update().values_list('application_number', flat=True)

        max_counter = 0
        for app_num in existing:
            try:
                max_counter = max(max_counter, int(app_num.split('-')[-1]))
            except (ValueError, IndexError):
                continue

        application_number = f"{base_id}-{max_counter + 1:04d}"

    logger.info(f"Generated loan application number: {application_number}")
    return application_number


# =============================================================================
# LIFECYCLE TRANSITIONS
# =============================================================================

# Status -> statuses it may move to. None is "no application yet".
ALLOWED_TRANSITIONS = {
    None: (Status.FEE_PENDING,),
    Status.FEE_PENDING: (Status.FEE_PAID,),
    Status.FEE_PAID: (Status.PENDING_GUARANTORS,),
    Status.PENDING_GUARANTORS: (Status.SUBMITTED,),
    Status.SUBMITTED: (Status.VERIFIED,),
    Status.VERIFIED: (Status.TABLED,),
    Status.TABLED: (Status.VOTING,),
    Status.VOTING: (Status.APPROVED, Status.REJECTED),
    Status.APPROVED: (Status.ACTIVE,),
    Status.ACTIVE: (Status.IN_ARREARS, Status.OVERDUE, Status.COMPLETED),
    Status.IN_ARREARS: (Status.ACTIVE, Status.OVERDUE, Status.COMPLETED),
    Status.OVERDUE: (Status.ACTIVE, Status.IN_ARREARS, Status.COMPLETED),
    Status.REJECTED: (),
    Status.COMPLETED: (),
}


def can_transition(current_status, target_status):
    return target_status in ALLOWED_TRANSITIONS.get(current_status or None, ())


def get_source_statuses(target_status):
    """Statuses from which target_status can be reached"""
    return [
        source for source, targets in ALLOWED_TRANSITIONS.items()
        if source is not None and target_status in targets
    ]


def validate_transition(current_status, target_status, action=None):
    """
    Raise InvalidStateError unless current_status -> target_status is allowed.

    Example:
        >>> validate_transition('SUBMITTED', 'TABLED', action='table')
        InvalidStateError: Loan must be VERIFIED to table (currently SUBMITTED)
    """
    if can_transition(current_status, target_status):
        return

    sources = get_source_statuses(target_status)
    if action and sources:
        message = f"Loan must be {' or '.join(sources)} to {action} (currently {current_status})"
    else:
        message = f"Cannot move loan from {current_status} to {target_status}"

    raise InvalidStateError(message, current_status=current_status, target_status=target_status)


# =============================================================================
# INTEREST CALCULATION
# =============================================================================

def calculate_disbursement_interest(principal, rate):
    """
    One-time simple interest charged at disbursement.

    Args:
        principal (Decimal): Loan amount
        rate (Decimal): Interest rate in percent of principal

    Returns:
        tuple: (interest, total_due)

    Example:
        >>> calculate_disbursement_interest(Decimal('10000'), Decimal('10'))
        (Decimal('1000.00'), Decimal('11000.00'))
    """
    principal = Decimal(str(principal))
    rate = Decimal(str(rate))

    interest = (principal * rate / Decimal('100')).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    total_due = (principal + interest).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    return interest, total_due


# =============================================================================
# REPAYMENT SCHEDULE
# =============================================================================

def calculate_repayment_schedule(total_due, repayment_weeks, amount_repaid,
                                 disbursed_at, now, grace_weeks):
    """
    Where a disbursed loan stands against its weekly installments.

    The first installment falls due once the grace period is over; after
    that one installment per completed week, capped at repayment_weeks.

    Args:
        total_due (Decimal): Principal plus interest
        repayment_weeks (int): Number of weekly installments
        amount_repaid (Decimal): Running total repaid
        disbursed_at (datetime): Disbursement timestamp
        now (datetime): Evaluation time
        grace_weeks (int): Weeks before the first installment

    Returns:
        dict: weekly_installment, weeks_passed, weeks_remaining,
              installments_due, expected_to_date, running_balance, status_text

    Example:
        11,000 over 10 weeks, grace 4, disbursed 6 weeks ago, 3,300 repaid
        -> installments_due 3, expected_to_date 3,300, AHEAD_OF_SCHEDULE
    """
    if not repayment_weeks or repayment_weeks <= 0:
        raise ValueError("repayment_weeks must be a positive number of weeks")
    if disbursed_at is None:
        raise ValueError("Loan has not been disbursed")

    total_due = Decimal(str(total_due))
    amount_repaid = Decimal(str(amount_repaid or 0))

    weekly_installment = (total_due / Decimal(repayment_weeks)).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )

    raw_weeks_passed = (now - disbursed_at) // timedelta(weeks=1)
    effective_weeks_passed = raw_weeks_passed - grace_weeks

    if effective_weeks_passed < 0:
        installments_due = 0
    else:
        installments_due = min(effective_weeks_passed + 1, repayment_weeks)

    # The full term always sums to total_due
    expected_to_date = (total_due * installments_due / Decimal(repayment_weeks)).quantize(
        TWO_PLACES, rounding=ROUND_HALF_UP
    )
    running_balance = (amount_repaid - expected_to_date).quantize(TWO_PLACES)

    if effective_weeks_passed < 0:
        status_text = GRACE_PERIOD
    elif running_balance < 0:
        status_text = IN_ARREARS
    else:
        # Exactly on track is reported as ahead of schedule
        status_text = AHEAD_OF_SCHEDULE

    return {
        'weekly_installment': weekly_installment,
        'weeks_passed': max(effective_weeks_passed, 0),
        'weeks_remaining': max(repayment_weeks - installments_due, 0),
        'installments_due': installments_due,
        'expected_to_date': expected_to_date,
        'running_balance': running_balance,
        'status_text': status_text,
    }


def calculate_loan_schedule(loan, now, grace_weeks):
    """calculate_repayment_schedule() for a LoanApplication"""
    return calculate_repayment_schedule(
        total_due=loan.total_due,
        repayment_weeks=loan.repayment_weeks,
        amount_repaid=loan.amount_repaid,
        disbursed_at=loan.disbursed_at,
        now=now,
        grace_weeks=grace_weeks,
    )


# =============================================================================
# DERIVED STANDING
# =============================================================================

def derive_loan_standing(schedule, loan):
    """
    Stored status a disbursed loan should carry given its schedule.

    - COMPLETED: everything due has been repaid
    - OVERDUE: the full term has elapsed with a balance outstanding
    - IN_ARREARS: behind the installments due so far
    - ACTIVE: otherwise

    Returns:
        str: LoanApplication.Status value
    """
    if loan.amount_repaid >= loan.total_due:
        return Status.COMPLETED

    if schedule['weeks_passed'] >= loan.repayment_weeks:
        return Status.OVERDUE

    if schedule['status_text'] == IN_ARREARS:
        return Status.IN_ARREARS

    return Status.ACTIVE
