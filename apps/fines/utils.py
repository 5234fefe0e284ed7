# fines/utils.py

"""
Fine interest escalation.

Pure functions: they compute what a fine should look like at a given time
and never touch the database. fines.services persists the result.
"""

from decimal import Decimal, ROUND_HALF_UP
import logging

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')

STAGE_1_AFTER_DAYS = 30
STAGE_1_RATE = Decimal('0.20')
STAGE_2_AFTER_DAYS = 365
STAGE_2_RATE = Decimal('0.50')

NONE = 'NONE'
STAGE_1_20 = 'STAGE_1_20'
STAGE_2_50 = 'STAGE_2_50'
CLEARED = 'CLEARED'


def whole_days_between(start, end):
    """Whole days elapsed from start to end, rounded down"""
    return (end - start).days


def compute_fine_escalation(original_amount, current_balance, interest_stage,
                            date_created, date_stage_1_applied, now, status='OPEN'):
    """
    Apply the escalation rules to a fine's current state.

    Stage 1: NONE and more than 30 days since the fine was imposed
             -> balance + 20% of the original amount
    Stage 2: STAGE_1_20 and more than 365 days since stage 1
             -> balance + 50% of the current balance

    Both rules are checked in one pass, stage 2 against the stage 1 date
    as it stands after rule 1.

    Returns:
        dict: current_balance, interest_stage, date_stage_1_applied,
              date_stage_2_applied (None when not applied now), changed

    Example:
        original 1,000 imposed 31 days ago -> 1,200, STAGE_1_20
        STAGE_1_20 balance 1,200, stage 1 applied 366 days ago -> 1,800, STAGE_2_50
    """
    result = {
        'current_balance': Decimal(str(current_balance)),
        'interest_stage': interest_stage,
        'date_stage_1_applied': date_stage_1_applied,
        'date_stage_2_applied': None,
        'changed': False,
    }

    if status == CLEARED:
        return result

    original = Decimal(str(original_amount))

    if (result['interest_stage'] == NONE
            and whole_days_between(date_created, now) > STAGE_1_AFTER_DAYS):
        interest = (original * STAGE_1_RATE).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        result['current_balance'] += interest
        result['interest_stage'] = STAGE_1_20
        result['date_stage_1_applied'] = now
        result['changed'] = True

    if (result['interest_stage'] == STAGE_1_20
            and result['date_stage_1_applied'] is not None
            and whole_days_between(result['date_stage_1_applied'], now) > STAGE_2_AFTER_DAYS):
        interest = (result['current_balance'] * STAGE_2_RATE).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        result['current_balance'] += interest
        result['interest_stage'] = STAGE_2_50
        result['date_stage_2_applied'] = now
        result['changed'] = True

    return result


def escalate_fine(fine, now):
    """
    Apply compute_fine_escalation() to a MemberFine instance in memory.

    Returns:
        bool: True if the fine changed and needs saving
    """
    result = compute_fine_escalation(
        original_amount=fine.original_amount,
        current_balance=fine.current_balance,
        interest_stage=fine.interest_stage,
        date_created=fine.date_created,
        date_stage_1_applied=fine.date_stage_1_applied,
        now=now,
        status=fine.status,
    )

    if not result['changed']:
        return False

    fine.current_balance = result['current_balance']
    fine.interest_stage = result['interest_stage']
    fine.date_stage_1_applied = result['date_stage_1_applied']
    if result['date_stage_2_applied'] is not None:
        fine.date_stage_2_applied = result['date_stage_2_applied']
    return True
