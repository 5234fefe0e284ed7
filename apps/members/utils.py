# members/utils.py

"""
Members Utility Functions

- Member number generation logic
"""

from django.db import transaction
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# MEMBER NUMBER GENERATION
# =============================================================================

def generate_member_number(prefix='MBR', width=4):
    """
    Generate sequential member number.

    Format: PREFIX + zero-padded number
    Example:
        MBR0001
        MBR0002
    """
    from members.models import Member

    with transaction.atomic():
        last_member = (
            Member.objects
            .select_for_update()
            .filter(member_number__startswith=prefix)
            .order_by('-member_number')
            .first()
        )

        next_number = 1
        if last_member:
            try:
                next_number = int(last_member.member_number[len(prefix):]) + 1
            except ValueError:
                next_number = Member.objects.filter(member_number__startswith=prefix).count() + 1

        member_number = f"{prefix}{str(next_number).zfill(width)}"

        logger.info(f"Generated member number: {member_number}")
        return member_number
