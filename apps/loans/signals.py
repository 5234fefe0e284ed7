# loans/signals.py

"""
Loans Signals

- Application number generation (delegated to utils.py)
- Guarantor response logging
"""

from django.db.models.signals import pre_save, post_save
from django.dispatch import receiver
import logging

from .models import LoanApplication, GuarantorRequest

logger = logging.getLogger(__name__)


# =============================================================================
# LOAN APPLICATION SIGNALS
# =============================================================================

@receiver(pre_save, sender=LoanApplication)
def generate_application_number(sender, instance, **kwargs):
    """
    Generate application number if not set.
    Delegates to utils.generate_loan_application_number() for generation logic.
    """
    if not instance.application_number:
        from .utils import generate_loan_application_number

        instance.application_number = generate_loan_application_number()


@receiver(pre_save, sender=LoanApplication)
def protect_loan_owner(sender, instance, **kwargs):
    """The applicant of an existing application never changes."""
    if instance._state.adding:
        return

    owner_id = LoanApplication.objects.filter(pk=instance.pk).values_list('member_id', flat=True).first()
    if owner_id is not None and owner_id != instance.member_id:
        logger.error(f"Attempt to reassign loan {instance.application_number} to another member")
        raise ValueError("The applicant of a loan application cannot be changed")


# =============================================================================
# GUARANTOR SIGNALS
# =============================================================================

@receiver(post_save, sender=GuarantorRequest)
def log_guarantor_request(sender, instance, created, **kwargs):
    if created:
        logger.debug(
            f"Guarantor request {instance.pk} created for loan {instance.loan_application_id}"
        )
    elif instance.responded_at:
        logger.debug(f"Guarantor request {instance.pk} answered: {instance.status}")
