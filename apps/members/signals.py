# members/signals.py

"""
Members Signals

- Member number generation (delegated to utils.py)
- Role change logging
"""

from django.db.models.signals import pre_save
from django.dispatch import receiver
import logging

from .models import Member

logger = logging.getLogger(__name__)


# =============================================================================
# MEMBER SIGNALS
# =============================================================================

@receiver(pre_save, sender=Member)
def generate_member_number(sender, instance, **kwargs):
    """Generate member number if not set."""
    if not instance.member_number:
        from .utils import generate_member_number as gen_number

        instance.member_number = gen_number('MBR')


@receiver(pre_save, sender=Member)
def log_role_change(sender, instance, **kwargs):
    """Log when a member is moved into or out of an office."""
    if instance._state.adding:
        return

    old_role = Member.objects.filter(pk=instance.pk).values_list('role', flat=True).first()
    if old_role and old_role != instance.role:
        logger.info(f"Member {instance.member_number} role changed: {old_role} -> {instance.role}")
