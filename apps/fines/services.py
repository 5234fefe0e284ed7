# fines/services.py

"""
Fines Business Logic Services

Fines escalate lazily: there is no scheduler, so a fine's interest is only
charged when the fine is next read through get_member_fines() or
evaluate_and_persist().
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from decimal import Decimal
import logging

from core.exceptions import ValidationError, NotFoundError
from core.utils import atomic_operation, format_money, get_sacco_now
from notifications.services import notify_member, queue_notification
from .forms import FineForm
from .models import MemberFine
from .utils import escalate_fine

logger = logging.getLogger(__name__)


class FineService:
    """Imposing and escalating member fines"""

    @staticmethod
    def impose_fine(member, title, amount, description='', actor=None, now=None):
        """
        Impose a new OPEN fine.

        Raises:
            ValidationError: missing title or non-positive amount
        """
        form = FineForm(data={'title': title, 'amount': amount, 'description': description or ''})
        if not form.is_valid():
            raise ValidationError.from_form(form)

        data = form.cleaned_data
        now = get_sacco_now(now)

        with atomic_operation('impose fine'):
            fine = MemberFine(
                member=member,
                title=data['title'],
                description=data['description'],
                original_amount=data['amount'],
                current_balance=data['amount'],
                date_created=now,
            )
            fine.stamp_actor(actor)
            fine.save()

            queue_notification(
                notify_member, member,
                f"You have been fined {format_money(data['amount'])}: {data['title']}"
            )

        logger.info(f"Fine '{fine.title}' of {fine.original_amount} imposed on member {member.member_number}")
        return fine

    @staticmethod
    def evaluate_and_persist(fine, now=None):
        """
        Escalate one fine if a stage is due and save it only when it changed.

        Returns:
            tuple: (MemberFine, changed)
        """
        now = get_sacco_now(now)
        pk = fine.pk if isinstance(fine, MemberFine) else fine

        with transaction.atomic():
            try:
                fine = MemberFine.objects.select_for_update().get(pk=pk)
            except (MemberFine.DoesNotExist, DjangoValidationError, ValueError):
                raise NotFoundError(f"Fine {pk} not found")

            if fine.is_cleared or not escalate_fine(fine, now):
                return fine, False

            fine.set_change_reason(f"Interest escalated to {fine.interest_stage}")
            fine.save(update_fields=[
                'current_balance',
                'interest_stage',
                'date_stage_1_applied',
                'date_stage_2_applied',
                'change_reason',
                'updated_at',
            ])

        logger.info(
            f"Fine {fine.pk} escalated to {fine.interest_stage}; balance now {fine.current_balance}"
        )
        return fine, True

    @classmethod
    def get_member_fines(cls, member, now=None, include_cleared=False):
        """
        A member's fines with escalation applied as of `now`.

        Returns:
            list: MemberFine instances, newest first
        """
        now = get_sacco_now(now)
        fines = MemberFine.objects.filter(member=member)
        if not include_cleared:
            fines = fines.filter(status=MemberFine.Status.OPEN)

        result = []
        for fine in fines.order_by('-date_created'):
            if not fine.is_cleared:
                fine, _ = cls.evaluate_and_persist(fine, now)
            result.append(fine)
        return result

    @classmethod
    def get_outstanding_total(cls, member, now=None):
        """Sum of open fine balances after escalation"""
        return sum(
            (f.current_balance for f in cls.get_member_fines(member, now)),
            Decimal('0.00')
        )
