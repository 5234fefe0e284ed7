# loans/forms.py

"""
Input validation for loan lifecycle operations.

Services bind these forms to the raw values they are given and raise
core.exceptions.ValidationError when a form is invalid, before touching
any loan row.
"""

from django import forms
from django.core.exceptions import ValidationError
from decimal import Decimal

from .models import GuarantorRequest, Vote, LoanApplication

import logging

logger = logging.getLogger(__name__)

MIN_LOAN_AMOUNT = Decimal('500')
MAX_LOAN_AMOUNT = Decimal('1000000')
MIN_REPAYMENT_WEEKS = 1
MAX_REPAYMENT_WEEKS = 52


# =============================================================================
# APPLICATION FORMS
# =============================================================================

class LoanDetailsForm(forms.Form):
    """Amount, purpose and term submitted after the fee is paid"""

    amount = forms.DecimalField(
        label='Amount',
        max_digits=12,
        decimal_places=2,
        min_value=MIN_LOAN_AMOUNT,
        max_value=MAX_LOAN_AMOUNT,
        error_messages={
            'min_value': 'Minimum loan amount is 500',
            'max_value': 'Maximum loan amount is 1,000,000',
        }
    )

    purpose = forms.CharField(
        label='Purpose',
        min_length=5,
        max_length=200,
        error_messages={
            'min_length': 'Purpose must be at least 5 characters',
            'max_length': 'Purpose must be at most 200 characters',
        }
    )

    repayment_weeks = forms.IntegerField(
        label='Repayment Period (Weeks)',
        min_value=MIN_REPAYMENT_WEEKS,
        max_value=MAX_REPAYMENT_WEEKS,
        error_messages={
            'min_value': 'Repayment period must be at least 1 week',
            'max_value': 'Repayment period cannot exceed 52 weeks',
        }
    )

    def clean_purpose(self):
        purpose = (self.cleaned_data.get('purpose') or '').strip()
        if len(purpose) < 5:
            raise ValidationError('Purpose must be at least 5 characters')
        return purpose


class FeeReferenceForm(forms.Form):
    reference = forms.CharField(label='Payment Reference', max_length=100)

    def clean_reference(self):
        return self.cleaned_data['reference'].strip().upper()


# =============================================================================
# GUARANTOR & VOTING FORMS
# =============================================================================

class GuarantorResponseForm(forms.Form):
    """Guarantor's answer to an invitation (DECLINED is accepted as REJECTED)"""

    decision = forms.CharField(label='Decision', max_length=10)

    def clean_decision(self):
        decision = self.cleaned_data['decision'].strip().upper()
        if decision == 'DECLINED':
            decision = GuarantorRequest.Status.REJECTED
        if decision not in (GuarantorRequest.Status.ACCEPTED, GuarantorRequest.Status.REJECTED):
            raise ValidationError('Decision must be ACCEPTED or REJECTED')
        return decision


class VoteForm(forms.Form):
    decision = forms.CharField(label='Decision', max_length=3)

    def clean_decision(self):
        decision = self.cleaned_data['decision'].strip().upper()
        if decision not in Vote.Decision.values:
            raise ValidationError('Vote must be YES or NO')
        return decision


class FinalizeForm(forms.Form):
    """Secretary's recorded outcome of the vote"""

    decision = forms.CharField(label='Decision', max_length=10)

    def clean_decision(self):
        decision = self.cleaned_data['decision'].strip().upper()
        if decision not in (LoanApplication.Status.APPROVED, LoanApplication.Status.REJECTED):
            raise ValidationError('Decision must be APPROVED or REJECTED')
        return decision


# =============================================================================
# REPAYMENT FORMS
# =============================================================================

class RepaymentForm(forms.Form):
    amount = forms.DecimalField(
        label='Amount',
        max_digits=12,
        decimal_places=2
    )

    reference = forms.CharField(
        label='Payment Reference',
        max_length=100,
        required=False
    )

    def clean_amount(self):
        amount = self.cleaned_data.get('amount')
        if amount is not None and amount <= Decimal('0.00'):
            raise ValidationError('Repayment amount must be greater than zero')
        return amount

    def clean_reference(self):
        return (self.cleaned_data.get('reference') or '').strip().upper()
