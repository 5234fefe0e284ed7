# savings/forms.py

from django import forms
from django.core.exceptions import ValidationError
from django.core.validators import RegexValidator
from decimal import Decimal

import logging

logger = logging.getLogger(__name__)

MIN_DEPOSIT_AMOUNT = Decimal('50.00')

mpesa_code_validator = RegexValidator(
    regex=r'^[A-Z0-9]{10}$',
    message='Reference must be a 10-character M-PESA code (letters and digits)'
)


# =============================================================================
# DEPOSIT FORMS
# =============================================================================

class DepositForm(forms.Form):
    """Savings deposit input"""

    amount = forms.DecimalField(
        label='Amount',
        max_digits=12,
        decimal_places=2,
        min_value=MIN_DEPOSIT_AMOUNT
    )

    reference = forms.CharField(
        label='Transaction Reference',
        max_length=100,
        required=False
    )

    def clean_reference(self):
        return (self.cleaned_data.get('reference') or '').strip().upper()


class FeePaymentForm(forms.Form):
    """Loan processing fee receipt"""

    reference = forms.CharField(
        label='M-PESA Code',
        max_length=10
    )

    amount = forms.DecimalField(
        label='Amount',
        max_digits=12,
        decimal_places=2
    )

    def clean_reference(self):
        reference = (self.cleaned_data.get('reference') or '').strip().upper()
        mpesa_code_validator(reference)
        return reference

    def clean_amount(self):
        amount = self.cleaned_data.get('amount')
        if amount is not None and amount <= Decimal('0.00'):
            raise ValidationError('Amount must be greater than zero')
        return amount
