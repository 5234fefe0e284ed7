# fines/forms.py

from django import forms
from django.core.exceptions import ValidationError
from decimal import Decimal


class FineForm(forms.Form):
    """Fine imposed on a member by an official"""

    title = forms.CharField(label='Title', min_length=3, max_length=100)

    amount = forms.DecimalField(
        label='Amount',
        max_digits=12,
        decimal_places=2
    )

    description = forms.CharField(
        label='Description',
        max_length=1000,
        required=False
    )

    def clean_amount(self):
        amount = self.cleaned_data.get('amount')
        if amount is not None and amount <= Decimal('0.00'):
            raise ValidationError('Fine amount must be greater than zero')
        return amount
