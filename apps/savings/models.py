# savings/models.py

from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal

from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# DEPOSIT MODEL
# =============================================================================

class Deposit(BaseModel):
    """
    Member savings ledger.

    Positive rows are deposits; penalties auto-deducted from savings are
    stored as negative DEDUCTION rows so that a plain SUM gives the balance.
    """

    class DepositType(models.TextChoices):
        DEPOSIT = 'DEPOSIT', 'Deposit'
        DEDUCTION = 'DEDUCTION', 'Deduction'

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        COMPLETED = 'COMPLETED', 'Completed'
        FAILED = 'FAILED', 'Failed'

    member = models.ForeignKey(
        'members.Member',
        on_delete=models.PROTECT,
        related_name='deposits'
    )

    amount = models.DecimalField(
        "Amount",
        max_digits=12,
        decimal_places=2,
        help_text="Negative for deductions"
    )

    deposit_type = models.CharField(
        "Type",
        max_length=10,
        choices=DepositType.choices,
        default=DepositType.DEPOSIT
    )

    transaction_ref = models.CharField(
        "Transaction Reference",
        max_length=100,
        unique=True
    )

    status = models.CharField(
        "Status",
        max_length=10,
        choices=Status.choices,
        default=Status.COMPLETED,
        db_index=True
    )

    def __str__(self):
        return f"{self.get_deposit_type_display()} {self.amount} ({self.transaction_ref})"

    class Meta:
        verbose_name = 'Deposit'
        verbose_name_plural = 'Deposits'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['member', 'status', 'created_at']),
        ]


# =============================================================================
# TRANSACTION MODEL
# =============================================================================

class Transaction(BaseModel):
    """
    Cash movements other than savings deposits: fees, fines, disbursements
    and repayments. The treasury snapshot aggregates this table by type.
    """

    class TransactionType(models.TextChoices):
        FEE_PAYMENT = 'FEE_PAYMENT', 'Loan Processing Fee'
        LOAN_FORM_FEE = 'LOAN_FORM_FEE', 'Loan Form Fee'
        LOAN_DISBURSEMENT = 'LOAN_DISBURSEMENT', 'Loan Disbursement'
        LOAN_REPAYMENT = 'LOAN_REPAYMENT', 'Loan Repayment'
        FINE = 'FINE', 'Fine'
        PENALTY = 'PENALTY', 'Penalty'
        REGISTRATION_FEE = 'REGISTRATION_FEE', 'Registration Fee'
        SHARE_CAPITAL = 'SHARE_CAPITAL', 'Share Capital'
        DEPOSIT = 'DEPOSIT', 'Deposit'
        OTHER = 'OTHER', 'Other Income'

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        COMPLETED = 'COMPLETED', 'Completed'
        FAILED = 'FAILED', 'Failed'

    # Types that pay the loan processing fee
    PROCESSING_FEE_TYPES = (TransactionType.FEE_PAYMENT, TransactionType.LOAN_FORM_FEE)

    # Types excluded from "other income" in the treasury snapshot
    NON_INCOME_TYPES = (
        TransactionType.LOAN_DISBURSEMENT,
        TransactionType.DEPOSIT,
        TransactionType.LOAN_REPAYMENT,
    )

    member = models.ForeignKey(
        'members.Member',
        on_delete=models.PROTECT,
        related_name='transactions'
    )

    transaction_type = models.CharField(
        "Type",
        max_length=20,
        choices=TransactionType.choices,
        db_index=True
    )

    amount = models.DecimalField(
        "Amount",
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )

    reference_code = models.CharField(
        "Reference Code",
        max_length=100,
        unique=True,
        help_text="M-PESA code or generated reference"
    )

    description = models.CharField(
        "Description",
        max_length=255,
        blank=True,
        default=''
    )

    status = models.CharField(
        "Status",
        max_length=10,
        choices=Status.choices,
        default=Status.COMPLETED,
        db_index=True
    )

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} ({self.reference_code})"

    class Meta:
        verbose_name = 'Transaction'
        verbose_name_plural = 'Transactions'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['member', 'transaction_type', 'created_at']),
        ]
