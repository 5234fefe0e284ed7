# loans/models.py

from django.db import models
from django.db.models import Q
from django.core.validators import MinValueValidator
from decimal import Decimal

from utils.models import BaseModel

import logging

logger = logging.getLogger(__name__)


# =============================================================================
# LOAN APPLICATION MODEL
# =============================================================================

class LoanApplication(BaseModel):
    """
    A member's loan, from fee payment through repayment.

    The row is created in FEE_PENDING and then only ever moves forward
    through the transition table in loans.utils. Terminal rows (REJECTED,
    COMPLETED) are kept forever.
    """

    class Status(models.TextChoices):
        FEE_PENDING = 'FEE_PENDING', 'Fee Pending'
        FEE_PAID = 'FEE_PAID', 'Fee Paid'
        PENDING_GUARANTORS = 'PENDING_GUARANTORS', 'Pending Guarantors'
        SUBMITTED = 'SUBMITTED', 'Submitted'
        VERIFIED = 'VERIFIED', 'Verified'
        TABLED = 'TABLED', 'Tabled'
        VOTING = 'VOTING', 'Voting'
        APPROVED = 'APPROVED', 'Approved'
        REJECTED = 'REJECTED', 'Rejected'
        ACTIVE = 'ACTIVE', 'Active'
        IN_ARREARS = 'IN_ARREARS', 'In Arrears'
        OVERDUE = 'OVERDUE', 'Overdue'
        COMPLETED = 'COMPLETED', 'Completed'

    TERMINAL_STATUSES = (Status.REJECTED, Status.COMPLETED)

    # Loans whose principal has left the treasury
    DISBURSED_STATUSES = (
        Status.ACTIVE,
        Status.COMPLETED,
        Status.IN_ARREARS,
        Status.OVERDUE,
    )

    # Loans still being repaid
    REPAYABLE_STATUSES = (Status.ACTIVE, Status.IN_ARREARS, Status.OVERDUE)

    application_number = models.CharField(
        "Application Number",
        max_length=50,
        unique=True,
        blank=True,
        help_text="Generated when blank, e.g. LA-20250115143025-0001"
    )

    member = models.ForeignKey(
        'members.Member',
        on_delete=models.PROTECT,
        related_name='loan_applications'
    )

    status = models.CharField(
        "Status",
        max_length=20,
        choices=Status.choices,
        default=Status.FEE_PENDING,
        db_index=True
    )

    # Details (set on submission)
    amount_requested = models.DecimalField(
        "Amount Requested",
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.01'))]
    )

    purpose = models.CharField(
        "Purpose",
        max_length=200,
        blank=True,
        default=''
    )

    repayment_weeks = models.PositiveIntegerField(
        "Repayment Period (Weeks)",
        null=True,
        blank=True
    )

    # Processing fee
    fee_amount = models.DecimalField(
        "Processing Fee",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )

    fee_transaction_ref = models.CharField(
        "Fee Transaction Reference",
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text="Reference of the fee payment linked to this application"
    )

    # Set on disbursement
    interest_amount = models.DecimalField(
        "Interest",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )

    total_due = models.DecimalField(
        "Total Due",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00')
    )

    amount_repaid = models.DecimalField(
        "Amount Repaid",
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Running total; may exceed total due"
    )

    disbursed_at = models.DateTimeField(
        "Disbursed At",
        null=True,
        blank=True
    )

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def outstanding_balance(self):
        """Amount left to repay, never negative"""
        return max(self.total_due - self.amount_repaid, Decimal('0.00'))

    @classmethod
    def get_open_application(cls, member):
        """The member's single non-terminal application, if any"""
        return cls.objects.filter(member=member).exclude(
            status__in=cls.TERMINAL_STATUSES
        ).first()

    def __str__(self):
        return f"{self.application_number} - {self.member.get_full_name()} ({self.get_status_display()})"

    class Meta:
        verbose_name = 'Loan Application'
        verbose_name_plural = 'Loan Applications'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['member'],
                condition=~Q(status__in=['REJECTED', 'COMPLETED']),
                name='one_open_application_per_member'
            ),
        ]
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['member', 'status']),
        ]


# =============================================================================
# GUARANTOR REQUEST MODEL
# =============================================================================

class GuarantorRequest(BaseModel):
    """Invitation for a member to guarantee a loan"""

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        ACCEPTED = 'ACCEPTED', 'Accepted'
        REJECTED = 'REJECTED', 'Rejected'

    loan_application = models.ForeignKey(
        LoanApplication,
        on_delete=models.PROTECT,
        related_name='guarantor_requests'
    )

    guarantor = models.ForeignKey(
        'members.Member',
        on_delete=models.PROTECT,
        related_name='guarantor_requests',
        help_text="Member asked to guarantee the loan"
    )

    status = models.CharField(
        "Status",
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )

    responded_at = models.DateTimeField(
        "Responded At",
        null=True,
        blank=True
    )

    @property
    def is_pending(self):
        return self.status == self.Status.PENDING

    def __str__(self):
        return f"{self.guarantor.get_full_name()} for {self.loan_application.application_number} - {self.get_status_display()}"

    class Meta:
        verbose_name = 'Guarantor Request'
        verbose_name_plural = 'Guarantor Requests'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['loan_application', 'guarantor'],
                name='unique_guarantor_per_loan'
            ),
        ]
        indexes = [
            models.Index(fields=['guarantor', 'status']),
        ]


# =============================================================================
# VOTE MODEL
# =============================================================================

class Vote(BaseModel):
    """A member's ballot on a loan under vote. Immutable once cast."""

    class Decision(models.TextChoices):
        YES = 'YES', 'Yes'
        NO = 'NO', 'No'

    loan_application = models.ForeignKey(
        LoanApplication,
        on_delete=models.PROTECT,
        related_name='votes'
    )

    member = models.ForeignKey(
        'members.Member',
        on_delete=models.PROTECT,
        related_name='loan_votes'
    )

    decision = models.CharField(
        "Decision",
        max_length=3,
        choices=Decision.choices
    )

    def __str__(self):
        return f"{self.member.get_full_name()} voted {self.decision} on {self.loan_application.application_number}"

    class Meta:
        verbose_name = 'Vote'
        verbose_name_plural = 'Votes'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['loan_application', 'member'],
                name='unique_vote_per_member'
            ),
        ]


# =============================================================================
# STATUS HISTORY MODEL
# =============================================================================

class LoanStatusChange(BaseModel):
    """Append-only record of every status write on a loan"""

    loan_application = models.ForeignKey(
        LoanApplication,
        on_delete=models.PROTECT,
        related_name='status_history'
    )

    from_status = models.CharField(
        "From",
        max_length=20,
        choices=LoanApplication.Status.choices,
        blank=True,
        default=''
    )

    to_status = models.CharField(
        "To",
        max_length=20,
        choices=LoanApplication.Status.choices
    )

    actor = models.ForeignKey(
        'members.Member',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='loan_status_changes',
        help_text="Member who triggered the change; empty for derived changes"
    )

    note = models.CharField(
        "Note",
        max_length=255,
        blank=True,
        default=''
    )

    def __str__(self):
        return f"{self.loan_application.application_number}: {self.from_status or '-'} -> {self.to_status}"

    class Meta:
        verbose_name = 'Loan Status Change'
        verbose_name_plural = 'Loan Status Changes'
        ordering = ['created_at']
