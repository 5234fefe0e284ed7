# members/models.py

from django.db import models
from utils.models import BaseModel
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# CORE MEMBER MODEL
# =============================================================================

class Member(BaseModel):
    """
    Member of the SACCO.

    Officials (secretary, treasurer, loan officer, chairperson) are members
    too; their role decides which lifecycle transitions they trigger and
    which notifications they receive. Authentication lives outside the engine.
    """

    class Role(models.TextChoices):
        MEMBER = 'MEMBER', 'Member'
        SECRETARY = 'SECRETARY', 'Secretary'
        TREASURER = 'TREASURER', 'Treasurer'
        LOAN_OFFICER = 'LOAN_OFFICER', 'Loan Officer'
        CHAIRPERSON = 'CHAIRPERSON', 'Chairperson'
        ADMIN = 'ADMIN', 'Administrator'

    member_number = models.CharField(
        "Member Number",
        max_length=20,
        unique=True,
        blank=True,
        help_text="Unique membership number, generated when blank"
    )

    full_name = models.CharField(
        "Full Name",
        max_length=150
    )

    email = models.EmailField(
        "Email",
        null=True,
        blank=True
    )

    phone_number = models.CharField(
        "Phone Number",
        max_length=20,
        null=True,
        blank=True
    )

    role = models.CharField(
        "Role",
        max_length=15,
        choices=Role.choices,
        default=Role.MEMBER,
        db_index=True
    )

    is_active = models.BooleanField(
        "Is Active",
        default=True,
        help_text="Inactive members are skipped by compliance checks and broadcasts"
    )

    def get_full_name(self):
        return self.full_name

    @classmethod
    def get_active_members(cls):
        return cls.objects.filter(is_active=True)

    @classmethod
    def get_by_role(cls, role):
        """Active members holding a given role"""
        return cls.objects.filter(role=role, is_active=True)

    def __str__(self):
        return f"{self.full_name} ({self.member_number})"

    class Meta:
        verbose_name = 'Member'
        verbose_name_plural = 'Members'
        ordering = ['full_name']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]
