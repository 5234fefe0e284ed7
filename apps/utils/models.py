# utils/models.py

from django.db import models
import uuid
import logging

logger = logging.getLogger(__name__)

# =============================================================================
# BASE MODEL - SHARED AUDIT FIELDS
# =============================================================================

class BaseModel(models.Model):
    """
    Base model for every SACCO record.

    Features:
    - UUID primary key
    - Created/updated timestamps
    - Actor tracking (which member created/last updated the row)
    - Change reason tracking (why the last change was made)

    Actor ids are plain CharFields so that a record can be stamped by
    collaborators that identify users outside the members table.
    """

    # Core identification
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Timestamp fields
    created_at = models.DateTimeField("Created At", auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField("Updated At", auto_now=True, db_index=True)

    # User tracking
    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of member who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of member who last updated this record"
    )

    # Change reason tracking
    change_reason = models.CharField("Change Reason", max_length=255, blank=True, null=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Log creation of new rows; updates are logged by the services that make them."""
        is_new = self._state.adding
        result = super().save(*args, **kwargs)

        if is_new:
            logger.debug(f"Created {self.__class__.__name__} {self.pk}")

        return result

    # -------------------------------------------------------------------------
    # AUDIT TRAIL HELPER METHODS
    # -------------------------------------------------------------------------

    def stamp_actor(self, actor):
        """
        Record who is making the current change.

        Args:
            actor: Member instance (or None for system actions)
        """
        if actor is None:
            return

        actor_id = str(actor.pk)
        if self._state.adding and not self.created_by_id:
            self.created_by_id = actor_id
        self.updated_by_id = actor_id

    def set_change_reason(self, reason):
        """
        Set the reason for the next change to this object.

        Usage:
            loan.set_change_reason("Fee reconciled from M-PESA statement")
            loan.save()
        """
        self.change_reason = reason[:255] if reason else reason
