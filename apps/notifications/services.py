# notifications/services.py

"""
Notification Sink

Fire-and-forget delivery of in-app messages triggered by loan lifecycle
transitions. Delivery is best-effort:

- Messages are queued with transaction.on_commit(), so nothing is sent for a
  transition that rolls back, and a delivery failure can never roll back the
  transition that triggered it.
- Failures are logged and swallowed.

Email/SMS fan-out is handled by collaborators reading the Notification table.
"""

from django.db import transaction
from django.utils import timezone
from datetime import timedelta
import logging

from .models import Notification

logger = logging.getLogger(__name__)

INBOX_HISTORY_DAYS = 14


# =============================================================================
# DELIVERY
# =============================================================================

def notify_member(member, message):
    """
    Store a notification for one member.

    Returns:
        Notification or None: None when delivery failed
    """
    try:
        notification = Notification.objects.create(member=member, message=message)
        logger.debug(f"Notified member {member.pk}: {message}")
        return notification
    except Exception as e:
        logger.error(f"Failed to notify member {getattr(member, 'pk', member)}: {e}", exc_info=True)
        return None


def notify_members(members, message):
    """
    Notify several members.

    Args:
        members: iterable of Member
        message: str, or a callable taking a Member and returning str

    Returns:
        int: Number of notifications stored
    """
    try:
        rows = [
            Notification(member=m, message=message(m) if callable(message) else message)
            for m in members
        ]
        Notification.objects.bulk_create(rows)
        return len(rows)
    except Exception as e:
        logger.error(f"Failed to broadcast notification: {e}", exc_info=True)
        return 0


def notify_all(message):
    """Notify every active member (message may be a per-member builder)"""
    from members.models import Member

    count = notify_members(Member.get_active_members(), message)
    logger.info(f"Broadcast notification to {count} members")
    return count


def notify_role(role, message):
    """Notify every active member holding a role"""
    from members.models import Member

    return notify_members(Member.get_by_role(role), message)


def notify_roles(roles, message):
    total = 0
    for role in roles:
        total += notify_role(role, message)
    return total


# =============================================================================
# DEFERRED DELIVERY
# =============================================================================

def _deliver_safely(func, *args):
    try:
        func(*args)
    except Exception as e:
        logger.error(f"Deferred notification {func.__name__} failed: {e}", exc_info=True)


def queue_notification(func, *args):
    """
    Run a notify_* function once the surrounding transaction commits.

    Usage:
        with transaction.atomic():
            loan.status = 'VERIFIED'
            loan.save()
            queue_notification(notify_member, loan.member, "Verified")
    """
    transaction.on_commit(lambda: _deliver_safely(func, *args))


# =============================================================================
# INBOX
# =============================================================================

def get_inbox(member, now=None):
    """
    Group a member's notifications for display.

    Returns:
        dict: {'unread': [...], 'history': [...], 'archive': [...]}
            history = read within the last 14 days, archive = older read ones
    """
    now = now or timezone.now()
    cutoff = now - timedelta(days=INBOX_HISTORY_DAYS)

    inbox = {'unread': [], 'history': [], 'archive': []}
    for note in Notification.objects.filter(member=member).order_by('-created_at'):
        if not note.is_read:
            inbox['unread'].append(note)
        elif note.created_at >= cutoff:
            inbox['history'].append(note)
        else:
            inbox['archive'].append(note)
    return inbox


def mark_read(notification_id, member, now=None):
    """
    Mark one of the member's notifications as read.

    Returns:
        bool: True if a notification was updated
    """
    updated = Notification.objects.filter(
        pk=notification_id, member=member, is_read=False
    ).update(is_read=True, read_at=now or timezone.now())
    return updated > 0
