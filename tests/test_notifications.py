"""
test_notifications.py - Tests for the notification sink and inbox
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from members.models import Member
from notifications.models import Notification
from notifications.services import (
    get_inbox,
    mark_read,
    notify_all,
    notify_member,
    notify_role,
    queue_notification,
)

pytestmark = pytest.mark.django_db


class TestDelivery:

    def test_notify_member(self, member):
        note = notify_member(member, 'Your loan has been verified')

        assert note.member == member
        assert note.is_read is False

    def test_notify_all_skips_inactive_members(self, member, make_member):
        make_member('Dormant Member', is_active=False)

        count = notify_all('AGM on Saturday')

        assert count == 1
        assert Notification.objects.get().member == member

    def test_notify_all_with_per_member_message(self, member, other_members):
        notify_all(lambda m: f"Hello {m.full_name}")

        assert member.notifications.get().message == 'Hello Wanjiku Kamau'

    def test_notify_role(self, officials):
        assert notify_role(Member.Role.SECRETARY, 'Loan ready for review') == 1
        assert officials['secretary'].notifications.exists()
        assert not officials['treasurer'].notifications.exists()


class TestDeferredDelivery:

    def test_delivered_after_commit(self, member, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            queue_notification(notify_member, member, 'Queued')

        assert len(callbacks) == 1
        assert member.notifications.get().message == 'Queued'

    def test_failure_is_swallowed(self, member, django_capture_on_commit_callbacks):
        def broken(*args):
            raise RuntimeError('SMS gateway down')

        with django_capture_on_commit_callbacks(execute=True):
            queue_notification(broken, member, 'Lost')

        assert not member.notifications.exists()


class TestInbox:

    def test_grouping(self, member):
        unread = notify_member(member, 'New')
        recent = notify_member(member, 'Recent')
        old = notify_member(member, 'Old')
        Notification.objects.filter(pk__in=[recent.pk, old.pk]).update(is_read=True)
        Notification.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=30))

        inbox = get_inbox(member)

        assert inbox['unread'] == [unread]
        assert inbox['history'] == [recent]
        assert inbox['archive'] == [old]

    def test_mark_read(self, member, other_members):
        note = notify_member(member, 'Hello')

        assert mark_read(note.pk, other_members[0]) is False
        assert mark_read(note.pk, member) is True
        assert mark_read(note.pk, member) is False

        note.refresh_from_db()
        assert note.is_read is True
        assert note.read_at is not None
