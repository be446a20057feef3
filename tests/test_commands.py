from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from backoffice import fcm
from backoffice.models import Order, OrderStatus

pytestmark = pytest.mark.django_db


def run(*args):
    out, err = StringIO(), StringIO()
    call_command('send_feedback_requests', *args, stdout=out, stderr=err)
    return out.getvalue(), err.getvalue()


@pytest.fixture
def due_order(make_order):
    def _make(**kwargs):
        kwargs.setdefault('status', OrderStatus.DELIVERED)
        kwargs.setdefault('feedback_send_at', timezone.now() - timedelta(minutes=5))
        kwargs.setdefault('feedback_sent', False)
        return make_order(**kwargs)
    return _make


class TestSendFeedbackRequests:

    def test_nothing_due(self, due_order):
        due_order(feedback_send_at=timezone.now() + timedelta(hours=1))
        out, _ = run()
        assert 'No feedback requests due.' in out

    def test_sends_due_requests(self, due_order, push):
        order = due_order()
        out, _ = run()
        assert 'Feedback requests: 1 sent, 0 skipped, 0 failed.' in out
        assert len(push.single) == 1
        assert push.single[0]['title'] == 'How was your order?'
        assert push.single[0]['data']['type'] == 'feedback_request'
        order.refresh_from_db()
        assert order.feedback_sent is True
        assert order.feedback_sent_at is not None

    def test_rated_or_tokenless_orders_are_skipped(self, due_order, push):
        rated = due_order(has_rating=True)
        tokenless = due_order(customer_fcm_token='')
        out, _ = run()
        assert '0 sent, 2 skipped, 0 failed' in out
        assert push.single == []
        assert Order.objects.filter(pk__in=[rated.pk, tokenless.pk], feedback_sent=True).count() == 2

    def test_already_sent_is_not_repeated(self, due_order, push):
        due_order(feedback_sent=True)
        out, _ = run()
        assert 'No feedback requests due.' in out
        assert push.single == []

    def test_failure_is_recorded(self, due_order, monkeypatch):
        def broken(*args, **kwargs):
            raise OSError('connection reset')
        monkeypatch.setattr(fcm, 'send_fcm_to_token', broken)
        order = due_order()
        out, err = run()
        assert '0 sent, 0 skipped, 1 failed' in out
        assert 'connection reset' in err
        order.refresh_from_db()
        assert order.feedback_sent is True
        assert order.feedback_error == 'connection reset'

    def test_rejected_token_is_recorded(self, due_order, push):
        order = due_order()
        push.rejected.add('customer-token')
        out, err = run()
        assert '0 sent, 0 skipped, 1 failed' in out
        assert 'rejected' in err
        order.refresh_from_db()
        assert order.feedback_sent is True
        assert order.feedback_sent_at is None
        assert order.feedback_error == 'FCM rejected the customer token'

    def test_dry_run_changes_nothing(self, due_order, push):
        order = due_order()
        out, _ = run('--dry-run')
        assert 'Dry run: 1 feedback request(s) due.' in out
        assert push.single == []
        order.refresh_from_db()
        assert order.feedback_sent is False

    def test_limit(self, due_order, push):
        for _ in range(3):
            due_order()
        run('--limit', '2')
        assert len(push.single) == 2
        assert Order.objects.filter(feedback_sent=False).count() == 1
