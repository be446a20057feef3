"""
Shared fixtures. Push and gateway calls are replaced by recorders so no
test ever reaches FCM or a smart-home gateway.
"""
from decimal import Decimal

import pytest

from backoffice import fcm, smart_notify
from backoffice.models import (
    Business,
    DeliveryStaffing,
    FulfillmentType,
    Order,
    OrderStatus,
    PaymentMethod,
    ShiftStatus,
    Staff,
    SubscriptionPlan,
)


class PushRecorder:
    """Collects every push the code under test tries to send."""

    def __init__(self):
        self.single = []
        self.multicast = []
        self.gateway = []
        # Tokens FCM reports as failed
        self.rejected = set()

    def send_fcm_to_token(self, token, title, body, data=None):
        self.single.append({'token': token, 'title': title, 'body': body, 'data': data or {}})
        return token not in self.rejected

    def send_fcm_multicast(self, tokens, title, body, data=None):
        self.multicast.append({'tokens': list(tokens), 'title': title, 'body': body, 'data': data or {}})
        return len(tokens), 0

    def notify_gateway(self, business, event, order):
        self.gateway.append({'business_id': business.pk, 'event': event, 'order_number': order.order_number})
        return True

    def clear(self):
        self.single.clear()
        self.multicast.clear()
        self.gateway.clear()

    def multicast_titled(self, title):
        return [m for m in self.multicast if m['title'] == title]


@pytest.fixture(autouse=True)
def push(monkeypatch):
    recorder = PushRecorder()
    monkeypatch.setattr(fcm, 'send_fcm_to_token', recorder.send_fcm_to_token)
    monkeypatch.setattr(fcm, 'send_fcm_multicast', recorder.send_fcm_multicast)
    monkeypatch.setattr(smart_notify, 'notify_gateway', recorder.notify_gateway)
    return recorder


@pytest.fixture
def plan(db):
    return SubscriptionPlan.objects.create(
        id='plan-basic',
        code='basic',
        name='Basic',
        commission_click_collect=Decimal('5'),
        commission_own_courier=Decimal('4'),
        commission_lokma_courier=Decimal('7'),
        free_order_count=0,
    )


@pytest.fixture
def business(plan):
    return Business.objects.create(
        name='Kasap Ali',
        phone='+49 30 123456',
        subscription_plan=plan.pk,
        delivery_staffing=DeliveryStaffing.HYBRID,
    )


@pytest.fixture
def make_staff(business):
    def _make(name='Staff', tokens=None, web_tokens=None, **kwargs):
        kwargs.setdefault('business', business)
        kwargs.setdefault('is_on_shift', True)
        kwargs.setdefault('shift_status', ShiftStatus.ACTIVE)
        assigned = kwargs.pop('assigned_businesses', None)
        member = Staff.objects.create(
            name=name,
            fcm_tokens=tokens or [],
            web_fcm_tokens=web_tokens or [],
            **kwargs
        )
        if assigned:
            member.assigned_businesses.set(assigned)
        return member
    return _make


@pytest.fixture
def make_order(business, push):
    """Create an order; the new-order alert it triggers is cleared from the recorder."""
    counter = {'n': 0}

    def _make(**kwargs):
        counter['n'] += 1
        kwargs.setdefault('business', business)
        kwargs.setdefault('order_number', f'LK-{1000 + counter["n"]}')
        kwargs.setdefault('customer_name', 'Ayse')
        kwargs.setdefault('customer_fcm_token', 'customer-token')
        kwargs.setdefault('fulfillment_type', FulfillmentType.PICKUP)
        kwargs.setdefault('status', OrderStatus.PENDING)
        kwargs.setdefault('payment_method', PaymentMethod.CASH)
        kwargs.setdefault('total_amount', Decimal('50.00'))
        order = Order.objects.create(**kwargs)
        push.clear()
        return order
    return _make


@pytest.fixture
def set_status():
    """Apply changes and save, firing the order signals like the sync webhook does."""
    def _set(order, status, **changes):
        order.status = status
        for name, value in changes.items():
            setattr(order, name, value)
        order.save()
        return order
    return _set
