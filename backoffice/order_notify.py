"""
Notify order status changes: customer push, delivery staff / driver multicast,
table waiter multicast, smart-home gateway, feedback scheduling and
commission billing.

Every OrderStatus has an entry in STATUS_HANDLERS; a missing entry fails at
import time. Each dispatch is wrapped on its own so one failing branch
never blocks the others.
"""
import logging
from datetime import timedelta

from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from . import commission, fcm, recipients, smart_notify
from .models import Business, Order, OrderStatus, PaymentMethod, PaymentStatus

logger = logging.getLogger(__name__)

FEEDBACK_DELAY = timedelta(hours=24)
PAID_STATUSES = (PaymentStatus.PAID, PaymentStatus.COMPLETED)
REFUND_CARD_METHODS = (PaymentMethod.CARD, PaymentMethod.STRIPE)
DEFAULT_REJECTION_REASON = 'The product you ordered is currently unavailable.'
DEFAULT_CANCELLATION_REASON = 'Cancelled by the business.'


class Notification:
    """Customer-facing title/body for one status."""

    def __init__(self, title, body):
        self.title = title
        self.body = body


def _order_label(snap):
    return f'Order #{snap.order_number}' if snap.order_number else 'Order'


def _amount(snap):
    return f'{snap.total_amount:.2f}€'


# --- Side effects ---

def _send_customer(snap, notification):
    if not snap.customer_fcm_token:
        logger.info('Skipped customer notification for %s (%s) - no FCM token',
                    snap.order_number, snap.status)
        return
    try:
        delivered = fcm.send_fcm_to_token(
            snap.customer_fcm_token,
            notification.title,
            notification.body,
            data={'type': 'order_status', 'orderId': snap.pk, 'status': snap.status},
        )
        if delivered:
            logger.info('Sent %s notification to customer for %s', snap.status, snap.order_number)
        else:
            logger.warning('FCM rejected customer token for %s (%s)', snap.order_number, snap.status)
    except Exception:
        logger.exception('Error sending notification to customer for order %s', snap.order_number)


def _notify_delivery_staff(snap):
    try:
        business = Business.objects.get(pk=snap.business_id)
        tokens = recipients.delivery_staff_tokens(business)
        if not tokens:
            logger.info('No driver tokens found for business %s', snap.business_id)
            return
        address = snap.delivery_address
        if len(address) > 50:
            address = address[:50] + '...'
        success, _ = fcm.send_fcm_multicast(
            tokens,
            'Delivery waiting!',
            f'{_order_label(snap)} - {address}',
            data={'type': 'delivery_ready', 'orderId': snap.pk, 'businessId': snap.business_id},
        )
        logger.info('Sent delivery notification to %s/%s drivers/staff', success, len(tokens))
    except Exception:
        logger.exception('Error notifying drivers for order %s', snap.order_number)


def _notify_table_staff(snap):
    try:
        business = Business.objects.get(pk=snap.business_id)
        tokens = recipients.table_staff_tokens(business, snap.table_number)
        if not tokens:
            logger.info('No waiter tokens for table %s at business %s', snap.table_number, snap.business_id)
            return
        success, _ = fcm.send_fcm_multicast(
            tokens,
            f'Table {snap.table_number}: order ready',
            f'{_order_label(snap)} is ready to be served.',
            data={
                'type': 'table_order_ready',
                'orderId': snap.pk,
                'businessId': snap.business_id,
                'tableNumber': snap.table_number,
            },
        )
        logger.info('Sent table notification to %s/%s waiters', success, len(tokens))
    except Exception:
        logger.exception('Error notifying waiters for order %s', snap.order_number)


def _notify_gateway(snap, event):
    try:
        order = Order.objects.select_related('business').get(pk=snap.pk)
        smart_notify.notify_gateway(order.business, event, order)
    except Exception:
        logger.exception('[Gateway] Error forwarding %s for order %s', event, snap.order_number)


def _schedule_feedback(snap):
    try:
        send_at = timezone.now() + FEEDBACK_DELAY
        Order.objects.filter(pk=snap.pk).update(feedback_send_at=send_at, feedback_sent=False)
        logger.info('[Feedback] Scheduled feedback request for %s at %s',
                    snap.order_number, send_at.isoformat())
    except Exception:
        logger.exception('[Feedback] Could not schedule feedback for %s', snap.order_number)


def _bill(snap):
    try:
        commission.create_commission_record(snap.pk)
    except Exception:
        logger.exception('[Commission] Error creating record for order %s', snap.order_number)


# --- Status handlers: return the customer Notification (or None) ---

def _on_pending(before, after):
    return None


def _on_preparing(before, after):
    return Notification(
        'Your order is being prepared',
        f'{_order_label(after)} - {after.business_name} is preparing your order',
    )


def _on_ready(before, after):
    if after.is_delivery:
        _notify_delivery_staff(after)
    if after.is_dine_in and after.table_number:
        _notify_table_staff(after)
    _notify_gateway(after, smart_notify.ORDER_READY)
    if after.is_delivery:
        return Notification(
            'Your order is ready!',
            f'{_order_label(after)} - Waiting for the courier. Total: {_amount(after)}',
        )
    if after.is_dine_in:
        return Notification(
            'Your order is ready!',
            f'{_order_label(after)} - It will be brought to your table shortly.',
        )
    return Notification(
        'Your order is ready!',
        f'{_order_label(after)} - Ready for pickup! Total: {_amount(after)}',
    )


def _on_served(before, after):
    _schedule_feedback(after)
    if after.is_dine_in:
        return Notification(
            'Enjoy your meal!',
            f'{_order_label(after)} - Your order has been served at table {after.table_number}.'
            if after.table_number else f'{_order_label(after)} - Your order has been served at your table.',
        )
    return Notification('Order served', f'{_order_label(after)} - Enjoy your meal!')


def _on_the_way(before, after):
    courier = after.courier_name or 'Courier'
    return Notification(
        'Courier is on the way!',
        f'{_order_label(after)} - {courier} is bringing your order',
    )


def _on_delivered(before, after):
    _schedule_feedback(after)
    _bill(after)
    return Notification('Your order has been delivered', f'{_order_label(after)} - Enjoy your meal!')


def _on_completed(before, after):
    _bill(after)
    return Notification('Order completed', f'{_order_label(after)} - Enjoy your meal!')


def _on_rejected(before, after):
    reason = after.rejection_reason or DEFAULT_REJECTION_REASON
    phone = f' Tel: {after.business_phone}' if after.business_phone else ''
    return Notification('Order could not be accepted', f'{_order_label(after)} - {reason}{phone}')


def _on_cancelled(before, after):
    _notify_gateway(after, smart_notify.ORDER_CANCELLED)
    reason = after.cancellation_reason or DEFAULT_CANCELLATION_REASON
    body = f'{_order_label(after)} - Reason: {reason}'
    was_paid = before.payment_status in PAID_STATUSES or after.payment_status in PAID_STATUSES
    if was_paid:
        if after.payment_method in REFUND_CARD_METHODS:
            body += '. Your payment will be refunded to your card automatically.'
        else:
            body += '. Your payment will be refunded.'
    body += ' We apologise for the inconvenience.'
    return Notification('Order cancelled', body)


STATUS_HANDLERS = {
    OrderStatus.PENDING: _on_pending,
    OrderStatus.PREPARING: _on_preparing,
    OrderStatus.READY: _on_ready,
    OrderStatus.SERVED: _on_served,
    OrderStatus.ON_THE_WAY: _on_the_way,
    OrderStatus.DELIVERED: _on_delivered,
    OrderStatus.COMPLETED: _on_completed,
    OrderStatus.REJECTED: _on_rejected,
    OrderStatus.CANCELLED: _on_cancelled,
}

_missing = set(OrderStatus.values) - set(STATUS_HANDLERS)
if _missing:
    raise ImproperlyConfigured(f'No notification handler for order status: {sorted(_missing)}')


def notify_order_status_change(before, after):
    """
    React to one order update. before/after are OrderSnapshot instances.
    Returns the status handled, or None when nothing was done.
    """
    if before is None or after is None:
        return None
    if before.status == after.status:
        return None
    if after.status not in OrderStatus.values:
        logger.warning('Unknown order status %r on order %s; no notification', after.status, after.order_number)
        return None

    handler = STATUS_HANDLERS[OrderStatus(after.status)]
    notification = handler(before, after)
    if notification is not None:
        _send_customer(after, notification)
    return after.status


def notify_new_order(order):
    """New order: alert the business's admin devices and its smart-home gateway."""
    try:
        tokens = recipients.business_admin_tokens(order.business)
        if tokens:
            customer = order.customer_name or 'Customer'
            success, _ = fcm.send_fcm_multicast(
                tokens,
                'New order!',
                f'Order #{order.order_number} - {customer} - {order.total_amount:.2f}€',
                data={'type': 'new_order', 'orderId': order.pk, 'orderNumber': order.order_number},
            )
            logger.info('Sent new order alert to %s/%s devices', success, len(tokens))
        else:
            logger.info('No FCM tokens for business %s', order.business_id)
    except Exception:
        logger.exception('Error sending new order notification to business %s', order.business_id)
    try:
        smart_notify.notify_gateway(order.business, smart_notify.NEW_ORDER, order)
    except Exception:
        logger.exception('[Gateway] Error forwarding new order %s', order.order_number)
