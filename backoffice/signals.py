"""
Order triggers: pre_save keeps the stored snapshot, post_save hands the
before/after pair to the notifier. Creation fires the new-order alert.
"""
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .models import Order
from .normalize import OrderSnapshot
from . import order_notify

FEEDBACK_FIELDS = ['feedback_send_at', 'feedback_sent', 'feedback_sent_at', 'feedback_error']


@receiver(pre_save, sender=Order)
def _store_previous_order_snapshot(sender, instance, raw=False, **kwargs):
    instance._previous_snapshot = None
    if raw or not instance.pk:
        return
    old = Order.objects.select_related('business').filter(pk=instance.pk).first()
    if old is not None:
        instance._previous_snapshot = OrderSnapshot.from_order(old)


@receiver(post_save, sender=Order)
def on_order_save(sender, instance, created, raw=False, **kwargs):
    """New order alert on create; status notifications on update."""
    if raw or not instance.pk:
        return
    if created:
        order_notify.notify_new_order(instance)
        return
    before = getattr(instance, '_previous_snapshot', None)
    instance._previous_snapshot = None
    if order_notify.notify_order_status_change(before, OrderSnapshot.from_order(instance)):
        # Feedback scheduling is written with a queryset update
        instance.refresh_from_db(fields=FEEDBACK_FIELDS)
