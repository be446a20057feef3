"""
Reusable business logic for plans, usage counters and platform settings.
Used by the commission writer, signals and management commands so lookups stay consistent.
"""
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import F
from django.utils import timezone

from .models import (
    Business,
    BusinessUsage,
    PlatformSetting,
    SubscriptionPlan,
)

CENT = Decimal('0.01')


def money(value):
    """Round half-up to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def current_period(now=None):
    """Billing period string 'YYYY-MM' in the configured local time zone."""
    now = now or timezone.now()
    return timezone.localtime(now).strftime('%Y-%m')


def get_platform_setting():
    """Return the active PlatformSetting (first row). Creates one with defaults if none exists."""
    ps = PlatformSetting.objects.first()
    if ps is None:
        ps = PlatformSetting.objects.create()
    return ps


def resolve_plan(plan_ref):
    """
    Look up a SubscriptionPlan by id; fall back to matching its code.
    Returns None if neither matches.
    """
    if not plan_ref:
        return None
    plan = SubscriptionPlan.objects.filter(pk=plan_ref).first()
    if plan is None:
        plan = SubscriptionPlan.objects.filter(code=plan_ref).first()
    return plan


def period_order_count(business, period):
    """Orders already billed for business in period (0 when no usage row yet)."""
    return (
        BusinessUsage.objects.filter(business=business, period=period)
        .values_list('order_count', flat=True)
        .first()
    ) or 0


def increment_usage(business, period, total_commission, balance_amount=None):
    """
    Add one order and total_commission to the business's usage row for period.
    balance_amount, if positive, is added to Business.account_balance.
    All increments are F() updates; no read-modify-write.
    """
    usage, _ = BusinessUsage.objects.get_or_create(business=business, period=period)
    BusinessUsage.objects.filter(pk=usage.pk).update(
        order_count=F('order_count') + 1,
        total_commission=F('total_commission') + total_commission,
        last_order_at=timezone.now(),
    )
    if balance_amount and balance_amount > 0:
        Business.objects.filter(pk=business.pk).update(
            account_balance=F('account_balance') + balance_amount
        )
