"""
Commission ledger: one CommissionRecord per fulfilled order.

Rate by courier type from the business's plan, optional per-order fee,
free orders while the period allowance lasts, 19% VAT back-calculated from
the gross commission. Card payments are collected through the payment
processor; everything else accumulates on Business.account_balance.
"""
import logging
from decimal import Decimal

from django.db import IntegrityError, transaction

from . import services
from .models import (
    Business,
    CollectionStatus,
    CommissionRecord,
    CourierType,
    DriverType,
    FulfillmentType,
    Order,
    PaymentMethod,
    PerOrderFeeType,
    SponsoredConversion,
)
from .services import money

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_RATE = Decimal('5')
# German standard rate, applied regardless of business country
VAT_RATE = Decimal('19')
CARD_PAYMENT_METHODS = (PaymentMethod.CARD, PaymentMethod.STRIPE)

RATE_FIELDS = {
    CourierType.CLICK_COLLECT: 'commission_click_collect',
    CourierType.OWN_COURIER: 'commission_own_courier',
    CourierType.LOKMA_COURIER: 'commission_lokma_courier',
}


def resolve_courier_type(order, business):
    """
    click_collect for anything that is not a delivery. For deliveries: the
    assigned courier's driver_type, then the courier's business affiliation,
    then the business's has_own_courier preference.
    """
    if order.fulfillment_type != FulfillmentType.DELIVERY:
        return CourierType.CLICK_COLLECT
    fallback = CourierType.OWN_COURIER if business.has_own_courier else CourierType.LOKMA_COURIER
    if not order.courier_id:
        return fallback
    try:
        courier = order.courier
    except Exception:
        logger.exception('[Commission] Courier lookup failed for order %s', order.order_number)
        return fallback
    if courier is None:
        return fallback
    if courier.driver_type == DriverType.LOKMA:
        return CourierType.LOKMA_COURIER
    if courier.driver_type == DriverType.BUSINESS:
        return CourierType.OWN_COURIER
    if courier.business_id:
        return CourierType.OWN_COURIER if courier.business_id == business.pk else CourierType.LOKMA_COURIER
    return fallback


def commission_rate_for(plan, courier_type):
    rate = getattr(plan, RATE_FIELDS[courier_type], None)
    return DEFAULT_COMMISSION_RATE if rate is None else Decimal(rate)


def per_order_fee_for(plan, order_total):
    fee_type = plan.per_order_fee_type or PerOrderFeeType.NONE
    amount = plan.per_order_fee_amount or Decimal('0')
    if fee_type == PerOrderFeeType.PERCENTAGE:
        return money(order_total * amount / Decimal('100'))
    if fee_type == PerOrderFeeType.FIXED:
        return money(amount)
    return Decimal('0.00')


def split_vat(total_commission):
    """Return (net, vat) with net + vat == total_commission."""
    net = money(total_commission / (Decimal('1') + VAT_RATE / Decimal('100')))
    return net, money(total_commission - net)


def calculate_commission(order, business, plan, period_orders):
    """
    Pure calculation; returns a dict of CommissionRecord field values
    (without order/business/plan references).
    """
    courier_type = resolve_courier_type(order, business)
    rate = commission_rate_for(plan, courier_type)
    order_total = order.total_amount or Decimal('0')
    is_free_order = period_orders < (plan.free_order_count or 0)

    commission_amount = Decimal('0.00')
    per_order_fee = Decimal('0.00')
    if not is_free_order:
        if order_total > 0:
            commission_amount = money(order_total * rate / Decimal('100'))
        per_order_fee = per_order_fee_for(plan, order_total)

    total_commission = money(commission_amount + per_order_fee)
    net_commission, vat_amount = split_vat(total_commission)
    is_card = order.payment_method in CARD_PAYMENT_METHODS

    return {
        'order_total': order_total,
        'courier_type': courier_type,
        'commission_rate': rate,
        'commission_amount': commission_amount,
        'per_order_fee': per_order_fee,
        'total_commission': total_commission,
        'net_commission': net_commission,
        'vat_rate': VAT_RATE,
        'vat_amount': vat_amount,
        'payment_method': order.payment_method or PaymentMethod.CASH,
        'collection_status': CollectionStatus.AUTO_COLLECTED if is_card else CollectionStatus.PENDING,
        'is_free_order': is_free_order,
    }


def sponsored_fee_per_conversion(plan):
    """Plan override, else platform default. None when sponsored billing is disabled."""
    setting = services.get_platform_setting()
    if not setting.sponsored_enabled:
        return None
    if plan.sponsored_fee_per_conversion is not None:
        return plan.sponsored_fee_per_conversion
    return setting.sponsored_fee_per_conversion


def record_sponsored_conversion(record, order, plan):
    """Create SponsoredConversion and patch the record's sponsored_fee. Returns the fee."""
    product_ids = list(order.sponsored_item_ids or [])
    if not product_ids:
        return Decimal('0')
    fee = sponsored_fee_per_conversion(plan)
    if fee is None:
        logger.info('[Commission] Sponsored billing disabled; order %s not charged', order.order_number)
        return Decimal('0')
    total_fee = money(Decimal(len(product_ids)) * fee)
    SponsoredConversion.objects.create(
        order=order,
        business_id=record.business_id,
        product_ids=product_ids,
        item_count=len(product_ids),
        fee_per_conversion=fee,
        total_fee=total_fee,
        period=record.period,
    )
    if total_fee > 0:
        CommissionRecord.objects.filter(pk=record.pk).update(sponsored_fee=total_fee)
        record.sponsored_fee = total_fee
    logger.info('[Commission] Sponsored: %s x %s = %s for order %s',
                len(product_ids), fee, total_fee, order.order_number)
    return total_fee


def create_commission_record(order):
    """
    Create the CommissionRecord for a delivered/completed order and update
    the business usage ledger. Returns the record, or None when nothing was
    written (already billed, business or plan missing, concurrent duplicate).
    """
    if not isinstance(order, Order):
        order = Order.objects.filter(pk=order).first()
        if order is None:
            return None
    if CommissionRecord.objects.filter(order_id=order.pk).exists():
        logger.info('[Commission] Record already exists for order %s, skipping', order.order_number)
        return None

    business = Business.objects.filter(pk=order.business_id).first()
    if business is None:
        logger.error('[Commission] Business %s not found', order.business_id)
        return None
    plan = services.resolve_plan(business.subscription_plan)
    if plan is None:
        logger.error('[Commission] Plan %r not found for business %s',
                     business.subscription_plan, business.pk)
        return None

    period = services.current_period()
    values = calculate_commission(
        order, business, plan, services.period_order_count(business, period)
    )
    try:
        with transaction.atomic():
            record = CommissionRecord.objects.create(
                order=order,
                business=business,
                order_number=order.order_number,
                business_name=business.name,
                plan_id=plan.pk,
                plan_name=plan.name or plan.pk,
                sponsored_fee=Decimal('0'),
                period=period,
                **values
            )
    except IntegrityError:
        logger.warning('[Commission] Concurrent record for order %s, skipping', order.order_number)
        return None
    logger.info('[Commission] Created record: %s | %s | %s (%s)',
                order.order_number, business.name, record.total_commission, record.collection_status)

    sponsored_fee = Decimal('0')
    try:
        with transaction.atomic():
            sponsored_fee = record_sponsored_conversion(record, order, plan)
    except Exception:
        logger.exception('[Commission] Sponsored conversion failed for order %s', order.order_number)

    is_card = record.collection_status == CollectionStatus.AUTO_COLLECTED
    balance_amount = None if is_card else money(record.total_commission + sponsored_fee)
    try:
        with transaction.atomic():
            services.increment_usage(business, period, record.total_commission, balance_amount)
        logger.info('[Commission] Updated usage for %s: +1 order, +%s commission',
                    business.name, record.total_commission)
    except Exception:
        logger.exception('[Commission] Usage update failed for business %s', business.pk)
    return record
