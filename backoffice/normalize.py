"""
Canonical order shape.

Order documents pushed by the ordering apps carry several generations of
field names (butcherId/businessId, fcmToken/customerFcmToken, ...). They are
resolved here, once, into Order model fields; notification and commission
code only ever see OrderSnapshot / Order.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from .models import FulfillmentType, OrderStatus, PaymentMethod, PaymentStatus

CENT = Decimal('0.01')
# Item quantities are weights for butcher orders
GRAM = Decimal('0.001')


@dataclass(frozen=True)
class OrderSnapshot:
    """Immutable view of an order at one point in time (before or after a save)."""
    pk: int
    order_number: str
    business_id: int
    business_name: str
    business_phone: str
    status: str
    fulfillment_type: str
    table_number: Optional[str]
    customer_fcm_token: str
    payment_method: str
    payment_status: str
    courier_name: str
    delivery_address: str
    total_amount: Decimal
    rejection_reason: str
    cancellation_reason: str

    @classmethod
    def from_order(cls, order):
        business = order.business
        return cls(
            pk=order.pk,
            order_number=order.order_number or '',
            business_id=order.business_id,
            business_name=business.name if business else '',
            business_phone=business.phone if business else '',
            status=order.status,
            fulfillment_type=order.fulfillment_type,
            table_number=(str(order.table_number).strip() or None) if order.table_number else None,
            customer_fcm_token=(order.customer_fcm_token or '').strip(),
            payment_method=order.payment_method or '',
            payment_status=order.payment_status or '',
            courier_name=order.courier_name or '',
            delivery_address=order.delivery_address or '',
            total_amount=order.total_amount or Decimal('0'),
            rejection_reason=order.rejection_reason or '',
            cancellation_reason=order.cancellation_reason or '',
        )

    @property
    def is_delivery(self):
        return self.fulfillment_type == FulfillmentType.DELIVERY

    @property
    def is_dine_in(self):
        return self.fulfillment_type == FulfillmentType.DINE_IN or bool(self.table_number)


class DocumentError(ValueError):
    """Order document cannot be mapped onto an Order."""


def _first(doc, *keys, default=None):
    for key in keys:
        value = doc.get(key)
        if value not in (None, ''):
            return value
    return default


def _decimal(value, field, places=CENT):
    if value in (None, ''):
        return Decimal('0')
    try:
        return Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise DocumentError(f'Invalid amount for {field}: {value!r}')


def _fulfillment_type(doc):
    raw = _first(doc, 'orderType', 'deliveryType', 'deliveryMethod', 'fulfillmentType')
    raw = (raw or '').strip().lower()
    if raw == 'delivery':
        return FulfillmentType.DELIVERY
    if raw in ('dine_in', 'dinein', 'dine-in', 'table', 'masa'):
        return FulfillmentType.DINE_IN
    if _first(doc, 'tableNumber', 'table_number') is not None:
        return FulfillmentType.DINE_IN
    return FulfillmentType.PICKUP


def _choice(value, choices, default):
    value = (value or '').strip()
    return value if value in choices.values else default


def business_reference(doc):
    """Return the business id referenced by a document, or None."""
    return _first(doc, 'butcherId', 'businessId', 'restaurantId', 'marketId')


def order_fields_from_document(doc):
    """
    Map a raw order document onto Order model field values.
    business and courier are returned as ids (business_id, courier_id).
    Raises DocumentError when the order number is missing.
    """
    if not isinstance(doc, dict):
        raise DocumentError('Order document must be an object')
    order_number = _first(doc, 'orderNumber', 'order_number', 'orderId')
    if order_number is None:
        raise DocumentError('orderNumber is required')

    table_number = _first(doc, 'tableNumber', 'table_number')
    sponsored = _first(doc, 'sponsoredProductIds', 'sponsoredItemIds', default=[])
    if not isinstance(sponsored, list):
        sponsored = [sponsored]

    fields = {
        'order_number': str(order_number),
        'business_id': business_reference(doc),
        'business_phone': _first(doc, 'butcherPhone', 'businessPhone', default=''),
        'customer_name': _first(doc, 'customerName', 'userDisplayName', default=''),
        'customer_phone': _first(doc, 'customerPhone', default=''),
        'customer_fcm_token': _first(doc, 'customerFcmToken', 'fcmToken', default=''),
        'fulfillment_type': _fulfillment_type(doc),
        'table_number': str(table_number) if table_number is not None else None,
        'status': _first(doc, 'status', default=OrderStatus.PENDING),
        'payment_method': _choice(_first(doc, 'paymentMethod'), PaymentMethod, PaymentMethod.CASH),
        'payment_status': _choice(_first(doc, 'paymentStatus'), PaymentStatus, PaymentStatus.PENDING),
        'courier_id': _first(doc, 'courierId', 'assignedCourierId'),
        'courier_name': _first(doc, 'courierName', default=''),
        'delivery_address': _first(doc, 'deliveryAddress', 'address', default=''),
        'total_amount': _decimal(_first(doc, 'totalAmount', 'totalPrice', 'total'), 'totalAmount'),
        'rejection_reason': _first(doc, 'rejectionReason', default=''),
        'cancellation_reason': _first(doc, 'cancellationReason', default=''),
        'sponsored_item_ids': [str(s) for s in sponsored if s],
    }
    return fields


def order_items_from_document(doc):
    """Return a list of OrderItem field dicts from the document's items list."""
    items = []
    for raw in doc.get('items') or []:
        if not isinstance(raw, dict):
            continue
        quantity = _decimal(_first(raw, 'quantity', 'weight', default=1), 'quantity', places=GRAM)
        unit_price = _decimal(_first(raw, 'unitPrice', 'price'), 'unitPrice')
        items.append({
            'product_id': str(_first(raw, 'productId', 'id', default='')),
            'name': _first(raw, 'name', 'productName', default='-'),
            'quantity': quantity,
            'unit_price': unit_price,
            'total': _decimal(_first(raw, 'total', 'totalPrice', default=quantity * unit_price), 'total'),
        })
    return items
