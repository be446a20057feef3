"""Order sync webhook: the ordering apps push order documents here."""
import json
import logging
import secrets

from django.conf import settings
from django.db import transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .models import Business, Order, OrderItem, Staff
from .normalize import DocumentError, order_fields_from_document, order_items_from_document

logger = logging.getLogger(__name__)


def _api_key_valid(request):
    expected = getattr(settings, 'ORDER_SYNC_API_KEY', '') or ''
    given = request.META.get('HTTP_X_API_KEY', '') or ''
    return bool(expected) and secrets.compare_digest(given, expected)


def _get_or_none(model, pk):
    if pk in (None, ''):
        return None
    try:
        return model.objects.filter(pk=pk).first()
    except (ValueError, TypeError):
        return None


def _order_to_dict(order, created):
    return {
        'id': order.id,
        'order_number': order.order_number,
        'status': order.status,
        'created': created,
    }


@csrf_exempt
@require_http_methods(['POST'])
def order_sync(request):
    """
    Upsert an order from its document. Saving fires the order signals, so a
    status change in the document triggers notifications and billing.
    """
    if not _api_key_valid(request):
        return JsonResponse({'error': 'Invalid API key'}, status=401)
    try:
        body = json.loads(request.body) if request.body else {}
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON'}, status=400)
    try:
        fields = order_fields_from_document(body)
        items = order_items_from_document(body)
    except DocumentError as e:
        return JsonResponse({'error': str(e)}, status=400)

    business_id = fields.pop('business_id')
    business = _get_or_none(Business, business_id)
    if business is None:
        return JsonResponse({'error': 'Unknown business'}, status=400)
    business_phone = fields.pop('business_phone')
    if business_phone and not business.phone:
        # Callback number for rejection notices
        Business.objects.filter(pk=business.pk).update(phone=business_phone)
        business.phone = business_phone
    courier_id = fields.pop('courier_id')
    fields['courier'] = _get_or_none(Staff, courier_id)

    order_number = fields.pop('order_number')
    with transaction.atomic():
        order = Order.objects.filter(order_number=order_number).first()
        created = order is None
        if created:
            order = Order(order_number=order_number, business=business)
        for name, value in fields.items():
            setattr(order, name, value)
        order.business = business
        order.save()
        if created:
            OrderItem.objects.bulk_create(OrderItem(order=order, **item) for item in items)
    logger.info('Order %s synced (%s)', order_number, 'created' if created else 'updated')
    return JsonResponse(_order_to_dict(order, created), status=201 if created else 200)
