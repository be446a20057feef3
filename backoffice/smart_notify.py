"""
Forward order events to the business's smart-home notification gateway
(Alexa announcement, WLED / Hue flash). Best effort: errors are only logged.
"""
import json
import logging
import urllib.error
import urllib.request

from django.conf import settings

logger = logging.getLogger(__name__)

NEW_ORDER = 'new_order'
ORDER_READY = 'order_ready'
ORDER_CANCELLED = 'order_cancelled'


def build_gateway_payload(business, event, order):
    return {
        'businessId': str(business.pk),
        'event': event,
        'orderNumber': order.order_number or '',
        'amount': float(order.total_amount or 0),
        'currency': getattr(settings, 'CURRENCY', 'EUR'),
        'items': order.items.count() if order.pk else 0,
        'language': business.alexa_language,
        'alexaEnabled': business.alexa_enabled,
        'ledEnabled': business.led_enabled,
        'hueEnabled': business.hue_enabled,
    }


def notify_gateway(business, event, order):
    """
    POST the event to {gateway_url}/notify. Returns True when the gateway
    answered 2xx, False when skipped or failed.
    """
    if not business or not business.smart_notifications_enabled:
        return False
    url = (business.gateway_url or '').strip().rstrip('/')
    if not url:
        logger.info('[Gateway] No gateway URL for business %s; skipping %s', business.pk, event)
        return False
    payload = build_gateway_payload(business, event, order)
    req = urllib.request.Request(
        f'{url}/notify',
        data=json.dumps(payload).encode('utf-8'),
        headers={
            'Content-Type': 'application/json',
            'x-api-key': business.gateway_api_key or '',
        },
        method='POST',
    )
    timeout = getattr(settings, 'SMART_GATEWAY_TIMEOUT', 5)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            if 200 <= resp.getcode() < 300:
                logger.info('[Gateway] %s sent for order %s', event, order.order_number)
                return True
            logger.warning('[Gateway] %s returned %s', url, resp.getcode())
            return False
    except (urllib.error.URLError, OSError) as e:
        logger.error('[Gateway] %s failed for business %s: %s', event, business.pk, e)
        return False
