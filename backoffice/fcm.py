"""
Send FCM (Firebase Cloud Messaging) push notifications.
Uses legacy FCM HTTP API if FCM_SERVER_KEY is set in Django settings.
Otherwise no-op (call succeeds but no notification sent).
"""
import json
import logging
import urllib.request

from django.conf import settings

logger = logging.getLogger(__name__)

FCM_URL = 'https://fcm.googleapis.com/fcm/send'


def _server_key():
    return getattr(settings, 'FCM_SERVER_KEY', None) or getattr(settings, 'FCM_LEGACY_SERVER_KEY', None)


def _post(payload, server_key):
    """POST payload to FCM; return parsed JSON response."""
    req = urllib.request.Request(
        FCM_URL,
        data=json.dumps(payload).encode('utf-8'),
        headers={
            'Authorization': f'key={server_key}',
            'Content-Type': 'application/json',
        },
        method='POST',
    )
    timeout = getattr(settings, 'FCM_TIMEOUT', 10)
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        raw = resp.read().decode('utf-8') or '{}'
        return json.loads(raw)


def _build_payload(title, body, data):
    payload = {
        'notification': {'title': title, 'body': body},
        'priority': 'high',
    }
    if data:
        payload['data'] = {str(k): str(v) for k, v in data.items()}
    return payload


def send_fcm_to_token(token, title, body, data=None):
    """
    Send a notification to one FCM token.
    Returns True if sent or skipped (no token / not configured).
    Raises on transport errors so callers decide how to log them.
    """
    if not (token and str(token).strip()):
        return True
    server_key = _server_key()
    if not server_key:
        logger.info('FCM not configured (no FCM_SERVER_KEY); skipping notification')
        return True
    payload = _build_payload(title, body, data)
    payload['to'] = str(token).strip()
    result = _post(payload, server_key)
    if result.get('failure'):
        logger.warning('FCM rejected token for "%s": %s', title, result.get('results'))
        return False
    return True


def send_fcm_multicast(tokens, title, body, data=None):
    """
    Send one notification to many tokens in a single request.
    Returns (success_count, failure_count). Failed tokens are not pruned.
    """
    tokens = [str(t).strip() for t in (tokens or []) if t and str(t).strip()]
    if not tokens:
        return 0, 0
    server_key = _server_key()
    if not server_key:
        logger.info('FCM not configured (no FCM_SERVER_KEY); skipping multicast to %s tokens', len(tokens))
        return 0, 0
    payload = _build_payload(title, body, data)
    payload['registration_ids'] = tokens
    result = _post(payload, server_key)
    success = int(result.get('success', 0))
    failure = int(result.get('failure', 0))
    # TODO: remove tokens reported as NotRegistered from Staff.fcm_tokens
    return success, failure
