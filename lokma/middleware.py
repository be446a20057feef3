"""
Webhook callers authenticate with x-api-key, not a session, so their paths
skip CSRF. Must sit before django.middleware.csrf.CsrfViewMiddleware.
"""

from django.conf import settings


class CsrfExemptApiMiddleware:
    """Flag views under CSRF_EXEMPT_PATH_PREFIXES (default /api/) as csrf_exempt."""

    def __init__(self, get_response):
        self.get_response = get_response
        self.prefixes = tuple(getattr(settings, 'CSRF_EXEMPT_PATH_PREFIXES', ('/api/',)))

    def __call__(self, request):
        return self.get_response(request)

    def process_view(self, request, view_func, view_args, view_kwargs):
        if self.prefixes and request.path.startswith(self.prefixes):
            view_func.csrf_exempt = True
        return None
