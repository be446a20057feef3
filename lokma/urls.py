from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path, reverse


def root_view(request):
    """Service info; lists the webhook so integrators can find it."""
    return JsonResponse({
        'service': 'lokma-backoffice',
        'order_sync': reverse('order_sync'),
        'admin': reverse('admin:index'),
    })


urlpatterns = [
    path('', root_view, name='root'),
    path('api/', include('backoffice.urls')),
    path('admin/', admin.site.urls),
]
