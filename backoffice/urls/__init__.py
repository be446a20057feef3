# URL packages - include order_urls, etc.
from django.urls import path, include

urlpatterns = [
    path('orders/', include('backoffice.urls.order_urls')),
]
