from django.urls import path

from backoffice import views

urlpatterns = [
    path('sync/', views.order_sync, name='order_sync'),
]
