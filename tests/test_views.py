"""Order sync webhook: authentication, document normalization and upserts."""
import json
from decimal import Decimal

import pytest

from backoffice import smart_notify
from backoffice.models import (
    FulfillmentType,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from backoffice.normalize import DocumentError, order_fields_from_document, order_items_from_document

pytestmark = pytest.mark.django_db

URL = '/api/orders/sync/'
API_KEY = 'test-sync-key'


@pytest.fixture(autouse=True)
def sync_key(settings):
    settings.ORDER_SYNC_API_KEY = API_KEY


@pytest.fixture
def post(client):
    def _post(doc, key=API_KEY):
        body = doc if isinstance(doc, str) else json.dumps(doc)
        return client.post(URL, data=body, content_type='application/json', HTTP_X_API_KEY=key)
    return _post


def legacy_document(business, **extra):
    doc = {
        'orderNumber': 'WEB-1',
        'butcherId': business.pk,
        'userDisplayName': 'Ayse',
        'fcmToken': 'legacy-token',
        'deliveryMethod': 'delivery',
        'totalPrice': '42.5',
        'address': 'Hermannstr. 1',
        'paymentMethod': 'card',
        'paymentStatus': 'paid',
        'sponsoredItemIds': ['p9'],
        'items': [
            {'productId': 'p9', 'productName': 'Sucuk', 'quantity': 2, 'price': '6.25'},
            {'id': 'p3', 'name': 'Lamb chops', 'weight': '0.5', 'unitPrice': '60', 'totalPrice': '30'},
        ],
    }
    doc.update(extra)
    return doc


class TestAuth:

    def test_missing_key(self, client, business):
        response = client.post(URL, data='{}', content_type='application/json')
        assert response.status_code == 401

    def test_wrong_key(self, post, business):
        assert post(legacy_document(business), key='nope').status_code == 401
        assert not Order.objects.exists()

    def test_unconfigured_key_rejects_everything(self, post, business, settings):
        settings.ORDER_SYNC_API_KEY = ''
        assert post(legacy_document(business), key='').status_code == 401

    def test_get_not_allowed(self, client):
        assert client.get(URL, HTTP_X_API_KEY=API_KEY).status_code == 405


class TestValidation:

    def test_invalid_json(self, post):
        response = post('{not json')
        assert response.status_code == 400
        assert response.json() == {'error': 'Invalid JSON'}

    def test_missing_order_number(self, post, business):
        doc = legacy_document(business)
        del doc['orderNumber']
        response = post(doc)
        assert response.status_code == 400
        assert 'orderNumber' in response.json()['error']

    def test_unknown_business(self, post, business):
        response = post(legacy_document(business, butcherId=business.pk + 100))
        assert response.status_code == 400
        assert response.json() == {'error': 'Unknown business'}

    def test_non_numeric_business(self, post, business):
        assert post(legacy_document(business, butcherId='kasap-ali')).status_code == 400

    def test_bad_amount(self, post, business):
        assert post(legacy_document(business, totalPrice='lots')).status_code == 400

    def test_document_must_be_object(self):
        with pytest.raises(DocumentError):
            order_fields_from_document(['not', 'a', 'dict'])


class TestNormalization:

    def test_legacy_keys_are_mapped(self, post, business, push):
        response = post(legacy_document(business))
        assert response.status_code == 201
        assert response.json()['created'] is True
        order = Order.objects.get(order_number='WEB-1')
        assert order.business == business
        assert order.customer_name == 'Ayse'
        assert order.customer_fcm_token == 'legacy-token'
        assert order.fulfillment_type == FulfillmentType.DELIVERY
        assert order.total_amount == Decimal('42.50')
        assert order.delivery_address == 'Hermannstr. 1'
        assert order.payment_method == PaymentMethod.CARD
        assert order.payment_status == PaymentStatus.PAID
        assert order.sponsored_item_ids == ['p9']
        assert order.status == OrderStatus.PENDING

        items = list(order.items.order_by('id'))
        assert [i.name for i in items] == ['Sucuk', 'Lamb chops']
        assert items[0].total == Decimal('12.50')
        assert items[1].quantity == Decimal('0.5')
        assert items[1].total == Decimal('30.00')

    def test_current_keys(self, business):
        fields = order_fields_from_document({
            'orderNumber': 'N-1',
            'businessId': business.pk,
            'customerFcmToken': 'new-token',
            'fcmToken': 'old-token',
            'orderType': 'dine_in',
            'tableNumber': 12,
            'totalAmount': 9,
        })
        assert fields['business_id'] == business.pk
        assert fields['customer_fcm_token'] == 'new-token'
        assert fields['fulfillment_type'] == FulfillmentType.DINE_IN
        assert fields['table_number'] == '12'
        assert fields['total_amount'] == Decimal('9.00')

    def test_table_number_implies_dine_in(self):
        fields = order_fields_from_document({'orderNumber': 'N-2', 'restaurantId': 1, 'tableNumber': '4'})
        assert fields['fulfillment_type'] == FulfillmentType.DINE_IN

    def test_unknown_payment_method_defaults_to_cash(self):
        fields = order_fields_from_document({'orderNumber': 'N-3', 'paymentMethod': 'bitcoin'})
        assert fields['payment_method'] == PaymentMethod.CASH

    def test_item_weights_keep_grams(self):
        items = order_items_from_document({'items': [
            {'name': 'Kuzu pirzola', 'weight': 0.375, 'unitPrice': 20},
            {'name': 'Dana kiyma', 'weight': '1.2345', 'price': '9.99'},
        ]})
        assert items[0]['quantity'] == Decimal('0.375')
        assert items[0]['total'] == Decimal('7.50')
        assert items[1]['quantity'] == Decimal('1.235')
        assert items[1]['total'] == Decimal('12.34')

    def test_stored_item_weight(self, post, business):
        doc = legacy_document(business, items=[{'name': 'Kuzu pirzola', 'weight': '0.375', 'unitPrice': '20'}])
        post(doc)
        item = Order.objects.get(order_number='WEB-1').items.get()
        assert item.quantity == Decimal('0.375')
        assert item.total == Decimal('7.50')

    def test_courier_reference(self, post, business, make_staff):
        courier = make_staff('Courier', is_driver=True)
        post(legacy_document(business, assignedCourierId=courier.pk))
        assert Order.objects.get(order_number='WEB-1').courier == courier


class TestUpsert:

    def test_create_fires_new_order_alert(self, post, business, push):
        business.fcm_tokens = ['biz-1']
        business.save()
        post(legacy_document(business))
        assert len(push.multicast_titled('New order!')) == 1
        assert [g['event'] for g in push.gateway] == [smart_notify.NEW_ORDER]

    def test_status_update_notifies_customer(self, post, business, push):
        post(legacy_document(business))
        push.clear()
        response = post(legacy_document(business, status='onTheWay', courierName='Mehmet'))
        assert response.status_code == 200
        assert response.json() == {
            'id': Order.objects.get(order_number='WEB-1').pk,
            'order_number': 'WEB-1',
            'status': 'onTheWay',
            'created': False,
        }
        assert Order.objects.count() == 1
        assert len(push.single) == 1
        assert push.single[0]['token'] == 'legacy-token'
        assert 'Mehmet is bringing your order' in push.single[0]['body']

    def test_repeated_document_sends_nothing(self, post, business, push):
        post(legacy_document(business, status='preparing'))
        push.clear()
        post(legacy_document(business, status='preparing'))
        assert push.single == []

    def test_update_keeps_items(self, post, business):
        post(legacy_document(business))
        post(legacy_document(business, status='preparing', items=[]))
        assert Order.objects.get(order_number='WEB-1').items.count() == 2


class TestProject:

    def test_root_lists_endpoints(self, client):
        assert client.get('/').json() == {
            'service': 'lokma-backoffice',
            'order_sync': URL,
            'admin': '/admin/',
        }

    def test_webhook_works_with_csrf_checks(self, business):
        from django.test import Client

        response = Client(enforce_csrf_checks=True).post(
            URL, data=json.dumps(legacy_document(business)),
            content_type='application/json', HTTP_X_API_KEY=API_KEY,
        )
        assert response.status_code == 201


class TestBusinessPhone:

    def test_document_phone_fills_missing_business_phone(self, post, business, push):
        business.phone = ''
        business.save()
        post(legacy_document(business, butcherPhone='+49 30 999'))
        business.refresh_from_db()
        assert business.phone == '+49 30 999'
        push.clear()
        post(legacy_document(business, status='rejected'))
        assert push.single[0]['body'].endswith('Tel: +49 30 999')

    def test_existing_business_phone_is_kept(self, post, business):
        post(legacy_document(business, businessPhone='+49 30 000'))
        business.refresh_from_db()
        assert business.phone == '+49 30 123456'
