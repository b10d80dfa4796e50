"""
Integration tests for the cart (quote) API.
"""

from datetime import timedelta
from unittest.mock import patch

from quotations.models import CartStatus
from quotations.utils.dates import utcnow


class TestCartCrud:

    def test_create_cart_with_items(self, client, org_headers, product_a, product_b, default_list):
        response = client.post('/cart', headers=org_headers, json={
            'fullName': 'María González',
            'customerType': 'minorista',
            'items': [
                {'productId': product_a.id, 'quantity': 2},
                {'productId': product_b.id, 'quantity': 1, 'customizationValues': {'texto': 'Hola'}},
            ],
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'draft'
        assert data['fullName'] == 'María González'
        assert data['customerType'] == 'minorista'
        assert data['totalItems'] == 3
        assert data['totalPrice'] == 28.0
        assert data['priceListId'] == default_list.id
        assert [i['sku'] for i in data['items']] == ['POL-001', 'GOR-001']
        assert data['items'][1]['customizationValues'] == {'texto': 'Hola'}

    def test_create_empty_cart(self, client, org_headers, default_list):
        response = client.post('/cart', headers=org_headers, json={})

        assert response.status_code == 201
        assert response.get_json()['items'] == []

    def test_create_cart_with_unknown_product(self, client, org_headers, default_list):
        response = client.post('/cart', headers=org_headers, json={
            'items': [{'productId': 424242, 'quantity': 1}]
        })

        assert response.status_code == 404
        assert response.get_json()['error'] == 'ProductNotFound'

    def test_invalid_items_payload(self, client, org_headers, default_list):
        response = client.post('/cart', headers=org_headers, json={'items': 'todo'})
        assert response.status_code == 400

    def test_get_cart(self, client, org_headers, quote_cart):
        response = client.get(f'/cart/{quote_cart.id}', headers=org_headers)

        assert response.status_code == 200
        assert response.get_json()['totalPrice'] == 100.0

    def test_put_replaces_items(self, client, org_headers, quote_cart, product_b):
        response = client.put(f'/cart/{quote_cart.id}', headers=org_headers, json={
            'items': [{'productId': product_b.id, 'quantity': 3}]
        })

        data = response.get_json()
        assert response.status_code == 200
        assert [(i['productId'], i['quantity']) for i in data['items']] == [(product_b.id, 3)]
        assert data['totalPrice'] == 24.0

    def test_put_requires_body(self, client, org_headers, quote_cart):
        response = client.put(f'/cart/{quote_cart.id}', headers=org_headers)
        assert response.status_code == 400

    def test_list_filters(self, client, org_headers, organization, quote_cart):
        client.post('/cart', headers=org_headers, json={'conversationId': 'wa-5691234'})

        by_conversation = client.get('/cart?conversationId=wa-5691234', headers=org_headers).get_json()['carts']
        drafts = client.get('/cart?status=draft', headers=org_headers).get_json()['carts']

        assert len(by_conversation) == 1
        assert 'items' not in by_conversation[0]
        assert len(drafts) == 2


class TestCartItems:

    def test_add_update_remove_item(self, client, org_headers, quote_cart, product_a, product_b):
        response = client.post(f'/cart/{quote_cart.id}/items', headers=org_headers, json={
            'productId': product_b.id, 'quantity': 70
        })
        assert response.status_code == 201
        item = next(i for i in response.get_json()['items'] if i['productId'] == product_b.id)
        assert item['quantity'] == 50

        response = client.patch(f"/cart/{quote_cart.id}/items/{item['id']}", headers=org_headers, json={'quantity': 4})
        assert response.get_json()['totalItems'] == 5

        response = client.delete(f"/cart/{quote_cart.id}/items/{item['id']}", headers=org_headers)
        assert [i['productId'] for i in response.get_json()['items']] == [product_a.id]
        assert response.get_json()['totalItems'] == 1

    def test_customization(self, client, org_headers, quote_cart):
        item_id = quote_cart.items[0].id

        response = client.patch(f'/cart/{quote_cart.id}/customization', headers=org_headers, json={
            'selectedProductIds': [item_id],
            'customizationValues': {'nombre': 'Sofía', 'numero': 10},
        })

        assert response.status_code == 200
        assert response.get_json()['items'][0]['customizationValues'] == {'nombre': 'Sofía', 'numero': 10}

    def test_changelog(self, client, org_headers, quote_cart, product_b):
        client.post(f'/cart/{quote_cart.id}/items', headers=org_headers, json={'productId': product_b.id})

        response = client.get(f'/cart/{quote_cart.id}/changelog?operation=add&limit=1', headers=org_headers)

        data = response.get_json()
        assert data['cartId'] == quote_cart.id
        assert [(e['productId'], e['operation'], e['quantity']) for e in data['changelog']] == [
            (product_b.id, 'add', 1)
        ]

    def test_price_list_progress(self, client, org_headers, quote_cart, wholesale_list, add_condition):
        add_condition(wholesale_list, 'amount', 'greater_or_equal', {'min_amount': 400})

        response = client.get(f'/cart/{quote_cart.id}/price-list-progress', headers=org_headers)

        progress = response.get_json()['priceLists']
        assert progress[0]['priceListName'] == 'Mayorista'
        assert progress[0]['progress'] == 25.0
        assert progress[0]['conditions'][0]['remaining'] == 300.0
        assert progress[0]['conditions'][0]['isMet'] is False


class TestCartSuggestionsApi:

    def test_suggestions_are_priced_and_published(self, client, org_headers, quote_cart, product_b):
        with patch('quotations.services.cart_service.emit_cart_suggestions') as emit:
            response = client.put(f'/cart/{quote_cart.id}/suggestions', headers=org_headers, json={
                'suggestions': [{'productId': product_b.id, 'quantity': 70}]
            })

        assert response.status_code == 200
        suggestions = response.get_json()['suggestions']
        assert [(s['productId'], s['quantity'], s['price']) for s in suggestions] == [(product_b.id, 50, 8.0)]
        emit.assert_called_once()
        assert emit.call_args[0][0] == quote_cart.id

        cart = client.get(f'/cart/{quote_cart.id}', headers=org_headers).get_json()
        assert [i['productId'] for i in cart['items']] == [quote_cart.items[0].product_id]

    def test_suggestions_use_the_list_they_would_unlock(self, client, org_headers, product_a, product_b,
                                                        default_list, wholesale_list, add_condition, set_price):
        add_condition(wholesale_list, 'quantity', 'greater_or_equal', {'min_quantity': 10})
        set_price(product_b, wholesale_list, 7)
        cart = client.post('/cart', headers=org_headers, json={
            'items': [{'productId': product_a.id, 'quantity': 5}]
        }).get_json()

        response = client.put(f"/cart/{cart['id']}/suggestions", headers=org_headers, json={
            'suggestions': [{'productId': product_b.id, 'quantity': 5}]
        })

        suggestion = response.get_json()['suggestions'][0]
        assert suggestion['price'] == 7.0
        assert suggestion['priceListId'] == wholesale_list.id
        assert client.get(f"/cart/{cart['id']}", headers=org_headers).get_json()['priceListId'] == default_list.id

    def test_unknown_product(self, client, org_headers, quote_cart):
        response = client.put(f'/cart/{quote_cart.id}/suggestions', headers=org_headers, json={
            'suggestions': [{'productId': 999999, 'quantity': 1}]
        })

        assert response.status_code == 404


class TestQuoteLifecycleApi:

    def test_activate_and_cancel(self, client, org_headers, quote_cart):
        response = client.post(f'/cart/{quote_cart.id}/activate', headers=org_headers)
        data = response.get_json()
        assert data['status'] == 'active'
        assert data['validUntil'] is not None
        assert data['originalTotalPrice'] == 100.0

        response = client.post(f'/cart/{quote_cart.id}/cancel', headers=org_headers)
        assert response.get_json()['status'] == 'cancelled'

        response = client.post(f'/cart/{quote_cart.id}/items', headers=org_headers, json={'productId': 1})
        assert response.status_code == 400

    def test_validity_follows_organization_settings(self, client, session, organization, org_headers, quote_cart):
        organization.quote_settings = {'validity_days': 30}
        session.commit()

        before = utcnow()
        data = client.post(f'/cart/{quote_cart.id}/activate', headers=org_headers).get_json()

        assert data['validUntil'] >= (before + timedelta(days=29)).isoformat()


class TestValidatePricesApi:

    def test_unchanged_prices(self, client, org_headers, quote_cart):
        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['requiresApproval'] is False
        assert data['validation']['isValid'] is True

    def test_small_change_is_applied(self, client, org_headers, quote_cart, product_a, default_list, set_price):
        set_price(product_a, default_list, 104)

        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data['cart']['totalPrice'] == 104.0
        assert data['validation']['totalPercentageChange'] == 4.0
        assert data['validation']['priceListId'] == default_list.id

    def test_large_change_needs_approval(self, client, org_headers, quote_cart, product_a, default_list, set_price):
        set_price(product_a, default_list, 120)

        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)

        data = response.get_json()
        assert response.status_code == 409
        assert data['error'] == 'PriceChanged'
        assert data['requiresCustomerApproval'] is True
        assert data['validation']['changes'][0]['oldPrice'] == 100.0
        assert data['validation']['changes'][0]['newPrice'] == 120.0

        response = client.post(f'/cart/{quote_cart.id}/approve-prices', headers=org_headers)
        assert response.status_code == 200
        assert response.get_json()['cart']['totalPrice'] == 120.0
        assert response.get_json()['cart']['priceChangeApproved'] is True

        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)
        assert response.status_code == 200

    def test_expired_quote(self, client, session, org_headers, quote_cart):
        quote_cart.status = CartStatus.ACTIVE.value
        quote_cart.valid_until = utcnow() - timedelta(hours=1)
        session.commit()

        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)

        assert response.status_code == 410
        assert response.get_json()['error'] == 'QuoteExpired'
        assert client.get(f'/cart/{quote_cart.id}', headers=org_headers).get_json()['status'] == 'expired'

    def test_expired_quote_allowed_by_organization(self, client, session, organization, org_headers, quote_cart):
        organization.quote_settings = {'allow_expired_quotes': True}
        quote_cart.status = CartStatus.ACTIVE.value
        quote_cart.valid_until = utcnow() - timedelta(hours=1)
        session.commit()

        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)
        assert response.status_code == 200

    def test_missing_product_price(self, client, session, org_headers, quote_cart, product_a):
        for price in list(product_a.prices):
            session.delete(price)
        session.commit()

        response = client.post(f'/cart/{quote_cart.id}/validate-prices', headers=org_headers)

        assert response.status_code == 404
        assert response.get_json()['error'] == 'ProductNotFound'
