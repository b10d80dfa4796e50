"""
Integration tests for the payments API (WebPay and storage are mocked).
"""

import io
from unittest.mock import MagicMock, patch

from quotations.models import PaymentStatus
from quotations.services.webpay_client import WebpayClient


def mocked_webpay():
    client = MagicMock()
    client.create_transaction.return_value = {'token': 'tok-abc', 'url': 'https://webpay.test/init'}
    client.commit_transaction.return_value = {
        'status': 'AUTHORIZED', 'response_code': 0, 'buy_order': 'orden-9',
        'authorization_code': '4455', 'card_detail': {'card_number': '1234'},
    }
    client.is_authorized = WebpayClient.is_authorized
    return client


class TestPaymentsCrud:

    def test_create_list_and_get(self, client, org_headers, quote_cart, transfer_method):
        response = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        })
        assert response.status_code == 201
        payment = response.get_json()
        assert payment['status'] == 'pending'
        assert payment['amount'] == 100.0

        listing = client.get(f'/payments?cartId={quote_cart.id}', headers=org_headers).get_json()['payments']
        assert [p['id'] for p in listing] == [payment['id']]

        fetched = client.get(f"/payments/{payment['id']}", headers=org_headers).get_json()
        assert fetched['paymentMethodId'] == transfer_method.id

    def test_status_transitions(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        }).get_json()['id']

        skip = client.patch(f'/payments/{payment_id}/status', headers=org_headers, json={'status': 'completed'})
        assert skip.status_code == 400
        assert skip.get_json()['error'] == 'InvalidTransition'

        for status in ('processing', 'completed', 'refunded'):
            response = client.patch(f'/payments/{payment_id}/status', headers=org_headers, json={'status': status})
            assert response.status_code == 200
            assert response.get_json()['status'] == status

        terminal = client.patch(f'/payments/{payment_id}/status', headers=org_headers, json={'status': 'pending'})
        assert terminal.status_code == 400

    def test_update_descriptive_fields(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        }).get_json()['id']

        response = client.patch(f'/payments/{payment_id}', headers=org_headers, json={
            'notes': 'Pago en dos cuotas', 'metadata': {'cuotas': 2}
        })

        assert response.get_json()['notes'] == 'Pago en dos cuotas'
        assert response.get_json()['metadata'] == {'cuotas': 2}

    def test_confirm_cancel_refund_and_stats(self, client, org_headers, quote_cart, transfer_method):
        first = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 60,
        }).get_json()['id']
        second = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 40,
        }).get_json()['id']

        confirmed = client.post(f'/payments/{first}/confirm', headers=org_headers, json={'transactionId': 'T-1'})
        cancelled = client.post(f'/payments/{second}/cancel', headers=org_headers, json={'reason': 'Duplicado'})

        assert confirmed.get_json()['status'] == 'completed'
        assert confirmed.get_json()['transactionId'] == 'T-1'
        assert cancelled.get_json()['status'] == 'cancelled'
        assert client.get(f'/cart/{quote_cart.id}', headers=org_headers).get_json()['status'] == 'paid'

        stats = client.get(f'/payments/stats/{quote_cart.id}', headers=org_headers).get_json()
        assert stats == {'cartId': quote_cart.id, 'totalPaid': 60.0, 'totalPending': 0.0, 'totalFailed': 0.0, 'count': 2}

        refunded = client.post(f'/payments/{first}/refund', headers=org_headers)
        assert refunded.get_json()['status'] == 'refunded'

    def test_delete_payment(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        }).get_json()['id']

        assert client.delete(f'/payments/{payment_id}', headers=org_headers).status_code == 200
        assert client.get(f'/payments/{payment_id}', headers=org_headers).status_code == 404


class TestProofPaymentsApi:

    def test_multipart_proof_upload(self, client, org_headers, quote_cart, transfer_method):
        storage = MagicMock()
        storage.upload_proof.return_value = f'http://localhost:9000/payment-proofs/proofs/{quote_cart.id}/p.pdf'

        with patch('quotations.services.payment_service.get_storage_service', return_value=storage):
            response = client.post('/payments/proof', headers=org_headers, data={
                'cartId': quote_cart.id,
                'paymentType': 'bank_transfer',
                'file': (io.BytesIO(b'%PDF-1.4 comprobante'), 'comprobante.pdf'),
            }, content_type='multipart/form-data')

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'processing'
        assert data['proofUrl'].endswith('/p.pdf')
        uploaded = storage.upload_proof.call_args.args[0]
        assert uploaded.filename == 'comprobante.pdf'

    def test_validate_proof(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments/proof', headers=org_headers, json={
            'cartId': quote_cart.id, 'proofUrl': 'https://cdn/proofs/transfer.png',
        }).get_json()['id']

        response = client.patch(f'/payments/{payment_id}/validate-proof', headers=org_headers, json={
            'isValid': True, 'transactionId': 'TRF-77'
        })

        assert response.get_json()['status'] == 'completed'
        assert client.get(f'/cart/{quote_cart.id}', headers=org_headers).get_json()['status'] == 'paid'

    def test_validate_proof_requires_decision(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments/proof', headers=org_headers, json={
            'cartId': quote_cart.id, 'proofUrl': 'https://cdn/proofs/transfer.png',
        }).get_json()['id']

        response = client.patch(f'/payments/{payment_id}/validate-proof', headers=org_headers, json={'notes': 'x'})
        assert response.status_code == 400

    def test_upload_proof_to_existing_payment(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        }).get_json()['id']

        response = client.patch(f'/payments/{payment_id}/upload-proof', headers=org_headers, json={
            'proofUrl': 'https://cdn/proofs/late.png'
        })

        assert response.get_json()['status'] == 'processing'
        assert response.get_json()['proofUrl'] == 'https://cdn/proofs/late.png'

    def test_price_change_blocks_proof_payment(self, client, org_headers, quote_cart, transfer_method,
                                               product_a, default_list, set_price):
        set_price(product_a, default_list, 150)

        response = client.post('/payments/proof', headers=org_headers, json={
            'cartId': quote_cart.id, 'proofUrl': 'https://cdn/proofs/transfer.png',
        })

        assert response.status_code == 409
        data = response.get_json()
        assert data['error'] == 'PriceChanged'
        assert data['requiresCustomerApproval'] is True
        assert data['validation']['totalPercentageChange'] == 50.0
        assert data['validation']['changes'][0]['newPrice'] == 150.0


class TestWebpayApi:

    def test_full_webpay_flow(self, client, org_headers, quote_cart, webpay_method):
        webpay = mocked_webpay()

        with patch('quotations.blueprints.payments.WebpayClient', return_value=webpay):
            started = client.post('/payments/webpay', headers=org_headers, json={'cartId': quote_cart.id})
            assert started.status_code == 201
            assert started.get_json()['webpayUrl'] == 'https://webpay.test/init'
            assert started.get_json()['webpayToken'] == 'tok-abc'

            callback = client.get('/payments/webpay/callback?token_ws=tok-abc')

        assert callback.status_code == 200
        payment = callback.get_json()
        assert payment['status'] == PaymentStatus.COMPLETED.value
        assert payment['metadata']['authorizationCode'] == '4455'
        assert client.get(f'/cart/{quote_cart.id}', headers=org_headers).get_json()['status'] == 'paid'

    def test_aborted_payment(self, client, org_headers, quote_cart, webpay_method):
        webpay = mocked_webpay()

        with patch('quotations.blueprints.payments.WebpayClient', return_value=webpay):
            client.post('/payments/webpay', headers=org_headers, json={'cartId': quote_cart.id})
            callback = client.post('/payments/webpay/callback', data={'TBK_TOKEN': 'tok-abc'})

        assert callback.get_json()['status'] == 'cancelled'

    def test_callback_without_token(self, client, session):
        with patch('quotations.blueprints.payments.WebpayClient', return_value=mocked_webpay()):
            response = client.get('/payments/webpay/callback')
        assert response.status_code == 400


class TestReceipt:

    def test_receipt_for_completed_payment(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        }).get_json()['id']
        client.post(f'/payments/{payment_id}/confirm', headers=org_headers)

        response = client.get(f'/payments/{payment_id}/receipt', headers=org_headers)

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

    def test_no_receipt_before_completion(self, client, org_headers, quote_cart, transfer_method):
        payment_id = client.post('/payments', headers=org_headers, json={
            'cartId': quote_cart.id, 'paymentMethodId': transfer_method.id, 'amount': 100,
        }).get_json()['id']

        response = client.get(f'/payments/{payment_id}/receipt', headers=org_headers)
        assert response.status_code == 400
