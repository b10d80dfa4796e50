"""
Unit tests for the payment status state machine and checkout flows.
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests

from quotations.exceptions import BusinessLogicError, InvalidTransitionError, PriceChangedError, QuoteExpiredError
from quotations.models import CartStatus, Payment, PaymentStatus, PAYMENT_TRANSITIONS, can_transition
from quotations.services import payment_service
from quotations.services.quote_config import QuoteConfig
from quotations.services.webpay_client import WebpayClient


ALL_STATUSES = [s.value for s in PaymentStatus]


def webpay_client(commit_response=None):
    client = MagicMock()
    client.create_transaction.return_value = {
        'token': 'e9d555262db0f989e49d724b4db0b0af367cc415cde41f500a776550fc5fddd3',
        'url': 'https://webpay3gint.transbank.cl/webpayserver/initTransaction',
    }
    client.commit_transaction.return_value = commit_response or {
        'status': 'AUTHORIZED',
        'response_code': 0,
        'buy_order': 'orden-123',
        'authorization_code': '1213',
        'card_detail': {'card_number': '6623'},
    }
    client.is_authorized = WebpayClient.is_authorized
    return client


class TestTransitionTable:

    def test_completed_cannot_go_back_to_pending(self):
        assert can_transition('completed', 'pending') is False

    def test_completed_can_be_refunded(self):
        assert can_transition('completed', 'refunded') is True

    def test_refunded_is_terminal(self):
        assert all(not can_transition('refunded', status) for status in ALL_STATUSES)
        assert PAYMENT_TRANSITIONS['refunded'] == set()

    def test_failed_and_cancelled_can_be_retried(self):
        assert can_transition('failed', 'pending') is True
        assert can_transition('cancelled', 'pending') is True
        assert can_transition('cancelled', 'completed') is False

    def test_pending_cannot_complete_directly(self):
        assert can_transition('pending', 'completed') is False


class TestChangeStatus:

    def test_rejected_transition_raises(self):
        payment = Payment(status=PaymentStatus.COMPLETED.value)

        with pytest.raises(InvalidTransitionError) as exc_info:
            payment_service.change_status(payment, PaymentStatus.PENDING.value)

        assert exc_info.value.payload == {'currentStatus': 'completed', 'newStatus': 'pending'}
        assert payment.status == PaymentStatus.COMPLETED.value

    def test_unknown_status_raises(self):
        payment = Payment(status=PaymentStatus.PENDING.value)

        with pytest.raises(BusinessLogicError):
            payment_service.change_status(payment, 'paid')

    def test_completion_stamps_dates(self):
        payment = Payment(status=PaymentStatus.PROCESSING.value)

        payment_service.change_status(payment, PaymentStatus.COMPLETED.value)

        assert payment.confirmed_at is not None
        assert payment.payment_date == payment.confirmed_at


class TestPaymentLifecycle:

    @pytest.fixture
    def payment(self, session, organization, quote_cart, transfer_method):
        return payment_service.create_payment(session, organization.id, {
            'cart_id': quote_cart.id,
            'payment_method_id': transfer_method.id,
            'amount': '100',
        })

    def test_create_payment_defaults(self, payment, transfer_method):
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.payment_type == transfer_method.payment_type
        assert payment.amount == Decimal('100')

    def test_create_payment_rejects_final_status(self, session, organization, quote_cart, transfer_method):
        with pytest.raises(BusinessLogicError):
            payment_service.create_payment(session, organization.id, {
                'cart_id': quote_cart.id,
                'payment_method_id': transfer_method.id,
                'amount': 100,
                'status': 'completed',
            })

    def test_create_payment_requires_positive_amount(self, session, organization, quote_cart, transfer_method):
        with pytest.raises(BusinessLogicError):
            payment_service.create_payment(session, organization.id, {
                'cart_id': quote_cart.id, 'payment_method_id': transfer_method.id, 'amount': 0,
            })

    def test_confirm_marks_cart_paid(self, session, organization, quote_cart, payment):
        payment = payment_service.confirm_payment(session, payment.id, organization.id, {'transaction_id': 'TRX-1'})

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.transaction_id == 'TRX-1'
        assert quote_cart.status == CartStatus.PAID.value

    def test_confirm_twice_fails(self, session, organization, payment):
        payment_service.confirm_payment(session, payment.id, organization.id, {})

        with pytest.raises(BusinessLogicError):
            payment_service.confirm_payment(session, payment.id, organization.id, {})

    def test_refund_keeps_cart_paid(self, session, organization, quote_cart, payment):
        payment_service.confirm_payment(session, payment.id, organization.id, {})

        payment = payment_service.refund_payment(session, payment.id, organization.id, 'Cliente desistió')

        assert payment.status == PaymentStatus.REFUNDED.value
        assert payment.notes == 'Cliente desistió'
        assert quote_cart.status == CartStatus.PAID.value

    def test_refunded_payment_is_final(self, session, organization, payment):
        payment_service.confirm_payment(session, payment.id, organization.id, {})
        payment_service.refund_payment(session, payment.id, organization.id)

        for status in ALL_STATUSES:
            with pytest.raises(BusinessLogicError):
                payment_service.update_status(session, payment.id, organization.id, status)

    def test_refund_requires_completed(self, session, organization, payment):
        with pytest.raises(BusinessLogicError):
            payment_service.refund_payment(session, payment.id, organization.id)

    def test_update_payment_rejects_status(self, session, organization, payment):
        with pytest.raises(BusinessLogicError):
            payment_service.update_payment(session, payment.id, organization.id, {'status': 'completed'})

    def test_upload_proof_moves_to_processing(self, session, organization, payment):
        payment = payment_service.upload_proof(
            session, payment.id, organization.id, proof_url='https://cdn.example.com/proofs/1.pdf'
        )

        assert payment.status == PaymentStatus.PROCESSING.value
        assert payment.proof_url == 'https://cdn.example.com/proofs/1.pdf'

    def test_delete_removes_proof(self, session, organization, payment):
        payment_service.upload_proof(session, payment.id, organization.id, proof_url='https://cdn/proofs/1.pdf')
        storage = MagicMock()

        with patch('quotations.services.payment_service.get_storage_service', return_value=storage):
            payment_service.delete_payment(session, payment.id, organization.id)

        storage.delete_file_by_url.assert_called_once_with('https://cdn/proofs/1.pdf')
        assert session.query(Payment).count() == 0

    def test_completed_payment_cannot_be_deleted(self, session, organization, payment):
        payment_service.confirm_payment(session, payment.id, organization.id, {})

        with pytest.raises(BusinessLogicError):
            payment_service.delete_payment(session, payment.id, organization.id)

    def test_stats(self, session, organization, quote_cart, transfer_method, payment):
        payment_service.confirm_payment(session, payment.id, organization.id, {})
        failed = payment_service.create_payment(session, organization.id, {
            'cart_id': quote_cart.id, 'payment_method_id': transfer_method.id, 'amount': 40,
        })
        payment_service.update_status(session, failed.id, organization.id, 'failed')
        payment_service.create_payment(session, organization.id, {
            'cart_id': quote_cart.id, 'payment_method_id': transfer_method.id, 'amount': 25,
        })

        stats = payment_service.get_payment_stats(session, quote_cart.id, organization.id)

        assert stats == {
            'total_paid': Decimal('100'),
            'total_pending': Decimal('25'),
            'total_failed': Decimal('40'),
            'count': 3,
        }


class TestProofPayments:

    def test_proof_payment_starts_processing(self, session, organization, quote_cart, transfer_method):
        payment = payment_service.create_proof_payment(session, organization.id, {
            'cart_id': quote_cart.id,
            'payment_type': 'bank_transfer',
            'proof_url': 'https://cdn/proofs/transfer.png',
        }, config=QuoteConfig())

        assert payment.status == PaymentStatus.PROCESSING.value
        assert payment.payment_method_id == transfer_method.id
        assert payment.amount == Decimal('100')

    def test_valid_proof_completes_payment(self, session, organization, quote_cart, transfer_method):
        payment = payment_service.create_proof_payment(session, organization.id, {
            'cart_id': quote_cart.id, 'proof_url': 'https://cdn/proofs/transfer.png',
        })

        payment = payment_service.validate_proof(session, payment.id, organization.id, True, transaction_id='TRF-9')

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.transaction_id == 'TRF-9'
        assert quote_cart.status == CartStatus.PAID.value

    def test_invalid_proof_fails_payment(self, session, organization, quote_cart, transfer_method):
        payment = payment_service.create_proof_payment(session, organization.id, {
            'cart_id': quote_cart.id, 'proof_url': 'https://cdn/proofs/blurry.png',
        })

        payment = payment_service.validate_proof(session, payment.id, organization.id, False, notes='Ilegible')

        assert payment.status == PaymentStatus.FAILED.value
        assert quote_cart.status == CartStatus.DRAFT.value

    def test_uploaded_file_goes_to_storage(self, session, organization, quote_cart, transfer_method):
        storage = MagicMock()
        storage.upload_proof.return_value = 'http://localhost:9000/payment-proofs/proofs/x/comprobante.pdf'

        with patch('quotations.services.payment_service.get_storage_service', return_value=storage):
            payment = payment_service.create_proof_payment(
                session, organization.id, {'cart_id': quote_cart.id}, file=object()
            )

        assert payment.proof_url.endswith('comprobante.pdf')
        storage.upload_proof.assert_called_once()

    def test_proof_is_required(self, session, organization, quote_cart, transfer_method):
        with pytest.raises(BusinessLogicError):
            payment_service.create_proof_payment(session, organization.id, {'cart_id': quote_cart.id})

    def test_webpay_is_not_a_proof_type(self, session, organization, quote_cart, transfer_method):
        with pytest.raises(BusinessLogicError):
            payment_service.create_proof_payment(session, organization.id, {
                'cart_id': quote_cart.id, 'payment_type': 'web_pay', 'proof_url': 'x',
            })

    def test_large_price_change_blocks_payment(self, session, organization, product_a, default_list,
                                               quote_cart, transfer_method, set_price):
        set_price(product_a, default_list, 110)

        with pytest.raises(PriceChangedError) as exc_info:
            payment_service.create_proof_payment(session, organization.id, {
                'cart_id': quote_cart.id, 'proof_url': 'https://cdn/proofs/transfer.png',
            })

        assert exc_info.value.status_code == 409
        assert session.query(Payment).count() == 0

    def test_expired_quote_blocks_payment(self, session, organization, quote_cart, transfer_method):
        from datetime import timedelta
        from quotations.utils.dates import utcnow

        quote_cart.status = CartStatus.ACTIVE.value
        quote_cart.valid_until = utcnow() - timedelta(days=1)
        session.commit()

        with pytest.raises(QuoteExpiredError):
            payment_service.create_proof_payment(session, organization.id, {
                'cart_id': quote_cart.id, 'proof_url': 'https://cdn/proofs/transfer.png',
            })
        assert quote_cart.status == CartStatus.EXPIRED.value


class TestWebpay:

    def test_initiate_creates_pending_payment(self, session, organization, quote_cart, webpay_method):
        client = webpay_client()

        result = payment_service.initiate_webpay(
            session, organization.id, {'cart_id': quote_cart.id}, client, 'http://localhost/callback'
        )

        payment = result['payment']
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.payment_type == 'web_pay'
        assert payment.external_reference == result['webpay_token']
        assert result['webpay_url'].startswith('https://webpay3gint')
        kwargs = client.create_transaction.call_args.kwargs
        assert kwargs['amount'] == Decimal('100')
        assert kwargs['session_id'] == quote_cart.id
        assert len(kwargs['buy_order']) <= 26

    def test_initiate_failure_marks_payment_failed(self, session, organization, quote_cart, webpay_method):
        client = webpay_client()
        client.create_transaction.side_effect = requests.ConnectionError('timeout')

        with pytest.raises(BusinessLogicError) as exc_info:
            payment_service.initiate_webpay(
                session, organization.id, {'cart_id': quote_cart.id}, client, 'http://localhost/callback'
            )

        assert exc_info.value.status_code == 502
        assert session.query(Payment).one().status == PaymentStatus.FAILED.value

    def test_authorized_callback_completes_payment(self, session, organization, quote_cart, webpay_method):
        client = webpay_client()
        result = payment_service.initiate_webpay(
            session, organization.id, {'cart_id': quote_cart.id}, client, 'http://localhost/callback'
        )

        payment = payment_service.handle_webpay_callback(session, client, token=result['webpay_token'])

        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.transaction_id == 'orden-123'
        assert payment.payment_metadata['authorizationCode'] == '1213'
        assert payment.payment_metadata['cardNumber'] == '6623'
        assert quote_cart.status == CartStatus.PAID.value

    def test_callback_is_idempotent(self, session, organization, quote_cart, webpay_method):
        client = webpay_client()
        token = payment_service.initiate_webpay(
            session, organization.id, {'cart_id': quote_cart.id}, client, 'http://localhost/callback'
        )['webpay_token']

        payment_service.handle_webpay_callback(session, client, token=token)
        payment = payment_service.handle_webpay_callback(session, client, token=token)

        assert payment.status == PaymentStatus.COMPLETED.value
        client.commit_transaction.assert_called_once_with(token)

    def test_rejected_callback_fails_payment(self, session, organization, quote_cart, webpay_method):
        client = webpay_client({'status': 'FAILED', 'response_code': -1})
        token = payment_service.initiate_webpay(
            session, organization.id, {'cart_id': quote_cart.id}, client, 'http://localhost/callback'
        )['webpay_token']

        payment = payment_service.handle_webpay_callback(session, client, token=token)

        assert payment.status == PaymentStatus.FAILED.value
        assert quote_cart.status == CartStatus.DRAFT.value

    def test_aborted_callback_cancels_payment(self, session, organization, quote_cart, webpay_method):
        client = webpay_client()
        token = payment_service.initiate_webpay(
            session, organization.id, {'cart_id': quote_cart.id}, client, 'http://localhost/callback'
        )['webpay_token']

        payment = payment_service.handle_webpay_callback(session, client, aborted_token=token)

        assert payment.status == PaymentStatus.CANCELLED.value
        client.commit_transaction.assert_not_called()
