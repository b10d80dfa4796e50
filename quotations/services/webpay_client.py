"""Transbank Webpay Plus REST client."""
from typing import Any, Dict, Optional

import requests
from flask import current_app


class WebpayClient:
    """Cliente para la API REST de Webpay Plus (Transbank)."""

    API_PATH = "/rswebpaytransaction/api/webpay/v1.2/transactions"

    def __init__(self, base_url: Optional[str] = None, commerce_code: Optional[str] = None,
                 api_key: Optional[str] = None, timeout: Optional[int] = None):
        """
        Initialize the Webpay client.

        Args:
            base_url: Transbank host; defaults to WEBPAY_BASE_URL
            commerce_code: Tbk-Api-Key-Id; defaults to WEBPAY_COMMERCE_CODE
            api_key: Tbk-Api-Key-Secret; defaults to WEBPAY_API_KEY
        """
        config = current_app.config
        self.base_url = (base_url or config['WEBPAY_BASE_URL']).rstrip('/')
        self.commerce_code = commerce_code or config['WEBPAY_COMMERCE_CODE']
        self.api_key = api_key or config['WEBPAY_API_KEY']
        self.timeout = timeout or config.get('WEBPAY_TIMEOUT', 10)

        if not self.commerce_code or not self.api_key:
            raise ValueError("WEBPAY_COMMERCE_CODE and WEBPAY_API_KEY are required")

        self.headers = {
            'Tbk-Api-Key-Id': self.commerce_code,
            'Tbk-Api-Key-Secret': self.api_key,
            'Content-Type': 'application/json'
        }

    def create_transaction(self, buy_order: str, session_id: str, amount, return_url: str) -> Dict[str, Any]:
        """
        Crear una transacción Webpay Plus.

        Args:
            buy_order: Orden de compra (máx. 26 caracteres)
            session_id: Identificador de sesión del comercio
            amount: Monto en pesos
            return_url: URL a la que Transbank redirige con el token_ws

        Returns:
            Dict con `token` y `url` del formulario de pago

        Raises:
            requests.HTTPError: Si Transbank devuelve error
        """
        url = f"{self.base_url}{self.API_PATH}"
        payload = {
            'buy_order': buy_order[:26],
            'session_id': session_id[:61],
            'amount': float(amount),
            'return_url': return_url,
        }

        current_app.logger.info(f"[WEBPAY] Creating transaction for order {payload['buy_order']}")

        try:
            response = requests.post(url, json=payload, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
            current_app.logger.info(f"[WEBPAY] Transaction created, token {data.get('token')}")
            return data
        except requests.HTTPError as e:
            current_app.logger.error(f"[WEBPAY] Error creating transaction: {e.response.text}")
            raise
        except requests.RequestException as e:
            current_app.logger.error(f"[WEBPAY] Unexpected error: {str(e)}")
            raise

    def commit_transaction(self, token: str) -> Dict[str, Any]:
        """
        Confirmar (commit) una transacción tras el retorno del usuario.

        Returns:
            Dict con status, response_code, authorization_code, amount, buy_order...

        Raises:
            requests.HTTPError: Si Transbank devuelve error
        """
        url = f"{self.base_url}{self.API_PATH}/{token}"
        current_app.logger.info(f"[WEBPAY] Committing transaction {token}")

        try:
            response = requests.put(url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
            current_app.logger.info(
                f"[WEBPAY] Transaction {token} status={data.get('status')} code={data.get('response_code')}"
            )
            return data
        except requests.HTTPError as e:
            current_app.logger.error(f"[WEBPAY] Error committing transaction: {e.response.text}")
            raise
        except requests.RequestException as e:
            current_app.logger.error(f"[WEBPAY] Unexpected error: {str(e)}")
            raise

    @staticmethod
    def is_authorized(commit_response: Dict[str, Any]) -> bool:
        return commit_response.get('response_code') == 0 and commit_response.get('status') == 'AUTHORIZED'
