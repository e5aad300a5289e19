"""
This module provides the communication client for the payment gateway used by the order service:
- KCB Buni (REST API) for M-Pesa STK push payment initiation
The class encapsulates the protocol logic, error handling and connection management.
"""

import logging
from decimal import Decimal

import httpx

from .config import (
    KCB_BUNI_BASE_URL,
    KCB_BUNI_CALLBACK_URL,
    KCB_BUNI_CLIENT_ID,
    KCB_BUNI_CLIENT_SECRET,
)
from .errors import PaymentError

log = logging.getLogger(__name__)

TOKEN_PATH = "/token"
STK_PUSH_PATH = "/mm/api/request/1.0.0/stkpush"


class PaymentClient:
    """
    Client for the KCB Buni gateway (REST API).
    Fetches an access token and sends STK push requests for M-Pesa orders.
    """
    def __init__(self, client: httpx.Client | None = None,
                 client_id: str = KCB_BUNI_CLIENT_ID,
                 client_secret: str = KCB_BUNI_CLIENT_SECRET,
                 callback_url: str = KCB_BUNI_CALLBACK_URL):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            client (httpx.Client | None): Preconfigured client, e.g. one bound to a mock gateway.
            client_id (str): KCB Buni consumer key.
            client_secret (str): KCB Buni consumer secret.
            callback_url (str): URL the gateway posts the payment result to.
        """
        if client is None:
            timeout_config = httpx.Timeout(5.0, read=15.0)
            client = httpx.Client(base_url=KCB_BUNI_BASE_URL, timeout=timeout_config)
        self.client = client
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url

    def close(self):
        self.client.close()

    def get_access_token(self) -> str:
        """
        Requests an OAuth access token with the client-credentials grant.

        Returns:
            str: Bearer token for subsequent gateway calls.

        Raises:
            PaymentError: If the credentials are missing or the gateway refuses them.
        """
        if not self.client_id or not self.client_secret:
            raise PaymentError("KCB_BUNI_CLIENT_ID or KCB_BUNI_CLIENT_SECRET not set")
        try:
            response = self.client.post(
                TOKEN_PATH,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
            response.raise_for_status()
            return response.json()["access_token"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            log.error(f"Fetching KCB Buni access token failed: {e}")
            raise PaymentError("Failed to authenticate with KCB Buni") from e

    def initiate_stk_push(self, order_number: str, phone_number: str, amount: Decimal) -> dict:
        """
        Sends an STK push request to the payer's phone.

        Args:
            order_number (str): Used as the invoice number.
            phone_number (str): Payer phone in 07XXXXXXXX format.
            amount (Decimal): Amount to collect.

        Returns:
            dict: Gateway response with merchantRequestID, checkoutRequestID and transactionStatus.

        Raises:
            PaymentError: If the gateway is unreachable, times out or rejects the request.
        """
        log_prefix = f"[Order: {order_number}]"
        access_token = self.get_access_token()
        payload = {
            "phoneNumber": phone_number,
            "amount": float(amount),
            "invoiceNumber": order_number,
            "callbackUrl": self.callback_url,
        }
        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            response = self.client.post(STK_PUSH_PATH, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            # The push may still reach the phone. The caller fails the order, so a
            # later callback for it matches nothing and is only logged.
            log.error(f"{log_prefix} STK push timed out. Status unknown.")
            raise PaymentError("Payment gateway timeout", gateway_response=None) from e
        except httpx.HTTPStatusError as e:
            log.warning(f"{log_prefix} STK push rejected (HTTP {e.response.status_code}): {e.response.text}")
            raise PaymentError("Payment gateway rejected the request", gateway_response=e.response.text) from e
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"{log_prefix} STK push failed: {e}")
            raise PaymentError("Payment gateway unreachable") from e

        if not data.get("merchantRequestID"):
            log.error(f"{log_prefix} STK push response without merchantRequestID: {data}")
            raise PaymentError("Invalid payment gateway response", gateway_response=data)

        log.info(f"{log_prefix} STK push accepted (merchantRequestID: {data['merchantRequestID']}).")
        return data
