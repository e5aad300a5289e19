"""
config.py — Runtime configuration for the order service

All settings come from environment variables and are read once at import time.
Defaults are suitable for local development against the mock payment gateway.
"""

import os
from decimal import Decimal

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./orders.db")

JWT_SECRET = os.environ.get("JWT_SECRET", "your_jwt_secret")
JWT_ALGORITHM = "HS256"

# Flat shipping rate charged on every order (single rate per deployment)
SHIPPING_FLAT_RATE = Decimal(os.environ.get("SHIPPING_FLAT_RATE", "200.00"))

# Cashback applied when neither the cart line nor the product defines one
DEFAULT_CASHBACK_PERCENT = Decimal(os.environ.get("DEFAULT_CASHBACK_PERCENT", "5"))

# Payment methods that go through the gateway; all others are created as final
ELECTRONIC_PAYMENT_METHODS = frozenset(
    m.strip() for m in os.environ.get("ELECTRONIC_PAYMENT_METHODS", "mpesa").split(",") if m.strip()
)

# KCB Buni gateway (M-Pesa STK push)
KCB_BUNI_BASE_URL = os.environ.get("KCB_BUNI_BASE_URL", "https://uat.buni.kcbgroup.com")
KCB_BUNI_CLIENT_ID = os.environ.get("KCB_BUNI_CLIENT_ID", "")
KCB_BUNI_CLIENT_SECRET = os.environ.get("KCB_BUNI_CLIENT_SECRET", "")
KCB_BUNI_CALLBACK_URL = os.environ.get(
    "KCB_BUNI_CALLBACK_URL", "https://your-callback-url.com/orders/callback"
)

LOG_FILE = os.environ.get("ORDER_SERVICE_LOG_FILE", "order_service.log")
