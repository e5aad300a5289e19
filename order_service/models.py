"""
models.py — API Data Models for Order Placement and Reads

This module defines the request and response payloads of the order API.
It uses Pydantic models to ensure type safety and automatic validation of incoming data.
Field names follow the storefront's JSON contract (camelCase).

Models:
    - CartItem: A single line of the submitted cart.
    - NewOrderRequest: The complete order placement payload.
    - OrderCreatedResponse: Result of a successful order placement.
    - OrderLineResponse / OrderResponse: Read-side representation of an order.
    - PaymentCallback: Result notification posted by the payment gateway.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import ELECTRONIC_PAYMENT_METHODS

MPESA_PHONE_RE = re.compile(r"^0[0-9]{9}$")


class CartItem(BaseModel):
    """
    Represents a single product line in the cart.

    Attributes:
        id (int): Product id.
        quantity (int): Quantity to order. Must be at least 1.
        unitPrice (Decimal | None): Price the client displayed; cross-checked against the catalog.
        cashbackPercent (Decimal | None): Cashback percent override (0-100).
    """
    id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    unitPrice: Optional[Decimal] = Field(None, ge=0)
    cashbackPercent: Optional[Decimal] = Field(None, ge=0, le=100)


class NewOrderRequest(BaseModel):
    """
    Represents an order placement request from the storefront.

    Attributes:
        shippingInfo (dict): Shipping details, stored as submitted.
        paymentMethod (str): e.g. 'mpesa' or 'cash_on_delivery'.
        mpesaPhone (str | None): Payer phone, required for M-Pesa (format 07XXXXXXXX).
        cartItems (List[CartItem]): At least one line.
        subtotalExclVAT (Decimal): Client-computed VAT-exclusive subtotal.
        vatAmount (Decimal): Client-computed VAT.
        shippingCost (Decimal): Shipping charged.
        total (Decimal): Client-computed grand total.
    """
    shippingInfo: Dict[str, Any]
    paymentMethod: str = Field(..., min_length=1, max_length=50)
    mpesaPhone: Optional[str] = None
    cartItems: List[CartItem] = Field(..., min_length=1)
    subtotalExclVAT: Decimal = Field(..., ge=0)
    vatAmount: Decimal = Field(..., ge=0)
    shippingCost: Decimal = Field(..., ge=0)
    total: Decimal = Field(..., ge=0)

    @field_validator("shippingInfo")
    @classmethod
    def shipping_info_not_empty(cls, value):
        if not value:
            raise ValueError("Shipping info is required")
        return value

    @model_validator(mode="after")
    def mpesa_phone_required(self):
        if self.paymentMethod in ELECTRONIC_PAYMENT_METHODS:
            if not self.mpesaPhone or not MPESA_PHONE_RE.match(self.mpesaPhone):
                raise ValueError("Invalid M-Pesa phone number")
        return self


class OrderCreatedResponse(BaseModel):
    message: str
    orderId: int
    orderNumber: str
    createdAt: datetime
    status: str
    merchantRequestID: Optional[str] = None
    transactionStatus: Optional[str] = None


# Money and rates are serialized as decimal strings, exactly as stored
class OrderLineResponse(BaseModel):
    productId: int
    quantity: int
    unitPrice: Decimal
    vatRate: Decimal
    subtotalExclVAT: Decimal
    cashbackPercent: Decimal
    cashbackAmount: Decimal


class OrderResponse(BaseModel):
    id: int
    orderNumber: str
    userId: int
    paymentMethod: str
    shippingInfo: Dict[str, Any]
    subtotalExclVAT: Decimal
    vatAmount: Decimal
    shippingCost: Decimal
    total: Decimal
    totalCashback: Decimal
    status: str
    createdAt: datetime
    updatedAt: datetime
    items: List[OrderLineResponse]

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=order.id,
            orderNumber=order.order_number,
            userId=order.user_id,
            paymentMethod=order.payment_method,
            shippingInfo=order.shipping_info,
            subtotalExclVAT=order.subtotal_excl_vat,
            vatAmount=order.vat_amount,
            shippingCost=order.shipping_cost,
            total=order.total_amount,
            totalCashback=order.total_cashback,
            status=order.status,
            createdAt=order.created_at,
            updatedAt=order.updated_at,
            items=[
                OrderLineResponse(
                    productId=line.product_id,
                    quantity=line.quantity,
                    unitPrice=line.unit_price,
                    vatRate=line.vat_rate,
                    subtotalExclVAT=line.subtotal_excl_vat,
                    cashbackPercent=line.cashback_percent,
                    cashbackAmount=line.cashback_amount,
                )
                for line in order.lines
            ],
        )


class PaymentCallback(BaseModel):
    """
    STK push result posted by KCB Buni.

    resultCode "0" means the payer completed the payment.
    """
    merchantRequestID: Optional[str] = None
    checkoutRequestID: Optional[str] = None
    resultCode: Optional[str] = None
    resultDesc: Optional[str] = None

    @field_validator("resultCode", mode="before")
    @classmethod
    def result_code_as_string(cls, value):
        return None if value is None else str(value)
