"""
main.py — FastAPI Entry Point for the Order Service

This module provides the REST API of the e-commerce order core.
It is the boundary between the storefront and the order workflow: it resolves
the caller's identity, validates payloads and maps domain errors to HTTP
responses. All business rules live in the workflow and below.

Responsibilities:
    • Accept new orders and start M-Pesa payment initiation
    • Serve single orders and a user's order history
    • Receive payment results from the KCB Buni gateway
    • Provide system health information
"""

import os
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import workflow
from .clients import PaymentClient
from .config import DATABASE_URL
from .database import Database
from .errors import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    OrderNotFoundError,
    OrderServiceError,
    PaymentError,
    PersistenceError,
    PricingMismatchError,
    StockError,
    ValidationError,
)
from .logging_config import get_logger, setup_logging
from .models import (
    NewOrderRequest,
    OrderCreatedResponse,
    OrderResponse,
    PaymentCallback,
)
from .orders import get_order, list_user_orders
from .security import Caller, get_caller

log = get_logger(__name__)

# Product lookups inside order placement are client errors (bad cart),
# order lookups are plain 404s.
ERROR_STATUS_CODES = {
    OrderNotFoundError: 404,
    NotFoundError: 400,
    ValidationError: 400,
    StockError: 400,
    PricingMismatchError: 400,
    ForbiddenError: 403,
    PaymentError: 502,
    PersistenceError: 500,
}


def status_code_for(exc: OrderServiceError) -> int:
    if isinstance(exc, AuthenticationError):
        return exc.status_code
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_payment_client(request: Request) -> Optional[PaymentClient]:
    return request.app.state.payment_client


def create_app(database: Optional[Database] = None, payment_client: Optional[PaymentClient] = None) -> FastAPI:
    """
    Builds the FastAPI application.

    Args:
        database (Database | None): Order database. Defaults to one built from DATABASE_URL.
        payment_client (PaymentClient | None): Gateway client. Defaults to the configured KCB Buni client.

    Returns:
        FastAPI: The configured application.
    """
    app = FastAPI(title="E-Commerce Order Service")
    app.state.database = database or Database(DATABASE_URL)
    app.state.payment_client = payment_client or PaymentClient()

    @app.on_event("startup")
    def on_startup():
        log.info("Order service starting...")
        app.state.database.create_all()
        log.info("Database schema ready.")

    @app.on_event("shutdown")
    def on_shutdown():
        app.state.payment_client.close()
        app.state.database.dispose()

    @app.exception_handler(OrderServiceError)
    async def order_service_error_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
        """Map OrderServiceError subclasses to HTTP responses."""
        status_code = status_code_for(exc)
        if isinstance(exc, PersistenceError):
            # Internal details stay in the log
            content = {"message": "Failed to process order request", "error": exc.code}
        elif isinstance(exc, PaymentError):
            content = {"message": "Failed to initiate payment", "error": exc.code, "orderId": exc.order_id}
        else:
            content = {"message": exc.message, "error": exc.code}
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"errors": errors})

    # API Endpoint: Storefront → Order Service
    @app.post("/orders", status_code=201, response_model=OrderCreatedResponse, response_model_exclude_none=True)
    def submit_order(
            order: NewOrderRequest,
            caller: Caller = Depends(get_caller),
            db: Database = Depends(get_database),
            payment_client: Optional[PaymentClient] = Depends(get_payment_client),
    ):
        """
        Places a new order for the authenticated caller.

        Returns:
            OrderCreatedResponse: Order id, number and creation time; for M-Pesa
            also the gateway's merchantRequestID and transactionStatus.
        """
        log.info(f"[User: {caller.id}] New order with {len(order.cartItems)} item(s), payment {order.paymentMethod}.")
        placed = workflow.place_order(db, caller, order, payment_client=payment_client)
        message = "Order created successfully"
        if placed.merchant_request_id:
            message = "Order created and STK Push initiated"
        return OrderCreatedResponse(
            message=message,
            orderId=placed.order.id,
            orderNumber=placed.order.order_number,
            createdAt=placed.order.created_at,
            status=placed.status,
            merchantRequestID=placed.merchant_request_id,
            transactionStatus=placed.transaction_status,
        )

    @app.get("/orders/callback")
    def callback_wrong_method(request: Request):
        log.warning(f"GET request to /orders/callback: {dict(request.query_params)}")
        return JSONResponse(
            status_code=405,
            content={"message": "Method Not Allowed. Use POST for M-Pesa callback."},
        )

    # Gateway Endpoint: KCB Buni → Order Service
    @app.post("/orders/callback")
    def payment_callback(callback: PaymentCallback, db: Database = Depends(get_database)):
        """
        Receives the STK push result and settles the matching initiated order.

        Always acknowledges known-format callbacks so the gateway stops retrying.
        """
        if not callback.merchantRequestID:
            return JSONResponse(status_code=400, content={"message": "Invalid callback data"})
        workflow.handle_payment_callback(db, callback)
        return {"ResultCode": 0, "ResultDesc": "Notification received successfully"}

    @app.get("/orders/user/{userId}", response_model=List[OrderResponse])
    def user_orders(userId: int, caller: Caller = Depends(get_caller), db: Database = Depends(get_database)):
        """Returns all orders of a user, newest first, with their line items."""
        return [OrderResponse.from_order(order) for order in list_user_orders(db, userId, caller)]

    @app.get("/orders/{orderId}", response_model=OrderResponse)
    def order_detail(orderId: int, caller: Caller = Depends(get_caller), db: Database = Depends(get_database)):
        """Returns one order with its line items, if the caller may see it."""
        return OrderResponse.from_order(get_order(db, orderId, caller))

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        """
        Simple health check endpoint.

        Can be used by monitoring systems or container orchestrators
        to verify that the service is running.
        """
        return {"status": "ok"}

    return app


def run():
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    setup_logging()
    uvicorn.run(create_app(), host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "5000")))


if __name__ == "__main__":
    run()
