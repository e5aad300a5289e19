"""
mock_payment_service.py — Mock Implementation of the KCB Buni Gateway (REST API)

This module provides a simulated KCB Buni gateway for local development and tests.
It exposes a small FastAPI application that mimics the token and STK push endpoints.

Simulation Scenarios:
    • Successful STK push
    • Declined STK push (HTTP 400) for phone numbers ending in "0000"
    • Rejected credentials (HTTP 401) for the client id "invalid"

Endpoints:
    POST /token — OAuth client-credentials grant.
    POST /mm/api/request/1.0.0/stkpush — STK push request.

Port:
    Default: 8001 (HTTP)
"""

import base64
import logging
import uuid

from fastapi import FastAPI, Form, Header, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Mock KCB Buni Gateway")
log = logging.getLogger(__name__)

ISSUED_TOKENS = set()


class StkPushRequest(BaseModel):
    """
    Represents an STK push request payload.

    Attributes:
        phoneNumber (str): Payer phone number (07XXXXXXXX).
        amount (float): Amount to collect.
        invoiceNumber (str): Merchant reference, the order number.
        callbackUrl (str): Where the result is posted.
    """
    phoneNumber: str
    amount: float
    invoiceNumber: str
    callbackUrl: str


@app.post("/token")
def issue_token(grant_type: str = Form(...), authorization: str = Header(...)):
    """
    Issues an access token for valid Basic credentials.

    Raises:
        HTTPException(400): Unsupported grant type.
        HTTPException(401): Missing or rejected credentials.
    """
    if grant_type != "client_credentials":
        raise HTTPException(status_code=400, detail={"error": "unsupported_grant_type"})
    if not authorization.startswith("Basic "):
        raise HTTPException(status_code=401, detail={"error": "invalid_client"})

    client_id = base64.b64decode(authorization.split(" ", 1)[1]).decode().split(":", 1)[0]
    if client_id == "invalid":
        log.warning("[KCB] Rejected credentials.")
        raise HTTPException(status_code=401, detail={"error": "invalid_client"})

    token = f"tok_{uuid.uuid4().hex}"
    ISSUED_TOKENS.add(token)
    return {"access_token": token, "token_type": "Bearer", "expires_in": 3600}


@app.post("/mm/api/request/1.0.0/stkpush")
def stk_push(request: StkPushRequest, authorization: str = Header(...)):
    """
    Processes an STK push request.

    Returns:
        dict: merchantRequestID, checkoutRequestID and transactionStatus on success.

    Raises:
        HTTPException(401): Unknown bearer token.
        HTTPException(400): Declined push (phone numbers ending in "0000").
    """
    token = authorization.removeprefix("Bearer ")
    if token not in ISSUED_TOKENS:
        raise HTTPException(status_code=401, detail={"error": "invalid_token"})

    log.info(f"[KCB] STK push for {request.invoiceNumber}: {request.amount} from {request.phoneNumber}")

    if request.phoneNumber.endswith("0000"):
        log.warning(f"[KCB] STK push for {request.invoiceNumber} declined.")
        raise HTTPException(
            status_code=400,
            detail={"errorCode": "stk_declined", "message": "Subscriber cannot be reached."},
        )

    merchant_request_id = f"mr_{uuid.uuid4().hex[:12]}"
    return {
        "merchantRequestID": merchant_request_id,
        "checkoutRequestID": f"ws_CO_{uuid.uuid4().hex[:12]}",
        "transactionStatus": "Request accepted for processing",
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8001)
