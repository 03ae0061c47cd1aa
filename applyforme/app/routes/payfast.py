"""API routes for PayFast checkout, notifications and subscriptions."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from starlette.concurrency import run_in_threadpool

from ... import app_context
from ..payments import PaymentService, RecruiterNotFoundError, UnknownProductError
from ..schemas.payfast import (
    CancelSubscriptionResponse,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    SubscriptionResponse,
)
from ..services.payments import get_payment_service

logger = logging.getLogger("payments")

_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _get_current_user(authorization: Optional[str] = Header(None)):
    return app_context.get_current_user(authorization=authorization)


def _get_payment_service() -> PaymentService:
    return get_payment_service()


def _text(message: str, status_code: int) -> Response:
    return Response(content=message, media_type="text/plain", status_code=status_code)


def decode_notification_body(body: bytes, content_type: str) -> Dict[str, Any]:
    """Decode a JSON or form-encoded notification body, keeping field order."""

    text = body.decode("utf-8")
    if _FORM_CONTENT_TYPE in content_type.lower():
        return dict(parse_qsl(text, keep_blank_values=True))
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("expected a JSON object")
    return payload


router = APIRouter(prefix="/api/payfast", tags=["payfast"])


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    service: PaymentService = Depends(_get_payment_service),
) -> Response:
    body = await request.body()
    try:
        payload = decode_notification_body(body, request.headers.get("content-type", ""))
    except ValueError as exc:
        logger.warning("Unreadable PayFast notification body: %s", exc)
        return _text(f"Invalid payload: {exc}", status.HTTP_400_BAD_REQUEST)

    try:
        result = await run_in_threadpool(service.handle_notification, payload)
    except Exception as exc:
        logger.exception("Error processing PayFast webhook")
        return _text(f"Webhook Error: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _text(result.message, result.status_code)


@router.post("/checkout", response_model=CheckoutSessionResponse)
def create_checkout_session(
    payload: CheckoutSessionRequest,
    *,
    current_user=Depends(_get_current_user),
    service: PaymentService = Depends(_get_payment_service),
) -> CheckoutSessionResponse:
    try:
        checkout = service.create_checkout(
            user_id=str(current_user.id),
            product_id=payload.product_id,
            email=payload.email or getattr(current_user, "email", None),
            full_name=payload.full_name,
        )
    except (UnknownProductError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CheckoutSessionResponse.from_checkout(checkout)


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(
    *,
    current_user=Depends(_get_current_user),
    service: PaymentService = Depends(_get_payment_service),
) -> SubscriptionResponse:
    try:
        subscription = service.get_subscription(str(current_user.id))
    except RecruiterNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return SubscriptionResponse(subscription=subscription)


@router.post("/subscription/cancel", response_model=CancelSubscriptionResponse)
def cancel_subscription(
    *,
    current_user=Depends(_get_current_user),
    service: PaymentService = Depends(_get_payment_service),
) -> CancelSubscriptionResponse:
    try:
        cancelled = service.cancel_subscription(str(current_user.id))
    except (RecruiterNotFoundError, LookupError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CancelSubscriptionResponse(cancelled_at=cancelled.updated_at)
