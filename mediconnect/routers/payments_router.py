import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..application.principal import Principal
from ..application.services.payments_service import PaymentsService
from ..application.services.refunds_service import RefundsService
from ..application.services.webhook_service import WebhookService
from ..application.status import PaymentStatus, RefundStatus, Role
from ..dependencies import (
    get_current_principal,
    get_payments_service,
    get_refunds_service,
    get_webhook_service,
    request_metadata,
    require_role,
)
from ..exceptions import create_error_response, create_success_response
from ..schemas.payments.payment import (
    CaptureResponse,
    CreateOrderRequest,
    OrderResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _dump(payment) -> dict:
    return PaymentResponse.model_validate(payment).model_dump(mode="json")


@router.post("/create-order", status_code=201)
async def create_order(
    payload: CreateOrderRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    service: PaymentsService = Depends(get_payments_service),
):
    order = await service.create_order(payload.appointment_id, principal, payload.amount, request_metadata(request))
    return create_success_response(OrderResponse(
        payment_id=order.payment_id, order_id=order.order_id, status=order.status, links=order.links,
    ).model_dump())


@router.post("/capture/{order_id}")
async def capture_payment(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    service: PaymentsService = Depends(get_payments_service),
):
    result = await service.capture_payment(order_id)
    if not result.success:
        return JSONResponse(status_code=400, content=create_error_response(result.error, result.details))
    return create_success_response(CaptureResponse(
        payment_id=result.payment_id,
        status=result.status,
        capture_id=result.capture_id,
        amount=result.amount,
        currency=result.currency,
        already_captured=result.already_captured,
    ).model_dump())


@router.post("/webhook")
async def payment_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    body = await request.body()
    result = await service.handle(request.headers, body)
    return create_success_response(result)


@router.get("/history")
def payment_history(
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    status: Optional[PaymentStatus] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: PaymentsService = Depends(get_payments_service),
):
    result = service.history(principal, start=start_date, end=end_date, status=status, page=page, limit=limit)
    return create_success_response({
        "payments": [_dump(p) for p in result["payments"]],
        "pagination": result["pagination"],
    })


@router.get("/analytics")
def payment_analytics(
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    principal: Principal = Depends(require_role(Role.DOCTOR, Role.ADMIN)),
    service: PaymentsService = Depends(get_payments_service),
):
    result = service.analytics(principal, start=start_date, end=end_date)
    result["last_updated"] = result["last_updated"].isoformat()
    return create_success_response(result)


@router.get("/refunds")
def refund_history(
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    refund_status: Optional[RefundStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: PaymentsService = Depends(get_payments_service),
):
    result = service.refunds(principal, start=start_date, end=end_date, refund_status=refund_status, page=page, limit=limit)
    return create_success_response({
        "refunds": [_dump(p) for p in result["refunds"]],
        "pagination": result["pagination"],
    })


@router.get("/pending")
def pending_payments(
    principal: Principal = Depends(get_current_principal),
    service: PaymentsService = Depends(get_payments_service),
):
    return create_success_response([_dump(p) for p in service.pending(principal)])


@router.get("/{payment_id}")
def get_payment(
    payment_id: int,
    principal: Principal = Depends(get_current_principal),
    service: PaymentsService = Depends(get_payments_service),
):
    return create_success_response(_dump(service.get_payment(payment_id, principal)))


@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: int,
    payload: RefundRequest,
    principal: Principal = Depends(require_role(Role.DOCTOR, Role.ADMIN)),
    service: PaymentsService = Depends(get_payments_service),
    refunds: RefundsService = Depends(get_refunds_service),
):
    payment = service.get_payment(payment_id, principal)
    refund = await refunds.process_refund(payment.appointment_id, payload.reason)
    return create_success_response(RefundResponse(
        payment_id=refund.payment_id,
        refund_id=refund.refund_id,
        status=refund.status,
        amount=refund.amount,
        currency=refund.currency,
    ).model_dump(), message="Refund processed successfully")
