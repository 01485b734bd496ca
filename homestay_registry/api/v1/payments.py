"""/v1/payments - payment attempts across gateways"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_current_actor, get_gateway_registry, get_request_id
from homestay_registry.api.v1.schemas import (
    OfficerVerificationRequest,
    PaymentCreate,
    PaymentResponse,
    payment_response,
)
from homestay_registry.domain.models import Actor
from homestay_registry.infrastructure.clients.registry import GatewayRegistry
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.payments import PaymentService

router = APIRouter(prefix="/payments")


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(
    body: PaymentCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Start a payment attempt for an application awaiting payment.

    Returns the redirect URL and form fields the browser posts to the
    provider. A provider failure records a failed attempt and answers 502;
    the application keeps waiting for payment.
    """
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    payment = await service.initiate(actor, body.application_id, body.gateway, body.gateway_extra())
    return payment_response(payment)


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    return payment_response(PaymentService(db, gateways).get(actor, payment_id))


@router.patch("/{payment_id}", response_model=PaymentResponse)
async def verify_payment(
    payment_id: str,
    body: OfficerVerificationRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """Officer confirms or rejects a manual UPI payment"""
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    payment = await service.officer_verify(actor, payment_id, body.decision, body.verified_amount, body.remarks)
    return payment_response(payment)


@router.post("/{payment_id}/reconcile", response_model=PaymentResponse)
async def reconcile_payment(
    payment_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """Ask the provider for the attempt's status; safe to repeat"""
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    return payment_response(await service.reconcile(actor, payment_id))
