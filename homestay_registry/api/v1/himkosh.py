"""/v1/himkosh - treasury e-challan initiation, return callback and double verification"""

from fastapi import APIRouter, Depends, Form, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_current_actor, get_gateway_registry, get_request_id
from homestay_registry.api.v1.schemas import HimKoshInitiateRequest, PaymentResponse, payment_response
from homestay_registry.domain.exceptions import NotFoundError
from homestay_registry.domain.models import Actor
from homestay_registry.infrastructure.clients.registry import GatewayRegistry
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.payments import PaymentService

router = APIRouter(prefix="/himkosh")

GATEWAY = "himkosh"


@router.post("/initiate", response_model=PaymentResponse, status_code=201)
async def initiate(
    body: HimKoshInitiateRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """Encrypted challan request; the browser posts form_fields to redirect_url"""
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    return payment_response(await service.initiate(actor, body.application_id, GATEWAY))


@router.post("/callback", response_model=PaymentResponse)
def callback(
    request: Request,
    encdata: str = Form(...),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """
    Treasury return URL.

    The payload is authenticated by its checksum, not by a user header.
    A tampered or undecryptable payload is rejected with 422 and changes
    nothing.
    """
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    return payment_response(service.handle_callback(GATEWAY, {"encdata": encdata}))


@router.post("/verify/{app_ref_no}", response_model=PaymentResponse)
async def verify(
    app_ref_no: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """Double verification against the treasury for a challan reference"""
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    payment = service.payments.get_by_external_ref(app_ref_no)
    if payment is None or payment.gateway != GATEWAY:
        raise NotFoundError(f"No HimKosh transaction {app_ref_no}")
    return payment_response(await service.reconcile(actor, payment.id))
