"""/v1/applications - owner lifecycle, shared reads and officer decisions"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_current_actor, get_gateway_registry, get_request_id, require_roles
from homestay_registry.api.v1.schemas import (
    ApplicationCreate,
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationSearchRequest,
    ApplicationUpdate,
    DocumentCreate,
    DocumentResponse,
    ManualPaymentRequest,
    PaymentListResponse,
    PaymentResponse,
    ReviewRequest,
    TimelineEntryResponse,
    TimelineResponse,
    application_response,
    payment_response,
)
from homestay_registry.domain.exceptions import ValidationError
from homestay_registry.domain.models import Actor, ApplicationSearch, Role
from homestay_registry.infrastructure.clients.registry import GatewayRegistry
from homestay_registry.infrastructure.database.repositories import ApplicationStore
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.orchestrator import ReviewOrchestrator
from homestay_registry.services.payments import PaymentService
from homestay_registry.utils.date_utils import utcnow

router = APIRouter()

searching_officer = require_roles(
    Role.DEALING_ASSISTANT,
    Role.DTDO,
    Role.DISTRICT_OFFICER,
    Role.STATE_OFFICER,
    Role.ADMIN,
)


def application_detail(workflow: ReviewOrchestrator, app, actor: Actor) -> ApplicationDetailResponse:
    carried_over = [DocumentResponse.model_validate(doc) for doc in workflow.carried_over_documents(app)]
    return application_response(app, actor, ApplicationDetailResponse, carried_over_documents=carried_over)


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def create_application(
    body: ApplicationCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Create a draft application owned by the caller.

    With submit=true the draft is submitted straight away and the fee
    snapshot is locked. Fee fields sent by the client are never accepted.
    """
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    app = workflow.create_application(actor, body.values(), submit=body.submit)
    return application_response(app, actor)


@router.get("/applications", response_model=ApplicationListResponse)
def list_applications(
    status: Optional[List[str]] = Query(None, description="Status filter; legacy names accepted"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Applications visible to the caller, newest first"""
    apps = ReviewOrchestrator(db).list_applications(actor, status, limit=limit, offset=offset)
    return ApplicationListResponse(applications=[application_response(a, actor) for a in apps], count=len(apps))


@router.post("/applications/search", response_model=ApplicationListResponse)
def search_applications(
    body: ApplicationSearchRequest,
    actor: Actor = Depends(searching_officer),
    db: Session = Depends(get_db),
):
    """
    Officer lookup by application number, owner mobile or Aadhaar and
    creation date. A from/to range overrides month and year. District-bound
    officers only find applications in their district; at most 200 results.
    """
    criteria = ApplicationSearch(**body.model_dump())
    if criteria.is_empty():
        raise ValidationError("Provide at least one search filter")
    if criteria.from_date and criteria.to_date and criteria.from_date > criteria.to_date:
        raise ValidationError("from_date must not be after to_date", field="from_date")

    apps = ApplicationStore(db).search(actor, criteria, today=utcnow().date())
    return ApplicationListResponse(applications=[application_response(a, actor) for a in apps], count=len(apps))


@router.get("/applications/{application_id}", response_model=ApplicationDetailResponse)
def get_application(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db)
    return application_detail(workflow, workflow.get_application(actor, application_id), actor)


@router.patch("/applications/{application_id}", response_model=ApplicationResponse)
def update_application(
    application_id: str,
    body: ApplicationUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Edit a draft or an application sent back for corrections"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.update_application(actor, application_id, body.values()), actor)


@router.post("/applications/{application_id}/submit", response_model=ApplicationResponse)
def submit_application(
    application_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Submit or re-submit; the fee snapshot is recomputed and locked"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.submit_application(actor, application_id), actor)


@router.post("/applications/{application_id}/review", response_model=ApplicationResponse)
def review_application(
    application_id: str,
    body: ReviewRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Officer decision on a submitted application (district officer path)"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.review(actor, application_id, body.action, body.remarks), actor)


@router.get("/applications/{application_id}/timeline", response_model=TimelineResponse)
def get_timeline(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    entries = ReviewOrchestrator(db).timeline(actor, application_id)
    return TimelineResponse(
        application_id=entries[0].application_id if entries else application_id,
        entries=[TimelineEntryResponse.model_validate(e) for e in entries],
    )


@router.post("/applications/{application_id}/documents", response_model=DocumentResponse, status_code=201)
def add_document(
    application_id: str,
    body: DocumentCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return DocumentResponse.model_validate(workflow.add_document(actor, application_id, body.model_dump()))


@router.get("/applications/{application_id}/documents", response_model=List[DocumentResponse])
def list_documents(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return [DocumentResponse.model_validate(d) for d in ReviewOrchestrator(db).documents(actor, application_id)]


@router.get("/applications/{application_id}/payments", response_model=PaymentListResponse)
def list_payments(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    app = ReviewOrchestrator(db).get_application(actor, application_id)
    payments = PaymentService(db, gateways).for_application(actor, app.id)
    return PaymentListResponse(application_id=app.id, payments=[payment_response(p) for p in payments])


@router.post("/applications/{application_id}/payment", response_model=PaymentResponse, status_code=201)
async def submit_manual_payment(
    application_id: str,
    body: ManualPaymentRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """Owner reports a UPI transfer; an officer confirms it later"""
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    payment = await service.initiate(actor, application_id, "manual_upi", {"transaction_id": body.transaction_id})
    return payment_response(payment)
