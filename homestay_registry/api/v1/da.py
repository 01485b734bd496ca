"""/v1/da - dealing assistant scrutiny and site inspections"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_request_id, require_roles
from homestay_registry.api.v1.applications import application_detail
from homestay_registry.api.v1.schemas import (
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApplicationResponse,
    InspectionOrderResponse,
    InspectionReportRequest,
    InspectionReportResponse,
    RemarksRequest,
    SaveScrutinyRequest,
    application_response,
)
from homestay_registry.domain.models import Actor, Role
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.orchestrator import ReviewOrchestrator

router = APIRouter(prefix="/da")

dealing_assistant = require_roles(Role.DEALING_ASSISTANT)


@router.get("/applications", response_model=ApplicationListResponse)
def list_applications(
    status: Optional[List[str]] = Query(None),
    actor: Actor = Depends(dealing_assistant),
    db: Session = Depends(get_db),
):
    """District queue for the dealing assistant"""
    apps = ReviewOrchestrator(db).list_applications(actor, status)
    return ApplicationListResponse(applications=[application_response(a, actor) for a in apps], count=len(apps))


@router.get("/applications/{application_id}", response_model=ApplicationDetailResponse)
def get_application(application_id: str, actor: Actor = Depends(dealing_assistant), db: Session = Depends(get_db)):
    workflow = ReviewOrchestrator(db)
    return application_detail(workflow, workflow.get_application(actor, application_id), actor)


@router.post("/applications/{application_id}/start-scrutiny", response_model=ApplicationResponse)
def start_scrutiny(
    application_id: str,
    request: Request,
    actor: Actor = Depends(dealing_assistant),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.start_scrutiny(actor, application_id), actor)


@router.post("/applications/{application_id}/save-scrutiny", response_model=ApplicationResponse)
def save_scrutiny(
    application_id: str,
    body: SaveScrutinyRequest,
    request: Request,
    actor: Actor = Depends(dealing_assistant),
    db: Session = Depends(get_db),
):
    """Record per-document verification status and notes"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    verifications = [item.model_dump() for item in body.verifications]
    return application_response(workflow.save_scrutiny(actor, application_id, verifications, body.remarks), actor)


@router.post("/applications/{application_id}/forward-to-dtdo", response_model=ApplicationResponse)
def forward_to_dtdo(
    application_id: str,
    body: RemarksRequest,
    request: Request,
    actor: Actor = Depends(dealing_assistant),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.forward_to_dtdo(actor, application_id, body.remarks), actor)


@router.post("/applications/{application_id}/send-back", response_model=ApplicationResponse)
def send_back(
    application_id: str,
    body: RemarksRequest,
    request: Request,
    actor: Actor = Depends(dealing_assistant),
    db: Session = Depends(get_db),
):
    """Return to the owner for corrections; remarks are mandatory"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.send_back(actor, application_id, body.remarks), actor)


@router.get("/inspections", response_model=List[InspectionOrderResponse])
def list_inspections(actor: Actor = Depends(dealing_assistant), db: Session = Depends(get_db)):
    """Inspection orders assigned to the caller or unassigned in their district"""
    return [InspectionOrderResponse.model_validate(o) for o in ReviewOrchestrator(db).inspections_for(actor)]


@router.post("/inspections/{order_id}/submit-report", response_model=InspectionReportResponse, status_code=201)
def submit_report(
    order_id: str,
    body: InspectionReportRequest,
    request: Request,
    actor: Actor = Depends(dealing_assistant),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    report = workflow.submit_inspection_report(actor, order_id, body.model_dump())
    return InspectionReportResponse.model_validate(report)
