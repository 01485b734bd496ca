"""/v1/dtdo - district tourism development officer decisions"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_request_id, require_roles
from homestay_registry.api.v1.applications import application_detail
from homestay_registry.api.v1.schemas import (
    AcceptRequest,
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApplicationResponse,
    InspectionOrderResponse,
    InspectionReportResponse,
    RemarksRequest,
    ScheduleInspectionRequest,
    application_response,
)
from homestay_registry.domain.models import Action, Actor, Role
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.orchestrator import ReviewOrchestrator

router = APIRouter(prefix="/dtdo")

dtdo_officer = require_roles(Role.DTDO)

# Path segment -> action for the inspection report decision
REPORT_DECISIONS = {
    "approve": Action.APPROVE,
    "reject": Action.REJECT,
    "objections": Action.RAISE_OBJECTIONS,
}


@router.get("/applications", response_model=ApplicationListResponse)
def list_applications(
    status: Optional[List[str]] = Query(None),
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    apps = ReviewOrchestrator(db).list_applications(actor, status)
    return ApplicationListResponse(applications=[application_response(a, actor) for a in apps], count=len(apps))


@router.get("/applications/{application_id}", response_model=ApplicationDetailResponse)
def get_application(application_id: str, actor: Actor = Depends(dtdo_officer), db: Session = Depends(get_db)):
    """Application with the documents scrutiny forwarded unresolved"""
    workflow = ReviewOrchestrator(db)
    return application_detail(workflow, workflow.get_application(actor, application_id), actor)


@router.post("/applications/{application_id}/begin-review", response_model=ApplicationResponse)
def begin_review(
    application_id: str,
    request: Request,
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.begin_dtdo_review(actor, application_id), actor)


@router.post("/applications/{application_id}/accept", response_model=ApplicationResponse)
def accept(
    application_id: str,
    body: AcceptRequest,
    request: Request,
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    """Accept for site inspection; opens a new inspection order"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    app = workflow.dtdo_accept(
        actor,
        application_id,
        body.remarks,
        inspection_date=body.inspection_date,
        assigned_to=body.assigned_to,
        special_instructions=body.special_instructions,
    )
    return application_response(app, actor)


@router.post("/applications/{application_id}/reject", response_model=ApplicationResponse)
def reject(
    application_id: str,
    body: RemarksRequest,
    request: Request,
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.dtdo_reject(actor, application_id, body.remarks), actor)


@router.post("/applications/{application_id}/revert", response_model=ApplicationResponse)
def revert(
    application_id: str,
    body: RemarksRequest,
    request: Request,
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    return application_response(workflow.dtdo_revert(actor, application_id, body.remarks), actor)


@router.post("/schedule-inspection", response_model=InspectionOrderResponse)
def schedule_inspection(
    body: ScheduleInspectionRequest,
    request: Request,
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    """Reschedule the open inspection, or order re-inspection after objections"""
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    order = workflow.schedule_inspection(
        actor,
        body.application_id,
        inspection_date=body.inspection_date,
        assigned_to=body.assigned_to,
        special_instructions=body.special_instructions,
        remarks=body.remarks,
    )
    return InspectionOrderResponse.model_validate(order)


@router.get("/inspection-report/{application_id}", response_model=InspectionReportResponse)
def get_inspection_report(application_id: str, actor: Actor = Depends(dtdo_officer), db: Session = Depends(get_db)):
    return InspectionReportResponse.model_validate(ReviewOrchestrator(db).inspection_report(actor, application_id))


@router.post("/inspection-report/{application_id}/{decision}", response_model=ApplicationResponse)
def review_inspection_report(
    application_id: str,
    decision: str,
    body: RemarksRequest,
    request: Request,
    actor: Actor = Depends(dtdo_officer),
    db: Session = Depends(get_db),
):
    """approve -> payment pending, reject, or objections -> re-inspection"""
    if decision not in REPORT_DECISIONS:
        raise HTTPException(status_code=404, detail=f"Unknown decision '{decision}'")
    workflow = ReviewOrchestrator(db, request_id=get_request_id(request))
    app = workflow.review_inspection_report(actor, application_id, REPORT_DECISIONS[decision], body.remarks)
    return application_response(app, actor)
