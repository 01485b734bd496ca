"""/v1/analytics - officer dashboard"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import require_roles
from homestay_registry.api.v1.schemas import ApplicationSummary, DashboardResponse
from homestay_registry.domain.models import Actor, Role
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.analytics import AnalyticsService

router = APIRouter(prefix="/analytics")

reporting_officer = require_roles(
    Role.DEALING_ASSISTANT,
    Role.DTDO,
    Role.DISTRICT_OFFICER,
    Role.STATE_OFFICER,
    Role.ADMIN,
)


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(actor: Actor = Depends(reporting_officer), db: Session = Depends(get_db)):
    """Figures cover the caller's district, or every district for state officers and admins"""
    data = AnalyticsService(db).dashboard(actor)
    return DashboardResponse(
        overview=data["overview"],
        districts=data["districts"],
        recent_applications=[ApplicationSummary.model_validate(a) for a in data["recent_applications"]],
    )
