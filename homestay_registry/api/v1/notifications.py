"""GET /v1/notifications - the caller's notifications"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_current_actor
from homestay_registry.api.v1.schemas import NotificationListResponse, NotificationResponse
from homestay_registry.domain.models import Actor
from homestay_registry.infrastructure.database.repositories import NotificationRepository
from homestay_registry.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    notifications = NotificationRepository(db).for_user(actor.id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(notifications=[NotificationResponse.model_validate(n) for n in notifications])
