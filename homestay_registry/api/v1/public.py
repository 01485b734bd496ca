"""/v1/public - unauthenticated listing of registered homestays"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from homestay_registry.api.v1.schemas import PublicPropertyListResponse, PublicPropertyResponse
from homestay_registry.infrastructure.database.repositories import ApplicationStore
from homestay_registry.infrastructure.database.session import get_db

router = APIRouter(prefix="/public")


@router.get("/properties", response_model=PublicPropertyListResponse)
def approved_properties(
    district: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Approved homestays only; owner contact details are never listed"""
    apps = ApplicationStore(db).approved_properties(district, limit=limit, offset=offset)
    return PublicPropertyListResponse(
        properties=[PublicPropertyResponse.model_validate(a) for a in apps],
        count=len(apps),
    )
