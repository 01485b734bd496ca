"""/v1/admin - administrator console"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_gateway_registry, get_request_id, require_roles
from homestay_registry.api.v1.schemas import (
    ExpireStaleResponse,
    ResetDbRequest,
    ResetRequest,
    SeedRequest,
    SettingResponse,
    SettingUpdate,
    SqlRequest,
    UserListResponse,
    UserResponse,
    UserStatusUpdate,
    UserUpdate,
)
from homestay_registry.domain.models import Actor, Role
from homestay_registry.infrastructure.clients.registry import GatewayRegistry
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.accounts import AccountService
from homestay_registry.services.admin import AdminService
from homestay_registry.services.payments import PaymentService

router = APIRouter(prefix="/admin")

administrator = require_roles(Role.ADMIN)


@router.get("/stats")
def stats(actor: Actor = Depends(administrator), db: Session = Depends(get_db)):
    return AdminService(db).stats()


@router.post("/reset-db")
def reset_db(
    body: ResetDbRequest,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    """Clear workflow data; administrators and the chosen user groups are kept"""
    return AdminService(db, request_id=get_request_id(request)).reset_db(
        actor,
        preserve_ddo_codes=body.preserve_ddo_codes,
        preserve_property_owners=body.preserve_property_owners,
        preserve_district_officers=body.preserve_district_officers,
        preserve_state_officers=body.preserve_state_officers,
    )


@router.post("/reset/{operation}")
def reset(
    operation: str,
    body: ResetRequest,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    return AdminService(db, request_id=get_request_id(request)).reset(
        actor, operation, body.confirmation_text, body.reason
    )


@router.post("/seed/{seed_type}")
def seed(
    seed_type: str,
    body: SeedRequest,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    """Create demo users and applications through the real workflow"""
    service = AdminService(db, request_id=get_request_id(request))
    return service.seed(seed_type, count=body.count, scenario=body.scenario, district=body.district)


@router.get("/settings/{key}", response_model=SettingResponse)
def get_setting(key: str, actor: Actor = Depends(administrator), db: Session = Depends(get_db)):
    return SettingResponse(key=key, value=AdminService(db).get_setting(key))


@router.put("/settings/{key}", response_model=SettingResponse)
def put_setting(
    key: str,
    body: SettingUpdate,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    value = AdminService(db, request_id=get_request_id(request)).put_setting(actor, key, body.value)
    return SettingResponse(key=key, value=value)


@router.post("/payments/expire-stale", response_model=ExpireStaleResponse)
def expire_stale(
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
    gateways: GatewayRegistry = Depends(get_gateway_registry),
):
    """Fail initiated payment attempts that outlived their TTL"""
    service = PaymentService(db, gateways, request_id=get_request_id(request))
    return ExpireStaleResponse(expired=service.expire_stale())


@router.post("/db-console/execute")
def execute_sql(
    body: SqlRequest,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    """Raw SQL, development and test environments only"""
    return AdminService(db, request_id=get_request_id(request)).execute_sql(actor, body.query)


@router.get("/users", response_model=UserListResponse)
def list_users(
    role: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    users = AccountService(db).list_users(role=role, district=district, is_active=is_active, limit=limit, offset=offset)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], count=len(users))


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str,
    body: UserUpdate,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    """Change a user's name, role or district"""
    service = AccountService(db, request_id=get_request_id(request))
    return UserResponse.model_validate(service.update_user(actor, user_id, body.values()))


@router.patch("/users/{user_id}/status", response_model=UserResponse)
def set_user_status(
    user_id: str,
    body: UserStatusUpdate,
    request: Request,
    actor: Actor = Depends(administrator),
    db: Session = Depends(get_db),
):
    """Activate or deactivate an account; inactive users cannot sign in"""
    service = AccountService(db, request_id=get_request_id(request))
    return UserResponse.model_validate(service.set_active(actor, user_id, body.is_active))
