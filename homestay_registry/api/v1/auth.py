"""/v1/auth - owner self-registration"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from homestay_registry.api.dependencies import get_request_id
from homestay_registry.api.v1.schemas import RegisterRequest, UserResponse
from homestay_registry.infrastructure.database.session import get_db
from homestay_registry.services.accounts import AccountService

router = APIRouter(prefix="/auth")


@router.post("/register", response_model=UserResponse, status_code=201)
def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """
    Create a property owner account.

    Officer and administrator accounts are created by an administrator,
    never here. A mobile number already on file is a 422 on mobile.
    """
    service = AccountService(db, request_id=get_request_id(request))
    user = service.register_owner(
        mobile=body.mobile,
        full_name=body.full_name,
        email=body.email,
        district=body.district,
        aadhaar_number=body.aadhaar_number,
    )
    return UserResponse.model_validate(user)
