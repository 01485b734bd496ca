"""Owner self-registration and administrator user management"""

import logging
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session

from homestay_registry.domain.exceptions import AuthorizationError, NotFoundError, ValidationError
from homestay_registry.domain.models import Actor, Role
from homestay_registry.infrastructure.database.models import User
from homestay_registry.infrastructure.database.repositories import DISTRICT_ROLES, UserRepository, unit_of_work

ASSIGNABLE_ROLES = frozenset(Role) - {Role.SYSTEM}


class AccountService:
    def __init__(self, db: Session, request_id: Optional[str] = None):
        self.db = db
        self.request_id = request_id
        self.users = UserRepository(db)

    def register_owner(
        self,
        mobile: str,
        full_name: str,
        email: Optional[str] = None,
        district: Optional[str] = None,
        aadhaar_number: Optional[str] = None,
    ) -> User:
        """
        Create a property owner account.

        Raises:
            ValidationError: Mobile or Aadhaar number already registered
        """
        if self.users.get_by_mobile(mobile) is not None:
            raise ValidationError("Mobile number already registered", field="mobile")
        if aadhaar_number and self.users.get_by_aadhaar(aadhaar_number) is not None:
            raise ValidationError("Aadhaar number already registered", field="aadhaar_number")

        with unit_of_work(self.db):
            user = self.users.create(
                mobile=mobile,
                full_name=full_name.strip(),
                role=Role.OWNER.value,
                district=district or None,
                email=email or None,
                aadhaar_number=aadhaar_number or None,
            )
        logging.info("Owner registered", extra={"request_id": self.request_id, "user_id": str(user.id)})
        return user

    def list_users(
        self,
        role: Optional[str] = None,
        district: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[User]:
        if role is not None and role not in {r.value for r in ASSIGNABLE_ROLES}:
            raise ValidationError(f"Unknown role '{role}'", field="role")
        return self.users.list_users(role=role, district=district, is_active=is_active, limit=limit, offset=offset)

    def _get(self, user_id) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def update_user(self, actor: Actor, user_id, changes: Mapping[str, Any]) -> User:
        """Change name, role or district; district-bound roles must keep a district"""
        user = self._get(user_id)
        role = Role(changes.get("role") or user.role)
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError(f"Role '{role.value}' cannot be assigned", field="role")
        if user.id == actor.id and role != Role(user.role):
            raise AuthorizationError("Administrators cannot change their own role")

        district = changes["district"] if "district" in changes else user.district
        district = district.strip() if district else None
        if role in DISTRICT_ROLES and not district:
            raise ValidationError(f"A district is required for role '{role.value}'", field="district")

        with unit_of_work(self.db):
            if changes.get("full_name"):
                user.full_name = changes["full_name"].strip()
            user.role = role.value
            user.district = district
        logging.info(
            "User updated",
            extra={
                "request_id": self.request_id,
                "user_id": str(user.id),
                "changed_by": str(actor.id),
                "fields": sorted(changes),
            },
        )
        return user

    def set_active(self, actor: Actor, user_id, is_active: bool) -> User:
        """Deactivated users are refused at authentication"""
        user = self._get(user_id)
        if user.id == actor.id and not is_active:
            raise AuthorizationError("Administrators cannot deactivate themselves")

        with unit_of_work(self.db):
            user.is_active = is_active
        logging.info(
            "User status changed",
            extra={
                "request_id": self.request_id,
                "user_id": str(user.id),
                "changed_by": str(actor.id),
                "is_active": is_active,
            },
        )
        return user
