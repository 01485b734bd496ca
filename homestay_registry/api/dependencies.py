"""Dependency injection for FastAPI endpoints"""

from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from homestay_registry.domain.models import Actor, Role
from homestay_registry.infrastructure.clients.registry import GatewayRegistry, build_default_registry
from homestay_registry.infrastructure.database.repositories import UserRepository
from homestay_registry.infrastructure.database.session import get_db


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_current_actor(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the calling user from the X-User-Id header"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = UserRepository(db).get(x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")
    return Actor(id=user.id, role=Role(user.role), district=user.district, name=user.full_name)


def require_roles(*roles: Role) -> Callable[..., Actor]:
    """Dependency that admits only the given roles"""
    allowed = frozenset(roles)

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if Role(actor.role) not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{Role(actor.role).value}' may not use this endpoint",
            )
        return actor

    return dependency


def get_gateway_registry() -> GatewayRegistry:
    """Provide the payment gateway adapters"""
    return build_default_registry()
