"""Officer dashboard figures over the applications an officer may read"""

from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from homestay_registry.domain.models import Actor, ApplicationStatus, Category
from homestay_registry.infrastructure.database.models import HomestayApplication
from homestay_registry.infrastructure.database.repositories import ApplicationStore

RECENT_LIMIT = 10
SECONDS_PER_DAY = 86400


class AnalyticsService:
    def __init__(self, db: Session, store: Optional[ApplicationStore] = None):
        self.db = db
        self.store = store or ApplicationStore(db)

    def _counts(self, actor: Actor, column) -> Dict[str, int]:
        rows = self.store.visible_to(actor).with_entities(column, func.count(HomestayApplication.id)).group_by(column).all()
        return {key: count for key, count in rows if key is not None}

    def _avg_processing_days(self, actor: Actor) -> float:
        """Mean days from submission to approval over approved applications"""
        rows = (
            self.store.visible_to(actor)
            .filter(
                HomestayApplication.status == ApplicationStatus.APPROVED.value,
                HomestayApplication.submitted_at.isnot(None),
                HomestayApplication.approved_at.isnot(None),
            )
            .with_entities(HomestayApplication.submitted_at, HomestayApplication.approved_at)
            .all()
        )
        if not rows:
            return 0.0
        total = sum((approved - submitted).total_seconds() for submitted, approved in rows)
        return round(total / len(rows) / SECONDS_PER_DAY, 1)

    def dashboard(self, actor: Actor) -> Dict[str, Any]:
        """
        Totals by status, category and district, average processing time,
        distinct owners and the newest applications, all within the
        officer's visibility (own district for district-bound roles).
        """
        by_status = {status.value: 0 for status in ApplicationStatus if status != ApplicationStatus.DRAFT}
        by_status.update(self._counts(actor, HomestayApplication.status))
        by_category = {category.value: 0 for category in Category}
        by_category.update(self._counts(actor, HomestayApplication.category))

        total_owners = (
            self.store.visible_to(actor)
            .with_entities(func.count(func.distinct(HomestayApplication.owner_id)))
            .scalar()
        )
        recent = (
            self.store.visible_to(actor)
            .order_by(HomestayApplication.created_at.desc())
            .limit(RECENT_LIMIT)
            .all()
        )

        return {
            "overview": {
                "total": sum(by_status.values()),
                "by_status": by_status,
                "by_category": by_category,
                "avg_processing_days": self._avg_processing_days(actor),
                "total_owners": total_owners or 0,
            },
            "districts": self._counts(actor, HomestayApplication.district),
            "recent_applications": recent,
        }
