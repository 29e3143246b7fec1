from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select, update

from powerbrief.db.models import AdConfiguration
from powerbrief.db.repositories.base import Repository


class AdConfigurationsRepository(Repository):
    def list(self, user_id: str, brand_id: Optional[str] = None) -> List[AdConfiguration]:
        stmt = select(AdConfiguration).where(AdConfiguration.user_id == user_id)
        if brand_id:
            stmt = stmt.where(AdConfiguration.brand_id == brand_id)
        stmt = stmt.order_by(AdConfiguration.is_default.desc(), AdConfiguration.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get_for_user(self, user_id: str, configuration_id: str) -> Optional[AdConfiguration]:
        stmt = select(AdConfiguration).where(
            AdConfiguration.id == configuration_id, AdConfiguration.user_id == user_id
        )
        return self.session.scalars(stmt).first()

    def get_by_name(self, user_id: str, brand_id: str, name: str) -> Optional[AdConfiguration]:
        stmt = select(AdConfiguration).where(
            AdConfiguration.user_id == user_id,
            AdConfiguration.brand_id == brand_id,
            AdConfiguration.name == name,
        )
        return self.session.scalars(stmt).first()

    def clear_default(self, user_id: str, brand_id: str) -> None:
        self.session.execute(
            update(AdConfiguration)
            .where(AdConfiguration.user_id == user_id, AdConfiguration.brand_id == brand_id)
            .values(is_default=False)
        )
