from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select, update

from powerbrief.db.models import AdBatch, AdDraft, AdDraftAsset
from powerbrief.db.repositories.base import Repository


class AdBatchesRepository(Repository):
    def list_active_for_user(self, user_id: str, limit: Optional[int] = None) -> List[AdBatch]:
        stmt = (
            select(AdBatch)
            .where(AdBatch.user_id == user_id, AdBatch.is_active.is_(True))
            .order_by(AdBatch.last_accessed_at.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def list_active_for_brand(self, brand_id: str) -> List[AdBatch]:
        stmt = (
            select(AdBatch)
            .where(AdBatch.brand_id == brand_id, AdBatch.is_active.is_(True))
            .order_by(AdBatch.last_accessed_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get_active_for_brand(self, user_id: str, brand_id: str) -> Optional[AdBatch]:
        stmt = (
            select(AdBatch)
            .where(AdBatch.user_id == user_id, AdBatch.brand_id == brand_id, AdBatch.is_active.is_(True))
            .order_by(AdBatch.last_accessed_at.desc())
        )
        return self.session.scalars(stmt).first()

    def get_for_user(self, user_id: str, batch_id: str) -> Optional[AdBatch]:
        stmt = select(AdBatch).where(AdBatch.id == batch_id, AdBatch.user_id == user_id)
        return self.session.scalars(stmt).first()

    def deactivate_all(self, user_id: str) -> None:
        self.session.execute(update(AdBatch).where(AdBatch.user_id == user_id).values(is_active=False))


class AdDraftsRepository(Repository):
    def list(self, brand_id: str, ad_batch_id: Optional[str] = None) -> List[AdDraft]:
        stmt = select(AdDraft).where(AdDraft.brand_id == brand_id)
        if ad_batch_id:
            stmt = stmt.where(AdDraft.ad_batch_id == ad_batch_id)
        stmt = stmt.order_by(AdDraft.created_at.asc())
        return list(self.session.scalars(stmt).all())

    def get(self, brand_id: str, draft_id: str) -> Optional[AdDraft]:
        stmt = select(AdDraft).where(AdDraft.brand_id == brand_id, AdDraft.id == draft_id)
        return self.session.scalars(stmt).first()

    def missing_names(self, brand_id: str) -> List[AdDraft]:
        stmt = select(AdDraft).where(
            AdDraft.brand_id == brand_id,
            ((AdDraft.campaign_id.is_not(None)) & (AdDraft.campaign_name.is_(None)))
            | ((AdDraft.ad_set_id.is_not(None)) & (AdDraft.ad_set_name.is_(None))),
        )
        return list(self.session.scalars(stmt).all())

    def replace_assets(self, draft: AdDraft, assets: List[dict]) -> None:
        draft.assets.clear()
        for asset in assets:
            draft.assets.append(AdDraftAsset(**asset))
