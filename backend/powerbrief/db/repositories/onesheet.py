from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select

from powerbrief.db.models import OneSheet, OneSheetAiInstructions, OneSheetSyncJob
from powerbrief.db.repositories.base import Repository


class OneSheetRepository(Repository):
    def list(self, brand_id: str) -> List[OneSheet]:
        stmt = select(OneSheet).where(OneSheet.brand_id == brand_id).order_by(OneSheet.updated_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, onesheet_id: str) -> Optional[OneSheet]:
        return self.session.get(OneSheet, onesheet_id)

    def create(self, brand_id: str, user_id: str, **fields) -> OneSheet:
        return self.save(OneSheet(brand_id=brand_id, user_id=user_id, **fields))

    def get_sync_job(self, job_id: str) -> Optional[OneSheetSyncJob]:
        return self.session.get(OneSheetSyncJob, job_id)

    def create_sync_job(self, **fields) -> OneSheetSyncJob:
        return self.save(OneSheetSyncJob(**fields))

    def get_ai_instructions(self, onesheet_id: str) -> Optional[OneSheetAiInstructions]:
        stmt = select(OneSheetAiInstructions).where(OneSheetAiInstructions.onesheet_id == onesheet_id)
        return self.session.scalars(stmt).first()

    def create_ai_instructions(self, **fields) -> OneSheetAiInstructions:
        return self.save(OneSheetAiInstructions(**fields))
