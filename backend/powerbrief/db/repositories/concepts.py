from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, or_, select

from powerbrief.db.models import BriefBatch, BriefConcept, ConceptComment, ShareActivity
from powerbrief.db.repositories.base import Repository


class BriefBatchesRepository(Repository):
    def list(self, brand_id: str) -> List[BriefBatch]:
        stmt = select(BriefBatch).where(BriefBatch.brand_id == brand_id).order_by(BriefBatch.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, batch_id: str) -> Optional[BriefBatch]:
        return self.session.get(BriefBatch, batch_id)

    def create(self, **fields) -> BriefBatch:
        return self.save(BriefBatch(**fields))


class BriefConceptsRepository(Repository):
    def get(self, concept_id: str) -> Optional[BriefConcept]:
        return self.session.get(BriefConcept, concept_id)

    def create(self, **fields) -> BriefConcept:
        return self.save(BriefConcept(**fields))


class ConceptCommentsRepository(Repository):
    def list(self, concept_id: str) -> List[ConceptComment]:
        stmt = (
            select(ConceptComment)
            .where(ConceptComment.concept_id == concept_id)
            .order_by(ConceptComment.timestamp_seconds.asc(), ConceptComment.created_at.asc(), ConceptComment.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, comment_id: str) -> Optional[ConceptComment]:
        return self.session.get(ConceptComment, comment_id)

    def create(self, **fields) -> ConceptComment:
        return self.save(ConceptComment(**fields))

    def delete_with_replies(self, comment_id: str) -> None:
        self.session.execute(
            delete(ConceptComment).where(
                or_(ConceptComment.id == comment_id, ConceptComment.parent_id == comment_id)
            )
        )
        self.session.commit()


class ShareActivityRepository(Repository):
    def create(self, **fields) -> ShareActivity:
        return self.save(ShareActivity(**fields))
