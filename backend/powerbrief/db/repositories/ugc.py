from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, select

from powerbrief.db.models import (
    UgcAiCoordinator,
    UgcAiCoordinatorAction,
    UgcCreator,
    UgcCreatorScript,
    UgcEmailMessage,
    UgcEmailThread,
    utcnow,
)
from powerbrief.db.repositories.base import Repository


class UgcCreatorsRepository(Repository):
    def list(self, brand_id: str, status: Optional[str] = None) -> List[UgcCreator]:
        stmt = select(UgcCreator).where(UgcCreator.brand_id == brand_id)
        if status:
            stmt = stmt.where(UgcCreator.status == status)
        stmt = stmt.order_by(UgcCreator.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, brand_id: str, creator_id: str) -> Optional[UgcCreator]:
        stmt = select(UgcCreator).where(UgcCreator.brand_id == brand_id, UgcCreator.id == creator_id)
        return self.session.scalars(stmt).first()

    def get_by_id(self, creator_id: str) -> Optional[UgcCreator]:
        return self.session.get(UgcCreator, creator_id)

    def get_by_email(self, brand_id: str, email: str) -> Optional[UgcCreator]:
        stmt = select(UgcCreator).where(
            UgcCreator.brand_id == brand_id,
            func.lower(UgcCreator.email) == email.strip().lower(),
        )
        return self.session.scalars(stmt).first()

    def list_by_ids(self, brand_id: str, creator_ids: List[str]) -> List[UgcCreator]:
        stmt = select(UgcCreator).where(UgcCreator.brand_id == brand_id, UgcCreator.id.in_(creator_ids))
        return list(self.session.scalars(stmt).all())

    def create(self, brand_id: str, **fields) -> UgcCreator:
        return self.save(UgcCreator(brand_id=brand_id, **fields))

    def script_counts(self, brand_id: str) -> dict[str, dict[str, int]]:
        stmt = (
            select(UgcCreatorScript.creator_id, UgcCreatorScript.concept_status, func.count())
            .where(UgcCreatorScript.brand_id == brand_id, UgcCreatorScript.creator_id.is_not(None))
            .group_by(UgcCreatorScript.creator_id, UgcCreatorScript.concept_status)
        )
        counts: dict[str, dict[str, int]] = {}
        for creator_id, concept_status, count in self.session.execute(stmt).all():
            by_status = counts.setdefault(str(creator_id), {})
            by_status[concept_status or "Unassigned"] = int(count)
        return counts


class UgcScriptsRepository(Repository):
    def list(
        self,
        brand_id: str,
        creator_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[UgcCreatorScript]:
        stmt = select(UgcCreatorScript).where(UgcCreatorScript.brand_id == brand_id)
        if creator_id:
            stmt = stmt.where(UgcCreatorScript.creator_id == creator_id)
        if status:
            stmt = stmt.where(UgcCreatorScript.status == status)
        stmt = stmt.order_by(UgcCreatorScript.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, brand_id: str, script_id: str) -> Optional[UgcCreatorScript]:
        stmt = select(UgcCreatorScript).where(
            UgcCreatorScript.brand_id == brand_id, UgcCreatorScript.id == script_id
        )
        return self.session.scalars(stmt).first()

    def get_by_id(self, script_id: str) -> Optional[UgcCreatorScript]:
        return self.session.get(UgcCreatorScript, script_id)

    def create(self, brand_id: str, user_id: str, **fields) -> UgcCreatorScript:
        return self.save(UgcCreatorScript(brand_id=brand_id, user_id=user_id, **fields))


class UgcInboxRepository(Repository):
    def list_threads(self, brand_id: str, status: Optional[str] = None) -> List[UgcEmailThread]:
        stmt = select(UgcEmailThread).where(UgcEmailThread.brand_id == brand_id)
        if status:
            stmt = stmt.where(UgcEmailThread.status == status)
        stmt = stmt.order_by(UgcEmailThread.updated_at.desc())
        return list(self.session.scalars(stmt).all())

    def get_thread(self, thread_id: str) -> Optional[UgcEmailThread]:
        return self.session.get(UgcEmailThread, thread_id)

    def find_thread(self, brand_id: str, creator_id: str, subject: str) -> Optional[UgcEmailThread]:
        stmt = select(UgcEmailThread).where(
            UgcEmailThread.brand_id == brand_id,
            UgcEmailThread.creator_id == creator_id,
            UgcEmailThread.thread_subject == subject,
        )
        return self.session.scalars(stmt).first()

    def get_or_create_thread(self, brand_id: str, creator_id: str, subject: str) -> UgcEmailThread:
        thread = self.find_thread(brand_id, creator_id, subject)
        if thread is not None:
            return thread
        return self.save(UgcEmailThread(brand_id=brand_id, creator_id=creator_id, thread_subject=subject))

    def list_messages(self, thread_id: str) -> List[UgcEmailMessage]:
        stmt = (
            select(UgcEmailMessage)
            .where(UgcEmailMessage.thread_id == thread_id)
            .order_by(UgcEmailMessage.created_at.asc(), UgcEmailMessage.id.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get_message(self, message_id: str) -> Optional[UgcEmailMessage]:
        return self.session.get(UgcEmailMessage, message_id)

    def add_message(self, thread: UgcEmailThread, **fields) -> UgcEmailMessage:
        message = UgcEmailMessage(thread_id=thread.id, **fields)
        self.session.add(message)
        # Touch the thread so inbox ordering follows the latest message.
        thread.updated_at = utcnow()
        self.session.commit()
        self.session.refresh(message)
        return message


class UgcCoordinatorRepository(Repository):
    def get_for_brand(self, brand_id: str) -> Optional[UgcAiCoordinator]:
        stmt = select(UgcAiCoordinator).where(UgcAiCoordinator.brand_id == brand_id)
        return self.session.scalars(stmt).first()

    def create(self, **fields) -> UgcAiCoordinator:
        return self.save(UgcAiCoordinator(**fields))

    def log_action(self, coordinator_id: str, action_type: str, **fields) -> UgcAiCoordinatorAction:
        return self.save(
            UgcAiCoordinatorAction(coordinator_id=coordinator_id, action_type=action_type, **fields)
        )

    def list_actions(self, coordinator_id: str, limit: int = 50) -> List[UgcAiCoordinatorAction]:
        stmt = (
            select(UgcAiCoordinatorAction)
            .where(UgcAiCoordinatorAction.coordinator_id == coordinator_id)
            .order_by(UgcAiCoordinatorAction.created_at.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

