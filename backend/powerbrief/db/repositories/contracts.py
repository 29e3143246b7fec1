from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select

from powerbrief.db.enums import ContractStatusEnum
from powerbrief.db.models import (
    Contract,
    ContractAuditLog,
    ContractSigningToken,
    ContractTemplate,
)
from powerbrief.db.repositories.base import Repository


class ContractTemplatesRepository(Repository):
    def list(self, brand_id: str) -> List[ContractTemplate]:
        stmt = (
            select(ContractTemplate)
            .where(ContractTemplate.brand_id == brand_id, ContractTemplate.is_active.is_(True))
            .order_by(ContractTemplate.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def get(self, template_id: str) -> Optional[ContractTemplate]:
        return self.session.get(ContractTemplate, template_id)

    def create(self, **fields) -> ContractTemplate:
        return self.save(ContractTemplate(**fields))


class ContractsRepository(Repository):
    def list(self, brand_id: str, status: Optional[ContractStatusEnum] = None) -> List[Contract]:
        stmt = select(Contract).where(Contract.brand_id == brand_id)
        if status:
            stmt = stmt.where(Contract.status == status)
        stmt = stmt.order_by(Contract.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, contract_id: str) -> Optional[Contract]:
        return self.session.get(Contract, contract_id)

    def latest_for_creator(self, creator_id: str) -> Optional[Contract]:
        stmt = (
            select(Contract)
            .where(Contract.creator_id == creator_id)
            .order_by(Contract.created_at.desc())
        )
        return self.session.scalars(stmt).first()

    def get_signing_token(self, token: str) -> Optional[ContractSigningToken]:
        stmt = select(ContractSigningToken).where(ContractSigningToken.token == token)
        return self.session.scalars(stmt).first()

    def add_audit(self, contract: Contract, action, **fields) -> ContractAuditLog:
        entry = ContractAuditLog(action=action, **fields)
        contract.audit_logs.append(entry)
        return entry
