from typing import List, Optional

from sqlalchemy import select

from powerbrief.db.models import BrandAutomationSettings, BrandN8nWorkflow, N8nExecutionLog
from powerbrief.db.repositories.base import Repository


class AutomationRepository(Repository):
    def list_workflows(self, brand_id: str) -> List[BrandN8nWorkflow]:
        stmt = (
            select(BrandN8nWorkflow)
            .where(BrandN8nWorkflow.brand_id == brand_id)
            .order_by(BrandN8nWorkflow.workflow_name.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get_workflow(self, workflow_row_id: str) -> Optional[BrandN8nWorkflow]:
        return self.session.get(BrandN8nWorkflow, workflow_row_id)

    def get_workflow_by_name(self, brand_id: str, workflow_name: str) -> Optional[BrandN8nWorkflow]:
        stmt = select(BrandN8nWorkflow).where(
            BrandN8nWorkflow.brand_id == brand_id,
            BrandN8nWorkflow.workflow_name == workflow_name,
        )
        return self.session.scalars(stmt).first()

    def list_active_workflows(self, brand_id: str, workflow_name: str) -> List[BrandN8nWorkflow]:
        stmt = select(BrandN8nWorkflow).where(
            BrandN8nWorkflow.brand_id == brand_id,
            BrandN8nWorkflow.workflow_name == workflow_name,
            BrandN8nWorkflow.is_active.is_(True),
        )
        return list(self.session.scalars(stmt).all())

    def upsert_workflow(self, brand_id: str, workflow_name: str, **fields) -> BrandN8nWorkflow:
        workflow = self.get_workflow_by_name(brand_id, workflow_name)
        if workflow is None:
            workflow = BrandN8nWorkflow(brand_id=brand_id, workflow_name=workflow_name)
        for key, value in fields.items():
            setattr(workflow, key, value)
        return self.save(workflow)

    def get_settings(self, brand_id: str) -> Optional[BrandAutomationSettings]:
        stmt = select(BrandAutomationSettings).where(BrandAutomationSettings.brand_id == brand_id)
        return self.session.scalars(stmt).first()

    def create_settings(self, brand_id: str, **fields) -> BrandAutomationSettings:
        return self.save(BrandAutomationSettings(brand_id=brand_id, **fields))

    def log_execution(self, **fields) -> N8nExecutionLog:
        return self.save(N8nExecutionLog(**fields))

    def list_executions(self, brand_id: str, limit: int = 50) -> List[N8nExecutionLog]:
        stmt = (
            select(N8nExecutionLog)
            .where(N8nExecutionLog.brand_id == brand_id)
            .order_by(N8nExecutionLog.created_at.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())
