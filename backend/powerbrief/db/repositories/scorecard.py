from datetime import date
from typing import List, Optional

from sqlalchemy import select

from powerbrief.db.models import ScorecardData, ScorecardMetric
from powerbrief.db.repositories.base import Repository


class ScorecardRepository(Repository):
    def list_metrics(self, brand_id: str, metric_ids: Optional[list[str]] = None) -> List[ScorecardMetric]:
        stmt = select(ScorecardMetric).where(ScorecardMetric.brand_id == brand_id)
        if metric_ids:
            stmt = stmt.where(ScorecardMetric.id.in_(metric_ids))
        stmt = stmt.order_by(ScorecardMetric.display_order.asc(), ScorecardMetric.created_at.asc())
        return list(self.session.scalars(stmt).all())

    def get_metric(self, brand_id: str, metric_id: str) -> Optional[ScorecardMetric]:
        stmt = select(ScorecardMetric).where(
            ScorecardMetric.brand_id == brand_id, ScorecardMetric.id == metric_id
        )
        return self.session.scalars(stmt).first()

    def get_metric_by_id(self, metric_id: str) -> Optional[ScorecardMetric]:
        return self.session.get(ScorecardMetric, metric_id)

    def get_metric_by_key(self, brand_id: str, metric_key: str) -> Optional[ScorecardMetric]:
        stmt = select(ScorecardMetric).where(
            ScorecardMetric.brand_id == brand_id, ScorecardMetric.metric_key == metric_key
        )
        return self.session.scalars(stmt).first()

    def create_metric(self, brand_id: str, user_id: str, **fields) -> ScorecardMetric:
        return self.save(ScorecardMetric(brand_id=brand_id, user_id=user_id, **fields))

    def upsert_data(
        self,
        *,
        metric: ScorecardMetric,
        period_start: date,
        period_end: date,
        **fields,
    ) -> ScorecardData:
        stmt = select(ScorecardData).where(
            ScorecardData.metric_id == metric.id,
            ScorecardData.period_start == period_start,
            ScorecardData.period_end == period_end,
        )
        record = self.session.scalars(stmt).first()
        if record is None:
            record = ScorecardData(
                metric_id=metric.id,
                brand_id=metric.brand_id,
                period_start=period_start,
                period_end=period_end,
            )
        for key, value in fields.items():
            setattr(record, key, value)
        return self.save(record)

    def list_data(self, brand_id: str, period_start: date, period_end: date) -> List[ScorecardData]:
        stmt = select(ScorecardData).where(
            ScorecardData.brand_id == brand_id,
            ScorecardData.period_start == period_start,
            ScorecardData.period_end == period_end,
        )
        return list(self.session.scalars(stmt).all())
