from typing import List, Optional

from sqlalchemy import exists, or_, select

from powerbrief.db.enums import BrandShareStatusEnum
from powerbrief.db.models import Brand, BrandShare
from powerbrief.db.repositories.base import Repository


class BrandsRepository(Repository):
    def _accessible_clause(self, user_id: str):
        shared = exists().where(
            BrandShare.brand_id == Brand.id,
            BrandShare.shared_with_user_id == user_id,
            BrandShare.status == BrandShareStatusEnum.accepted,
        )
        return or_(Brand.user_id == user_id, shared)

    def list_for_user(self, user_id: str) -> List[Brand]:
        stmt = select(Brand).where(self._accessible_clause(user_id)).order_by(Brand.created_at.desc())
        brands = list(self.session.scalars(stmt).all())
        # Owned brands first, shared brands after.
        return sorted(brands, key=lambda brand: brand.user_id != user_id)

    def get_for_user(self, user_id: str, brand_id: str) -> Optional[Brand]:
        stmt = select(Brand).where(Brand.id == brand_id, self._accessible_clause(user_id))
        return self.session.scalars(stmt).first()

    def get(self, brand_id: str) -> Optional[Brand]:
        return self.session.get(Brand, brand_id)

    def get_by_email_identifier(self, identifier: str) -> Optional[Brand]:
        stmt = select(Brand).where(Brand.email_identifier == identifier)
        return self.session.scalars(stmt).first()

    def create(self, user_id: str, name: str, **fields) -> Brand:
        return self.save(Brand(user_id=user_id, name=name, **fields))


class BrandSharesRepository(Repository):
    def list_for_brand(self, brand_id: str) -> List[BrandShare]:
        stmt = (
            select(BrandShare)
            .where(BrandShare.brand_id == brand_id, BrandShare.status != BrandShareStatusEnum.revoked)
            .order_by(BrandShare.created_at.asc())
        )
        return list(self.session.scalars(stmt).all())

    def get_by_token(self, token: str) -> Optional[BrandShare]:
        stmt = select(BrandShare).where(BrandShare.invitation_token == token)
        return self.session.scalars(stmt).first()

    def get_pending_for_email(self, brand_id: str, email: str) -> Optional[BrandShare]:
        stmt = select(BrandShare).where(
            BrandShare.brand_id == brand_id,
            BrandShare.shared_with_email == email,
            BrandShare.status == BrandShareStatusEnum.pending,
        )
        return self.session.scalars(stmt).first()

    def create(self, **fields) -> BrandShare:
        return self.save(BrandShare(**fields))

    def get_accepted_for_user(self, brand_id: str, user_id: str) -> Optional[BrandShare]:
        stmt = select(BrandShare).where(
            BrandShare.brand_id == brand_id,
            BrandShare.shared_with_user_id == user_id,
            BrandShare.status == BrandShareStatusEnum.accepted,
        )
        return self.session.scalars(stmt).first()
