from sqlalchemy.orm import Session
from typing import Iterable, List, Optional
from app.domain.models import Establishment, Product

class ProductCatalog:
    """Read-only, tenant-scoped view of the product catalog."""

    def __init__(self, db: Session):
        self.db = db

    def find_active_by_ids(self, ids: Iterable[str], establishment_id: str) -> List[Product]:
        ids = list(set(ids))
        if not ids:
            return []
        return self.db.query(Product).filter(
            Product.id.in_(ids),
            Product.establishment_id == establishment_id,
            Product.active.is_(True),
        ).all()

    def list_active(self, establishment_id: str) -> List[Product]:
        return self.db.query(Product).filter(
            Product.establishment_id == establishment_id,
            Product.active.is_(True),
        ).order_by(Product.name.asc()).all()

class EstablishmentDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, establishment_id: str) -> Optional[Establishment]:
        return self.db.get(Establishment, establishment_id)

    def find_online(self, slug: str) -> Optional[Establishment]:
        """Establishment accepting public orders, or None."""
        return self.db.query(Establishment).filter(
            Establishment.slug == slug,
            Establishment.active.is_(True),
            Establishment.online_ordering.is_(True),
        ).first()
