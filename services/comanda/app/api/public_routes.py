from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.infrastructure.db import get_db
from app.infrastructure.notifications import NotificationBus
from app.application.audit_service import AuditLogService
from app.application.catalog import EstablishmentDirectory, ProductCatalog
from app.application.settlement_service import SettlementService
from app.application.schemas import MenuRead, PublicOrderCreate, PublicOrderRead
from app.domain.errors import NotFoundError
from .dependencies import get_audit_service, get_notification_bus

# No authentication: customers order from the establishment's public menu
router = APIRouter(prefix="/public", tags=["public"])

@router.get("/{slug}/menu", response_model=MenuRead)
def get_menu(slug: str, db: Session = Depends(get_db)):
    establishment = EstablishmentDirectory(db).find_online(slug)
    if not establishment:
        raise NotFoundError("Menu not available", entity="establishment", entity_id=slug)
    return {
        "establishment": establishment,
        "products": ProductCatalog(db).list_active(establishment.id),
    }

@router.post("/orders", response_model=PublicOrderRead, status_code=201)
def create_public_order(
    payload: PublicOrderCreate,
    db: Session = Depends(get_db),
    audit: AuditLogService = Depends(get_audit_service),
    bus: NotificationBus = Depends(get_notification_bus),
):
    return SettlementService(db, audit, bus).create_public_order(payload)
