import os

# Must be set before app modules build their engine and settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_MIGRATIONS"] = "false"

from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api.dependencies import get_notification_bus
from app.application.audit_service import AuditLogService
from app.core_settings import Settings
from app.domain.models import Base, Establishment, Product
from app.infrastructure.auth import create_access_token
from app.infrastructure.db import get_db, get_session_factory
from app.infrastructure.notifications import NotificationBus


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def audit(session_factory):
    return AuditLogService(session_factory)


@pytest.fixture
def bus():
    bus = NotificationBus(buffer_size=100)
    yield bus
    bus.close()


@pytest.fixture
def settings():
    return Settings(DATABASE_URL="sqlite://", RUN_MIGRATIONS=False)


@pytest.fixture
def seed(db):
    """Three establishments and a small catalog."""
    bistro = Establishment(name="Bistro", slug="bistro", active=True, has_kitchen=True, online_ordering=True)
    bar = Establishment(name="Corner Bar", slug="corner-bar", active=True, has_kitchen=False, online_ordering=True)
    closed = Establishment(name="Closed Cafe", slug="closed-cafe", active=True, has_kitchen=True, online_ordering=False)
    db.add_all([bistro, bar, closed])
    db.flush()

    burger = Product(establishment_id=bistro.id, name="Burger", category="mains", price=Decimal("25.00"), active=True)
    soda = Product(establishment_id=bistro.id, name="Soda", category="drinks", price=Decimal("6.50"), active=True)
    retired = Product(establishment_id=bistro.id, name="Old Special", price=Decimal("40.00"), active=False)
    beer = Product(establishment_id=bar.id, name="Beer", price=Decimal("12.00"), active=True)
    coffee = Product(establishment_id=closed.id, name="Coffee", price=Decimal("5.00"), active=True)
    db.add_all([burger, soda, retired, beer, coffee])
    db.commit()

    return SimpleNamespace(
        bistro=bistro,
        bar=bar,
        closed=closed,
        burger=burger,
        soda=soda,
        retired=retired,
        beer=beer,
        coffee=coffee,
    )


@pytest.fixture
def client(session_factory, bus):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notification_bus] = lambda: bus
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(seed):
    token = create_access_token("user-1", seed.bistro.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def bar_headers(seed):
    token = create_access_token("user-2", seed.bar.id)
    return {"Authorization": f"Bearer {token}"}
