"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database. The app's get_db
dependency is pointed at it, so API tests and crud tests see the same rows.
"""
import os

# must be set before frota.config builds its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from frota import models  # noqa: F401  (registers tables on Base)
from frota.db import Base, get_db
from main import app


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client):
    resp = client.post("/setup", data={"username": "admin", "password": "s3cret"})
    assert resp.status_code == 201, resp.text
    return client


@pytest.fixture
def truck(db):
    obj = models.Vehicle(
        type="CAVALO",
        plate="ABC1D23",
        model="Volvo FH 540",
        current_km=120000,
        next_oil_change_km=150000,
        photos=[],
    )
    db.add(obj); db.commit(); db.refresh(obj)
    return obj


@pytest.fixture
def driver(db):
    obj = models.Driver(name="João Silva", cpf="12345678900", cnh_category="E", cnh_expiration=date(2030, 1, 1))
    db.add(obj); db.commit(); db.refresh(obj)
    return obj


@pytest.fixture
def account(db):
    obj = models.FinancialAccount(name="Banco do Brasil", type="BANK", initial_balance=Decimal("1000.00"))
    db.add(obj); db.commit(); db.refresh(obj)
    return obj
