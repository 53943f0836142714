import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Budget, Expense, User, get_db, init_db
from main import app
from periods import REFERENCE_TZ, to_storage

USER_EMAIL = "asha@example.com"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    def _register(email=USER_EMAIL, username="asha", password="secret123", **extra):
        payload = {"email": email, "username": username, "password": password, **extra}
        resp = client.post("/auth/register", json=payload)
        assert resp.status_code == 201, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _register


@pytest.fixture
def auth_headers(register):
    return register()


def ist(year, month, day, hour=12, minute=0):
    """Aware datetime in the reference timezone."""
    return datetime(year, month, day, hour, minute, tzinfo=REFERENCE_TZ)


@pytest.fixture
def user(db):
    user = User(email=USER_EMAIL, username="asha", password_hash="x", first_name="Asha")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def make_budget(db):
    def _make_budget(amount, email=USER_EMAIL):
        budget = Budget(user_email=email, amount=Decimal(str(amount)), category_budgets={})
        db.add(budget)
        db.commit()
        db.refresh(budget)
        return budget

    return _make_budget


@pytest.fixture
def add_expense(db):
    def _add_expense(amount, when, category="Groceries", email=USER_EMAIL):
        expense = Expense(
            user_email=email,
            amount=Decimal(str(amount)),
            category=category,
            method="manual",
            date=to_storage(when),
        )
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    return _add_expense
