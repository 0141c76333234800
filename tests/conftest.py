"""Pytest fixtures for testing"""

import itertools
import pytest
from datetime import date, timedelta
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from pattern_engine.api.main import create_app
from pattern_engine.infrastructure.database.models import Base
from pattern_engine.infrastructure.database.session import get_db
from pattern_engine.domain.models import Transaction


# Fixed reference date (a Friday) so every test is deterministic
TODAY = date(2024, 6, 14)

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for transactions dated relative to TODAY"""
    ids = itertools.count(1)

    def _make(amount: float, days_ago: int = 0, merchant: str = "Netflix", **kwargs) -> Transaction:
        kwargs.setdefault("transaction_id", f"txn_{next(ids)}")
        return Transaction(
            date=TODAY - timedelta(days=days_ago),
            amount=amount,
            merchant=merchant,
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_transactions(make_transaction) -> list[Transaction]:
    """About four months of history for one user"""
    transactions = []

    # Biweekly paycheck (income is negative)
    for days_ago in range(2, 120, 14):
        transactions.append(make_transaction(-2500.0, days_ago, "ACME Corp Payroll", category="INCOME"))

    # Monthly rent and streaming subscription
    for days_ago in (5, 35, 65, 95):
        transactions.append(make_transaction(1200.0, days_ago, "Oakwood Apartments", category="RENT_AND_UTILITIES"))
    for days_ago in (10, 40, 70, 100):
        transactions.append(make_transaction(15.99, days_ago, "NETFLIX.COM", category="ENTERTAINMENT"))

    # Coffee every three days (shopping category, never a bill)
    for i, days_ago in enumerate(range(3, 120, 3)):
        transactions.append(
            make_transaction(4.75 + (i % 3) * 0.5, days_ago, "Blue Bottle Coffee", category="FOOD_AND_DRINK")
        )

    # One large first-time purchase yesterday
    transactions.append(make_transaction(899.0, 1, "Apple Store", category="ELECTRONICS"))

    return transactions
