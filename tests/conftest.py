from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the repository root is importable in pytest runs.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from investdash import create_app
from investdash.db import Base, get_db
from investdash import models  # noqa: F401
from investdash.services.pricing import PricingService, QuoteResult
from investdash.services.series import PricePoint


class MockQuoteProvider:
    """Deterministic in-memory quote provider for tests."""

    def __init__(self) -> None:
        self.latest: dict[str, float] = {}
        self.history: dict[str, list[tuple[date, float]]] = {}

    def set_latest(self, ticker: str, price: float) -> None:
        self.latest[ticker.upper()] = float(price)

    def set_history(self, ticker: str, points: list[tuple[date, float]]) -> None:
        self.history[ticker.upper()] = points

    def get_latest_quote(self, ticker: str) -> QuoteResult:
        key = ticker.upper()
        if key not in self.latest:
            raise RuntimeError(f"No latest quote for {key}")
        return QuoteResult(
            ticker=key,
            price=self.latest[key],
            fetched_at=datetime.now(timezone.utc),
        )

    def get_historical_daily(self, ticker: str, start: date, end: date) -> list[PricePoint]:
        key = ticker.upper()
        rows = self.history.get(key, [])
        return [
            PricePoint(date=point_date, adjusted_close=close)
            for point_date, close in rows
            if start <= point_date <= end
        ]


@pytest.fixture()
def test_env():
    provider = MockQuoteProvider()

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)

    Base.metadata.create_all(bind=engine)

    app = create_app(pricing_service=PricingService(provider=provider), enable_startup_init=False)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield {
            "app": app,
            "client": client,
            "session_factory": SessionLocal,
            "provider": provider,
        }

    engine.dispose()


@pytest.fixture()
def app(test_env):
    return test_env["app"]


@pytest.fixture()
def client(test_env):
    return test_env["client"]


@pytest.fixture()
def db_session_factory(test_env):
    return test_env["session_factory"]


@pytest.fixture()
def mock_provider(test_env):
    return test_env["provider"]
