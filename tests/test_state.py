from __future__ import annotations

from datetime import date

import pytest

from investdash.services.state import (
    REBALANCE_CACHE_SIZE,
    AssetRecord,
    FundRecord,
    PortfolioInputs,
    PortfolioState,
    TransactionRecord,
)


def _inputs(price: float = 120.0, cash: float = 0.0) -> PortfolioInputs:
    return PortfolioInputs(
        assets=(AssetRecord(id=1, ticker="AAA", name="Alpha", current_price=price),),
        transactions=(
            TransactionRecord(id=1, asset_id=1, type="buy", quantity=10, price=100, date=date(2024, 1, 1)),
        ),
        funds=(
            FundRecord(
                id=1,
                name="Fund",
                initial_investment=500.0,
                current_value=800.0,
                investment_date=date(2023, 1, 1),
            ),
        ),
        cash_balance=cash,
    )


def test_state_requires_a_load_before_reads() -> None:
    state = PortfolioState()
    assert not state.ready
    with pytest.raises(RuntimeError):
        state.valuation()


def test_views_are_memoized_per_snapshot() -> None:
    state = PortfolioState()
    assert state.replace(_inputs()) is True

    first = state.valuation()
    assert state.valuation() is first
    assert first.assets_total_value == pytest.approx(1200)

    assert state.replace(_inputs()) is False
    assert state.valuation() is first

    assert state.replace(_inputs(price=130.0)) is True
    assert state.valuation() is not first
    assert state.valuation().assets_total_value == pytest.approx(1300)


def test_failed_refresh_keeps_previous_snapshot() -> None:
    state = PortfolioState()
    state.refresh(lambda: _inputs(cash=50.0))
    fingerprint = state.fingerprint

    def broken_loader() -> PortfolioInputs:
        raise ConnectionError("database offline")

    assert state.refresh(broken_loader) is False
    assert state.last_error == "database offline"
    assert state.fingerprint == fingerprint
    assert state.valuation().cash_balance == pytest.approx(50)

    assert state.refresh(lambda: _inputs(cash=75.0)) is True
    assert state.last_error is None


def test_rebalance_excludes_cash_and_optionally_includes_funds() -> None:
    state = PortfolioState()
    state.replace(_inputs(cash=1_000.0))

    plan = state.rebalance({"AAA": 100})
    assert plan.total_value == pytest.approx(1200)
    assert len(plan.rows) == 1

    with_funds = state.rebalance({"AAA": 50, "FUNDS": 50}, include_funds=True)
    assert with_funds.total_value == pytest.approx(2000)
    assert with_funds.rows[-1].kind == "funds"
    assert with_funds.rows[-1].value_drift == pytest.approx(200)

    assert state.rebalance({"AAA": 100}) is plan


def test_fingerprint_tracks_content() -> None:
    assert _inputs().fingerprint() == _inputs().fingerprint()
    assert _inputs().fingerprint() != _inputs(cash=1.0).fingerprint()


def test_rebalance_cache_is_bounded_per_snapshot() -> None:
    state = PortfolioState()
    state.replace(_inputs())

    first = state.rebalance({"AAA": 100}, threshold=0.0)
    for step in range(1, REBALANCE_CACHE_SIZE + 5):
        state.rebalance({"AAA": 100}, threshold=step / 10)

    cached = state._snapshot.rebalances
    assert len(cached) == REBALANCE_CACHE_SIZE
    assert state.rebalance({"AAA": 100}, threshold=0.0) is not first
