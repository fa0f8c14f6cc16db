from __future__ import annotations

import pytest

from investdash.services.rebalance import (
    AssetRebalanceRow,
    FundsRebalanceRow,
    compute_rebalance,
    needs_rebalancing,
    round_half_up,
)
from investdash.services.valuation import AssetValuation


def _holding(asset_id: int, ticker: str, quantity: float, price: float | None) -> AssetValuation:
    market_value = None if price is None else quantity * price
    return AssetValuation(
        asset_id=asset_id,
        ticker=ticker,
        name=ticker,
        quantity=quantity,
        average_cost=price or 0.0,
        invested_capital=market_value or 0.0,
        current_price=price,
        market_value=market_value,
        unrealized_pnl=0.0 if price is not None else None,
        return_pct=0.0 if price is not None else None,
    )


def test_target_above_current_allocation() -> None:
    plan = compute_rebalance([_holding(1, "X", 30, 100.0)], 10_000.0, {"X": 50})

    row = plan.rows[0]
    assert isinstance(row, AssetRebalanceRow)
    assert row.current_pct == pytest.approx(30)
    assert row.target_value == pytest.approx(5_000)
    assert row.value_drift == pytest.approx(2_000)
    assert row.pct_drift == pytest.approx(20)
    assert row.qty_drift == pytest.approx(20)
    assert row.qty_drift_rounded == 20
    assert row.needs_action is True


def test_held_asset_missing_from_targets_gets_zero_target() -> None:
    plan = compute_rebalance(
        [_holding(1, "X", 10, 100.0), _holding(2, "Y", 10, 100.0)],
        2_000.0,
        {"X": 100},
    )

    y_row = next(row for row in plan.rows if row.ticker == "Y")
    assert y_row.target_pct == 0.0
    assert y_row.value_drift == pytest.approx(-1_000)
    assert y_row.qty_drift_rounded == -10


def test_target_values_do_not_leak() -> None:
    holdings = [_holding(1, "A", 3, 100.0), _holding(2, "B", 7, 50.0), _holding(3, "C", 1, 250.0)]
    total = sum(holding.market_value for holding in holdings)
    targets = {"A": 20, "B": 30, "C": 50}

    plan = compute_rebalance(holdings, total, targets)

    assert sum(row.target_value for row in plan.rows) == pytest.approx(total * sum(targets.values()) / 100)


def test_threshold_flags_small_drift_as_within_tolerance() -> None:
    plan = compute_rebalance([_holding(1, "X", 1, 49.8)], 100.0, {"X": 50}, threshold=0.5)
    assert plan.rows[0].needs_action is False
    assert plan.actionable_rows == []
    assert needs_rebalancing(0.5, 0.5) is True


def test_missing_price_leaves_quantities_undefined() -> None:
    holding = _holding(1, "X", 5, 100.0)
    holding.current_price = None

    plan = compute_rebalance([holding], 1_000.0, {"X": 100})

    row = plan.rows[0]
    assert row.target_qty is None
    assert row.qty_drift is None
    assert row.qty_drift_rounded is None
    assert row.value_drift == pytest.approx(500)


def test_funds_row_and_unmatched_targets() -> None:
    plan = compute_rebalance(
        [_holding(1, "X", 10, 100.0)],
        2_000.0,
        {"X": 40, "FUNDS": 60, "Z": 10},
        funds_value=1_000.0,
    )

    funds_row = plan.rows[-1]
    assert isinstance(funds_row, FundsRebalanceRow)
    assert funds_row.kind == "funds"
    assert funds_row.target_value == pytest.approx(1_200)
    assert funds_row.value_drift == pytest.approx(200)
    assert plan.unmatched_targets == ["Z"]


def test_zero_total_value_does_not_divide_by_zero() -> None:
    plan = compute_rebalance([_holding(1, "X", 0, 10.0)], 0.0, {"X": 100})
    assert plan.rows[0].current_pct == 0.0
    assert plan.rows[0].target_value == 0.0


@pytest.mark.parametrize(
    "value, expected",
    [(2.5, 3), (-2.5, -2), (19.999, 20), (-0.4, 0), (0.5, 1)],
)
def test_round_half_up(value, expected) -> None:
    assert round_half_up(value) == expected
