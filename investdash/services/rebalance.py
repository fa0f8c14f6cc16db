"""Buy/sell deltas that move current holdings toward a target allocation."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal, Union

from investdash.services.baskets import parse_weights
from investdash.services.valuation import AssetValuation

DEFAULT_DRIFT_THRESHOLD = 0.5
FUNDS_TARGET_KEY = "FUNDS"


@dataclass
class AssetRebalanceRow:
    asset_id: int
    ticker: str
    name: str
    current_price: float | None
    current_pct: float
    target_pct: float
    pct_drift: float
    current_value: float
    target_value: float
    value_drift: float
    current_qty: float
    target_qty: float | None
    qty_drift: float | None
    qty_drift_rounded: int | None
    needs_action: bool
    kind: Literal["asset"] = "asset"


@dataclass
class FundsRebalanceRow:
    current_pct: float
    target_pct: float
    pct_drift: float
    current_value: float
    target_value: float
    value_drift: float
    needs_action: bool
    kind: Literal["funds"] = "funds"


RebalanceRow = Union[AssetRebalanceRow, FundsRebalanceRow]


@dataclass
class RebalancePlan:
    total_value: float
    threshold: float
    target_weights: dict[str, float]
    rows: list[RebalanceRow] = field(default_factory=list)
    unmatched_targets: list[str] = field(default_factory=list)

    @property
    def actionable_rows(self) -> list[RebalanceRow]:
        return [row for row in self.rows if row.needs_action]


def round_half_up(value: float) -> int:
    """Round to the nearest whole unit with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def needs_rebalancing(pct_drift: float, threshold: float = DEFAULT_DRIFT_THRESHOLD) -> bool:
    return abs(pct_drift) >= threshold


def _pct_of(value: float, total: float) -> float:
    return (value / total) * 100.0 if total > 0 else 0.0


def compute_rebalance(
    holdings: Sequence[AssetValuation],
    total_value: float,
    target_weights: Mapping[str, object],
    *,
    threshold: float = DEFAULT_DRIFT_THRESHOLD,
    funds_value: float | None = None,
) -> RebalancePlan:
    """Compare current allocation against target weights keyed by ticker.

    Target percentages are used as given (stored baskets are normalized on
    save). Held assets missing from the targets get a 0% target. When
    ``funds_value`` is given, an aggregate funds row is added whose target
    comes from the ``FUNDS`` entry.
    """
    targets = parse_weights(target_weights)
    plan = RebalancePlan(total_value=total_value, threshold=threshold, target_weights=targets)

    held_tickers: set[str] = set()
    for holding in holdings:
        held_tickers.add(holding.ticker)
        current_value = holding.market_value or 0.0
        target_pct = targets.get(holding.ticker, 0.0)
        target_value = (target_pct / 100.0) * total_value
        value_drift = target_value - current_value
        current_pct = _pct_of(current_value, total_value)
        pct_drift = target_pct - current_pct

        price = holding.current_price
        if price is not None and price > 0:
            target_qty = target_value / price
            qty_drift = value_drift / price
            qty_drift_rounded = round_half_up(qty_drift)
        else:
            target_qty = qty_drift = qty_drift_rounded = None

        plan.rows.append(
            AssetRebalanceRow(
                asset_id=holding.asset_id,
                ticker=holding.ticker,
                name=holding.name,
                current_price=price,
                current_pct=current_pct,
                target_pct=target_pct,
                pct_drift=pct_drift,
                current_value=current_value,
                target_value=target_value,
                value_drift=value_drift,
                current_qty=holding.quantity,
                target_qty=target_qty,
                qty_drift=qty_drift,
                qty_drift_rounded=qty_drift_rounded,
                needs_action=needs_rebalancing(pct_drift, threshold),
            )
        )

    if funds_value is not None:
        held_tickers.add(FUNDS_TARGET_KEY)
        target_pct = targets.get(FUNDS_TARGET_KEY, 0.0)
        target_value = (target_pct / 100.0) * total_value
        current_pct = _pct_of(funds_value, total_value)
        plan.rows.append(
            FundsRebalanceRow(
                current_pct=current_pct,
                target_pct=target_pct,
                pct_drift=target_pct - current_pct,
                current_value=funds_value,
                target_value=target_value,
                value_drift=target_value - funds_value,
                needs_action=needs_rebalancing(target_pct - current_pct, threshold),
            )
        )

    plan.unmatched_targets = sorted(ticker for ticker in targets if ticker not in held_tickers)
    return plan
