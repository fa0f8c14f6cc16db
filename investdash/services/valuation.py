"""Market value and profit/loss per asset and for the whole portfolio."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Iterable

from investdash.services.errors import MalformedInput
from investdash.services.ledger import Position
from investdash.services.series import coerce_price

logger = logging.getLogger(__name__)


@dataclass
class AssetValuation:
    asset_id: int
    ticker: str
    name: str
    quantity: float
    average_cost: float
    invested_capital: float
    current_price: float | None
    market_value: float | None
    unrealized_pnl: float | None
    return_pct: float | None
    allocation_pct: float = 0.0

    @property
    def priced(self) -> bool:
        return self.market_value is not None


@dataclass
class FundValuation:
    fund_id: int | None
    name: str
    initial_investment: float
    current_value: float
    pnl: float
    return_pct: float


@dataclass
class PortfolioValuation:
    assets: list[AssetValuation] = field(default_factory=list)
    funds: list[FundValuation] = field(default_factory=list)
    assets_total_invested: float = 0.0
    assets_total_value: float = 0.0
    assets_total_pnl: float = 0.0
    funds_total_invested: float = 0.0
    funds_total_value: float = 0.0
    cash_balance: float = 0.0
    total_invested: float = 0.0
    total_market_value: float = 0.0
    total_pnl: float = 0.0
    total_return_pct: float = 0.0
    unpriced_asset_ids: list[int] = field(default_factory=list)


def return_pct(pnl: float, invested: float) -> float:
    return (pnl / invested) * 100.0 if invested > 0 else 0.0


def compute_allocation_percentages(values_by_key: dict[str, float]) -> dict[str, float]:
    """Return allocation percentages for each key, summing to approximately 100."""
    total = sum(values_by_key.values())
    if total <= 0:
        return {key: 0.0 for key in values_by_key}
    return {key: (value / total) * 100.0 for key, value in values_by_key.items()}


def _current_price(asset: object) -> float | None:
    price = coerce_price(getattr(asset, "current_price", None))
    if price is None or not math.isfinite(price):
        return None
    return price


def _amount(value: object, name: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise MalformedInput(f"{name} must be numeric, got {value!r}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise MalformedInput(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise MalformedInput(f"{name} must be finite, got {value!r}")
    return number


def value_position(position: Position, asset: object) -> AssetValuation:
    """Value one position at the asset's current price."""
    price = _current_price(asset)
    if price is None:
        market_value = unrealized = pct = None
    else:
        market_value = position.quantity * price
        unrealized = market_value - position.invested_capital
        pct = return_pct(unrealized, position.invested_capital)
    return AssetValuation(
        asset_id=position.asset_id,
        ticker=str(getattr(asset, "ticker", position.asset_id)),
        name=str(getattr(asset, "name", "") or ""),
        quantity=position.quantity,
        average_cost=position.average_cost,
        invested_capital=position.invested_capital,
        current_price=price,
        market_value=market_value,
        unrealized_pnl=unrealized,
        return_pct=pct,
    )


def value_fund(fund: object) -> FundValuation:
    initial = _amount(getattr(fund, "initial_investment", None), "initial_investment")
    current = _amount(getattr(fund, "current_value", None), "current_value")
    pnl = current - initial
    return FundValuation(
        fund_id=getattr(fund, "id", None),
        name=str(getattr(fund, "name", "")),
        initial_investment=initial,
        current_value=current,
        pnl=pnl,
        return_pct=return_pct(pnl, initial),
    )


def value_portfolio(
    positions: Mapping[int, Position],
    assets: Mapping[int, object],
    funds: Iterable[object] = (),
    cash_balance: float = 0.0,
) -> PortfolioValuation:
    """Aggregate per-asset valuations with external fund values and cash.

    Holdings without a current price keep an undefined market value and are
    left out of every total; they are listed in ``unpriced_asset_ids``.
    """
    result = PortfolioValuation(cash_balance=_amount(cash_balance, "cash_balance"))

    for asset_id, position in positions.items():
        asset = assets.get(asset_id)
        if asset is None:
            logger.warning("Position for unknown asset %s left out of valuation", asset_id)
            continue
        row = value_position(position, asset)
        result.assets.append(row)
        if not row.priced:
            logger.warning("No current price for %s; excluded from totals", row.ticker)
            result.unpriced_asset_ids.append(asset_id)
            continue
        result.assets_total_invested += row.invested_capital
        result.assets_total_value += row.market_value
        result.assets_total_pnl += row.unrealized_pnl

    result.assets.sort(key=lambda row: (row.ticker.lower(), row.asset_id))

    for fund in funds:
        fund_row = value_fund(fund)
        result.funds.append(fund_row)
        result.funds_total_invested += fund_row.initial_investment
        result.funds_total_value += fund_row.current_value

    funds_pnl = result.funds_total_value - result.funds_total_invested
    result.total_invested = result.assets_total_invested + result.funds_total_invested
    result.total_market_value = (
        result.assets_total_value + result.funds_total_value + result.cash_balance
    )
    result.total_pnl = result.assets_total_pnl + funds_pnl
    result.total_return_pct = return_pct(result.total_pnl, result.total_invested)

    # Allocation is measured against everything held, funds and cash included.
    values_by_key = {str(row.asset_id): row.market_value for row in result.assets if row.priced}
    values_by_key["funds"] = result.funds_total_value
    values_by_key["cash"] = max(result.cash_balance, 0.0)
    allocation = compute_allocation_percentages(values_by_key)
    for row in result.assets:
        row.allocation_pct = allocation.get(str(row.asset_id), 0.0)

    return result
