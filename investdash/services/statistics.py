"""Performance statistics for a single price series."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from statistics import pstdev
from typing import Iterable

from investdash.services.series import PricePoint, is_usable_price, sort_price_series

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365


@dataclass
class AssetStatistics:
    """Summary statistics; every numeric field is None when it cannot be measured."""

    points: int
    first_price: float | None = None
    last_price: float | None = None
    elapsed_days: int | None = None
    total_return: float | None = None
    annualized_return: float | None = None
    volatility: float | None = None
    max_drawdown: float | None = None
    daily_returns: list[float] = field(default_factory=list)
    annualization_extrapolated: bool = False

    @property
    def available(self) -> bool:
        return self.total_return is not None


def daily_returns(prices: list[PricePoint]) -> list[float]:
    """Percentage change between consecutive closes, skipping pairs with a gap."""
    output: list[float] = []
    for previous, current in zip(prices, prices[1:]):
        if not is_usable_price(previous.adjusted_close):
            continue
        if current.adjusted_close is None or not math.isfinite(current.adjusted_close):
            continue
        output.append((current.adjusted_close / previous.adjusted_close - 1.0) * 100.0)
    return output


def annualize_return(
    total_return: float,
    elapsed_days: int,
    min_days: int = 0,
) -> float | None:
    """Compound a period return to a yearly rate.

    Periods shorter than a year are extrapolated. Spans below ``min_days`` and
    results too large to represent return None.
    """
    if elapsed_days < min_days:
        return None
    growth = 1.0 + total_return / 100.0
    if growth < 0:
        return None
    try:
        return (growth ** (DAYS_PER_YEAR / elapsed_days) - 1.0) * 100.0
    except OverflowError:
        logger.debug("Annualized return overflowed for %s%% over %s days", total_return, elapsed_days)
        return None


def max_drawdown(prices: list[PricePoint]) -> float:
    """Most negative percentage decline from a running peak; 0 when prices never dip."""
    peak: float | None = None
    worst = 0.0
    for point in prices:
        close = point.adjusted_close
        if not is_usable_price(close):
            continue
        if peak is None or close > peak:
            peak = close
            continue
        drawdown = (close / peak - 1.0) * 100.0
        if drawdown < worst:
            worst = drawdown
    return worst


def compute_asset_statistics(
    points: Iterable[object],
    *,
    trading_days: int = TRADING_DAYS_PER_YEAR,
    min_annualization_days: int = 0,
) -> AssetStatistics:
    """Compute total/annualized return, volatility and max drawdown for one asset."""
    prices = sort_price_series(points)
    usable = [point for point in prices if is_usable_price(point.adjusted_close)]
    if len(usable) < 2 or not is_usable_price(prices[0].adjusted_close):
        return AssetStatistics(points=len(prices))

    first, last = usable[0], usable[-1]
    total_return = (last.adjusted_close / first.adjusted_close - 1.0) * 100.0
    elapsed_days = max((last.date - first.date).days, 1)

    returns = daily_returns(prices)
    volatility = pstdev(returns) * math.sqrt(trading_days) if returns else None

    return AssetStatistics(
        points=len(prices),
        first_price=first.adjusted_close,
        last_price=last.adjusted_close,
        elapsed_days=elapsed_days,
        total_return=total_return,
        annualized_return=annualize_return(total_return, elapsed_days, min_annualization_days),
        volatility=volatility,
        max_drawdown=max_drawdown(prices),
        daily_returns=returns,
        annualization_extrapolated=elapsed_days < DAYS_PER_YEAR,
    )
