"""Weighted baskets: weight normalization and synthetic return series."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

from investdash.services.errors import MalformedInput
from investdash.services.series import PricePoint, ReturnPoint

logger = logging.getLogger(__name__)

BASKET_INDEX_BASE = 100.0


@dataclass
class BasketSeriesPoint:
    date: date
    value: float


@dataclass
class BasketSeriesResult:
    points: list[BasketSeriesPoint]
    weights: dict[str, float] = field(default_factory=dict)
    missing_symbols: list[str] = field(default_factory=list)
    error_message: str | None = None


def parse_weights(weights: Mapping[str, object]) -> dict[str, float]:
    """Coerce weights to floats, dropping blank, zero and negative entries."""
    cleaned: dict[str, float] = {}
    for ticker, raw in weights.items():
        if raw is None or raw == "":
            continue
        try:
            weight = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise MalformedInput(f"Weight for {ticker} must be numeric, got {raw!r}") from exc
        if weight > 0:
            cleaned[ticker] = weight
    return cleaned


def normalize_weights(weights: Mapping[str, object]) -> dict[str, float]:
    """Scale positive weights so they sum to 100."""
    cleaned = parse_weights(weights)
    total = sum(cleaned.values())
    if total <= 0:
        return {}
    return {ticker: (weight / total) * 100.0 for ticker, weight in cleaned.items()}


def _reanchor(values: dict[date, float | None], anchor: float) -> dict[date, float]:
    """Re-express base-zero returns relative to the value at a later anchor date."""
    anchor_growth = 1.0 + anchor / 100.0
    output: dict[date, float] = {}
    for day, value in values.items():
        if value is None:
            continue
        output[day] = ((1.0 + value / 100.0) / anchor_growth - 1.0) * 100.0
    return output


def compute_basket_series(
    return_series: Mapping[str, Sequence[ReturnPoint]],
    weights: Mapping[str, object],
) -> BasketSeriesResult:
    """Blend normalized per-asset returns into one weighted basket series.

    Only dates shared by every weighted member are kept, and each member is
    re-anchored so the basket starts at 0 on the earliest common date. When a
    member lacks a value on a common date, that date's sum is divided by the
    weight actually present.
    """
    normalized = normalize_weights(weights)
    if not normalized:
        return BasketSeriesResult(
            points=[],
            error_message="Basket weights must sum to more than zero.",
        )

    series_by_ticker: dict[str, dict[date, float | None]] = {}
    missing_symbols: list[str] = []
    for ticker in normalized:
        points = return_series.get(ticker) or []
        if not points:
            missing_symbols.append(ticker)
            continue
        series_by_ticker[ticker] = {point.date: point.value for point in points}

    if missing_symbols:
        symbols = ", ".join(sorted(missing_symbols))
        logger.info("Basket series unavailable; missing history for %s", symbols)
        return BasketSeriesResult(
            points=[],
            weights=normalized,
            missing_symbols=sorted(missing_symbols),
            error_message=f"Missing historical data for: {symbols}",
        )

    common_dates: set[date] | None = None
    for series in series_by_ticker.values():
        date_set = set(series.keys())
        common_dates = date_set if common_dates is None else (common_dates & date_set)

    if not common_dates:
        return BasketSeriesResult(
            points=[],
            weights=normalized,
            error_message="No overlapping historical dates across basket members.",
        )

    ordered_dates = sorted(common_dates)

    anchored: dict[str, dict[date, float]] = {}
    for ticker, series in series_by_ticker.items():
        anchor = next(
            (series[day] for day in ordered_dates if series[day] is not None),
            None,
        )
        if anchor is None or anchor <= -100.0:
            logger.info("No usable anchor for %s inside the common date range", ticker)
            continue
        anchored[ticker] = _reanchor({day: series[day] for day in ordered_dates}, anchor)

    points: list[BasketSeriesPoint] = []
    for day in ordered_dates:
        composite = 0.0
        present_weight = 0.0
        for ticker, values in anchored.items():
            value = values.get(day)
            if value is None:
                continue
            fraction = normalized[ticker] / 100.0
            composite += value * fraction
            present_weight += fraction
        if present_weight <= 0:
            continue
        points.append(BasketSeriesPoint(date=day, value=composite / present_weight))

    return BasketSeriesResult(points=points, weights=normalized)


def basket_index_prices(points: Sequence[BasketSeriesPoint]) -> list[PricePoint]:
    """Turn basket returns into a synthetic index (base 100) usable for statistics."""
    return [
        PricePoint(date=point.date, adjusted_close=BASKET_INDEX_BASE * (1.0 + point.value / 100.0))
        for point in points
    ]
