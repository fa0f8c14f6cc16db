"""Price series ordering and base-zero return normalization."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable

from investdash.services.errors import MalformedInput


@dataclass(frozen=True)
class PricePoint:
    date: date
    adjusted_close: float | None


@dataclass(frozen=True)
class ReturnPoint:
    date: date
    value: float | None


@dataclass
class NormalizedSeries:
    prices: list[PricePoint] = field(default_factory=list)
    returns: list[ReturnPoint] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.prices


def coerce_date(value: object) -> date:
    """Accept a date, datetime or ISO string and return a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError as exc:
            raise MalformedInput(f"Invalid date: {value!r}") from exc
    raise MalformedInput(f"Invalid date: {value!r}")


def coerce_price(value: object) -> float | None:
    """Return a float close, or None when the value is absent."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedInput(f"Price must be numeric, got {value!r}")
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise MalformedInput(f"Price must be numeric, got {value!r}") from exc
    if math.isnan(number):
        return None
    return number


def is_usable_price(value: float | None) -> bool:
    """Closes that are missing, zero or negative cannot anchor a ratio."""
    return value is not None and math.isfinite(value) and value > 0


def to_price_point(raw: object) -> PricePoint:
    """Build a PricePoint from a PricePoint, a mapping or an attribute object."""
    if isinstance(raw, PricePoint):
        return raw
    if isinstance(raw, dict):
        raw_date = raw.get("date")
        raw_close = raw.get("adjusted_close", raw.get("adjustedClose"))
    else:
        raw_date = getattr(raw, "date", None)
        raw_close = getattr(raw, "adjusted_close", None)
    return PricePoint(date=coerce_date(raw_date), adjusted_close=coerce_price(raw_close))


def sort_price_series(points: Iterable[object]) -> list[PricePoint]:
    """Sort ascending by date; ties keep their input order."""
    return sorted((to_price_point(point) for point in points), key=lambda point: point.date)


def normalize_series(points: Iterable[object]) -> NormalizedSeries:
    """Sort a raw price history and express it as percentage change from its first close.

    An empty history, or one whose chronologically first close is missing or
    non-positive, yields an empty result. Later points with a missing close keep
    their date with a ``None`` return value.
    """
    prices = sort_price_series(points)
    if not prices:
        return NormalizedSeries()

    first_price = prices[0].adjusted_close
    if not is_usable_price(first_price):
        return NormalizedSeries()

    returns: list[ReturnPoint] = []
    for point in prices:
        close = point.adjusted_close
        if close is None or not math.isfinite(close):
            returns.append(ReturnPoint(date=point.date, value=None))
            continue
        returns.append(ReturnPoint(date=point.date, value=(close / first_price - 1.0) * 100.0))
    return NormalizedSeries(prices=prices, returns=returns)


def normalize_histories(histories: dict[str, Iterable[object]]) -> dict[str, NormalizedSeries]:
    """Normalize several tickers at once, dropping the ones with no usable data."""
    output: dict[str, NormalizedSeries] = {}
    for ticker, points in histories.items():
        normalized = normalize_series(points)
        if normalized.is_empty:
            continue
        output[ticker] = normalized
    return output
