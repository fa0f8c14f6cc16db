from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from investdash.models import Asset, PriceHistory
from investdash.services.series import PricePoint

logger = logging.getLogger(__name__)


@dataclass
class QuoteResult:
    ticker: str
    price: float
    fetched_at: datetime


@dataclass
class RefreshReport:
    updated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    history_points: int = 0


class QuoteProvider(Protocol):
    """Provider interface for live quotes and adjusted-close history."""

    def get_latest_quote(self, ticker: str) -> QuoteResult:
        ...

    def get_historical_daily(self, ticker: str, start: date, end: date) -> list[PricePoint]:
        ...


class YFinanceProvider:
    """Best-effort provider backed by the free yfinance library."""

    def __init__(self) -> None:
        try:
            import yfinance as yf
        except Exception as exc:  # pragma: no cover - exercised in runtime, not tests
            raise RuntimeError("yfinance is not available") from exc
        self._yf = yf

    def get_latest_quote(self, ticker: str) -> QuoteResult:
        history = self._yf.Ticker(ticker).history(period="5d", interval="1d", auto_adjust=False)
        if history.empty:
            raise RuntimeError(f"No quote data found for {ticker}")

        close_series = history["Close"].dropna()
        if close_series.empty:
            raise RuntimeError(f"No close data found for {ticker}")

        return QuoteResult(
            ticker=ticker.upper(),
            price=float(close_series.iloc[-1]),
            fetched_at=datetime.now(timezone.utc),
        )

    def get_historical_daily(self, ticker: str, start: date, end: date) -> list[PricePoint]:
        # yfinance end date is exclusive, so shift by one day.
        history = self._yf.Ticker(ticker).history(
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            interval="1d",
            auto_adjust=False,
        )
        if history.empty:
            return []

        column = "Adj Close" if "Adj Close" in history.columns else "Close"
        points: list[PricePoint] = []
        for idx, close in history[column].dropna().items():
            point_date = idx.date() if hasattr(idx, "date") else idx
            points.append(PricePoint(date=point_date, adjusted_close=float(close)))
        return points


class UnavailableProvider:
    """Fallback provider used if yfinance cannot be initialized."""

    def get_latest_quote(self, ticker: str) -> QuoteResult:
        raise RuntimeError("Quote provider is unavailable")

    def get_historical_daily(self, ticker: str, start: date, end: date) -> list[PricePoint]:
        return []


class PricingService:
    """Fetches quotes and history from a provider and stores them on the asset rows."""

    def __init__(self, provider: QuoteProvider) -> None:
        self.provider = provider

    def refresh_prices(
        self,
        db: Session,
        history_days: int = 0,
        today: date | None = None,
    ) -> RefreshReport:
        """Update every asset's current price and, optionally, recent history.

        A failing ticker keeps its previous price; the rest of the refresh goes on.
        """
        report = RefreshReport()
        for asset in list(db.scalars(select(Asset).order_by(Asset.ticker.asc()))):
            self.refresh_asset(db, asset, history_days, today, report)

        db.flush()
        logger.info(
            "Price refresh finished: %d updated, %d failed, %d history points",
            len(report.updated),
            len(report.failed),
            report.history_points,
        )
        return report

    def refresh_asset(
        self,
        db: Session,
        asset: Asset,
        history_days: int = 0,
        today: date | None = None,
        report: RefreshReport | None = None,
    ) -> RefreshReport:
        report = report if report is not None else RefreshReport()
        try:
            quote = self.provider.get_latest_quote(asset.ticker)
        except Exception as exc:
            logger.warning("Quote refresh failed for %s: %s", asset.ticker, exc)
            report.failed[asset.ticker] = str(exc)
        else:
            if math.isfinite(quote.price) and quote.price > 0:
                asset.current_price = quote.price
                asset.price_updated_at = quote.fetched_at
                report.updated.append(asset.ticker)
            else:
                logger.warning("Ignoring invalid quote %r for %s", quote.price, asset.ticker)
                report.failed[asset.ticker] = f"Invalid quote {quote.price!r}"

        if history_days > 0:
            end = today or date.today()
            start = end - timedelta(days=history_days)
            report.history_points += self.sync_history(db, asset, start, end)
        return report

    def sync_history(self, db: Session, asset: Asset, start: date, end: date) -> int:
        """Upsert provider history for one asset; returns the number of points written."""
        try:
            points = self.provider.get_historical_daily(asset.ticker, start, end)
        except Exception as exc:
            logger.warning("History fetch failed for %s: %s", asset.ticker, exc)
            return 0

        existing = {
            row.date: row
            for row in db.scalars(
                select(PriceHistory).where(
                    PriceHistory.asset_id == asset.id,
                    PriceHistory.date >= start,
                    PriceHistory.date <= end,
                )
            )
        }
        written = 0
        for point in points:
            if not start <= point.date <= end:
                continue
            row = existing.get(point.date)
            if row is None:
                row = PriceHistory(asset_id=asset.id, date=point.date)
                db.add(row)
                existing[point.date] = row
            row.adjusted_close = point.adjusted_close
            written += 1
        db.flush()
        return written


def load_price_history(
    db: Session,
    asset: Asset,
    start: date | None = None,
    end: date | None = None,
) -> list[PricePoint]:
    """Return stored adjusted-close points for one asset inside an optional range."""
    query = select(PriceHistory).where(PriceHistory.asset_id == asset.id)
    if start is not None:
        query = query.where(PriceHistory.date >= start)
    if end is not None:
        query = query.where(PriceHistory.date <= end)
    return [
        PricePoint(date=row.date, adjusted_close=row.adjusted_close)
        for row in db.scalars(query.order_by(PriceHistory.date.asc()))
    ]
