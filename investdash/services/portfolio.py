from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from investdash.models import Asset, Basket, CashBalance, InvestmentFund, Transaction
from investdash.services.baskets import (
    BasketSeriesResult,
    basket_index_prices,
    compute_basket_series,
    normalize_weights,
)
from investdash.services.errors import InvalidTransaction, MalformedInput
from investdash.services.ledger import QTY_EPSILON, TransactionType, quantity_held
from investdash.services.pricing import load_price_history
from investdash.services.series import NormalizedSeries, normalize_histories, normalize_series
from investdash.services.state import (
    AssetRecord,
    FundRecord,
    PortfolioInputs,
    TransactionRecord,
)
from investdash.services.statistics import (
    TRADING_DAYS_PER_YEAR,
    AssetStatistics,
    compute_asset_statistics,
)

logger = logging.getLogger(__name__)


@dataclass
class AssetHistory:
    ticker: str
    start: date
    end: date
    series: NormalizedSeries
    statistics: AssetStatistics


@dataclass
class BasketHistory:
    basket_id: int
    name: str
    result: BasketSeriesResult
    statistics: AssetStatistics


@dataclass
class Comparison:
    start: date
    end: date
    assets: list[AssetHistory] = field(default_factory=list)
    missing_tickers: list[str] = field(default_factory=list)
    basket: BasketHistory | None = None


def resolve_date_range(
    days: int | None = None,
    start: date | None = None,
    end: date | None = None,
    today: date | None = None,
    default_days: int = 1095,
) -> tuple[date, date]:
    """Pick the history window; explicit start/end take precedence over ``days``."""
    today = today or date.today()
    if start is not None or end is not None:
        end = end or today
        start = start or end - timedelta(days=days or default_days)
        if start > end:
            raise MalformedInput("Start date must be on or before end date")
        return start, end
    if days is not None and days <= 0:
        raise MalformedInput("days must be greater than zero")
    return today - timedelta(days=days or default_days), today


def get_cash_balance(db: Session) -> CashBalance:
    """Return the single cash row, creating it on first use."""
    cash = db.scalar(select(CashBalance).order_by(CashBalance.id.asc()))
    if cash is None:
        cash = CashBalance(value=0.0)
        db.add(cash)
        db.flush()
    return cash


def load_portfolio_inputs(db: Session) -> PortfolioInputs:
    """Snapshot every row the valuation depends on into immutable records."""
    assets = tuple(
        AssetRecord(
            id=asset.id,
            ticker=asset.ticker,
            name=asset.name,
            current_price=asset.current_price,
        )
        for asset in db.scalars(select(Asset).order_by(Asset.id.asc()))
    )
    transactions = tuple(
        TransactionRecord(
            id=tx.id,
            asset_id=tx.asset_id,
            type=tx.type.value,
            quantity=tx.quantity,
            price=tx.price,
            date=tx.date,
        )
        for tx in db.scalars(
            select(Transaction).order_by(Transaction.date.asc(), Transaction.id.asc())
        )
    )
    funds = tuple(
        FundRecord(
            id=fund.id,
            name=fund.name,
            initial_investment=fund.initial_investment,
            current_value=fund.current_value,
            investment_date=fund.investment_date,
        )
        for fund in db.scalars(select(InvestmentFund).order_by(InvestmentFund.id.asc()))
    )
    cash = db.scalar(select(CashBalance).order_by(CashBalance.id.asc()))
    return PortfolioInputs(
        assets=assets,
        transactions=transactions,
        funds=funds,
        cash_balance=cash.value if cash else 0.0,
    )


def validate_new_transaction(
    db: Session,
    asset_id: int,
    tx_type: TransactionType,
    quantity: float,
    price: float,
    tx_date: date,
    today: date | None = None,
) -> None:
    """Reject a transaction that fails the input checks.

    A sell must be covered by the quantity held on its date, so a sell dated
    before the buys that cover it is rejected too. Buys are never checked
    against holdings.
    """
    if db.get(Asset, asset_id) is None:
        raise InvalidTransaction(f"Unknown asset id {asset_id}")
    if not math.isfinite(quantity) or quantity <= 0:
        raise InvalidTransaction("Quantity must be greater than zero")
    if not math.isfinite(price) or price <= 0:
        raise InvalidTransaction("Price must be greater than zero")
    if tx_date > (today or date.today()):
        raise InvalidTransaction("Transaction date cannot be in the future")

    if tx_type != TransactionType.SELL:
        return

    existing = db.scalars(
        select(Transaction)
        .where(Transaction.asset_id == asset_id)
        .order_by(Transaction.date.asc(), Transaction.id.asc())
    )
    held = quantity_held(existing, asset_id, as_of=tx_date)
    if quantity - held > QTY_EPSILON:
        raise InvalidTransaction(f"Cannot sell {quantity:g} units; only {held:g} held on {tx_date}")


def prepare_basket_weights(raw_weights: dict[str, object]) -> dict[str, float]:
    """Upper-case tickers, drop non-positive weights and scale the rest to 100."""
    merged: dict[str, float] = {}
    for ticker, weight in raw_weights.items():
        key = str(ticker).strip().upper()
        if not key:
            continue
        merged[key] = weight  # type: ignore[assignment]
    weights = normalize_weights(merged)
    if not weights:
        raise MalformedInput("Basket weights must sum to more than zero")
    return weights


def build_asset_history(
    db: Session,
    asset: Asset,
    start: date,
    end: date,
    *,
    trading_days: int = TRADING_DAYS_PER_YEAR,
    min_annualization_days: int = 0,
) -> AssetHistory:
    points = load_price_history(db, asset, start, end)
    return AssetHistory(
        ticker=asset.ticker,
        start=start,
        end=end,
        series=normalize_series(points),
        statistics=compute_asset_statistics(
            points,
            trading_days=trading_days,
            min_annualization_days=min_annualization_days,
        ),
    )


def build_basket_history(
    db: Session,
    basket: Basket,
    start: date,
    end: date,
    *,
    trading_days: int = TRADING_DAYS_PER_YEAR,
    min_annualization_days: int = 0,
) -> BasketHistory:
    """Blend the stored history of every basket member into one return series."""
    tickers = list(basket.weights or {})
    assets = {
        asset.ticker: asset
        for asset in db.scalars(select(Asset).where(Asset.ticker.in_(tickers)))
    }
    histories = {
        ticker: load_price_history(db, assets[ticker], start, end)
        for ticker in tickers
        if ticker in assets
    }
    return_series = {
        ticker: normalized.returns for ticker, normalized in normalize_histories(histories).items()
    }

    result = compute_basket_series(return_series, basket.weights or {})
    statistics = compute_asset_statistics(
        basket_index_prices(result.points),
        trading_days=trading_days,
        min_annualization_days=min_annualization_days,
    )
    return BasketHistory(basket_id=basket.id, name=basket.name, result=result, statistics=statistics)


def build_comparison(
    db: Session,
    tickers: list[str],
    start: date,
    end: date,
    basket: Basket | None = None,
    *,
    trading_days: int = TRADING_DAYS_PER_YEAR,
    min_annualization_days: int = 0,
) -> Comparison:
    """Normalized histories for several tickers over one shared window."""
    comparison = Comparison(start=start, end=end)
    seen: set[str] = set()
    for raw in tickers:
        ticker = raw.strip().upper()
        if not ticker or ticker in seen:
            continue
        seen.add(ticker)
        asset = db.scalar(select(Asset).where(Asset.ticker == ticker))
        if asset is None:
            comparison.missing_tickers.append(ticker)
            continue
        history = build_asset_history(
            db,
            asset,
            start,
            end,
            trading_days=trading_days,
            min_annualization_days=min_annualization_days,
        )
        if history.series.is_empty:
            logger.info("No usable history for %s between %s and %s", ticker, start, end)
            comparison.missing_tickers.append(ticker)
            continue
        comparison.assets.append(history)

    if basket is not None:
        comparison.basket = build_basket_history(
            db,
            basket,
            start,
            end,
            trading_days=trading_days,
            min_annualization_days=min_annualization_days,
        )
    return comparison
