from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from investdash.config import settings
from investdash.db import get_db
from investdash.models import Asset, Basket
from investdash.routes.common import as_dict, history_window, statistics_payload
from investdash.schemas import AssetIn
from investdash.services.portfolio import build_asset_history, build_comparison

router = APIRouter(prefix="/api", tags=["assets"])


def _asset_payload(asset: Asset) -> dict:
    return {
        "id": asset.id,
        "ticker": asset.ticker,
        "name": asset.name,
        "current_price": asset.current_price,
        "price_updated_at": asset.price_updated_at,
    }


@router.get("/assets")
def list_assets(db: Session = Depends(get_db)):
    return [_asset_payload(asset) for asset in db.scalars(select(Asset).order_by(Asset.ticker.asc()))]


@router.post("/assets", status_code=201)
def create_asset(payload: AssetIn, request: Request, db: Session = Depends(get_db)):
    """Register a ticker and make a best-effort first fetch of its prices."""
    ticker = payload.ticker.strip().upper()
    if not ticker:
        raise HTTPException(status_code=400, detail="Ticker is required")
    if db.scalar(select(Asset).where(Asset.ticker == ticker)):
        raise HTTPException(status_code=400, detail=f"Asset {ticker} already exists")

    asset = Asset(ticker=ticker, name=(payload.name or "").strip() or ticker)
    db.add(asset)
    db.flush()
    request.app.state.pricing_service.refresh_asset(db, asset, history_days=settings.history_days)
    db.commit()
    db.refresh(asset)
    return _asset_payload(asset)


@router.get("/assets/{ticker}/history")
def asset_history(
    ticker: str,
    days: int | None = Query(None),
    start: date | None = Query(None),
    end: date | None = Query(None),
    db: Session = Depends(get_db),
):
    asset = db.scalar(select(Asset).where(Asset.ticker == ticker.upper()))
    if asset is None:
        raise HTTPException(status_code=404, detail="Asset not found")

    window_start, window_end = history_window(days, start, end)
    history = build_asset_history(
        db,
        asset,
        window_start,
        window_end,
        trading_days=settings.trading_days_per_year,
        min_annualization_days=settings.annualization_min_days,
    )
    return {
        "ticker": history.ticker,
        "start": history.start,
        "end": history.end,
        "prices": as_dict(history.series.prices),
        "returns": as_dict(history.series.returns),
        "statistics": statistics_payload(history.statistics),
    }


@router.get("/comparison")
def comparison(
    tickers: str = Query(""),
    days: int | None = Query(None),
    start: date | None = Query(None),
    end: date | None = Query(None),
    basket_id: int | None = Query(None),
    db: Session = Depends(get_db),
):
    """Normalized return series for several tickers, optionally with a basket."""
    basket = None
    if basket_id is not None:
        basket = db.get(Basket, basket_id)
        if basket is None:
            raise HTTPException(status_code=404, detail="Basket not found")

    window_start, window_end = history_window(days, start, end)
    result = build_comparison(
        db,
        tickers.split(","),
        window_start,
        window_end,
        basket=basket,
        trading_days=settings.trading_days_per_year,
        min_annualization_days=settings.annualization_min_days,
    )
    payload = {
        "start": result.start,
        "end": result.end,
        "series": {
            item.ticker: {
                "returns": as_dict(item.series.returns),
                "statistics": statistics_payload(item.statistics),
            }
            for item in result.assets
        },
        "missing_tickers": result.missing_tickers,
        "basket": None,
    }
    if result.basket is not None:
        payload["basket"] = {
            "id": result.basket.basket_id,
            "name": result.basket.name,
            "points": as_dict(result.basket.result.points),
            "weights": result.basket.result.weights,
            "missing_symbols": result.basket.result.missing_symbols,
            "error_message": result.basket.result.error_message,
            "statistics": statistics_payload(result.basket.statistics),
        }
    return payload
