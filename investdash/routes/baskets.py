from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from investdash.config import settings
from investdash.db import get_db
from investdash.models import Basket
from investdash.routes.common import as_dict, current_state, history_window, statistics_payload
from investdash.schemas import BasketIn
from investdash.services.errors import MalformedInput
from investdash.services.portfolio import build_basket_history, prepare_basket_weights

router = APIRouter(prefix="/api/baskets", tags=["baskets"])


def _basket_payload(basket: Basket) -> dict:
    return {
        "id": basket.id,
        "name": basket.name,
        "description": basket.description,
        "weights": basket.weights,
        "created_at": basket.created_at,
        "updated_at": basket.updated_at,
    }


def _load_basket(db: Session, basket_id: int) -> Basket:
    basket = db.get(Basket, basket_id)
    if basket is None:
        raise HTTPException(status_code=404, detail="Basket not found")
    return basket


def _weights_or_400(raw: dict[str, float]) -> dict[str, float]:
    try:
        return prepare_basket_weights(raw)
    except MalformedInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("")
def list_baskets(db: Session = Depends(get_db)):
    return [_basket_payload(basket) for basket in db.scalars(select(Basket).order_by(Basket.name.asc()))]


@router.post("", status_code=201)
def create_basket(payload: BasketIn, db: Session = Depends(get_db)):
    basket = Basket(
        name=payload.name.strip(),
        description=payload.description,
        weights=_weights_or_400(payload.weights),
    )
    db.add(basket)
    db.commit()
    db.refresh(basket)
    return _basket_payload(basket)


@router.get("/{basket_id}")
def read_basket(basket_id: int, db: Session = Depends(get_db)):
    return _basket_payload(_load_basket(db, basket_id))


@router.put("/{basket_id}")
def update_basket(basket_id: int, payload: BasketIn, db: Session = Depends(get_db)):
    basket = _load_basket(db, basket_id)
    basket.name = payload.name.strip()
    basket.description = payload.description
    basket.weights = _weights_or_400(payload.weights)
    db.commit()
    db.refresh(basket)
    return _basket_payload(basket)


@router.delete("/{basket_id}")
def delete_basket(basket_id: int, db: Session = Depends(get_db)):
    basket = _load_basket(db, basket_id)
    db.delete(basket)
    db.commit()
    return {"deleted": basket_id}


@router.get("/{basket_id}/series")
def basket_series(
    basket_id: int,
    days: int | None = Query(None),
    start: date | None = Query(None),
    end: date | None = Query(None),
    db: Session = Depends(get_db),
):
    """Weighted return series of the basket over the members' shared dates."""
    basket = _load_basket(db, basket_id)
    window_start, window_end = history_window(days, start, end)
    history = build_basket_history(
        db,
        basket,
        window_start,
        window_end,
        trading_days=settings.trading_days_per_year,
        min_annualization_days=settings.annualization_min_days,
    )
    return {
        "id": basket.id,
        "name": basket.name,
        "start": window_start,
        "end": window_end,
        "points": as_dict(history.result.points),
        "weights": history.result.weights,
        "missing_symbols": history.result.missing_symbols,
        "error_message": history.result.error_message,
        "statistics": statistics_payload(history.statistics),
    }


@router.get("/{basket_id}/rebalance")
def basket_rebalance(
    basket_id: int,
    request: Request,
    threshold: float | None = Query(None, ge=0),
    include_funds: bool = Query(False),
    db: Session = Depends(get_db),
):
    """Buy/sell deltas that move current holdings toward the basket weights."""
    basket = _load_basket(db, basket_id)
    state = current_state(request, db)
    plan = state.rebalance(
        basket.weights or {},
        threshold=settings.drift_threshold_pct if threshold is None else threshold,
        include_funds=include_funds,
    )
    return {
        "basket_id": basket.id,
        "total_value": plan.total_value,
        "threshold": plan.threshold,
        "target_weights": plan.target_weights,
        "rows": as_dict(plan.rows),
        "unmatched_targets": plan.unmatched_targets,
        "needs_action": len(plan.actionable_rows),
    }
