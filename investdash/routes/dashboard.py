from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from investdash.config import settings
from investdash.db import get_db
from investdash.routes.common import as_dict, current_state

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/status")
def status(request: Request):
    state = request.app.state.portfolio_state
    return {
        "status": "ok",
        "app": settings.app_name,
        "state_ready": state.ready,
        "fingerprint": state.fingerprint,
        "refreshed_at": state.refreshed_at,
        "last_error": state.last_error,
    }


@router.get("/portfolio")
def portfolio(request: Request, db: Session = Depends(get_db)):
    """Open positions with per-asset valuation and aggregate totals."""
    state = current_state(request, db)
    valuation = state.valuation()
    totals = {
        key: value
        for key, value in dataclasses.asdict(valuation).items()
        if key not in {"assets", "funds"}
    }
    return {
        "fingerprint": state.fingerprint,
        "positions": as_dict(list(state.positions().values())),
        "assets": as_dict(valuation.assets),
        "funds": as_dict(valuation.funds),
        "totals": totals,
    }


@router.post("/update-prices")
def update_prices(
    request: Request,
    history_days: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Refresh quotes (and optionally recent history) for every asset."""
    report = request.app.state.pricing_service.refresh_prices(db, history_days=history_days)
    db.commit()
    current_state(request, db)
    return dataclasses.asdict(report)
