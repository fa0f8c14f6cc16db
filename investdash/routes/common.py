from __future__ import annotations

import dataclasses
from datetime import date
from typing import Any

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from investdash.config import settings
from investdash.services.errors import MalformedInput
from investdash.services.portfolio import load_portfolio_inputs, resolve_date_range
from investdash.services.state import PortfolioState
from investdash.services.statistics import AssetStatistics


def as_dict(value: Any) -> Any:
    """Convert result dataclasses to plain containers FastAPI can encode."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, list):
        return [as_dict(item) for item in value]
    return value


def statistics_payload(stats: AssetStatistics) -> dict[str, Any]:
    payload = dataclasses.asdict(stats)
    payload.pop("daily_returns", None)
    return payload


def history_window(days: int | None, start: date | None, end: date | None) -> tuple[date, date]:
    try:
        return resolve_date_range(
            days=days,
            start=start,
            end=end,
            default_days=settings.history_days,
        )
    except MalformedInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def current_state(request: Request, db: Session) -> PortfolioState:
    """Refresh the shared portfolio state from the database and return it."""
    state: PortfolioState = request.app.state.portfolio_state
    state.refresh(lambda: load_portfolio_inputs(db))
    if not state.ready:
        raise HTTPException(status_code=503, detail=state.last_error or "Portfolio state unavailable")
    return state
