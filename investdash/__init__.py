from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI

from investdash.config import settings
from investdash.db import SessionLocal, init_db
from investdash.logging_setup import configure_logging
from investdash.routes import assets, baskets, dashboard, funds, transactions
from investdash.services.portfolio import load_portfolio_inputs
from investdash.services.pricing import (
    PricingService,
    QuoteProvider,
    UnavailableProvider,
    YFinanceProvider,
)
from investdash.services.state import PortfolioState

logger = logging.getLogger(__name__)


def refresh_once(pricing_service: PricingService, state: PortfolioState) -> None:
    """Pull fresh quotes, persist them and swap the new inputs into the state."""
    with SessionLocal() as db:
        pricing_service.refresh_prices(db)
        db.commit()
        state.refresh(lambda: load_portfolio_inputs(db))


async def _poll_prices(app: FastAPI, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(
                refresh_once, app.state.pricing_service, app.state.portfolio_state
            )
        except Exception:
            logger.exception("Background price refresh failed")


def create_app(
    pricing_service: PricingService | None = None,
    enable_startup_init: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, json_format=settings.log_json)
    app = FastAPI(title=settings.app_name)

    if pricing_service is None:
        try:
            provider: QuoteProvider = YFinanceProvider()
        except Exception:
            logger.warning("yfinance unavailable; live quotes disabled")
            provider = UnavailableProvider()
        pricing_service = PricingService(provider=provider)
    app.state.pricing_service = pricing_service
    app.state.portfolio_state = PortfolioState()
    app.state.refresh_task = None

    app.include_router(dashboard.router)
    app.include_router(assets.router)
    app.include_router(transactions.router)
    app.include_router(funds.router)
    app.include_router(baskets.router)

    @app.on_event("startup")
    async def startup() -> None:
        if not enable_startup_init:
            return
        init_db()
        if settings.price_refresh_seconds > 0:
            app.state.refresh_task = asyncio.create_task(
                _poll_prices(app, settings.price_refresh_seconds)
            )
            logger.info("Price refresh every %ss", settings.price_refresh_seconds)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        task = app.state.refresh_task
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    return app
