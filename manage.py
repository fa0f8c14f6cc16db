from __future__ import annotations

import argparse

from sqlalchemy import select

from investdash.config import settings
from investdash.db import SessionLocal, init_db
from investdash.logging_setup import configure_logging
from investdash.models import Asset
from investdash.services.portfolio import load_portfolio_inputs
from investdash.services.pricing import PricingService, YFinanceProvider
from investdash.services.state import PortfolioState


def add_asset(ticker: str, name: str | None = None) -> int:
    """Register one ticker; existing tickers are rejected."""
    ticker = ticker.strip().upper()
    if not ticker:
        raise ValueError("Ticker is required")
    with SessionLocal() as db:
        if db.scalar(select(Asset).where(Asset.ticker == ticker)):
            raise ValueError(f"Asset '{ticker}' already exists")
        asset = Asset(ticker=ticker, name=(name or ticker).strip())
        db.add(asset)
        db.commit()
        return asset.id


def refresh_prices(pricing_service: PricingService, history_days: int = 0) -> tuple[int, int]:
    """Refresh every asset's quote; returns (updated, failed) counts."""
    with SessionLocal() as db:
        report = pricing_service.refresh_prices(db, history_days=history_days)
        db.commit()
    return len(report.updated), len(report.failed)


def portfolio_summary() -> list[str]:
    state = PortfolioState()
    with SessionLocal() as db:
        state.replace(load_portfolio_inputs(db))
    valuation = state.valuation()

    lines = []
    for row in valuation.assets:
        value = "-" if row.market_value is None else f"{row.market_value:,.2f}"
        lines.append(f"{row.ticker:<10} qty={row.quantity:g} avg={row.average_cost:,.2f} value={value}")
    lines.append(f"Funds      {valuation.funds_total_value:,.2f}")
    lines.append(f"Cash       {valuation.cash_balance:,.2f}")
    lines.append(
        f"Total      {valuation.total_market_value:,.2f} "
        f"(P&L {valuation.total_pnl:,.2f}, {valuation.total_return_pct:.2f}%)"
    )
    return lines


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Investment dashboard management commands"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    add_parser = sub.add_parser("add-asset", help="Register a ticker")
    add_parser.add_argument("--ticker", required=True)
    add_parser.add_argument("--name", default=None)

    refresh_parser = sub.add_parser("refresh-prices", help="Fetch latest quotes")
    refresh_parser.add_argument(
        "--history-days",
        type=int,
        default=0,
        help="Also sync N days of adjusted-close history",
    )

    sub.add_parser("portfolio-summary", help="Print holdings and totals")

    serve_parser = sub.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    configure_logging(settings.log_level, json_format=settings.log_json)
    init_db()

    if args.command == "init-db":
        print("Database ready")
    elif args.command == "add-asset":
        asset_id = add_asset(args.ticker, args.name)
        print(f"Created asset id={asset_id} ticker={args.ticker.upper()}")
    elif args.command == "refresh-prices":
        if args.history_days < 0:
            raise ValueError("--history-days must be zero or greater")
        updated, failed = refresh_prices(PricingService(YFinanceProvider()), args.history_days)
        print(f"Updated {updated} asset(s), {failed} failed")
    elif args.command == "portfolio-summary":
        for line in portfolio_summary():
            print(line)
    elif args.command == "serve":
        import uvicorn

        from investdash import create_app

        uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
