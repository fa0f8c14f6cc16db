"""Owned application state: last-known inputs plus memoized derived views.

A refresh loads a complete new set of inputs and swaps it in with a single
assignment, so readers always see derived data consistent with one input set.
A failed refresh leaves the previous inputs in place. Derived views are
computed on first read and cached under the fingerprint of the inputs they
were computed from.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from investdash.services.ledger import Position, build_positions
from investdash.services.rebalance import DEFAULT_DRIFT_THRESHOLD, RebalancePlan, compute_rebalance
from investdash.services.valuation import PortfolioValuation, value_portfolio

logger = logging.getLogger(__name__)

REBALANCE_CACHE_SIZE = 16


@dataclass(frozen=True)
class AssetRecord:
    id: int
    ticker: str
    name: str
    current_price: float | None


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    asset_id: int
    type: str
    quantity: float
    price: float
    date: date


@dataclass(frozen=True)
class FundRecord:
    id: int
    name: str
    initial_investment: float
    current_value: float
    investment_date: date


@dataclass(frozen=True)
class PortfolioInputs:
    assets: tuple[AssetRecord, ...] = ()
    transactions: tuple[TransactionRecord, ...] = ()
    funds: tuple[FundRecord, ...] = ()
    cash_balance: float = 0.0

    def fingerprint(self) -> str:
        digest = hashlib.sha256(
            repr((self.assets, self.transactions, self.funds, self.cash_balance)).encode("utf-8")
        )
        return digest.hexdigest()[:16]

    @property
    def assets_by_id(self) -> dict[int, AssetRecord]:
        return {asset.id: asset for asset in self.assets}


@dataclass
class _Snapshot:
    inputs: PortfolioInputs
    fingerprint: str
    refreshed_at: datetime
    cache: dict[tuple[Any, ...], Any] = field(default_factory=dict)
    rebalances: OrderedDict[tuple[Any, ...], RebalancePlan] = field(default_factory=OrderedDict)


class PortfolioState:
    """Holds one consistent input snapshot and the views derived from it."""

    def __init__(self) -> None:
        self._snapshot: _Snapshot | None = None
        self.last_error: str | None = None

    @property
    def ready(self) -> bool:
        return self._snapshot is not None

    @property
    def inputs(self) -> PortfolioInputs:
        return self._require().inputs

    @property
    def fingerprint(self) -> str | None:
        return self._snapshot.fingerprint if self._snapshot else None

    @property
    def refreshed_at(self) -> datetime | None:
        return self._snapshot.refreshed_at if self._snapshot else None

    def replace(self, inputs: PortfolioInputs) -> bool:
        """Install new inputs; returns False when they match the current snapshot."""
        fingerprint = inputs.fingerprint()
        now = datetime.now(timezone.utc)
        current = self._snapshot
        if current is not None and current.fingerprint == fingerprint:
            current.refreshed_at = now
            return False
        self._snapshot = _Snapshot(inputs=inputs, fingerprint=fingerprint, refreshed_at=now)
        logger.debug("Portfolio inputs replaced (fingerprint %s)", fingerprint)
        return True

    def refresh(self, loader: Callable[[], PortfolioInputs]) -> bool:
        """Load and install fresh inputs, keeping the previous snapshot on failure."""
        try:
            inputs = loader()
        except Exception as exc:
            logger.exception("Portfolio refresh failed; keeping previous state")
            self.last_error = str(exc)
            return False
        self.last_error = None
        return self.replace(inputs)

    def positions(self) -> dict[int, Position]:
        return self._positions(self._require())

    def valuation(self) -> PortfolioValuation:
        return self._valuation(self._require())

    def _positions(self, snapshot: _Snapshot) -> dict[int, Position]:
        return self._memo(
            snapshot,
            ("positions",),
            lambda: build_positions(
                snapshot.inputs.transactions,
                known_asset_ids=set(snapshot.inputs.assets_by_id),
            ),
        )

    def _valuation(self, snapshot: _Snapshot) -> PortfolioValuation:
        return self._memo(
            snapshot,
            ("valuation",),
            lambda: value_portfolio(
                self._positions(snapshot),
                snapshot.inputs.assets_by_id,
                funds=snapshot.inputs.funds,
                cash_balance=snapshot.inputs.cash_balance,
            ),
        )

    def rebalance(
        self,
        target_weights: Mapping[str, float],
        threshold: float = DEFAULT_DRIFT_THRESHOLD,
        include_funds: bool = False,
    ) -> RebalancePlan:
        snapshot = self._require()
        key = (tuple(sorted(target_weights.items())), threshold, include_funds)
        cached = snapshot.rebalances.get(key)
        if cached is not None:
            snapshot.rebalances.move_to_end(key)
            return cached

        valuation = self._valuation(snapshot)
        holdings = [row for row in valuation.assets if row.priced]
        total_value = valuation.assets_total_value
        funds_value = None
        if include_funds:
            funds_value = valuation.funds_total_value
            total_value += funds_value
        plan = compute_rebalance(
            holdings,
            total_value,
            target_weights,
            threshold=threshold,
            funds_value=funds_value,
        )
        snapshot.rebalances[key] = plan
        # Least recently used plans are evicted first.
        while len(snapshot.rebalances) > REBALANCE_CACHE_SIZE:
            snapshot.rebalances.popitem(last=False)
        return plan

    def _require(self) -> _Snapshot:
        if self._snapshot is None:
            raise RuntimeError("Portfolio state has not been loaded yet")
        return self._snapshot

    @staticmethod
    def _memo(snapshot: _Snapshot, key: tuple[Any, ...], compute: Callable[[], Any]) -> Any:
        if key not in snapshot.cache:
            snapshot.cache[key] = compute()
        return snapshot.cache[key]
