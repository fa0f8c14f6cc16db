"""Fold buy/sell transactions into per-asset holdings with weighted-average cost."""

from __future__ import annotations

import logging
import math
from collections.abc import Collection
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable

from investdash.services.errors import InvalidTransaction, MalformedInput
from investdash.services.series import coerce_date

logger = logging.getLogger(__name__)

QTY_EPSILON = 1e-9


class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class Position:
    asset_id: int
    quantity: float = 0.0
    average_cost: float = 0.0
    invested_capital: float = 0.0
    oversold: bool = False


def _tx_type(value: object) -> str:
    tx_type = getattr(value, "type", None)
    if isinstance(tx_type, TransactionType):
        return tx_type.value
    return str(tx_type).lower()


def _tx_date(value: object) -> date:
    return coerce_date(getattr(value, "date", None))


def _tx_asset_id(value: object) -> int:
    return getattr(value, "asset_id")


def _tx_number(value: object, name: str) -> float:
    raw = getattr(value, name, None)
    if raw is None or isinstance(raw, bool):
        raise MalformedInput(f"Transaction {name} must be numeric, got {raw!r}")
    try:
        number = float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedInput(f"Transaction {name} must be numeric, got {raw!r}") from exc
    if not math.isfinite(number):
        raise MalformedInput(f"Transaction {name} must be finite, got {raw!r}")
    return number


def sort_transactions(transactions: Iterable[object]) -> list[object]:
    """Sort by date only; same-day transactions keep their relative order."""
    return sorted(transactions, key=_tx_date)


def apply_transaction(position: Position, tx: object, strict: bool = False) -> None:
    """Apply one buy or sell to a running position in place."""
    tx_type = _tx_type(tx)
    quantity = _tx_number(tx, "quantity")
    price = _tx_number(tx, "price")

    if tx_type not in {TransactionType.BUY.value, TransactionType.SELL.value}:
        raise MalformedInput(f"Unsupported transaction type: {tx_type}")

    if quantity <= 0:
        if strict:
            raise InvalidTransaction("Quantity must be positive")
        logger.warning("Skipping %s with non-positive quantity for asset %s", tx_type, position.asset_id)
        return

    if tx_type == TransactionType.BUY.value:
        new_quantity = position.quantity + quantity
        position.average_cost = (
            (position.quantity * position.average_cost) + (quantity * price)
        ) / new_quantity
        position.quantity = new_quantity
        position.invested_capital += quantity * price
        return

    if quantity - position.quantity > QTY_EPSILON:
        if strict:
            raise InvalidTransaction(
                f"Cannot sell {quantity:g} units; only {position.quantity:g} held"
            )
        logger.warning(
            "Sell of %s exceeds held quantity %s for asset %s; clamping to zero",
            quantity,
            position.quantity,
            position.asset_id,
        )
        position.oversold = True

    position.quantity -= quantity
    if position.quantity > QTY_EPSILON:
        # Proportional cost reduction: average cost is unchanged by sells.
        position.invested_capital = position.quantity * position.average_cost
    else:
        position.quantity = 0.0
        position.invested_capital = 0.0


def replay_positions(
    transactions: Iterable[object],
    known_asset_ids: Collection[int] | None = None,
    strict: bool = False,
) -> dict[int, Position]:
    """Replay the full history and return the running state of every asset touched."""
    positions: dict[int, Position] = {}
    for tx in sort_transactions(transactions):
        asset_id = _tx_asset_id(tx)
        if known_asset_ids is not None and asset_id not in known_asset_ids:
            logger.warning(
                "Skipping transaction %s for unknown asset %s",
                getattr(tx, "id", None),
                asset_id,
            )
            continue
        position = positions.setdefault(asset_id, Position(asset_id=asset_id))
        apply_transaction(position, tx, strict=strict)
    return positions


def build_positions(
    transactions: Iterable[object],
    known_asset_ids: Collection[int] | None = None,
    strict: bool = False,
) -> dict[int, Position]:
    """Compute open positions keyed by asset id; fully liquidated assets are dropped."""
    return {
        asset_id: position
        for asset_id, position in replay_positions(transactions, known_asset_ids, strict).items()
        if position.quantity > 0
    }


def quantity_held(
    transactions: Iterable[object],
    asset_id: int,
    as_of: date | None = None,
) -> float:
    """Quantity of one asset held after every transaction dated on or before ``as_of``."""
    relevant = [
        tx
        for tx in transactions
        if _tx_asset_id(tx) == asset_id and (as_of is None or _tx_date(tx) <= as_of)
    ]
    position = replay_positions(relevant).get(asset_id)
    return position.quantity if position else 0.0
