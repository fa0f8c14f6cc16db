from __future__ import annotations

import logging
from datetime import date
from types import SimpleNamespace

import pytest

from investdash.services.errors import InvalidTransaction, MalformedInput
from investdash.services.ledger import (
    TransactionType,
    build_positions,
    quantity_held,
    replay_positions,
    sort_transactions,
)


def make_tx(
    tx_id: int,
    tx_type: TransactionType | str,
    quantity: float,
    price: float,
    tx_date: date,
    asset_id: int = 1,
):
    return SimpleNamespace(
        id=tx_id,
        asset_id=asset_id,
        type=tx_type,
        quantity=quantity,
        price=price,
        date=tx_date,
    )


def test_two_buys_use_weighted_average_cost() -> None:
    positions = build_positions(
        [
            make_tx(1, TransactionType.BUY, 10, 100, date(2024, 1, 1)),
            make_tx(2, TransactionType.BUY, 10, 120, date(2024, 1, 2)),
        ]
    )

    position = positions[1]
    assert position.quantity == pytest.approx(20)
    assert position.average_cost == pytest.approx(110)
    assert position.invested_capital == pytest.approx(2200)


def test_sell_keeps_average_cost_and_reduces_invested_capital() -> None:
    positions = build_positions(
        [
            make_tx(1, "buy", 10, 100, date(2024, 1, 1)),
            make_tx(2, "buy", 10, 120, date(2024, 1, 2)),
            make_tx(3, "sell", 5, 150, date(2024, 1, 3)),
        ]
    )

    position = positions[1]
    assert position.quantity == pytest.approx(15)
    assert position.average_cost == pytest.approx(110)
    assert position.invested_capital == pytest.approx(1650)


def test_buy_then_sell_everything_closes_position() -> None:
    replayed = replay_positions(
        [
            make_tx(1, TransactionType.BUY, 4, 25, date(2024, 2, 1)),
            make_tx(2, TransactionType.SELL, 4, 30, date(2024, 2, 1)),
        ]
    )

    assert replayed[1].quantity == 0.0
    assert replayed[1].invested_capital == 0.0
    assert replayed[1].oversold is False


def test_fully_sold_asset_is_dropped_from_positions() -> None:
    positions = build_positions(
        [
            make_tx(1, TransactionType.BUY, 4, 25, date(2024, 2, 1)),
            make_tx(2, TransactionType.SELL, 4, 30, date(2024, 2, 2)),
        ]
    )
    assert positions == {}


def test_replay_is_independent_of_input_order() -> None:
    txs = [
        make_tx(1, TransactionType.BUY, 10, 100, date(2024, 1, 1)),
        make_tx(2, TransactionType.SELL, 4, 130, date(2024, 1, 5)),
        make_tx(3, TransactionType.BUY, 6, 90, date(2024, 1, 3)),
    ]

    forward = build_positions(txs)[1]
    backward = build_positions(list(reversed(txs)))[1]

    assert forward.quantity == pytest.approx(backward.quantity)
    assert forward.average_cost == pytest.approx(backward.average_cost)
    assert forward.quantity == pytest.approx(12)
    assert forward.average_cost == pytest.approx((10 * 100 + 6 * 90) / 16)


def test_same_day_transactions_keep_input_order() -> None:
    ordered = sort_transactions(
        [
            make_tx(2, TransactionType.SELL, 1, 10, date(2024, 1, 2)),
            make_tx(1, TransactionType.BUY, 1, 10, date(2024, 1, 1)),
            make_tx(3, TransactionType.BUY, 1, 10, date(2024, 1, 2)),
        ]
    )
    assert [tx.id for tx in ordered] == [1, 2, 3]


def test_oversell_is_clamped_and_flagged(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        replayed = replay_positions(
            [
                make_tx(1, TransactionType.BUY, 5, 10, date(2024, 1, 1)),
                make_tx(2, TransactionType.SELL, 8, 12, date(2024, 1, 2)),
            ]
        )

    assert replayed[1].quantity == 0.0
    assert replayed[1].oversold is True
    assert "exceeds held quantity" in caplog.text


def test_oversell_raises_in_strict_mode() -> None:
    with pytest.raises(InvalidTransaction):
        replay_positions(
            [
                make_tx(1, TransactionType.BUY, 5, 10, date(2024, 1, 1)),
                make_tx(2, TransactionType.SELL, 8, 12, date(2024, 1, 2)),
            ],
            strict=True,
        )


def test_unknown_assets_are_skipped() -> None:
    positions = build_positions(
        [
            make_tx(1, TransactionType.BUY, 5, 10, date(2024, 1, 1), asset_id=1),
            make_tx(2, TransactionType.BUY, 5, 10, date(2024, 1, 1), asset_id=99),
        ],
        known_asset_ids={1},
    )
    assert set(positions) == {1}


def test_unknown_transaction_type_is_malformed() -> None:
    with pytest.raises(MalformedInput):
        build_positions([make_tx(1, "dividend", 1, 1, date(2024, 1, 1))])


def test_non_numeric_quantity_is_malformed() -> None:
    with pytest.raises(MalformedInput):
        build_positions([make_tx(1, TransactionType.BUY, "ten", 1, date(2024, 1, 1))])


def test_quantity_held_as_of_date() -> None:
    txs = [
        make_tx(1, TransactionType.BUY, 10, 100, date(2024, 1, 1)),
        make_tx(2, TransactionType.SELL, 3, 100, date(2024, 1, 10)),
        make_tx(3, TransactionType.BUY, 2, 100, date(2024, 1, 5), asset_id=2),
    ]

    assert quantity_held(txs, 1, as_of=date(2024, 1, 5)) == pytest.approx(10)
    assert quantity_held(txs, 1) == pytest.approx(7)
    assert quantity_held(txs, 3) == 0.0
