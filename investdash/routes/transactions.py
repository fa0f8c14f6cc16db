from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from investdash.db import get_db
from investdash.models import Transaction
from investdash.schemas import TransactionIn
from investdash.services.errors import InvalidTransaction
from investdash.services.portfolio import validate_new_transaction

router = APIRouter(prefix="/api", tags=["transactions"])


def _transaction_payload(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "asset_id": tx.asset_id,
        "ticker": tx.asset.ticker if tx.asset else None,
        "type": tx.type.value,
        "quantity": tx.quantity,
        "price": tx.price,
        "date": tx.date,
    }


@router.get("/transactions")
def list_transactions(db: Session = Depends(get_db)):
    transactions = db.scalars(
        select(Transaction).order_by(Transaction.date.asc(), Transaction.id.asc())
    )
    return [_transaction_payload(tx) for tx in transactions]


@router.post("/transactions", status_code=201)
def create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
    try:
        validate_new_transaction(
            db,
            asset_id=payload.asset_id,
            tx_type=payload.type,
            quantity=payload.quantity,
            price=payload.price,
            tx_date=payload.date,
        )
    except InvalidTransaction as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    tx = Transaction(
        asset_id=payload.asset_id,
        type=payload.type,
        quantity=payload.quantity,
        price=payload.price,
        date=payload.date,
    )
    db.add(tx)
    db.commit()
    db.refresh(tx)
    return _transaction_payload(tx)


@router.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    tx = db.get(Transaction, transaction_id)
    if tx is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    db.delete(tx)
    db.commit()
    return {"deleted": transaction_id}
