from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from investdash.db import get_db
from investdash.models import InvestmentFund, utc_now
from investdash.schemas import CashIn, FundIn, FundUpdate
from investdash.services.portfolio import get_cash_balance
from investdash.services.valuation import value_fund

router = APIRouter(prefix="/api", tags=["funds"])


def _fund_payload(fund: InvestmentFund) -> dict:
    valuation = value_fund(fund)
    return {
        "id": fund.id,
        "name": fund.name,
        "initial_investment": fund.initial_investment,
        "current_value": fund.current_value,
        "investment_date": fund.investment_date,
        "pnl": valuation.pnl,
        "return_pct": valuation.return_pct,
    }


def _load_fund(db: Session, fund_id: int) -> InvestmentFund:
    fund = db.get(InvestmentFund, fund_id)
    if fund is None:
        raise HTTPException(status_code=404, detail="Investment fund not found")
    return fund


@router.get("/investment-funds")
def list_funds(db: Session = Depends(get_db)):
    return [
        _fund_payload(fund)
        for fund in db.scalars(select(InvestmentFund).order_by(InvestmentFund.id.asc()))
    ]


@router.post("/investment-funds", status_code=201)
def create_fund(payload: FundIn, db: Session = Depends(get_db)):
    fund = InvestmentFund(**payload.model_dump())
    db.add(fund)
    db.commit()
    db.refresh(fund)
    return _fund_payload(fund)


@router.put("/investment-funds/{fund_id}")
def update_fund(fund_id: int, payload: FundUpdate, db: Session = Depends(get_db)):
    fund = _load_fund(db, fund_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(fund, key, value)
    db.commit()
    db.refresh(fund)
    return _fund_payload(fund)


@router.delete("/investment-funds/{fund_id}")
def delete_fund(fund_id: int, db: Session = Depends(get_db)):
    fund = _load_fund(db, fund_id)
    db.delete(fund)
    db.commit()
    return {"deleted": fund_id}


@router.get("/cash-balance")
def read_cash_balance(db: Session = Depends(get_db)):
    cash = get_cash_balance(db)
    db.commit()
    return {"value": cash.value, "updated_at": cash.updated_at}


@router.put("/cash-balance")
def replace_cash_balance(payload: CashIn, db: Session = Depends(get_db)):
    cash = get_cash_balance(db)
    cash.value = payload.value
    cash.updated_at = utc_now()
    db.commit()
    db.refresh(cash)
    return {"value": cash.value, "updated_at": cash.updated_at}
