from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field

from investdash.services.ledger import TransactionType


class AssetIn(BaseModel):
    ticker: str = Field(..., min_length=1, max_length=32)
    name: str | None = None


class TransactionIn(BaseModel):
    asset_id: int
    type: TransactionType
    # Range checks happen in validate_new_transaction so they answer 400.
    quantity: float
    price: float
    date: dt.date


class FundIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    initial_investment: float = Field(..., ge=0)
    current_value: float = Field(..., ge=0)
    investment_date: dt.date


class FundUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    initial_investment: float | None = Field(None, ge=0)
    current_value: float | None = Field(None, ge=0)
    investment_date: dt.date | None = None


class CashIn(BaseModel):
    value: float


class BasketIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    weights: dict[str, float]
