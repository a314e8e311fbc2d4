"""Pydantic schemas for the shared harvest wallet."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class WalletTopUp(BaseModel):
    amount: float = Field(allow_inf_nan=False)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v


class WalletPaymentCreate(BaseModel):
    collection_id: str
    amount: float = Field(allow_inf_nan=False)
    picker_id: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v


class WalletOut(BaseModel):
    id: str
    company_id: str
    project_id: str
    crop_type: str
    cash_received_total: float
    cash_paid_out_total: float
    current_balance: float
    last_updated_at: datetime

    model_config = {"from_attributes": True}


class WalletPaymentOut(BaseModel):
    id: str
    wallet_id: str
    collection_id: str
    picker_id: str | None = None
    amount: float
    created_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CollectionUsageOut(BaseModel):
    id: str
    wallet_id: str
    collection_id: str
    total_deducted: float
    last_updated_at: datetime

    model_config = {"from_attributes": True}
