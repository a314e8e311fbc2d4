"""Pydantic schemas for collections, pickers, weigh-ins and settlement."""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator


# ── Collections ──────────────────────────────────────────────

class CollectionCreate(BaseModel):
    project_id: str
    crop_type: str
    name: str
    harvest_date: date
    price_per_kg_picker: float = Field(allow_inf_nan=False)

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Collection name is required")
        return v.strip()

    @field_validator("price_per_kg_picker")
    @classmethod
    def price_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Price must be zero or positive")
        return v


class PickerPriceUpdate(BaseModel):
    price_per_kg_picker: float = Field(allow_inf_nan=False)

    @field_validator("price_per_kg_picker")
    @classmethod
    def price_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Price must be zero or positive")
        return v


class CollectionOut(BaseModel):
    id: str
    company_id: str
    project_id: str
    crop_type: str
    name: str
    harvest_date: date
    price_per_kg_picker: float
    price_per_kg_buyer: float | None = None
    total_harvest_kg: float
    total_picker_cost: float
    total_revenue: float | None = None
    profit: float | None = None
    status: str
    payout_complete: bool
    buyer_paid_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CollectionStatusOut(BaseModel):
    collection_id: str
    status: str
    display_status: str
    payout_complete: bool


# ── Pickers & weigh ledger ───────────────────────────────────

class PickerCreate(BaseModel):
    picker_name: str
    picker_number: int | None = None

    @field_validator("picker_name")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Picker name is required")
        return v.strip()

    @field_validator("picker_number")
    @classmethod
    def number_positive(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("Picker number must be positive")
        return v


class PickerOut(BaseModel):
    id: str
    collection_id: str
    picker_number: int
    picker_name: str
    total_kg: float
    total_pay: float
    is_paid: bool
    paid_at: datetime | None = None
    payment_batch_id: str | None = None

    model_config = {"from_attributes": True}


class WeighEntryCreate(BaseModel):
    picker_id: str
    weight_kg: float = Field(allow_inf_nan=False)
    trip_number: int | None = None

    @field_validator("weight_kg")
    @classmethod
    def weight_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Weight must be greater than 0")
        return v


class WeighEntryOut(BaseModel):
    id: str
    picker_id: str
    collection_id: str
    weight_kg: float
    trip_number: int
    recorded_by: str | None = None
    recorded_at: datetime

    model_config = {"from_attributes": True}


# ── Payouts ──────────────────────────────────────────────────

class BatchPayoutCreate(BaseModel):
    picker_ids: list[str]

    @field_validator("picker_ids")
    @classmethod
    def not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("picker_ids must contain at least one id")
        return v


class PaymentBatchOut(BaseModel):
    id: str
    collection_id: str
    picker_ids: list[str]
    total_amount: float
    paid_at: datetime
    created_by: str | None = None

    model_config = {"from_attributes": True}


class BatchPayoutOut(BaseModel):
    batch: PaymentBatchOut
    total_amount: float
    wallet_balance: float
    paid_picker_ids: list[str]
    skipped_picker_ids: list[str]


# ── Cash pool ────────────────────────────────────────────────

class CashPoolRegister(BaseModel):
    cash_received: float = Field(allow_inf_nan=False)
    source: str | None = None

    @field_validator("cash_received")
    @classmethod
    def not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Cash received must be zero or positive")
        return v


class CashPoolOut(BaseModel):
    id: str
    collection_id: str
    cash_received: float
    total_paid_out: float
    remaining_balance: float
    source: str | None = None
    received_at: datetime
    received_by: str | None = None

    model_config = {"from_attributes": True}


# ── Settlement ───────────────────────────────────────────────

class SettlementRequest(BaseModel):
    price_per_kg_buyer: float = Field(allow_inf_nan=False)
    mark_buyer_paid: bool = False

    @field_validator("price_per_kg_buyer")
    @classmethod
    def price_not_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Price must be zero or positive")
        return v


class SettlementOut(BaseModel):
    collection: CollectionOut
    sale_id: str | None = None
