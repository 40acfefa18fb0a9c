"""Pydantic schemas for API requests and responses."""
from __future__ import annotations

from datetime import date
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from salesdesk.core.commission import normalize_pay_type
from salesdesk.core.deals import PROJECT_STATUS_ENUM, SET_STATUS_ENUM
from salesdesk.core.lifecycle import ConversionForm
from salesdesk.models import MANAGER_TYPE_ENUM

RawNumber = Optional[Union[float, str]]


class SetCreate(BaseModel):
    owner_id: Optional[int] = None
    customer_name: str = Field(..., max_length=200)
    address: str = Field("", max_length=300)
    phone_number: str = Field("", max_length=50)
    email: Optional[str] = Field(None, max_length=200)
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = Field(None, max_length=20)
    is_spanish_speaker: bool = False
    notes: str = ""
    document_ref: Optional[str] = Field(None, max_length=500)

    @field_validator("customer_name", mode="before")
    def strip_required_strings(cls, value: Any, info: ValidationInfo) -> str:
        if value is None:
            raise ValueError(f"{info.field_name.replace('_', ' ').capitalize()} is required.")
        value_str = str(value).strip()
        if not value_str:
            raise ValueError(f"{info.field_name.replace('_', ' ').capitalize()} cannot be empty.")
        return value_str

    def details(self) -> dict[str, Any]:
        data = self.model_dump(exclude={"owner_id", "customer_name"})
        if self.appointment_date is not None:
            data["appointment_date"] = self.appointment_date.isoformat()
        return data


class SetRead(BaseModel):
    id: str
    owner_id: int
    customer_name: str
    address: str
    phone_number: str
    email: Optional[str]
    appointment_date: Optional[str]
    appointment_time: Optional[str]
    is_spanish_speaker: bool
    notes: str
    document_ref: Optional[str]
    status: str = Field(..., pattern="|".join(SET_STATUS_ENUM))
    created_at: str

    model_config = ConfigDict(from_attributes=True)


class RescheduleRequest(BaseModel):
    appointment_date: date
    appointment_time: str = Field(..., min_length=1, max_length=20)


class CloseSetRequest(BaseModel):
    confirmed: bool = False


class ConvertSetRequest(BaseModel):
    """Closing form. Required fields are checked by the lifecycle so every gap is named."""

    verified: bool = False
    customer_name: Optional[str] = None
    system_size_kw: RawNumber = None
    gross_price_per_watt: RawNumber = None
    site_survey_date: Optional[str] = None
    site_survey_time: Optional[str] = None
    adders: dict[str, bool] = Field(default_factory=dict)
    install_date: Optional[str] = None
    permit_date: Optional[str] = None
    inspection_date: Optional[str] = None
    pto_date: Optional[str] = None
    payment_date: Optional[str] = None
    finance_type: Optional[str] = Field(None, max_length=100)
    lender: Optional[str] = Field(None, max_length=100)
    panel_type: Optional[str] = Field(None, max_length=100)
    battery_type: Optional[str] = Field(None, max_length=100)
    battery_quantity: int = Field(0, ge=0)

    def to_form(self) -> ConversionForm:
        return ConversionForm(**self.model_dump(exclude={"verified"}))


class ProjectRead(BaseModel):
    id: str
    owner_id: int
    customer_name: str
    deal_number: int
    payment_amount: float
    commission_rate_per_kw: int
    address: str
    office: Optional[str]
    system_size_kw: Optional[float]
    gross_price_per_watt: Optional[float]
    adders: dict[str, bool]
    status: str = Field(..., pattern="|".join(PROJECT_STATUS_ENUM))
    site_survey_date: Optional[str]
    site_survey_time: Optional[str]
    permit_date: Optional[str]
    install_date: Optional[str]
    inspection_date: Optional[str]
    pto_date: Optional[str]
    payment_date: Optional[str]
    created_at: str
    cancelled_at: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class ProjectStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in PROJECT_STATUS_ENUM:
            raise ValueError(f"Status must be one of: {', '.join(PROJECT_STATUS_ENUM)}.")
        return normalized


class ResumeRequest(BaseModel):
    status: str = "site_survey"


class MilestoneUpdate(BaseModel):
    site_survey_date: Optional[str] = None
    site_survey_time: Optional[str] = None
    permit_date: Optional[str] = None
    install_date: Optional[str] = None
    inspection_date: Optional[str] = None
    pto_date: Optional[str] = None
    payment_date: Optional[str] = None


class CommissionRead(BaseModel):
    priced: bool
    system_size_kw: float
    contract_price: float
    base_cost: float
    adder_cost: float
    total_cost: float
    commission_amount: float
    rate: float
    milestone_commission: float
    pay_type: str
    payment_amount: float
    deal_number: int

    model_config = ConfigDict(from_attributes=True)


class SellerProfileBase(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=200)
    office: Optional[str] = Field(None, max_length=100)
    pay_type: str = "Rookie"
    manager_type: Optional[str] = None
    manager_id: Optional[int] = None

    @field_validator("pay_type")
    def validate_pay_type(cls, value: str) -> str:
        return normalize_pay_type(value)

    @field_validator("manager_type")
    def validate_manager_type(cls, value: str | None) -> str | None:
        if value in (None, ""):
            return None
        if value not in MANAGER_TYPE_ENUM:
            raise ValueError("Manager type must be AreaManager, Regional, or default.")
        return value


class SellerProfileCreate(SellerProfileBase):
    user_id: int


class SellerProfileRead(SellerProfileBase):
    id: int
    user_id: int

    model_config = ConfigDict(from_attributes=True)


class PayTypeUpdate(BaseModel):
    pay_type: str

    @field_validator("pay_type")
    def normalize(cls, value: str) -> str:
        return normalize_pay_type(value)


class ManagerAssignment(BaseModel):
    manager_id: Optional[int] = None