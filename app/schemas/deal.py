"""Deal pipeline schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.deal import DealStage, ProductType, QuoteDeliveryMethod
from app.utils.money import Money


# ============================================================================
# Requests
# ============================================================================

class DealSubmit(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    business_email: Optional[EmailStr] = None
    business_phone: Optional[str] = Field(default=None, max_length=50)
    business_address: Optional[str] = None
    business_type_id: Optional[str] = None
    product_type: Optional[ProductType] = None
    monthly_volume: Optional[Decimal] = None
    funding_amount: Optional[Decimal] = None
    notes: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("monthly_volume", "funding_amount")
    @classmethod
    def validate_amount(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        if value is None:
            return value
        amount = Money.parse(value)
        if amount.is_negative():
            raise ValueError("Amount cannot be negative")
        return amount.to_decimal()


class DealAdvanceRequest(BaseModel):
    target_stage: DealStage
    product_type: Optional[ProductType] = None
    quote_delivery_method: Optional[QuoteDeliveryMethod] = None
    notes: Optional[str] = None

    model_config = {"extra": "forbid"}


# ============================================================================
# Responses
# ============================================================================

class DealResponse(BaseModel):
    id: str
    deal_number: Optional[str] = None
    referrer_id: str
    business_type_id: Optional[str] = None
    business_name: str
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    product_type: Optional[ProductType] = None
    quote_delivery_method: Optional[QuoteDeliveryMethod] = None
    monthly_volume: Optional[Decimal] = None
    funding_amount: Optional[Decimal] = None
    estimated_commission: Optional[Decimal] = None
    actual_commission: Optional[Decimal] = None
    stage: DealStage
    version: int
    notes: Optional[str] = None
    submitted_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AdminDealResponse(DealResponse):
    admin_notes: Optional[str] = None


class DealStageAuditResponse(BaseModel):
    id: str
    deal_id: str
    sequence: int
    from_stage: Optional[str] = None
    to_stage: str
    actor_id: str
    notes: Optional[str] = None
    product_type: Optional[str] = None
    quote_delivery_method: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DealAdvanceResponse(BaseModel):
    deal: AdminDealResponse
    audit: DealStageAuditResponse
    warnings: List[str] = []


class PipelineStageCount(BaseModel):
    stage: DealStage
    count: int


class BusinessTypeResponse(BaseModel):
    id: str
    slug: str
    category: str
    name: str
    description: Optional[str] = None
    base_commission: Decimal
    min_volume: Decimal
    max_volume: Decimal
    processing_time: Optional[str] = None

    model_config = {"from_attributes": True}
