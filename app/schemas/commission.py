"""Commission breakdown, approval and payout schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.models.commission import ApprovalStatus, PaymentStatus
from app.services.commission_calculator import Breakdown, CommissionLine, SubmittedLine
from app.services.commission_rates import LEVEL_PERCENTAGES, LEVEL_ROLES, MAX_CHAIN_DEPTH
from app.utils.money import Money


def _parse_non_negative(value: Decimal) -> Decimal:
    amount = Money.parse(value)
    if amount.is_negative():
        raise ValueError("Amount cannot be negative")
    return amount.to_decimal()


def _parse_positive(value: Decimal) -> Decimal:
    amount = Money.parse(value)
    if not amount.is_positive():
        raise ValueError("Amount must be greater than zero")
    return amount.to_decimal()


# ============================================================================
# Breakdown
# ============================================================================

class CommissionLinePayload(BaseModel):
    level: int = Field(..., ge=1, le=MAX_CHAIN_DEPTH)
    recipient_id: str = Field(..., min_length=1)
    role: Optional[str] = None
    percentage: Optional[Decimal] = None
    auto_amount: Decimal
    final_amount: Decimal
    overridden: bool = False

    model_config = {"extra": "forbid"}

    @field_validator("auto_amount", "final_amount")
    @classmethod
    def validate_amount(cls, value: Decimal) -> Decimal:
        return _parse_non_negative(value)


class BreakdownPayload(BaseModel):
    """
    A breakdown sent back by the admin UI.

    ``total_distributed`` and ``remainder`` are accepted so a calculated
    breakdown can be posted back as-is, but the server always re-derives them.
    """
    deal_id: str = Field(..., min_length=1)
    total_payable_amount: Decimal
    lines: List[CommissionLinePayload] = Field(..., min_length=1, max_length=MAX_CHAIN_DEPTH)
    total_distributed: Optional[Decimal] = None
    remainder: Optional[Decimal] = None
    warnings: List[str] = []

    model_config = {"extra": "forbid"}

    @field_validator("total_payable_amount")
    @classmethod
    def validate_total(cls, value: Decimal) -> Decimal:
        return _parse_positive(value)

    @field_validator("lines")
    @classmethod
    def validate_levels(cls, lines: List[CommissionLinePayload]) -> List[CommissionLinePayload]:
        levels = [line.level for line in lines]
        if len(set(levels)) != len(levels):
            raise ValueError("Each level may appear only once")
        return sorted(lines, key=lambda line: line.level)

    def to_breakdown(self) -> Breakdown:
        """Rebuild the domain breakdown, recomputing every derived total."""
        total = Money.parse(self.total_payable_amount)
        lines = tuple(
            CommissionLine(
                level=line.level,
                recipient_id=line.recipient_id,
                role=line.role or LEVEL_ROLES[line.level],
                percentage=line.percentage if line.percentage is not None else LEVEL_PERCENTAGES[line.level],
                auto_amount=Money.parse(line.auto_amount),
                final_amount=Money.parse(line.final_amount),
                overridden=line.overridden,
            )
            for line in self.lines
        )
        return Breakdown(
            deal_id=self.deal_id,
            total_payable_amount=total,
            lines=lines,
            total_distributed=Money.sum(line.final_amount for line in lines),
            remainder=total - Money.sum(line.auto_amount for line in lines),
            warnings=tuple(self.warnings),
        )

    def submitted_lines(self) -> List[SubmittedLine]:
        return [
            SubmittedLine(
                level=line.level,
                recipient_id=line.recipient_id,
                final_amount=Money.parse(line.final_amount),
                overridden=line.overridden,
            )
            for line in self.lines
        ]


class CommissionLineResponse(BaseModel):
    level: int
    recipient_id: str
    role: str
    percentage: str
    auto_amount: str
    final_amount: str
    overridden: bool


class BreakdownResponse(BaseModel):
    deal_id: str
    total_payable_amount: str
    lines: List[CommissionLineResponse]
    total_distributed: str
    remainder: str
    warnings: List[str] = []

    @classmethod
    def from_breakdown(cls, breakdown: Breakdown) -> "BreakdownResponse":
        return cls(
            deal_id=breakdown.deal_id,
            total_payable_amount=str(breakdown.total_payable_amount),
            lines=[
                CommissionLineResponse(
                    level=line.level,
                    recipient_id=line.recipient_id,
                    role=line.role,
                    percentage=str(line.percentage),
                    auto_amount=str(line.auto_amount),
                    final_amount=str(line.final_amount),
                    overridden=line.overridden,
                )
                for line in breakdown.lines
            ],
            total_distributed=str(breakdown.total_distributed),
            remainder=str(breakdown.remainder),
            warnings=list(breakdown.warnings),
        )


class CalculateRequest(BaseModel):
    total_payable_amount: Decimal

    model_config = {"extra": "forbid"}

    @field_validator("total_payable_amount")
    @classmethod
    def validate_total(cls, value: Decimal) -> Decimal:
        return _parse_positive(value)


class OverrideRequest(BaseModel):
    breakdown: BreakdownPayload
    level: int = Field(..., ge=1, le=MAX_CHAIN_DEPTH)
    new_amount: Decimal

    model_config = {"extra": "forbid"}

    @field_validator("new_amount")
    @classmethod
    def validate_new_amount(cls, value: Decimal) -> Decimal:
        return _parse_non_negative(value)


class FinalizeRequest(BaseModel):
    breakdown: BreakdownPayload
    payment_reference: Optional[str] = Field(default=None, max_length=100)

    model_config = {"extra": "forbid"}


# ============================================================================
# Approvals
# ============================================================================

class CommissionApprovalResponse(BaseModel):
    id: str
    deal_id: str
    recipient_id: str
    level: int
    role: str
    percentage: Decimal
    auto_amount: Decimal
    commission_amount: Decimal
    overridden: bool
    client_business_name: Optional[str] = None
    approval_status: ApprovalStatus
    decided_at: Optional[datetime] = None
    payment_status: PaymentStatus
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class FinalizeResponse(BaseModel):
    deal_id: str
    total_payable_amount: Decimal
    total_distributed: Decimal
    payment_reference: Optional[str] = None
    approvals: List[CommissionApprovalResponse]
    warnings: List[str] = []


class DecisionResponse(BaseModel):
    approval: CommissionApprovalResponse
    warnings: List[str] = []


class ProcessPaymentRequest(BaseModel):
    payment_reference: Optional[str] = Field(default=None, max_length=100)

    model_config = {"extra": "forbid"}


# ============================================================================
# Payout ledger
# ============================================================================

class WithdrawRequest(BaseModel):
    transfer_reference: Optional[str] = Field(default=None, max_length=100)

    model_config = {"extra": "forbid"}


class PayoutLedgerEntryResponse(BaseModel):
    id: str
    approval_id: str
    recipient_id: str
    amount: Decimal
    transfer_reference: Optional[str] = None
    withdrawn_by_id: str
    withdrawn_at: datetime

    model_config = {"from_attributes": True}


class WithdrawResponse(BaseModel):
    entry: PayoutLedgerEntryResponse
    created: bool
    warnings: List[str] = []


class EarningsSummaryResponse(BaseModel):
    recipient_id: str
    pending_approval: str
    approved_unpaid: str
    paid: str
    rejected: str
    line_count: int
