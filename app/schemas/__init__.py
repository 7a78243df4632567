"""Pydantic schemas."""

from app.schemas.deal import (  # noqa: F401
    AdminDealResponse,
    BusinessTypeResponse,
    DealAdvanceRequest,
    DealAdvanceResponse,
    DealResponse,
    DealStageAuditResponse,
    DealSubmit,
    PipelineStageCount,
)
from app.schemas.commission import (  # noqa: F401
    BreakdownPayload,
    BreakdownResponse,
    CalculateRequest,
    CommissionApprovalResponse,
    CommissionLinePayload,
    EarningsSummaryResponse,
    FinalizeRequest,
    FinalizeResponse,
    OverrideRequest,
    PayoutLedgerEntryResponse,
    WithdrawRequest,
    WithdrawResponse,
)
