"""Admin surface: deal pipeline control, commission breakdowns and payouts."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Actor, require_admin
from app.core.db import get_db
from app.models.commission import ApprovalStatus
from app.models.deal import DealStage
from app.schemas.commission import (
    BreakdownResponse,
    CalculateRequest,
    CommissionApprovalResponse,
    DecisionResponse,
    FinalizeRequest,
    FinalizeResponse,
    OverrideRequest,
    PayoutLedgerEntryResponse,
    ProcessPaymentRequest,
    WithdrawRequest,
    WithdrawResponse,
)
from app.schemas.deal import (
    AdminDealResponse,
    BusinessTypeResponse,
    DealAdvanceRequest,
    DealAdvanceResponse,
    DealStageAuditResponse,
    PipelineStageCount,
)
from app.services.commission_approvals import CommissionApprovalService
from app.services.commission_calculator import CommissionCalculatorService, apply_override
from app.services.commission_rates import CommissionRateService
from app.services.deal_pipeline import DealPipelineService, StageMetadata

router = APIRouter()
logger = logging.getLogger(__name__)


# ============================================================================
# Deals Endpoints
# ============================================================================

@router.get("/deals", response_model=List[AdminDealResponse])
async def list_deals(
    stage: Optional[DealStage] = None,
    referrer_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List deals across all partners."""
    return await DealPipelineService(db).list_deals(
        stage=stage, referrer_id=referrer_id, limit=limit, offset=offset
    )


@router.get("/deals/summary", response_model=List[PipelineStageCount])
async def get_deals_summary(
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Deal count per pipeline stage."""
    return await DealPipelineService(db).get_pipeline_summary()


@router.get("/deals/{deal_id}", response_model=AdminDealResponse)
async def get_deal(
    deal_id: str,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await DealPipelineService(db).get_deal(deal_id)


@router.get("/deals/{deal_id}/history", response_model=List[DealStageAuditResponse])
async def get_deal_history(
    deal_id: str,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Stage audit trail, oldest first."""
    return await DealPipelineService(db).get_stage_history(deal_id)


@router.post("/deals/{deal_id}/advance", response_model=DealAdvanceResponse)
async def advance_deal_stage(
    deal_id: str,
    data: DealAdvanceRequest,
    current_admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Move a deal to its next stage, or decline it."""
    result = await DealPipelineService(db).advance(
        deal_id,
        data.target_stage,
        current_admin.id,
        StageMetadata(
            product_type=data.product_type,
            quote_delivery_method=data.quote_delivery_method,
            notes=data.notes,
        ),
    )
    return DealAdvanceResponse(
        deal=AdminDealResponse.model_validate(result.deal),
        audit=DealStageAuditResponse.model_validate(result.audit),
        warnings=result.warnings,
    )


# ============================================================================
# Commission Breakdown Endpoints
# ============================================================================

@router.post("/deals/{deal_id}/commission/calculate", response_model=BreakdownResponse)
async def calculate_breakdown(
    deal_id: str,
    data: CalculateRequest,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Automatic 60/20/10 split of the payable commission over the referral chain."""
    breakdown = await CommissionCalculatorService(db).calculate(deal_id, data.total_payable_amount)
    return BreakdownResponse.from_breakdown(breakdown)


@router.post("/commission/override", response_model=BreakdownResponse)
async def override_breakdown_line(
    data: OverrideRequest,
    _: Actor = Depends(require_admin),
):
    """Replace one line's amount in an unsaved breakdown. Nothing is stored."""
    breakdown = apply_override(data.breakdown.to_breakdown(), data.level, data.new_amount)
    return BreakdownResponse.from_breakdown(breakdown)


@router.post("/deals/{deal_id}/commission/finalize", response_model=FinalizeResponse)
async def finalize_breakdown(
    deal_id: str,
    data: FinalizeRequest,
    current_admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Persist a breakdown as one pending approval per line."""
    breakdown = await CommissionCalculatorService(db).rebuild(
        deal_id,
        data.breakdown.total_payable_amount,
        data.breakdown.submitted_lines(),
    )
    result = await CommissionApprovalService(db).finalize(
        deal_id,
        breakdown,
        current_admin.id,
        payment_reference=data.payment_reference,
    )
    return FinalizeResponse(
        deal_id=deal_id,
        total_payable_amount=result.finalization.total_payable_amount,
        total_distributed=result.finalization.total_distributed,
        payment_reference=result.finalization.payment_reference,
        approvals=[CommissionApprovalResponse.model_validate(a) for a in result.approvals],
        warnings=result.warnings,
    )


# ============================================================================
# Approval & Payout Endpoints
# ============================================================================

@router.get("/commission/approvals", response_model=List[CommissionApprovalResponse])
async def list_commission_approvals(
    deal_id: Optional[str] = None,
    recipient_id: Optional[str] = None,
    approval_status: Optional[ApprovalStatus] = None,
    limit: int = 100,
    offset: int = 0,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CommissionApprovalService(db).list_approvals(
        recipient_id=recipient_id,
        deal_id=deal_id,
        approval_status=approval_status,
        limit=limit,
        offset=offset,
    )


@router.post("/commission/approvals/{approval_id}/process-payment", response_model=DecisionResponse)
async def process_commission_payment(
    approval_id: str,
    data: ProcessPaymentRequest,
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Mark an approved line as paid."""
    result = await CommissionApprovalService(db).process_payment(approval_id, data.payment_reference)
    return DecisionResponse(
        approval=CommissionApprovalResponse.model_validate(result.approval),
        warnings=result.warnings,
    )


@router.post("/commission/approvals/{approval_id}/withdraw", response_model=WithdrawResponse)
async def withdraw_commission(
    approval_id: str,
    data: WithdrawRequest,
    current_admin: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Record a bank transfer for an approved line. Repeat calls return the first entry."""
    result = await CommissionApprovalService(db).withdraw(
        approval_id, current_admin.id, transfer_reference=data.transfer_reference
    )
    return WithdrawResponse(
        entry=PayoutLedgerEntryResponse.model_validate(result.entry),
        created=result.created,
        warnings=result.warnings,
    )


@router.get("/business-types", response_model=List[BusinessTypeResponse])
async def list_business_types(
    _: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await CommissionRateService(db).list_business_types()
