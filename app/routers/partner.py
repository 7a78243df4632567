"""Partner surface: referral submission, own deals and own commission lines."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Actor, get_current_actor
from app.core.db import get_db
from app.models.commission import ApprovalStatus
from app.models.deal import DealStage
from app.schemas.commission import (
    CommissionApprovalResponse,
    DecisionResponse,
    EarningsSummaryResponse,
)
from app.schemas.deal import DealResponse, DealSubmit, PipelineStageCount
from app.services.commission_approvals import CommissionApprovalService
from app.services.deal_pipeline import DealPipelineService

router = APIRouter()
logger = logging.getLogger(__name__)


# ============================================================================
# Deals
# ============================================================================

@router.post("/deals", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
async def submit_deal(
    data: DealSubmit,
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Submit a new business referral."""
    return await DealPipelineService(db).submit_deal(current_actor.id, data.model_dump())


@router.get("/deals", response_model=List[DealResponse])
async def list_my_deals(
    stage: Optional[DealStage] = None,
    limit: int = 100,
    offset: int = 0,
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await DealPipelineService(db).list_deals(
        stage=stage, referrer_id=current_actor.id, limit=limit, offset=offset
    )


@router.get("/deals/summary", response_model=List[PipelineStageCount])
async def get_my_pipeline_summary(
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await DealPipelineService(db).get_pipeline_summary(referrer_id=current_actor.id)


@router.get("/deals/{deal_id}", response_model=DealResponse)
async def get_my_deal(
    deal_id: str,
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    deal = await DealPipelineService(db).get_deal(deal_id)
    if deal.referrer_id != current_actor.id:
        # Other partners' deals are reported as missing rather than forbidden
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")
    return deal


# ============================================================================
# Commission
# ============================================================================

@router.get("/commission/approvals", response_model=List[CommissionApprovalResponse])
async def list_my_commission_approvals(
    approval_status: Optional[ApprovalStatus] = None,
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await CommissionApprovalService(db).list_approvals(
        recipient_id=current_actor.id, approval_status=approval_status
    )


@router.post("/commission/approvals/{approval_id}/approve", response_model=DecisionResponse)
async def approve_commission(
    approval_id: str,
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    result = await CommissionApprovalService(db).approve(approval_id, current_actor.id)
    return DecisionResponse(
        approval=CommissionApprovalResponse.model_validate(result.approval),
        warnings=result.warnings,
    )


@router.post("/commission/approvals/{approval_id}/reject", response_model=DecisionResponse)
async def reject_commission(
    approval_id: str,
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    result = await CommissionApprovalService(db).reject(approval_id, current_actor.id)
    return DecisionResponse(
        approval=CommissionApprovalResponse.model_validate(result.approval),
        warnings=result.warnings,
    )


@router.get("/commission/summary", response_model=EarningsSummaryResponse)
async def get_my_earnings_summary(
    current_actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Commission totals by lifecycle state."""
    summary = await CommissionApprovalService(db).get_earnings_summary(current_actor.id)
    return EarningsSummaryResponse(
        recipient_id=summary.recipient_id,
        pending_approval=str(summary.pending_approval),
        approved_unpaid=str(summary.approved_unpaid),
        paid=str(summary.paid),
        rejected=str(summary.rejected),
        line_count=summary.line_count,
    )
