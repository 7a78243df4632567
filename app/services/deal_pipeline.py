"""Deal pipeline service: submission, stage transitions and pipeline queries."""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.db import OptimisticConflict, run_with_conflict_retry
from app.core.errors import (
    BusinessTypeNotFound,
    DealNotFound,
    DealTerminal,
    InvalidTransition,
    PartnerNotFound,
)
from app.models.deal import Deal, DealStage, DealStageAudit, ProductType, QuoteDeliveryMethod
from app.models.partner import Partner
from app.services.commission_rates import CommissionRateService
from app.services.event_dispatcher import EventType, emit_event
from app.services.number_generator import NumberGenerator

logger = logging.getLogger(__name__)


# Canonical forward order; DECLINED is outside it
PIPELINE_ORDER: List[DealStage] = [
    DealStage.QUOTE_REQUEST_RECEIVED,
    DealStage.QUOTE_SENT,
    DealStage.QUOTE_APPROVED,
    DealStage.AGREEMENT_SENT,
    DealStage.SIGNED_AWAITING_DOCS,
    DealStage.APPROVED,
    DealStage.LIVE_CONFIRM_LTR,
    DealStage.INVOICE_RECEIVED,
    DealStage.COMPLETED,
]

TERMINAL_STAGES: FrozenSet[DealStage] = frozenset({DealStage.COMPLETED, DealStage.DECLINED})

# Legal targets per stage: the immediate successor, plus declined from any live stage
ALLOWED_TRANSITIONS: Dict[DealStage, FrozenSet[DealStage]] = {
    DealStage.QUOTE_REQUEST_RECEIVED: frozenset({DealStage.QUOTE_SENT, DealStage.DECLINED}),
    DealStage.QUOTE_SENT: frozenset({DealStage.QUOTE_APPROVED, DealStage.DECLINED}),
    DealStage.QUOTE_APPROVED: frozenset({DealStage.AGREEMENT_SENT, DealStage.DECLINED}),
    DealStage.AGREEMENT_SENT: frozenset({DealStage.SIGNED_AWAITING_DOCS, DealStage.DECLINED}),
    DealStage.SIGNED_AWAITING_DOCS: frozenset({DealStage.APPROVED, DealStage.DECLINED}),
    DealStage.APPROVED: frozenset({DealStage.LIVE_CONFIRM_LTR, DealStage.DECLINED}),
    DealStage.LIVE_CONFIRM_LTR: frozenset({DealStage.INVOICE_RECEIVED, DealStage.DECLINED}),
    DealStage.INVOICE_RECEIVED: frozenset({DealStage.COMPLETED, DealStage.DECLINED}),
    DealStage.COMPLETED: frozenset(),
    DealStage.DECLINED: frozenset(),
}

_STAGE_RANK: Dict[DealStage, int] = {stage: rank for rank, stage in enumerate(PIPELINE_ORDER)}
_STAGE_RANK[DealStage.DECLINED] = len(PIPELINE_ORDER)


def stage_rank(stage: DealStage) -> int:
    """Position in the total order; declined ranks after every other stage."""
    return _STAGE_RANK[DealStage(stage)]


def next_stage(stage: DealStage) -> Optional[DealStage]:
    """The canonical successor, or None for terminal stages."""
    stage = DealStage(stage)
    if stage in TERMINAL_STAGES:
        return None
    return PIPELINE_ORDER[_STAGE_RANK[stage] + 1]


def is_terminal(stage: DealStage) -> bool:
    return DealStage(stage) in TERMINAL_STAGES


def is_commission_eligible(stage: DealStage) -> bool:
    """Commission may be calculated once a deal is approved or beyond (never when declined)."""
    stage = DealStage(stage)
    if stage == DealStage.DECLINED:
        return False
    return _STAGE_RANK[stage] >= _STAGE_RANK[DealStage.APPROVED]


def check_transition(current: DealStage, target: DealStage) -> None:
    """Raise if moving from ``current`` to ``target`` is not allowed."""
    current, target = DealStage(current), DealStage(target)
    if current in TERMINAL_STAGES:
        raise DealTerminal(f"Deal is {current.value} and can no longer change stage")
    if target not in ALLOWED_TRANSITIONS[current]:
        expected = next_stage(current)
        raise InvalidTransition(
            f"Cannot move from {current.value} to {target.value}; "
            f"next stage is {expected.value if expected else 'none'} (or declined)"
        )


@dataclass
class StageMetadata:
    """Informational fields carried with a stage change."""
    product_type: Optional[ProductType] = None
    quote_delivery_method: Optional[QuoteDeliveryMethod] = None
    notes: Optional[str] = None


@dataclass
class AdvanceResult:
    deal: Deal
    audit: DealStageAudit
    warnings: List[str] = field(default_factory=list)


class DealPipelineService:
    """Service for moving deals through the referral pipeline."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def _generate_deal_number(self) -> str:
        """Generate deal number like RF-2026-00001."""
        result = await self.db.execute(select(func.count(Deal.id)))
        count = result.scalar() or 0
        return NumberGenerator.generate(self.settings.deal_number_template, count + 1)

    async def _load(self, deal_id: str) -> Deal:
        deal = await self.db.get(Deal, deal_id, populate_existing=True)
        if not deal:
            raise DealNotFound(f"Deal {deal_id} not found")
        return deal

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit_deal(self, referrer_id: str, data: Dict[str, Any]) -> Deal:
        """Create a new deal at quote_request_received."""
        referrer = await self.db.get(Partner, referrer_id)
        if not referrer:
            raise PartnerNotFound(f"Partner {referrer_id} not found")

        estimated_commission = None
        business_type_id = data.get("business_type_id")
        if business_type_id:
            rates = CommissionRateService(self.db)
            business_type = await rates.get_business_type(business_type_id)
            if not business_type:
                raise BusinessTypeNotFound(f"Business type {business_type_id} not found")
            volume = data.get("monthly_volume") or data.get("funding_amount")
            estimated_commission = await rates.estimate_for(
                business_type, Decimal(str(volume)) if volume is not None else None
            )

        deal = Deal(
            id=str(uuid.uuid4()),
            deal_number=await self._generate_deal_number(),
            referrer_id=referrer_id,
            business_type_id=business_type_id,
            business_name=data["business_name"],
            business_email=data.get("business_email"),
            business_phone=data.get("business_phone"),
            business_address=data.get("business_address"),
            product_type=data.get("product_type"),
            monthly_volume=data.get("monthly_volume"),
            funding_amount=data.get("funding_amount"),
            estimated_commission=estimated_commission,
            stage=DealStage.QUOTE_REQUEST_RECEIVED,
            version=0,
            notes=data.get("notes"),
        )
        self.db.add(deal)
        self.db.add(DealStageAudit(
            id=str(uuid.uuid4()),
            deal_id=deal.id,
            sequence=0,
            from_stage=None,
            to_stage=DealStage.QUOTE_REQUEST_RECEIVED.value,
            actor_id=referrer_id,
            notes="Deal submitted",
            product_type=deal.product_type.value if deal.product_type else None,
        ))
        await self.db.commit()
        await self.db.refresh(deal)

        logger.info(f"Deal {deal.deal_number} submitted by partner {referrer_id}")
        await emit_event(
            EventType.DEAL_SUBMITTED,
            {"deal_id": deal.id, "deal_number": deal.deal_number, "business_name": deal.business_name},
            target_user_id=referrer_id,
        )
        return deal

    # =========================================================================
    # Stage transitions
    # =========================================================================

    async def advance(
        self,
        deal_id: str,
        target_stage: DealStage,
        actor_id: str,
        metadata: Optional[StageMetadata] = None,
    ) -> AdvanceResult:
        """
        Move a deal to its next stage (or to declined).

        The write is conditioned on the stage and version read at the start;
        a concurrent change makes it match no rows, and the whole read-check-
        write is retried once before surfacing ``Conflict``.
        """
        target_stage = DealStage(target_stage)
        metadata = metadata or StageMetadata()

        async def attempt() -> AdvanceResult:
            deal = await self._load(deal_id)
            current = DealStage(deal.stage)
            try:
                check_transition(current, target_stage)
            except (InvalidTransition, DealTerminal) as e:
                logger.warning(f"Rejected transition for deal {deal_id}: {e.message}")
                raise

            values: Dict[str, Any] = {
                "stage": target_stage,
                "version": Deal.version + 1,
                "updated_at": func.now(),
            }
            if metadata.product_type is not None:
                values["product_type"] = metadata.product_type
            if metadata.quote_delivery_method is not None:
                values["quote_delivery_method"] = metadata.quote_delivery_method

            result = await self.db.execute(
                update(Deal)
                .where(Deal.id == deal_id, Deal.stage == current, Deal.version == deal.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise OptimisticConflict(f"Deal {deal_id} changed while advancing")

            audit = DealStageAudit(
                id=str(uuid.uuid4()),
                deal_id=deal_id,
                sequence=deal.version + 1,
                from_stage=current.value,
                to_stage=target_stage.value,
                actor_id=actor_id,
                notes=metadata.notes,
                product_type=metadata.product_type.value if metadata.product_type else None,
                quote_delivery_method=(
                    metadata.quote_delivery_method.value if metadata.quote_delivery_method else None
                ),
            )
            self.db.add(audit)
            await self.db.commit()
            await self.db.refresh(audit)

            deal = await self._load(deal_id)
            logger.info(f"Deal {deal_id} moved {current.value} -> {target_stage.value} by {actor_id}")
            return AdvanceResult(deal=deal, audit=audit)

        outcome = await run_with_conflict_retry(self.db, attempt)

        outcome.warnings = await emit_event(
            EventType.DEAL_STAGE_CHANGED,
            {
                "deal_id": deal_id,
                "from_stage": outcome.audit.from_stage,
                "to_stage": outcome.audit.to_stage,
                "actor_id": actor_id,
            },
            target_user_id=outcome.deal.referrer_id,
        )
        return outcome

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_deal(self, deal_id: str) -> Deal:
        return await self._load(deal_id)

    async def list_deals(
        self,
        stage: Optional[DealStage] = None,
        referrer_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Deal]:
        """List deals, newest first, with optional filtering."""
        query = select(Deal)
        if stage:
            query = query.where(Deal.stage == DealStage(stage))
        if referrer_id:
            query = query.where(Deal.referrer_id == referrer_id)

        query = query.order_by(Deal.submitted_at.desc(), Deal.id).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_stage_history(self, deal_id: str) -> List[DealStageAudit]:
        """Every stage the deal has entered, oldest first."""
        await self._load(deal_id)
        result = await self.db.execute(
            select(DealStageAudit)
            .where(DealStageAudit.deal_id == deal_id)
            .order_by(DealStageAudit.sequence)
        )
        return list(result.scalars().all())

    async def get_pipeline_summary(self, referrer_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Deal count per stage, in pipeline order with declined last."""
        query = select(Deal.stage, func.count(Deal.id)).group_by(Deal.stage)
        if referrer_id:
            query = query.where(Deal.referrer_id == referrer_id)
        counts = {DealStage(stage): count for stage, count in (await self.db.execute(query)).all()}

        return [
            {"stage": stage.value, "count": counts.get(stage, 0)}
            for stage in PIPELINE_ORDER + [DealStage.DECLINED]
        ]
