"""Commission approval workflow: finalize, approve/reject, payment and withdrawal."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import (
    AlreadyDecided,
    AlreadyFinalized,
    AlreadyPaid,
    ApprovalNotFound,
    BreakdownMismatch,
    DealNotFound,
    NotApproved,
    NotRecipient,
)
from app.models.commission import (
    ApprovalStatus,
    CommissionApproval,
    CommissionFinalization,
    PaymentStatus,
    PayoutLedgerEntry,
)
from app.models.deal import Deal
from app.services.commission_calculator import Breakdown
from app.services.event_dispatcher import EventType, emit_event
from app.services.number_generator import NumberGenerator
from app.utils.money import Money

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def breakdown_snapshot(breakdown: Breakdown) -> Dict[str, Any]:
    """JSON-safe copy of a breakdown, stored with every approval line."""
    return {
        "deal_id": breakdown.deal_id,
        "total_payable_amount": str(breakdown.total_payable_amount),
        "total_distributed": str(breakdown.total_distributed),
        "remainder": str(breakdown.remainder),
        "lines": [
            {
                "level": line.level,
                "recipient_id": line.recipient_id,
                "role": line.role,
                "percentage": str(line.percentage),
                "auto_amount": str(line.auto_amount),
                "final_amount": str(line.final_amount),
                "overridden": line.overridden,
            }
            for line in breakdown.lines
        ],
    }


@dataclass
class FinalizeResult:
    finalization: CommissionFinalization
    approvals: List[CommissionApproval]
    warnings: List[str] = field(default_factory=list)


@dataclass
class DecisionResult:
    approval: CommissionApproval
    warnings: List[str] = field(default_factory=list)


@dataclass
class WithdrawResult:
    entry: PayoutLedgerEntry
    created: bool
    warnings: List[str] = field(default_factory=list)


@dataclass
class EarningsSummary:
    recipient_id: str
    pending_approval: Money
    approved_unpaid: Money
    paid: Money
    rejected: Money
    line_count: int


class CommissionApprovalService:
    """Service for the per-line commission approval and payout lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def _load_approval(self, approval_id: str) -> CommissionApproval:
        approval = await self.db.get(CommissionApproval, approval_id, populate_existing=True)
        if not approval:
            raise ApprovalNotFound(f"Commission approval {approval_id} not found")
        return approval

    # =========================================================================
    # Finalize
    # =========================================================================

    async def finalize(
        self,
        deal_id: str,
        breakdown: Breakdown,
        actor_id: str,
        payment_reference: Optional[str] = None,
    ) -> FinalizeResult:
        """
        Persist a breakdown as one pending approval per line.

        After this the breakdown is immutable. The primary key on
        ``commission_finalization.deal_id`` guarantees a deal is finalized
        at most once even when two requests race.
        """
        if breakdown.deal_id != deal_id:
            raise BreakdownMismatch(f"Breakdown is for deal {breakdown.deal_id}, not {deal_id}")

        deal = await self.db.get(Deal, deal_id)
        if not deal:
            raise DealNotFound(f"Deal {deal_id} not found")
        if await self.db.get(CommissionFinalization, deal_id):
            raise AlreadyFinalized(f"Commission for deal {deal_id} has already been finalized")

        finalization = CommissionFinalization(
            deal_id=deal_id,
            total_payable_amount=breakdown.total_payable_amount.to_decimal(),
            total_distributed=breakdown.total_distributed.to_decimal(),
            payment_reference=payment_reference,
            finalized_by_id=actor_id,
        )
        snapshot = breakdown_snapshot(breakdown)
        approvals = [
            CommissionApproval(
                id=str(uuid.uuid4()),
                deal_id=deal_id,
                recipient_id=line.recipient_id,
                level=line.level,
                role=line.role,
                percentage=line.percentage,
                auto_amount=line.auto_amount.to_decimal(),
                commission_amount=line.final_amount.to_decimal(),
                overridden=line.overridden,
                client_business_name=deal.business_name,
                approval_status=ApprovalStatus.PENDING,
                payment_status=PaymentStatus.PENDING,
                rates_data=snapshot,
            )
            for line in breakdown.lines
        ]

        # The payable total is recorded, not the distributed sum
        deal.actual_commission = breakdown.total_payable_amount.to_decimal()
        self.db.add(finalization)
        self.db.add_all(approvals)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"Concurrent finalize lost for deal {deal_id}")
            raise AlreadyFinalized(f"Commission for deal {deal_id} has already been finalized")

        for approval in approvals:
            await self.db.refresh(approval)

        if breakdown.total_distributed != breakdown.total_payable_amount:
            logger.info(
                f"Deal {deal_id} finalized with distributed {breakdown.total_distributed} "
                f"against payable {breakdown.total_payable_amount}"
            )
        logger.info(f"Finalized commission for deal {deal_id}: {len(approvals)} approval lines by {actor_id}")

        warnings: List[str] = []
        for approval in approvals:
            warnings += await emit_event(
                EventType.COMMISSION_READY_FOR_APPROVAL,
                {
                    "approval_id": approval.id,
                    "deal_id": deal_id,
                    "level": approval.level,
                    "amount": str(Money.parse(approval.commission_amount)),
                },
                target_user_id=approval.recipient_id,
            )
        return FinalizeResult(finalization=finalization, approvals=approvals, warnings=warnings)

    # =========================================================================
    # Approve / Reject
    # =========================================================================

    async def approve(self, approval_id: str, actor_id: str) -> DecisionResult:
        """Recipient accepts a commission line."""
        return await self._decide(approval_id, actor_id, ApprovalStatus.APPROVED)

    async def reject(self, approval_id: str, actor_id: str) -> DecisionResult:
        """Recipient declines a commission line."""
        return await self._decide(approval_id, actor_id, ApprovalStatus.REJECTED)

    async def _decide(self, approval_id: str, actor_id: str, decision: ApprovalStatus) -> DecisionResult:
        approval = await self._load_approval(approval_id)
        if approval.recipient_id != actor_id:
            raise NotRecipient(f"Only the recipient may decide on commission {approval_id}")
        if approval.approval_status != ApprovalStatus.PENDING:
            raise AlreadyDecided(
                f"Commission {approval_id} is already {approval.approval_status.value}"
            )

        result = await self.db.execute(
            update(CommissionApproval)
            .where(
                CommissionApproval.id == approval_id,
                CommissionApproval.approval_status == ApprovalStatus.PENDING,
            )
            .values(approval_status=decision, decided_at=_utcnow(), decided_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise AlreadyDecided(f"Commission {approval_id} was decided concurrently")
        await self.db.commit()

        approval = await self._load_approval(approval_id)
        logger.info(f"Commission {approval_id} {decision.value} by recipient {actor_id}")

        warnings = await emit_event(
            EventType.COMMISSION_DECIDED,
            {"approval_id": approval_id, "deal_id": approval.deal_id, "decision": decision.value},
            target_user_id=approval.recipient_id,
        )
        return DecisionResult(approval=approval, warnings=warnings)

    # =========================================================================
    # Payment
    # =========================================================================

    async def process_payment(
        self,
        approval_id: str,
        payment_reference: Optional[str] = None,
    ) -> DecisionResult:
        """Mark an approved line as paid, generating a reference if none is supplied."""
        approval = await self._load_approval(approval_id)
        if approval.approval_status != ApprovalStatus.APPROVED:
            raise NotApproved(
                f"Commission {approval_id} is {approval.approval_status.value}, not approved"
            )
        if approval.payment_status == PaymentStatus.COMPLETED:
            raise AlreadyPaid(f"Commission {approval_id} has already been paid")

        reference = payment_reference or NumberGenerator.payment_reference(
            self.settings.payment_reference_prefix
        )
        result = await self.db.execute(
            update(CommissionApproval)
            .where(
                CommissionApproval.id == approval_id,
                CommissionApproval.approval_status == ApprovalStatus.APPROVED,
                CommissionApproval.payment_status == PaymentStatus.PENDING,
            )
            .values(
                payment_status=PaymentStatus.COMPLETED,
                payment_date=_utcnow(),
                payment_reference=reference,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise AlreadyPaid(f"Commission {approval_id} was paid concurrently")
        await self.db.commit()

        approval = await self._load_approval(approval_id)
        logger.info(f"Commission {approval_id} paid with reference {reference}")

        warnings = await emit_event(
            EventType.COMMISSION_PAID,
            {"approval_id": approval_id, "payment_reference": reference},
            target_user_id=approval.recipient_id,
        )
        return DecisionResult(approval=approval, warnings=warnings)

    # =========================================================================
    # Withdrawal ledger
    # =========================================================================

    async def get_ledger_entry(self, approval_id: str) -> Optional[PayoutLedgerEntry]:
        result = await self.db.execute(
            select(PayoutLedgerEntry)
            .where(PayoutLedgerEntry.approval_id == approval_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def withdraw(
        self,
        approval_id: str,
        actor_id: str,
        transfer_reference: Optional[str] = None,
    ) -> WithdrawResult:
        """
        Record that an approved line was paid by bank transfer.

        Repeating the call returns the first entry unchanged. The unique
        ``approval_id`` on the ledger makes this hold under concurrent
        retries: the loser's insert fails and it returns the winner's entry.
        """
        existing = await self.get_ledger_entry(approval_id)
        if existing:
            logger.debug(f"Withdrawal for {approval_id} already recorded, returning existing entry")
            return WithdrawResult(entry=existing, created=False)

        approval = await self._load_approval(approval_id)
        if approval.approval_status != ApprovalStatus.APPROVED:
            raise NotApproved(
                f"Commission {approval_id} is {approval.approval_status.value}, not approved"
            )

        entry = PayoutLedgerEntry(
            id=str(uuid.uuid4()),
            approval_id=approval_id,
            recipient_id=approval.recipient_id,
            amount=approval.commission_amount,
            transfer_reference=transfer_reference,
            withdrawn_by_id=actor_id,
            withdrawn_at=_utcnow(),
        )
        self.db.add(entry)

        try:
            # A line already paid through process_payment keeps its payment record
            marked = await self.db.execute(
                update(CommissionApproval)
                .where(
                    CommissionApproval.id == approval_id,
                    CommissionApproval.payment_status == PaymentStatus.PENDING,
                )
                .values(
                    payment_status=PaymentStatus.COMPLETED,
                    payment_date=entry.withdrawn_at,
                    payment_reference=func.coalesce(
                        CommissionApproval.payment_reference, transfer_reference
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            if marked.rowcount == 0:
                logger.debug(f"Commission {approval_id} already paid, payment record left as is")
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await self.get_ledger_entry(approval_id)
            if not winner:
                raise
            logger.info(f"Concurrent withdrawal for {approval_id} resolved to entry {winner.id}")
            return WithdrawResult(entry=winner, created=False)

        logger.info(
            f"Withdrawal recorded for commission {approval_id}: "
            f"{Money.parse(entry.amount)} to {entry.recipient_id} by {actor_id}"
        )
        warnings = await emit_event(
            EventType.COMMISSION_WITHDRAWN,
            {
                "approval_id": approval_id,
                "ledger_entry_id": entry.id,
                "amount": str(Money.parse(entry.amount)),
                "transfer_reference": transfer_reference,
            },
            target_user_id=entry.recipient_id,
        )
        return WithdrawResult(entry=entry, created=True, warnings=warnings)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_approval(self, approval_id: str) -> CommissionApproval:
        return await self._load_approval(approval_id)

    async def list_approvals(
        self,
        recipient_id: Optional[str] = None,
        deal_id: Optional[str] = None,
        approval_status: Optional[ApprovalStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[CommissionApproval]:
        """List approval lines, newest first."""
        query = select(CommissionApproval)
        if recipient_id:
            query = query.where(CommissionApproval.recipient_id == recipient_id)
        if deal_id:
            query = query.where(CommissionApproval.deal_id == deal_id)
        if approval_status:
            query = query.where(CommissionApproval.approval_status == ApprovalStatus(approval_status))

        query = query.order_by(
            CommissionApproval.created_at.desc(),
            CommissionApproval.deal_id,
            CommissionApproval.level,
        ).offset(offset).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_earnings_summary(self, recipient_id: str) -> EarningsSummary:
        """Totals for one partner's commission lines, by where they are in the lifecycle."""
        result = await self.db.execute(
            select(CommissionApproval).where(CommissionApproval.recipient_id == recipient_id)
        )
        approvals = result.scalars().all()

        def total(lines: List[CommissionApproval]) -> Money:
            return Money.sum(Money.parse(Decimal(a.commission_amount)) for a in lines)

        return EarningsSummary(
            recipient_id=recipient_id,
            pending_approval=total([a for a in approvals if a.approval_status == ApprovalStatus.PENDING]),
            approved_unpaid=total([
                a for a in approvals
                if a.approval_status == ApprovalStatus.APPROVED and a.payment_status == PaymentStatus.PENDING
            ]),
            paid=total([a for a in approvals if a.payment_status == PaymentStatus.COMPLETED]),
            rejected=total([a for a in approvals if a.approval_status == ApprovalStatus.REJECTED]),
            line_count=len(approvals),
        )
