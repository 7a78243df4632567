"""
Commission breakdown calculator.

Splits a deal's payable commission across the referral chain (60/20/10)
and lets an admin override individual lines before the breakdown is
finalized. Nothing here writes to the database.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    BreakdownMismatch,
    DealNotFound,
    InvalidAmount,
    InvalidOverride,
    NoReferrerChain,
)
from app.models.deal import Deal
from app.services.commission_rates import LEVEL_ROLES, level_percentage
from app.services.deal_pipeline import is_commission_eligible
from app.services.referral_chain import ReferralChainResolver
from app.utils.money import Money, MoneyInput, allocate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionLine:
    """One recipient's share of a deal's commission."""
    level: int
    recipient_id: str
    role: str
    percentage: Decimal
    auto_amount: Money
    final_amount: Money
    overridden: bool = False


@dataclass(frozen=True)
class Breakdown:
    """
    The proposed split of a deal's commission.

    ``remainder`` is ``total_payable_amount`` minus the automatic amounts:
    the unallocated share plus any rounding. ``total_distributed`` is the sum
    of final amounts and may differ from the payable total once overrides
    are applied.
    """
    deal_id: str
    total_payable_amount: Money
    lines: Tuple[CommissionLine, ...]
    total_distributed: Money
    remainder: Money
    warnings: Tuple[str, ...] = ()

    def line_for(self, level: int) -> CommissionLine:
        for line in self.lines:
            if line.level == level:
                return line
        raise InvalidOverride(f"Breakdown for deal {self.deal_id} has no level {level} line")


@dataclass(frozen=True)
class SubmittedLine:
    """A breakdown line as sent back by a client for finalization."""
    level: int
    recipient_id: str
    final_amount: Money
    overridden: bool = False


def build_breakdown(
    deal_id: str,
    total_payable_amount: Money,
    chain: Tuple[str, ...],
    warnings: Tuple[str, ...] = (),
) -> Breakdown:
    """Split ``total_payable_amount`` over a resolved chain (level 1 first)."""
    if not total_payable_amount.is_positive():
        raise InvalidAmount(f"Total payable amount must be positive, got {total_payable_amount}")
    if not chain:
        raise NoReferrerChain(f"Deal {deal_id} has no referrer")

    levels = list(range(1, len(chain) + 1))
    percentages = [level_percentage(level) for level in levels]
    amounts, remainder = allocate(total_payable_amount, percentages)

    lines = tuple(
        CommissionLine(
            level=level,
            recipient_id=recipient_id,
            role=LEVEL_ROLES[level],
            percentage=percentage,
            auto_amount=amount,
            final_amount=amount,
        )
        for level, recipient_id, percentage, amount in zip(levels, chain, percentages, amounts)
    )
    return Breakdown(
        deal_id=deal_id,
        total_payable_amount=total_payable_amount,
        lines=lines,
        total_distributed=Money.sum(line.final_amount for line in lines),
        remainder=remainder,
        warnings=warnings,
    )


def apply_override(breakdown: Breakdown, level: int, new_amount: MoneyInput) -> Breakdown:
    """
    Return a copy of ``breakdown`` with one line's final amount replaced.

    Zero is a valid override ("pay nothing at this level"); negative amounts
    are rejected. Other lines and the remainder are left as they were.
    """
    amount = Money.parse(new_amount)
    if amount.is_negative():
        raise InvalidAmount(f"Override amount cannot be negative, got {amount}")

    target = breakdown.line_for(level)
    updated = replace(target, final_amount=amount, overridden=True)
    lines = tuple(updated if line.level == level else line for line in breakdown.lines)

    return replace(
        breakdown,
        lines=lines,
        total_distributed=Money.sum(line.final_amount for line in lines),
    )


class CommissionCalculatorService:
    """Calculates breakdowns for deals in the database."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.chain_resolver = ReferralChainResolver(db)

    async def calculate(self, deal_id: str, total_payable_amount: MoneyInput) -> Breakdown:
        """
        Build the automatic breakdown for a deal.

        Raises:
            InvalidAmount: total is not positive
            DealNotFound: no such deal
            NoReferrerChain: the deal has nobody to pay
        """
        total = Money.parse(total_payable_amount)
        if not total.is_positive():
            raise InvalidAmount(f"Total payable amount must be positive, got {total}")

        deal = await self.db.get(Deal, deal_id)
        if not deal:
            raise DealNotFound(f"Deal {deal_id} not found")
        if not deal.referrer_id:
            raise NoReferrerChain(f"Deal {deal_id} has no referrer")

        warnings: Tuple[str, ...] = ()
        if not is_commission_eligible(deal.stage):
            warnings = (f"Deal is at stage {deal.stage.value}; commission is normally paid from approved onwards",)

        chain = await self.chain_resolver.resolve_chain(deal.referrer_id)
        breakdown = build_breakdown(deal.id, total, tuple(chain), warnings)

        logger.info(
            f"Calculated commission for deal {deal_id}: total {total}, "
            f"{len(breakdown.lines)} lines, remainder {breakdown.remainder}"
        )
        return breakdown

    async def rebuild(
        self,
        deal_id: str,
        total_payable_amount: MoneyInput,
        submitted: Sequence[SubmittedLine],
    ) -> Breakdown:
        """
        Recalculate a breakdown and re-apply the overrides a client sent back.

        The automatic amounts and recipients always come from the server side;
        the client only contributes which lines were overridden and to what.
        """
        breakdown = await self.calculate(deal_id, total_payable_amount)

        expected = {line.level: line.recipient_id for line in breakdown.lines}
        received = {line.level: line.recipient_id for line in submitted}
        if expected != received:
            raise BreakdownMismatch(
                f"Breakdown lines for deal {deal_id} no longer match the referral chain"
            )

        for line in submitted:
            if line.overridden:
                breakdown = apply_override(breakdown, line.level, line.final_amount)
        return breakdown
