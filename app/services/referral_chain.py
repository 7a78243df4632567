"""Referral chain resolution: who sits above a partner in the upline."""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.partner import Partner
from app.services.commission_rates import MAX_CHAIN_DEPTH

logger = logging.getLogger(__name__)


class ReferralChainResolver:
    """Walks ``parent_partner_id`` links with a hard depth limit."""

    def __init__(self, db: AsyncSession, max_depth: int = MAX_CHAIN_DEPTH):
        self.db = db
        self.max_depth = max_depth

    async def resolve_upline(self, referrer_id: str) -> List[str]:
        """
        Resolve the inviters above a referrer.

        Returns at most ``max_depth - 1`` partner ids: [level2_id, level3_id].
        The walk stops at a missing parent and at the first repeated id, so
        malformed cyclic data can neither loop nor pay someone twice.
        """
        upline: List[str] = []
        seen = {referrer_id}
        current_id: Optional[str] = referrer_id

        while current_id and len(upline) < self.max_depth - 1:
            partner = await self.db.get(Partner, current_id)
            if not partner or not partner.parent_partner_id:
                break

            parent_id = partner.parent_partner_id
            if parent_id in seen:
                logger.warning(f"Referral cycle detected at partner {current_id} -> {parent_id}")
                break
            if not await self.db.get(Partner, parent_id):
                logger.warning(f"Partner {current_id} points at missing parent {parent_id}")
                break

            upline.append(parent_id)
            seen.add(parent_id)
            current_id = parent_id

        return upline

    async def resolve_chain(self, referrer_id: str) -> List[str]:
        """The full commission chain, level 1 first."""
        return [referrer_id] + await self.resolve_upline(referrer_id)
