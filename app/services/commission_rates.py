"""Commission rate table: tiered base commission and fixed level percentages."""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import UnknownBusinessCategory, ValidationFailed
from app.models.business_type import BusinessType

logger = logging.getLogger(__name__)


# Override percentages by referral level. Same for every deal and category.
LEVEL_1_PERCENTAGE = Decimal("60")  # Direct referrer
LEVEL_2_PERCENTAGE = Decimal("20")  # Referrer's inviter
LEVEL_3_PERCENTAGE = Decimal("10")  # Inviter's inviter

LEVEL_PERCENTAGES: Dict[int, Decimal] = {
    1: LEVEL_1_PERCENTAGE,
    2: LEVEL_2_PERCENTAGE,
    3: LEVEL_3_PERCENTAGE,
}

LEVEL_ROLES: Dict[int, str] = {
    1: "Direct Referrer",
    2: "Level 2 Upline",
    3: "Level 3 Upline",
}

MAX_CHAIN_DEPTH = len(LEVEL_PERCENTAGES)


@dataclass(frozen=True)
class RateBracket:
    """One volume bracket of a business category."""
    category: str
    min_volume: Decimal
    max_volume: Decimal
    base_commission: Decimal

    def contains(self, volume: Decimal) -> bool:
        return self.min_volume <= volume <= self.max_volume

    def distance_to(self, volume: Decimal) -> Decimal:
        if volume < self.min_volume:
            return self.min_volume - volume
        if volume > self.max_volume:
            return volume - self.max_volume
        return Decimal("0")


# Seed rows for the business_type table
DEFAULT_BUSINESS_TYPES: List[Dict[str, object]] = [
    {
        "slug": "small_trader",
        "category": "small_trader",
        "name": "Small Business and Traders",
        "description": "Independent shops, small retailers, sole traders",
        "base_commission": Decimal("150.00"),
        "min_volume": Decimal("5000"),
        "max_volume": Decimal("50000"),
        "processing_time": "24-48 hours",
    },
    {
        "slug": "hospitality",
        "category": "hospitality",
        "name": "Cafes, Restaurants and Hospitality",
        "description": "Restaurants, bars, cafes, hospitality venues",
        "base_commission": Decimal("500.00"),
        "min_volume": Decimal("50000"),
        "max_volume": Decimal("500000"),
        "processing_time": "48-72 hours",
    },
    {
        "slug": "multisite",
        "category": "multisite",
        "name": "Multisite Business and Group Locations",
        "description": "Multi-location businesses, franchises, corporate groups",
        "base_commission": Decimal("5000.00"),
        "min_volume": Decimal("500000"),
        "max_volume": Decimal("10000000"),
        "processing_time": "3-5 days",
    },
]

DEFAULT_BRACKETS: List[RateBracket] = [
    RateBracket(
        category=str(row["category"]),
        min_volume=row["min_volume"],  # type: ignore[arg-type]
        max_volume=row["max_volume"],  # type: ignore[arg-type]
        base_commission=row["base_commission"],  # type: ignore[arg-type]
    )
    for row in DEFAULT_BUSINESS_TYPES
]


def level_percentage(level: int) -> Decimal:
    """Override percentage for a referral level (1, 2 or 3)."""
    try:
        return LEVEL_PERCENTAGES[level]
    except KeyError:
        raise ValidationFailed(f"Unknown commission level: {level}")


def base_commission(
    category: str,
    volume: Decimal,
    brackets: Sequence[RateBracket] = DEFAULT_BRACKETS,
) -> Decimal:
    """
    Look up the flat base commission for a category and monthly volume.

    Brackets are scanned in ascending ``min_volume`` order and the first one
    containing the volume wins. When none contains it, the bracket nearest by
    volume is used; on a tie the lower bracket wins.

    Raises:
        UnknownBusinessCategory: the category has no brackets
    """
    candidates = sorted(
        (b for b in brackets if b.category == category),
        key=lambda b: (b.min_volume, b.max_volume),
    )
    if not candidates:
        raise UnknownBusinessCategory(f"No commission brackets for category '{category}'")

    volume = Decimal(str(volume))
    for bracket in candidates:
        if bracket.contains(volume):
            return bracket.base_commission

    nearest = min(candidates, key=lambda b: b.distance_to(volume))
    logger.debug(
        f"Volume {volume} outside every {category} bracket, "
        f"using nearest {nearest.min_volume}-{nearest.max_volume}"
    )
    return nearest.base_commission


class CommissionRateService:
    """Loads the persisted rate table and seeds it on first start."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_business_types(self) -> List[BusinessType]:
        result = await self.db.execute(
            select(BusinessType).order_by(BusinessType.category, BusinessType.min_volume)
        )
        return list(result.scalars().all())

    async def get_business_type(self, business_type_id: str) -> Optional[BusinessType]:
        return await self.db.get(BusinessType, business_type_id)

    async def load_brackets(self) -> List[RateBracket]:
        """Rate brackets from the database, falling back to the defaults when empty."""
        rows = await self.list_business_types()
        if not rows:
            return list(DEFAULT_BRACKETS)
        return [
            RateBracket(
                category=row.category,
                min_volume=Decimal(row.min_volume),
                max_volume=Decimal(row.max_volume),
                base_commission=Decimal(row.base_commission),
            )
            for row in rows
        ]

    async def estimate_for(self, business_type: BusinessType, volume: Optional[Decimal]) -> Decimal:
        """Base commission for a deal of this business type at this volume."""
        if volume is None:
            return Decimal(business_type.base_commission)
        brackets = await self.load_brackets()
        return base_commission(business_type.category, volume, brackets)

    async def seed_business_types(self) -> int:
        """Insert the default business types if the table is empty."""
        count = (await self.db.execute(select(func.count(BusinessType.id)))).scalar() or 0
        if count:
            return 0

        for row in DEFAULT_BUSINESS_TYPES:
            self.db.add(BusinessType(id=str(uuid.uuid4()), **row))
        await self.db.commit()
        logger.info(f"Seeded {len(DEFAULT_BUSINESS_TYPES)} business types")
        return len(DEFAULT_BUSINESS_TYPES)
