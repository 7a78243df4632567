"""Business type model: the persisted rows of the commission rate table."""

from sqlalchemy import Column, Numeric, String, Text

from app.models.base import Base


class BusinessType(Base):
    """
    One volume bracket of the base-commission table.

    A business category owns one or more brackets; each bracket pays a flat
    base commission for monthly volumes between ``min_volume`` and
    ``max_volume``.
    """

    __tablename__ = "business_type"

    id = Column(String, primary_key=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    category = Column(String, nullable=False, index=True)  # small_trader, hospitality, multisite
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    base_commission = Column(Numeric(10, 2), nullable=False)
    min_volume = Column(Numeric(15, 2), nullable=False)
    max_volume = Column(Numeric(15, 2), nullable=False)

    processing_time = Column(String, nullable=True)  # e.g. "24-48 hours"
