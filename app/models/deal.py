"""Deal model for the partner referral pipeline."""

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship
import enum

from app.models.base import Base


class DealStage(str, enum.Enum):
    """Deal pipeline stages, declared in canonical forward order."""
    QUOTE_REQUEST_RECEIVED = "quote_request_received"
    QUOTE_SENT = "quote_sent"
    QUOTE_APPROVED = "quote_approved"
    AGREEMENT_SENT = "agreement_sent"
    SIGNED_AWAITING_DOCS = "signed_awaiting_docs"
    APPROVED = "approved"
    LIVE_CONFIRM_LTR = "live_confirm_ltr"
    INVOICE_RECEIVED = "invoice_received"
    COMPLETED = "completed"
    DECLINED = "declined"


class ProductType(str, enum.Enum):
    CARD_PAYMENTS = "card_payments"
    BUSINESS_FUNDING = "business_funding"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    CUSTOM = "custom"


class QuoteDeliveryMethod(str, enum.Enum):
    SYSTEM = "system"
    EMAIL = "email"


def _enum_column(enum_class, **kwargs) -> Column:
    return Column(
        Enum(enum_class, values_callable=lambda members: [e.value for e in members]),
        **kwargs
    )


class Deal(Base):
    """A business referral submitted by a partner.

    Stage changes go through the pipeline service only; each one bumps
    ``version`` and appends a DealStageAudit row.
    """

    __tablename__ = "deal"

    id = Column(String, primary_key=True)
    deal_number = Column(String, unique=True, nullable=True, index=True)

    # Submitting partner (level 1 of the commission chain)
    referrer_id = Column(String, ForeignKey("partner.id"), nullable=False, index=True)
    business_type_id = Column(String, ForeignKey("business_type.id"), nullable=True, index=True)

    # Business/contact info
    business_name = Column(String, nullable=False, index=True)
    business_email = Column(String, nullable=True)
    business_phone = Column(String, nullable=True)
    business_address = Column(Text, nullable=True)

    # Stage metadata (informational, never gates a transition)
    product_type = _enum_column(ProductType, nullable=True)
    quote_delivery_method = _enum_column(QuoteDeliveryMethod, nullable=True)

    # Value estimates
    monthly_volume = Column(Numeric(15, 2), nullable=True)
    funding_amount = Column(Numeric(15, 2), nullable=True)
    estimated_commission = Column(Numeric(12, 2), nullable=True)
    actual_commission = Column(Numeric(12, 2), nullable=True)  # Written once, by finalize

    # Pipeline position
    stage = _enum_column(
        DealStage,
        nullable=False,
        default=DealStage.QUOTE_REQUEST_RECEIVED,
        index=True,
    )
    version = Column(Integer, nullable=False, default=0)  # Optimistic concurrency counter

    # Notes
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    # Audit trail
    submitted_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    referrer = relationship("Partner", foreign_keys=[referrer_id])
    business_type = relationship("BusinessType")
    stage_history = relationship(
        "DealStageAudit",
        back_populates="deal",
        order_by="DealStageAudit.sequence",
    )


class DealStageAudit(Base):
    """Append-only record of every stage a deal has entered."""

    __tablename__ = "deal_stage_audit"

    id = Column(String, primary_key=True)
    deal_id = Column(String, ForeignKey("deal.id"), nullable=False, index=True)

    # Deal version after this change: 0 for the submission record, then 1, 2, ...
    sequence = Column(Integer, nullable=False)

    from_stage = Column(String, nullable=True)  # Null for the submission record
    to_stage = Column(String, nullable=False)

    actor_id = Column(String, nullable=False)
    notes = Column(Text, nullable=True)

    # Metadata supplied with the change
    product_type = Column(String, nullable=True)
    quote_delivery_method = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("deal_id", "sequence", name="uq_deal_stage_audit_sequence"),
    )

    # Relationships
    deal = relationship("Deal", back_populates="stage_history")
