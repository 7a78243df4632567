"""Commission approval and payout ledger models."""

from sqlalchemy import (
    JSON,
    Boolean,
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


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"      # Waiting for the recipient
    APPROVED = "approved"    # Recipient accepted the amount
    REJECTED = "rejected"    # Recipient declined the amount


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"      # Not yet paid
    COMPLETED = "completed"  # Paid out, approval is now immutable


class CommissionFinalization(Base):
    """
    One row per deal whose commission breakdown has been finalized.

    The primary key on ``deal_id`` is what makes finalize safe against
    concurrent double submission.
    """

    __tablename__ = "commission_finalization"

    deal_id = Column(String, ForeignKey("deal.id"), primary_key=True)
    total_payable_amount = Column(Numeric(12, 2), nullable=False)
    total_distributed = Column(Numeric(12, 2), nullable=False)
    payment_reference = Column(String, nullable=True)
    finalized_by_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    deal = relationship("Deal")


class CommissionApproval(Base):
    """
    One line of a finalized commission breakdown, awaiting the recipient.

    Approval decision and payment progress are tracked independently:
    approval_status pending -> approved | rejected, payment_status
    pending -> completed (only once approved).
    """

    __tablename__ = "commission_approval"

    id = Column(String, primary_key=True)

    # Links
    deal_id = Column(String, ForeignKey("deal.id"), nullable=False, index=True)
    recipient_id = Column(String, ForeignKey("partner.id"), nullable=False, index=True)

    # Breakdown line
    level = Column(Integer, nullable=False)  # 1 = direct referrer, 2 and 3 = upline
    role = Column(String, nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    auto_amount = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)  # Final amount, override applied
    overridden = Column(Boolean, nullable=False, default=False)
    client_business_name = Column(String, nullable=True)

    # Approval decision
    approval_status = Column(
        Enum(ApprovalStatus, values_callable=lambda enum_class: [e.value for e in enum_class]),
        nullable=False,
        default=ApprovalStatus.PENDING,
        index=True,
    )
    decided_at = Column(DateTime, nullable=True)
    decided_by_id = Column(String, nullable=True)

    # Payment
    payment_status = Column(
        Enum(PaymentStatus, values_callable=lambda enum_class: [e.value for e in enum_class]),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    payment_date = Column(DateTime, nullable=True)
    payment_reference = Column(String, nullable=True)

    # Notes and snapshot of the breakdown this line came from
    admin_notes = Column(Text, nullable=True)
    rates_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("deal_id", "level", name="uq_commission_approval_deal_level"),
    )

    # Relationships
    deal = relationship("Deal")
    recipient = relationship("Partner", foreign_keys=[recipient_id])
    ledger_entry = relationship("PayoutLedgerEntry", back_populates="approval", uselist=False)


class PayoutLedgerEntry(Base):
    """Record that a commission line was actually paid out."""

    __tablename__ = "payout_ledger_entry"

    id = Column(String, primary_key=True)
    approval_id = Column(String, ForeignKey("commission_approval.id"), nullable=False, unique=True)

    recipient_id = Column(String, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    transfer_reference = Column(String, nullable=True)  # Bank transfer ID, if the admin has one

    withdrawn_by_id = Column(String, nullable=False)
    withdrawn_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    approval = relationship("CommissionApproval", back_populates="ledger_entry")
