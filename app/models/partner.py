"""Partner model: the referrers who submit deals and earn commission."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, func
from sqlalchemy.orm import relationship

from app.models.base import Base


class Partner(Base):
    """
    A referral partner.

    ``parent_partner_id`` points at the partner who invited this one. The
    chain of parents is the upline that shares in commission (levels 2 and 3).
    """

    __tablename__ = "partner"

    id = Column(String, primary_key=True)
    partner_id = Column(String, unique=True, nullable=True, index=True)  # Human-readable, e.g. "PH-0042"
    email = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    company = Column(String, nullable=True)

    # MLM structure
    parent_partner_id = Column(
        String, ForeignKey("partner.id", ondelete="SET NULL"), nullable=True, index=True
    )
    referral_code = Column(String, unique=True, nullable=True, index=True)

    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    parent = relationship("Partner", remote_side=[id], foreign_keys=[parent_partner_id])

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email
