"""SQLAlchemy models for the PartnerHub backend."""

from app.models.partner import Partner  # noqa: F401
from app.models.business_type import BusinessType  # noqa: F401
from app.models.deal import (  # noqa: F401
    Deal,
    DealStage,
    DealStageAudit,
    ProductType,
    QuoteDeliveryMethod,
)
from app.models.commission import (  # noqa: F401
    ApprovalStatus,
    CommissionApproval,
    CommissionFinalization,
    PaymentStatus,
    PayoutLedgerEntry,
)
