"""Referral pipeline and commission tables

Revision ID: 20261017_000001
Revises: 
Create Date: 2026-10-17 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


DEAL_STAGES = (
    "quote_request_received",
    "quote_sent",
    "quote_approved",
    "agreement_sent",
    "signed_awaiting_docs",
    "approved",
    "live_confirm_ltr",
    "invoice_received",
    "completed",
    "declined",
)
PRODUCT_TYPES = ("card_payments", "business_funding", "utilities", "insurance", "custom")
QUOTE_DELIVERY_METHODS = ("system", "email")
APPROVAL_STATUSES = ("pending", "approved", "rejected")
PAYMENT_STATUSES = ("pending", "completed")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "partner",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("partner_id", sa.String(), nullable=True, unique=True, index=True),
        sa.Column("email", sa.String(), nullable=False, unique=True, index=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("company", sa.String(), nullable=True),
        sa.Column(
            "parent_partner_id",
            sa.String(),
            sa.ForeignKey("partner.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("referral_code", sa.String(), nullable=True, unique=True, index=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )

    op.create_table(
        "business_type",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False, unique=True, index=True),
        sa.Column("category", sa.String(), nullable=False, index=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_commission", sa.Numeric(10, 2), nullable=False),
        sa.Column("min_volume", sa.Numeric(15, 2), nullable=False),
        sa.Column("max_volume", sa.Numeric(15, 2), nullable=False),
        sa.Column("processing_time", sa.String(), nullable=True),
    )

    op.create_table(
        "deal",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("deal_number", sa.String(), nullable=True, unique=True, index=True),
        sa.Column("referrer_id", sa.String(), sa.ForeignKey("partner.id"), nullable=False, index=True),
        sa.Column("business_type_id", sa.String(), sa.ForeignKey("business_type.id"), nullable=True, index=True),
        sa.Column("business_name", sa.String(), nullable=False, index=True),
        sa.Column("business_email", sa.String(), nullable=True),
        sa.Column("business_phone", sa.String(), nullable=True),
        sa.Column("business_address", sa.Text(), nullable=True),
        sa.Column("product_type", sa.Enum(*PRODUCT_TYPES, name="producttype"), nullable=True),
        sa.Column(
            "quote_delivery_method",
            sa.Enum(*QUOTE_DELIVERY_METHODS, name="quotedeliverymethod"),
            nullable=True,
        ),
        sa.Column("monthly_volume", sa.Numeric(15, 2), nullable=True),
        sa.Column("funding_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("estimated_commission", sa.Numeric(12, 2), nullable=True),
        sa.Column("actual_commission", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "stage",
            sa.Enum(*DEAL_STAGES, name="dealstage"),
            nullable=False,
            server_default="quote_request_received",
            index=True,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    )

    op.create_table(
        "deal_stage_audit",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("deal_id", sa.String(), sa.ForeignKey("deal.id"), nullable=False, index=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("from_stage", sa.String(), nullable=True),
        sa.Column("to_stage", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("product_type", sa.String(), nullable=True),
        sa.Column("quote_delivery_method", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("deal_id", "sequence", name="uq_deal_stage_audit_sequence"),
    )

    op.create_table(
        "commission_finalization",
        sa.Column("deal_id", sa.String(), sa.ForeignKey("deal.id"), primary_key=True),
        sa.Column("total_payable_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_distributed", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("finalized_by_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "commission_approval",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("deal_id", sa.String(), sa.ForeignKey("deal.id"), nullable=False, index=True),
        sa.Column("recipient_id", sa.String(), sa.ForeignKey("partner.id"), nullable=False, index=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("auto_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("overridden", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("client_business_name", sa.String(), nullable=True),
        sa.Column(
            "approval_status",
            sa.Enum(*APPROVAL_STATUSES, name="approvalstatus"),
            nullable=False,
            server_default="pending",
            index=True,
        ),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("decided_by_id", sa.String(), nullable=True),
        sa.Column(
            "payment_status",
            sa.Enum(*PAYMENT_STATUSES, name="paymentstatus"),
            nullable=False,
            server_default="pending",
            index=True,
        ),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("payment_reference", sa.String(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("rates_data", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("deal_id", "level", name="uq_commission_approval_deal_level"),
    )

    op.create_table(
        "payout_ledger_entry",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "approval_id",
            sa.String(),
            sa.ForeignKey("commission_approval.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("recipient_id", sa.String(), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("transfer_reference", sa.String(), nullable=True),
        sa.Column("withdrawn_by_id", sa.String(), nullable=False),
        sa.Column("withdrawn_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("payout_ledger_entry")
    op.drop_table("commission_approval")
    op.drop_table("commission_finalization")
    op.drop_table("deal_stage_audit")
    op.drop_table("deal")
    op.drop_table("business_type")
    op.drop_table("partner")

    bind = op.get_bind()
    for enum_name in ("paymentstatus", "approvalstatus", "dealstage", "quotedeliverymethod", "producttype"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
