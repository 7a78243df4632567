"""
Domain errors for the referral pipeline and commission engine.

Every error carries a stable ``code`` so API clients can tell a lost race
("someone else already did this") apart from bad input or a missing record.
The HTTP layer maps the four base kinds onto status codes in ``app.main``.
"""

from typing import Optional


class PartnerHubError(Exception):
    """Base exception for all domain errors."""

    code = "error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or (self.__doc__ or self.code).strip()
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Validation errors (bad input shape or range; never retried)
# ---------------------------------------------------------------------------

class ValidationFailed(PartnerHubError, ValueError):
    """Input failed validation."""

    code = "validation_failed"


class InvalidAmount(ValidationFailed):
    """Amount is not a valid positive money value."""

    code = "invalid_amount"


class InvalidOverride(ValidationFailed):
    """Override does not target a line of this breakdown."""

    code = "invalid_override"


class NoReferrerChain(ValidationFailed):
    """Deal has no referrer, nobody can be paid."""

    code = "no_referrer_chain"


class UnknownBusinessCategory(ValidationFailed):
    """Business category has no rate brackets."""

    code = "unknown_business_category"


class BreakdownMismatch(ValidationFailed):
    """Breakdown does not belong to this deal."""

    code = "breakdown_mismatch"


# ---------------------------------------------------------------------------
# State conflicts (caller ordering mistake or a lost race)
# ---------------------------------------------------------------------------

class StateConflict(PartnerHubError):
    """Operation is not legal in the current state."""

    code = "state_conflict"


class InvalidTransition(StateConflict):
    """Target stage is neither the next stage nor declined."""

    code = "invalid_transition"


class DealTerminal(StateConflict):
    """Deal is completed or declined and cannot move."""

    code = "deal_terminal"


class AlreadyFinalized(StateConflict):
    """Commission for this deal has already been finalized."""

    code = "already_finalized"


class AlreadyDecided(StateConflict):
    """Commission has already been approved or rejected."""

    code = "already_decided"


class NotApproved(StateConflict):
    """Commission has not been approved by its recipient."""

    code = "not_approved"


class AlreadyPaid(StateConflict):
    """Commission payment has already been completed."""

    code = "already_paid"


class Conflict(StateConflict):
    """Concurrent update detected, retry did not succeed."""

    code = "conflict"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class NotFound(PartnerHubError):
    """Record not found."""

    code = "not_found"


class DealNotFound(NotFound):
    """Deal not found."""

    code = "deal_not_found"


class ApprovalNotFound(NotFound):
    """Commission approval not found."""

    code = "approval_not_found"


class PartnerNotFound(NotFound):
    """Partner not found."""

    code = "partner_not_found"


class BusinessTypeNotFound(NotFound):
    """Business type not found."""

    code = "business_type_not_found"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class PermissionDenied(PartnerHubError):
    """Caller may not perform this operation."""

    code = "permission_denied"


class NotRecipient(PermissionDenied):
    """Only the commission recipient may decide on it."""

    code = "not_recipient"
