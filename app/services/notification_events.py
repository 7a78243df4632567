"""
Notification handlers that subscribe to pipeline and commission events.

Delivery (email, in-app, spreadsheet sync) belongs to external services;
these handlers turn each event into the notification a partner would
receive and hand it to the notification logger.
"""
import logging

from app.services.event_dispatcher import Event, EventType, subscribe

logger = logging.getLogger(__name__)
notification_logger = logging.getLogger("partnerhub.notifications")

_registered = False


def _notify(event: Event, title: str, body: str) -> None:
    message = {
        "type": event.type.value,
        "recipient_id": event.target_user_id,
        "title": title,
        "body": body,
        "timestamp": event.timestamp,
    }
    notification_logger.info(
        f"[{event.type.value}] to {event.target_user_id}: {title} - {body}",
        extra={"notification": message},
    )


async def handle_deal_submitted(event: Event) -> None:
    """Confirm a new referral to the partner who submitted it."""
    data = event.data
    _notify(
        event,
        "Referral received",
        f"{data.get('business_name')} was submitted as {data.get('deal_number')}",
    )


async def handle_deal_stage_changed(event: Event) -> None:
    """Tell the referrer their deal moved."""
    data = event.data
    if not event.target_user_id:
        logger.warning(f"Stage change for deal {data.get('deal_id')} has no referrer to notify")
        return

    to_stage = str(data.get("to_stage", "")).replace("_", " ")
    _notify(event, "Deal update", f"Deal {data.get('deal_id')} is now at {to_stage}")


async def handle_commission_ready(event: Event) -> None:
    """Ask a recipient to approve their commission line."""
    data = event.data
    _notify(
        event,
        "Commission ready for approval",
        f"Level {data.get('level')} commission of {data.get('amount')} on deal {data.get('deal_id')}",
    )


async def handle_commission_decided(event: Event) -> None:
    data = event.data
    _notify(event, "Commission decision recorded", f"Commission {data.get('approval_id')} {data.get('decision')}")


async def handle_commission_paid(event: Event) -> None:
    """Payment confirmation, for both processed payments and withdrawals."""
    data = event.data
    reference = data.get("payment_reference") or data.get("transfer_reference") or "no reference"
    amount = data.get("amount")
    body = f"Commission {data.get('approval_id')} paid ({reference})"
    if amount:
        body = f"{amount} paid for commission {data.get('approval_id')} ({reference})"
    _notify(event, "Commission paid", body)


def register_notification_handlers() -> None:
    """Register notification handlers with the dispatcher (once per process)."""
    global _registered
    if _registered:
        return

    # Deal events
    subscribe(EventType.DEAL_SUBMITTED, handle_deal_submitted)
    subscribe(EventType.DEAL_STAGE_CHANGED, handle_deal_stage_changed)

    # Commission events
    subscribe(EventType.COMMISSION_READY_FOR_APPROVAL, handle_commission_ready)
    subscribe(EventType.COMMISSION_DECIDED, handle_commission_decided)
    subscribe(EventType.COMMISSION_PAID, handle_commission_paid)
    subscribe(EventType.COMMISSION_WITHDRAWN, handle_commission_paid)

    _registered = True
    logger.info("Notification event handlers registered")


def reset_notification_handlers() -> None:
    """Forget registration so handlers can be registered again after a dispatcher clear."""
    global _registered
    _registered = False
