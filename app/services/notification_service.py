"""
Notification Service - tell approvers that something is waiting for them

Recipients and message bodies are resolved inside the request (while the
session is open); delivery runs later as a background task and never raises.
"""
from dataclasses import dataclass
from html import escape
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ExternalServiceFailure
from app.integrations import EmailNotifier
from app.models import AdjustmentRequest, UrgentPurchase
from . import user_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipients: List[str]
    subject: str
    html: str


def build_approval_url(request_id: UUID, token: str) -> str:
    return f"{settings.APP_BASE_URL}/inventory/adjustments/approve/{request_id}?token={token}"


def resolve_approver_emails(
    db: Session,
    target_role: Optional[str],
    requester_id: UUID,
    custom_emails: Optional[List[str]] = None,
) -> List[str]:
    """Explicit addresses win; otherwise every active approver who can see the request"""
    if custom_emails:
        return list(dict.fromkeys(custom_emails))
    approvers = user_service.get_approvers(db, target_role, exclude_user_id=requester_id)
    return sorted({user.email for user in approvers if user.email})


def build_adjustment_notification(
    db: Session,
    request: AdjustmentRequest,
    token: Optional[str] = None,
) -> Notification:
    recipients = resolve_approver_emails(
        db, request.approver_role_target, request.requested_by_user_id, request.custom_approver_emails
    )
    item_name = escape(request.item.item_name) if request.item else str(request.inventory_item_id)
    requester = escape(request.requester.full_name or request.requester.username) if request.requester else "A user"

    body = [
        f"<p>{requester} asked to decrease <b>{item_name}</b> by {request.quantity_to_decrease} "
        f"({escape(request.reason)}).</p>",
        f"<p>Notes: {escape(request.notes)}</p>",
    ]
    if token:
        url = build_approval_url(request.id, token)
        body.append(
            f'<p><a href="{escape(url)}">Review this request</a>. '
            f"The link expires in {settings.APPROVAL_TOKEN_TTL_HOURS} hours and works once.</p>"
        )
    else:
        body.append("<p>Open the inventory approvals page to review it.</p>")

    return Notification(
        recipients=recipients,
        subject=f"[{settings.APP_NAME}] Stock adjustment awaiting approval: {request.item.item_name if request.item else ''}".strip(),
        html="\n".join(body),
    )


def build_urgent_purchase_notification(db: Session, entry: UrgentPurchase) -> Notification:
    recipients = resolve_approver_emails(db, entry.target_approval_role, entry.requested_by_user_id)
    rows = "".join(
        f"<li>{escape(line.matched_item_name)} x {line.quantity}"
        f"{' (batch ' + escape(line.batch_number) + ')' if line.batch_number else ''}</li>"
        for line in entry.items
    )
    return Notification(
        recipients=recipients,
        subject=f"[{settings.APP_NAME}] Urgent purchase awaiting approval ({len(entry.items)} lines)",
        html=f"<p>An urgent purchase was submitted for approval.</p><ul>{rows}</ul>",
    )


async def send_notification(notification: Notification, notifier: Optional[EmailNotifier] = None) -> bool:
    """Deliver a notification; failures are logged, never raised"""
    notifier = notifier or EmailNotifier()
    try:
        return await notifier.send(notification.recipients, notification.subject, notification.html)
    except ExternalServiceFailure as e:
        logger.error(f"Notification '{notification.subject}' to {len(notification.recipients)} recipients failed: {e}")
        return False
