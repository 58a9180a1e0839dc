"""Order notification emails.

Delivery is best-effort: every failure is logged and swallowed so that a
broken mail server never changes the outcome of an order.  Messages that
belong to the same event are sent concurrently.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

import structlog
from django.conf import settings
from django.core.mail import EmailMessage

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)

USPS_TRACKING_URL = "https://tools.usps.com/go/TrackConfirmAction?tLabels="
SIGNATURE = "-- Certified Mail Sender"


@dataclass(frozen=True)
class Notification:
    kind: str
    to: Sequence[str]
    subject: str
    body: str


def _dollars(cents: Optional[int]) -> str:
    if cents is None:
        return "unknown"
    return f"${cents / 100:.2f}"


def _lines(*parts: str) -> str:
    return "\n".join(parts)


class EmailNotifier:
    """Builds and sends every email the order lifecycle produces."""

    def __init__(
        self,
        owner_email: str = "",
        from_email: Optional[str] = None,
        base_url: str = "",
        max_workers: int = 4,
    ) -> None:
        self._owner_email = owner_email
        self._from_email = from_email
        self._base_url = base_url.rstrip("/")
        self._max_workers = max_workers

    @classmethod
    def from_settings(cls) -> EmailNotifier:
        return cls(
            owner_email=settings.OWNER_EMAIL,
            from_email=settings.DEFAULT_FROM_EMAIL,
            base_url=settings.BASE_URL,
        )

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    def order_submitted(self, order: Order) -> None:
        """Customer confirmation + owner new-order notice."""
        self.send(self.customer_confirmation(order), self.owner_new_order(order))

    def fulfillment_failed(self, order: Order, error: str) -> None:
        """Operator alert with the raw error; customer gets a generic notice."""
        self.send(self.failure_alert(order, error), self.customer_failure_notice(order))

    def payment_mismatch(self, order: Order, expected_cents: int, charged_cents: int) -> None:
        self.send(
            self.mismatch_alert(order, expected_cents, charged_cents),
            self.customer_review_notice(order),
        )

    def retries_exhausted(self, order: Order, error: str) -> None:
        self.send(self.exhausted_alert(order, error))

    def invalid_payment_event(
        self,
        session_id: Optional[str],
        amount_cents: Optional[int],
        error: str,
        customer_email: str = "",
    ) -> None:
        """Operator alert for a paid session that could not become an order."""
        self.send(self.invalid_event_alert(session_id, amount_cents, error, customer_email))

    # ------------------------------------------------------------------
    # Message builders
    # ------------------------------------------------------------------

    def order_url(self, order: Order) -> str:
        return f"{self._base_url}/order/{order.order_token}"

    def customer_confirmation(self, order: Order) -> Notification:
        tracking = order.tracking_number or ""
        body = [
            "Your certified letter has been submitted for printing and mailing via USPS.",
            "",
            f"Tracking Number: {tracking or 'Will be assigned shortly'}",
            f"Recipient: {order.recipient_name}",
            f"Address: {order.recipient_address}",
        ]
        if order.return_receipt:
            body.append(
                "Electronic Return Receipt: Included (you will be notified upon delivery)"
            )
        body += [
            "",
            "You can track your letter at:",
            f"{USPS_TRACKING_URL}{tracking}",
            "",
            "Order status and proof documents:",
            self.order_url(order),
            "",
            SIGNATURE,
        ]
        return Notification(
            kind="customer_confirmation",
            to=order.customer_recipients,
            subject=f"Your Certified Mail is on its way - Tracking #{tracking or 'pending'}",
            body=_lines(*body),
        )

    def owner_new_order(self, order: Order) -> Optional[Notification]:
        if not self._owner_email:
            return None
        return Notification(
            kind="owner_new_order",
            to=[self._owner_email],
            subject=f"New order #{order.pk} - {order.recipient_name}",
            body=_lines(
                "New certified mail order received.",
                "",
                f"Order ID: {order.pk}",
                f"Customer Email: {order.customer_email}",
                f"Sender: {order.sender_name}",
                f"Recipient: {order.recipient_name}",
                f"Recipient Address: {order.recipient_address}",
                f"Return Receipt: {'Yes' if order.return_receipt else 'No'}",
                f"Amount: {_dollars(order.amount_cents)}",
                f"Tracking: {order.tracking_number or 'pending'}",
                "",
                SIGNATURE,
            ),
        )

    def failure_alert(self, order: Order, error: str) -> Optional[Notification]:
        if not self._owner_email:
            return None
        return Notification(
            kind="failure_alert",
            to=[self._owner_email],
            subject=f"ALERT: Order #{order.pk} - mail send failed",
            body=_lines(
                f"Order #{order.pk} failed to send via SimpleCertifiedMail.",
                "",
                f"Error: {error}",
                f"Retries so far: {order.retry_count}",
                "",
                "The retry sweeper will re-submit it automatically when possible.",
                "Otherwise retry manually or issue a refund via Stripe.",
                "",
                SIGNATURE,
            ),
        )

    def customer_failure_notice(self, order: Order) -> Notification:
        return Notification(
            kind="customer_failure_notice",
            to=order.customer_recipients,
            subject="We hit a problem mailing your certified letter",
            body=_lines(
                "Your payment was received, but we hit a problem handing your letter",
                "to the mail service. Our team has been alerted and we will email you",
                "as soon as it is on its way. No action is needed on your part.",
                "",
                f"Order status: {self.order_url(order)}",
                "",
                SIGNATURE,
            ),
        )

    def mismatch_alert(
        self, order: Order, expected_cents: int, charged_cents: int
    ) -> Optional[Notification]:
        if not self._owner_email:
            return None
        return Notification(
            kind="mismatch_alert",
            to=[self._owner_email],
            subject=f"ALERT: Order #{order.pk} - payment mismatch",
            body=_lines(
                f"Order #{order.pk} was charged less than the expected price.",
                "",
                f"Expected: {_dollars(expected_cents)}",
                f"Charged: {_dollars(charged_cents)}",
                f"Payment session: {order.payment_session_id}",
                f"Customer Email: {order.customer_email}",
                "",
                "The letter was NOT mailed. Review the payment and refund or resubmit.",
                "",
                SIGNATURE,
            ),
        )

    def customer_review_notice(self, order: Order) -> Notification:
        return Notification(
            kind="customer_review_notice",
            to=order.customer_recipients,
            subject="Your certified mail order is under review",
            body=_lines(
                "We received your order, but the payment needs a manual review before",
                "your letter can be mailed. We will contact you shortly.",
                "",
                f"Order status: {self.order_url(order)}",
                "",
                SIGNATURE,
            ),
        )

    def exhausted_alert(self, order: Order, error: str) -> Optional[Notification]:
        if not self._owner_email:
            return None
        return Notification(
            kind="exhausted_alert",
            to=[self._owner_email],
            subject=f"ALERT: Order #{order.pk} - retries exhausted",
            body=_lines(
                f"Order #{order.pk} failed {order.retry_count} automatic retries and",
                "will not be retried again.",
                "",
                f"Last error: {error}",
                "",
                "Please retry manually or issue a refund via Stripe.",
                "",
                SIGNATURE,
            ),
        )

    def invalid_event_alert(
        self,
        session_id: Optional[str],
        amount_cents: Optional[int],
        error: str,
        customer_email: str = "",
    ) -> Optional[Notification]:
        if not self._owner_email:
            return None
        return Notification(
            kind="invalid_event_alert",
            to=[self._owner_email],
            subject=f"ALERT: Paid session {session_id or '(no id)'} - no order created",
            body=_lines(
                "A completed payment could not be turned into an order.",
                "",
                f"Payment session: {session_id or 'missing'}",
                f"Amount: {_dollars(amount_cents)}",
                f"Customer Email: {customer_email or 'unknown'}",
                f"Error: {error}",
                "",
                "The letter was NOT mailed. Contact the customer or issue a refund via Stripe.",
                "",
                SIGNATURE,
            ),
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send(self, *notifications: Optional[Notification]) -> None:
        """Deliver concurrently; never raises."""
        pending: List[Notification] = [n for n in notifications if n is not None]
        if not pending:
            return
        if len(pending) == 1:
            self._deliver(pending[0])
            return
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(pending))) as pool:
            list(pool.map(self._deliver, pending))

    def _deliver(self, notification: Notification) -> None:
        log = logger.bind(kind=notification.kind)
        recipients = [r for r in notification.to if r]
        if not recipients:
            log.warning("notifications.no_recipients")
            return
        try:
            EmailMessage(
                subject=notification.subject,
                body=notification.body,
                from_email=self._from_email,
                to=recipients,
            ).send(fail_silently=False)
        except Exception as exc:
            log.error("notifications.send_failed", error=str(exc))
            return
        log.info("notifications.sent", recipients=len(recipients))


def get_notifier() -> EmailNotifier:
    return EmailNotifier.from_settings()
