from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..db.session import get_session
from ..errors import NotFoundError, ValidationError
from ..models.order import Order
from ..models.refund import MESSAGE_SENDERS, REFUND_STATUSES, Refund, RefundMessage
from ..utils.codes import next_code
from ..utils.dto import to_refund_dto
from ..utils.validators import normalize_email, require_text, to_money
from .email_templates import NotificationEvent
from .logging import log_event
from .notification_service import DispatchResult


# forward-only: a decided refund can't be reopened, a processed one can't change at all
REFUND_TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"reviewing", "approved", "denied"}),
    "reviewing": frozenset({"approved", "denied"}),
    "approved": frozenset({"processed", "denied"}),
    "denied": frozenset(),
    "processed": frozenset(),
}

SENDER_ALIASES = {"admin": "operator"}


def check_refund_transition(current: str, target: str) -> None:
    if target not in REFUND_STATUSES:
        raise ValidationError(f"invalid refund status: {target!r}", field="status")
    if target == current:
        return
    if target not in REFUND_TRANSITIONS.get(current, frozenset()):
        raise ValidationError(f"cannot move a refund from {current} to {target}", field="status")


@dataclass(frozen=True)
class RefundResult:
    refund: Dict[str, Any]
    notification: DispatchResult

    @property
    def email_sent(self) -> bool:
        return self.notification.delivered

    @property
    def email_error(self) -> Optional[str]:
        return self.notification.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "refund": self.refund,
            "email_sent": self.email_sent,
            "email_error": self.email_error,
            "notification_status": self.notification.status.value,
        }


class RefundService:
    """Refund requests: creation, status decisions and the customer/operator thread."""

    CODE_PREFIX = "REF-"

    def __init__(self, dispatcher, session_factory=get_session):
        self._dispatcher = dispatcher
        self._session_factory = session_factory

    def create_refund(
        self,
        order_code: str,
        reason: str,
        amount: Any = None,
        refund_code: Optional[str] = None,
    ) -> RefundResult:
        """Open a refund for an order; the reason becomes the first customer message."""
        text = require_text(reason, "reason")
        supplied_code = (refund_code or "").strip()
        try:
            with self._session_factory() as session:
                order = session.query(Order).filter(Order.order_code == (order_code or "").strip()).first()
                if order is None:
                    raise NotFoundError("order", order_code)
                if session.query(Refund.id).filter(Refund.order_id == order.id).first() is not None:
                    raise ValidationError("Refund request already exists for this order", field="order_code")
                value = order.total if amount is None else to_money(amount, "amount")
                if value <= 0:
                    raise ValidationError("amount must be > 0", field="amount")
                if value > order.total:
                    raise ValidationError(f"amount {value} exceeds the order total {order.total}", field="amount")
                now = datetime.utcnow()
                refund = Refund(
                    id=str(uuid4()),
                    refund_code=supplied_code or next_code(session, Refund.refund_code, self.CODE_PREFIX),
                    order_id=order.id,
                    order_code=order.order_code,
                    customer_email=order.customer_email,
                    customer_first_name=order.customer_first_name,
                    customer_last_name=order.customer_last_name,
                    customer_phone=order.customer_phone,
                    amount=value,
                    reason=text,
                    status="pending",
                    created_at=now,
                    updated_at=now,
                )
                session.add(refund)
                session.add(RefundMessage(id=str(uuid4()), refund_id=refund.id, seq=1, sender="customer",
                                          body=text, created_at=now))
                session.flush()
                session.refresh(refund)
                snapshot = to_refund_dto(refund)
        except IntegrityError:
            raise ValidationError("refund code or order already has a refund request", field="refund_code")

        log_event("info", "refund.created", refund_code=snapshot["refund_code"], order_code=snapshot["order_code"],
                  amount=snapshot["amount"])
        notification = self._dispatcher.notify_operator(
            NotificationEvent.ADMIN_NEW_REFUND, {"refund": snapshot}, reference=snapshot["refund_code"]
        )
        return RefundResult(snapshot, notification)

    def set_status(
        self,
        refund_code: str,
        new_status: str,
        admin_notes: Optional[str] = None,
        notify: bool = True,
    ) -> RefundResult:
        status = str(new_status or "").strip().lower()
        with self._session_factory() as session:
            refund = self._get_in(session, refund_code)
            previous = refund.status
            check_refund_transition(previous, status)
            refund.status = status
            if admin_notes:
                refund.admin_notes = str(admin_notes).strip()
            now = datetime.utcnow()
            if status == "processed" and refund.processed_at is None:
                refund.processed_at = now
            refund.updated_at = now
            session.flush()
            snapshot = to_refund_dto(refund)

        log_event("info", "refund.transitioned", refund_code=snapshot["refund_code"], previous=previous, status=status)
        if notify:
            notification = self._dispatcher.send(
                NotificationEvent.for_refund_status(status),
                snapshot["customer"]["email"],
                {"refund": snapshot},
                reference=snapshot["refund_code"],
            )
        else:
            notification = DispatchResult.disabled("not requested")
        return RefundResult(snapshot, notification)

    def append_message(self, refund_code: str, sender: str, body: str, notify: bool = True) -> RefundResult:
        """Append to the thread. Operator messages are emailed to the customer; status is untouched."""
        role = str(sender or "").strip().lower()
        role = SENDER_ALIASES.get(role, role)
        if role not in MESSAGE_SENDERS:
            raise ValidationError(f"invalid sender: {sender!r}", field="sender")
        text = require_text(body, "body")

        for attempt in range(3):
            try:
                snapshot = self._insert_message(refund_code, role, text)
                break
            except IntegrityError:
                # another append took the same sequence number
                if attempt == 2:
                    raise
        log_event("info", "refund.message_appended", refund_code=snapshot["refund_code"], sender=role,
                  seq=snapshot["messages"][-1]["seq"])

        if role == "operator" and notify:
            notification = self._dispatcher.send(
                NotificationEvent.REFUND_MESSAGE,
                snapshot["customer"]["email"],
                {"refund": snapshot, "message": text},
                reference=snapshot["refund_code"],
            )
        else:
            notification = DispatchResult.disabled("not requested")
        return RefundResult(snapshot, notification)

    def _insert_message(self, refund_code: str, role: str, text: str) -> Dict[str, Any]:
        with self._session_factory() as session:
            refund = self._get_in(session, refund_code)
            last = session.query(func.max(RefundMessage.seq)).filter(RefundMessage.refund_id == refund.id).scalar()
            now = datetime.utcnow()
            session.add(RefundMessage(id=str(uuid4()), refund_id=refund.id, seq=(last or 0) + 1,
                                      sender=role, body=text, created_at=now))
            refund.updated_at = now
            session.flush()
            session.refresh(refund)
            return to_refund_dto(refund)

    def get_refund(self, refund_code: str) -> Dict[str, Any]:
        with self._session_factory() as session:
            return to_refund_dto(self._get_in(session, refund_code))

    def list_refunds(self, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            q = session.query(Refund)
            if status:
                q = q.filter(Refund.status == status)
            return [to_refund_dto(r) for r in q.order_by(Refund.created_at.desc()).all()]

    def list_customer_refunds(self, email: str) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = (
                session.query(Refund)
                .filter(Refund.customer_email == normalize_email(email))
                .order_by(Refund.created_at.desc())
                .all()
            )
            return [to_refund_dto(r) for r in rows]

    @staticmethod
    def _get_in(session, refund_code: str) -> Refund:
        code = (refund_code or "").strip()
        refund = session.query(Refund).filter(Refund.refund_code == code).first()
        if refund is None:
            raise NotFoundError("refund", code)
        return refund
