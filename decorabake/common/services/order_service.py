from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from ..db.session import get_session
from ..errors import NotFoundError, StoreError, ValidationError
from ..models.order import ORDER_STATUSES, PAYMENT_STATUSES, Order
from ..utils.codes import next_code
from ..utils.dto import to_order_dto
from ..utils.pagination import paginate
from ..utils.shipping import ShippingData
from ..utils.validators import ensure_positive_int, normalize_email, require_text, to_money
from .email_templates import NotificationEvent
from .ledger_service import LedgerService, normalize_code
from .logging import log_event
from .notification_service import DispatchResult


ORDER_FLOW = ("pending", "processing", "shipped", "delivered")
TERMINAL_ORDER_STATUSES = frozenset({"delivered", "cancelled"})
CUSTOMER_EDITABLE_STATUSES = frozenset({"pending", "processing"})


def check_order_transition(current: str, target: str) -> None:
    """Forward along ORDER_FLOW, cancel from any open state, or re-apply the current status.

    ``delivered`` is only reachable from ``shipped`` so a delivered order always
    carries its tracking metadata.
    """
    if target not in ORDER_STATUSES:
        raise ValidationError(f"invalid order status: {target!r}", field="status")
    if target == current:
        return
    if current in TERMINAL_ORDER_STATUSES:
        raise ValidationError(f"order is {current} and can no longer change status", field="status")
    if target == "cancelled":
        return
    if ORDER_FLOW.index(target) < ORDER_FLOW.index(current):
        raise ValidationError(f"cannot move an order from {current} back to {target}", field="status")
    if target == "delivered" and current != "shipped":
        raise ValidationError("an order must be shipped before it is delivered", field="status")


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a status change. ``order`` is always the committed state."""

    order: Dict[str, Any]
    notification: DispatchResult

    @property
    def email_sent(self) -> bool:
        return self.notification.delivered

    @property
    def email_error(self) -> Optional[str]:
        return self.notification.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "email_sent": self.email_sent,
            "email_error": self.email_error,
            "notification_status": self.notification.status.value,
        }


class OrderService:
    """Order placement hand-off and the order status lifecycle."""

    CODE_PREFIX = "ORD-"

    def __init__(self, dispatcher, ledger: Optional[LedgerService] = None, session_factory=get_session):
        self._dispatcher = dispatcher
        self._session_factory = session_factory
        self._ledger = ledger or LedgerService(session_factory)

    # ---- placement ---------------------------------------------------

    def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a checkout-computed order, consume stock and promo usage, then notify.

        Pricing is not recomputed; the checkout's totals are stored as given.
        Ledger updates share the order's transaction, so a rejected promo code
        or short stock leaves nothing behind.
        """
        fields = self._parse_order_payload(payload)
        supplied_code = str(payload.get("order_code") or "").strip()

        attempts = 1 if supplied_code else 3
        for attempt in range(attempts):
            try:
                snapshot = self._insert_order(fields, supplied_code)
                break
            except IntegrityError as exc:
                if supplied_code:
                    raise ValidationError(f"order code {supplied_code} already exists", field="order_code")
                if attempt == attempts - 1:
                    raise StoreError(f"could not allocate an order code after {attempts} attempts") from exc
                log_event("warning", "order.code_collision", attempt=attempt + 1)

        log_event("info", "order.created", order_code=snapshot["order_code"], items=len(snapshot["items"]),
                  total=snapshot["total"], promo_code=snapshot["promo_code"])
        data = {"order": snapshot}
        customer = self._dispatcher.send(NotificationEvent.ORDER_CONFIRMATION, snapshot["customer"]["email"], data,
                                         reference=snapshot["order_code"])
        operator = self._dispatcher.notify_operator(NotificationEvent.ADMIN_NEW_ORDER, data,
                                                    reference=snapshot["order_code"])
        return {
            "order_code": snapshot["order_code"],
            "order": snapshot,
            "notifications": {"customer": customer.to_dict(), "operator": operator.to_dict()},
        }

    def _insert_order(self, fields: Dict[str, Any], supplied_code: str) -> Dict[str, Any]:
        with self._session_factory() as session:
            if fields["promo_code"]:
                # rejects inactive, expired, exhausted or below-minimum codes
                self._ledger.check_promo_in(session, fields["promo_code"], fields["subtotal"])
            code = supplied_code or next_code(session, Order.order_code, self.CODE_PREFIX)
            now = datetime.utcnow()
            order = Order(id=str(uuid4()), order_code=code, created_at=now, updated_at=now, **fields)
            session.add(order)
            session.flush()
            for item in fields["items"]:
                self._ledger.decrement_stock_in(session, item["product_id"], item["quantity"], item.get("variant_id"))
            if fields["promo_code"]:
                self._ledger.increment_promo_usage_in(session, fields["promo_code"])
            return to_order_dto(order)

    @staticmethod
    def _parse_order_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        raw_items = payload.get("items") or []
        if not raw_items:
            raise ValidationError("an order needs at least one item", field="items")
        items: List[Dict[str, Any]] = []
        for raw in raw_items:
            items.append(
                {
                    "product_id": require_text(raw.get("product_id"), "items.product_id"),
                    "variant_id": raw.get("variant_id") or None,
                    "name": raw.get("name") or "",
                    "unit_price": float(to_money(raw.get("unit_price", raw.get("price")), "items.unit_price")),
                    "quantity": ensure_positive_int(raw.get("quantity", 1), "items.quantity"),
                }
            )

        subtotal = to_money(payload.get("subtotal"), "subtotal")
        shipping_cost = to_money(payload.get("shipping_cost"), "shipping_cost")
        promo_discount = to_money(payload.get("promo_discount"), "promo_discount")
        total = to_money(payload.get("total"), "total")
        if total <= 0:
            raise ValidationError("total must be > 0", field="total")
        promo_code = normalize_code(payload.get("promo_code")) or None
        if promo_discount > 0 and not promo_code:
            raise ValidationError("promo_discount given without a promo_code", field="promo_code")

        customer = payload.get("customer") or {}
        email = normalize_email(customer.get("email"))
        if not email:
            raise ValidationError("customer email is required", field="customer.email")
        shipping = payload.get("shipping") or {}

        status = str(payload.get("status") or "pending").strip().lower()
        if status not in CUSTOMER_EDITABLE_STATUSES:
            raise ValidationError("new orders start as pending or processing", field="status")
        payment_status = str(payload.get("payment_status") or "pending").strip().lower()
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"invalid payment status: {payment_status!r}", field="payment_status")

        return {
            "items": items,
            "subtotal": subtotal,
            "shipping_cost": shipping_cost,
            "promo_code": promo_code,
            "promo_discount": promo_discount,
            "total": total,
            "currency": (payload.get("currency") or "AUD").upper(),
            "customer_email": email,
            "customer_first_name": customer.get("first_name"),
            "customer_last_name": customer.get("last_name"),
            "customer_phone": customer.get("phone"),
            "shipping_address": shipping.get("address"),
            "shipping_city": shipping.get("city"),
            "shipping_state": shipping.get("state"),
            "shipping_postcode": shipping.get("postcode"),
            "status": status,
            "payment_method": payload.get("payment_method") or "card",
            "payment_status": payment_status,
            "notes": payload.get("notes"),
        }

    # ---- lifecycle ---------------------------------------------------

    def transition(
        self,
        order_code: str,
        new_status: str,
        shipping_data: Optional[Dict[str, Any]] = None,
        notify: bool = True,
    ) -> TransitionResult:
        """Operator status change. Persists first, then notifies; notification never undoes the change."""
        status = str(new_status or "").strip().lower()
        if status not in ORDER_STATUSES:
            raise ValidationError(f"invalid order status: {new_status!r}", field="status")
        shipping = None
        if status == "shipped":
            shipping = ShippingData.from_mapping(shipping_data)
        elif shipping_data:
            raise ValidationError("shipping data is only accepted when marking an order shipped", field="shipping_data")
        return self._apply_status(order_code, status, shipping, notify, guard=check_order_transition)

    def cancel_by_customer(self, order_code: str) -> TransitionResult:
        def guard(current: str, target: str) -> None:
            if current not in CUSTOMER_EDITABLE_STATUSES:
                raise ValidationError("Order cannot be cancelled at this stage", field="status")

        return self._apply_status(order_code, "cancelled", None, True, guard=guard)

    def _apply_status(
        self,
        order_code: str,
        status: str,
        shipping: Optional[ShippingData],
        notify: bool,
        guard: Callable[[str, str], None],
    ) -> TransitionResult:
        with self._session_factory() as session:
            order = self._get_in(session, order_code)
            previous = order.status
            guard(previous, status)
            order.status = status
            if shipping is not None:
                order.tracking_number = shipping.tracking_number
                order.courier = shipping.courier
                order.tracking_url = shipping.tracking_url
                order.delivery_days = shipping.delivery_days
            order.updated_at = datetime.utcnow()
            session.flush()
            snapshot = to_order_dto(order)

        log_event("info", "order.transitioned", order_code=snapshot["order_code"], previous=previous, status=status)
        if notify:
            notification = self._dispatcher.send(
                NotificationEvent.for_order_status(status),
                snapshot["customer"]["email"],
                {"order": snapshot, "shipping": snapshot["shipping_metadata"]},
                reference=snapshot["order_code"],
            )
        else:
            notification = DispatchResult.disabled("not requested")
        return TransitionResult(snapshot, notification)

    def update_shipping_address(self, order_code: str, address: Dict[str, Any]) -> Dict[str, Any]:
        with self._session_factory() as session:
            order = self._get_in(session, order_code)
            if order.status not in CUSTOMER_EDITABLE_STATUSES:
                raise ValidationError("Shipping address cannot be changed at this stage", field="status")
            order.shipping_address = require_text(address.get("address"), "address")
            order.shipping_city = require_text(address.get("city"), "city")
            order.shipping_state = (address.get("state") or "").strip()
            order.shipping_postcode = require_text(address.get("postcode"), "postcode")
            order.updated_at = datetime.utcnow()
            session.flush()
            log_event("info", "order.address_updated", order_code=order.order_code)
            return to_order_dto(order)

    # ---- queries -----------------------------------------------------

    def get_order(self, order_code: str) -> Dict[str, Any]:
        with self._session_factory() as session:
            return to_order_dto(self._get_in(session, order_code))

    def list_orders(self, *, status: Optional[str] = None, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        with self._session_factory() as session:
            q = session.query(Order)
            if status:
                q = q.filter(Order.status == status)
            q = q.order_by(Order.created_at.desc(), Order.order_code.desc())
            return paginate(q, page, page_size, to_order_dto)

    def list_customer_orders(self, email: str) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = (
                session.query(Order)
                .filter(Order.customer_email == normalize_email(email))
                .order_by(Order.created_at.desc())
                .all()
            )
            return [to_order_dto(r) for r in rows]

    @staticmethod
    def _get_in(session, order_code: str) -> Order:
        code = (order_code or "").strip()
        order = session.query(Order).filter(Order.order_code == code).first()
        if order is None:
            raise NotFoundError("order", code)
        return order
