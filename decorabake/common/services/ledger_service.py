from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Tuple

from sqlalchemy import func, or_, update

from ..db.session import get_session
from ..errors import NotFoundError, ValidationError
from ..models.product import Product, ProductVariant
from ..models.promo_code import PromoCode
from ..utils.dto import to_promo_dto
from ..utils.validators import CENT, ensure_positive_int, to_money
from .logging import log_event


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def promo_is_usable(promo: PromoCode, now: Optional[datetime] = None) -> bool:
    """Active, not expired, and below its usage limit (0 = unlimited)."""
    now = now or datetime.utcnow()
    if not promo.active:
        return False
    if promo.expiry_date is not None and promo.expiry_date < now:
        return False
    limit = int(promo.usage_limit or 0)
    return limit == 0 or int(promo.usage_count or 0) < limit


def compute_discount(promo: PromoCode, order_total: Decimal) -> Decimal:
    if promo.discount_type == "percentage":
        discount = (order_total * Decimal(str(promo.discount_value)) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    else:
        discount = Decimal(str(promo.discount_value)).quantize(CENT)
    return min(discount, order_total)


class LedgerService:
    """Stock and promo-usage counters.

    Every counter change is a single conditional UPDATE so concurrent
    checkouts can't lose increments or drive stock negative. The ``*_in``
    variants run inside a caller's session so order placement can apply
    them in the same transaction as the order insert.
    """

    def __init__(self, session_factory=get_session):
        self._session_factory = session_factory

    # ---- stock -------------------------------------------------------

    def decrement_stock(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> None:
        with self._session_factory() as session:
            self.decrement_stock_in(session, product_id, quantity, variant_id)

    def decrement_stock_in(self, session, product_id: str, quantity: int, variant_id: Optional[str] = None) -> None:
        qty = ensure_positive_int(quantity, "quantity")
        model = ProductVariant if variant_id else Product
        key = variant_id or product_id
        row = session.query(model.id, model.stock).filter(model.id == key).first()
        if row is None:
            raise NotFoundError("variant" if variant_id else "product", key)
        if row.stock is None:
            # untracked inventory
            return
        result = session.execute(
            update(model)
            .where(model.id == key, model.stock.isnot(None), model.stock >= qty)
            .values(stock=model.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ValidationError(f"insufficient stock for {key}", field="quantity")
        log_event("info", "stock.decremented", product_id=product_id, variant_id=variant_id, quantity=qty)

    def get_stock(self, product_id: str) -> Optional[int]:
        with self._session_factory() as session:
            prod = session.query(Product).filter(Product.id == product_id).first()
            if not prod:
                raise NotFoundError("product", product_id)
            return prod.stock

    # ---- promo codes -------------------------------------------------

    def increment_promo_usage(self, code: str) -> None:
        with self._session_factory() as session:
            self.increment_promo_usage_in(session, code)

    def increment_promo_usage_in(self, session, code: str) -> None:
        normalized = normalize_code(code)
        result = session.execute(
            update(PromoCode)
            .where(
                func.upper(PromoCode.code) == normalized,
                or_(PromoCode.usage_limit == 0, PromoCode.usage_count < PromoCode.usage_limit),
            )
            .values(usage_count=PromoCode.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            exists = session.query(PromoCode.id).filter(func.upper(PromoCode.code) == normalized).first()
            if exists is None:
                raise NotFoundError("promo code", normalized)
            raise ValidationError(f"promo code {normalized} has reached its usage limit", field="promo_code")
        log_event("info", "promo.usage_incremented", code=normalized)

    def find_promo_in(self, session, code: str) -> Optional[PromoCode]:
        return session.query(PromoCode).filter(func.upper(PromoCode.code) == normalize_code(code)).first()

    def get_promo(self, code: str) -> Dict:
        with self._session_factory() as session:
            promo = self.find_promo_in(session, code)
            if promo is None:
                raise NotFoundError("promo code", normalize_code(code))
            return to_promo_dto(promo)

    def is_promo_usable(self, code: str) -> bool:
        with self._session_factory() as session:
            promo = self.find_promo_in(session, code)
            return promo is not None and promo_is_usable(promo)

    def check_promo_in(self, session, code: str, order_total: Decimal) -> Tuple[PromoCode, Decimal]:
        promo = self.find_promo_in(session, code)
        if promo is None:
            raise ValidationError("Invalid code", field="promo_code")
        if not promo.active:
            raise ValidationError("Not active", field="promo_code")
        if promo.expiry_date is not None and promo.expiry_date < datetime.utcnow():
            raise ValidationError("Expired", field="promo_code")
        if not promo_is_usable(promo):
            raise ValidationError("Limit reached", field="promo_code")
        if promo.min_order and order_total < Decimal(str(promo.min_order)):
            raise ValidationError(f"Min order ${Decimal(str(promo.min_order)):.2f}", field="promo_code")
        return promo, compute_discount(promo, order_total)

    def validate_promo(self, code: str, order_total) -> Dict:
        """Quote a promo code against an order total without consuming it."""
        total = to_money(order_total, "order_total")
        with self._session_factory() as session:
            promo, discount = self.check_promo_in(session, code, total)
            return {"valid": True, "promo": to_promo_dto(promo), "discount": float(discount)}
