from sqlalchemy import Column, DateTime, JSON, Numeric, String, Text, func
from .base import Base


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


class Order(Base):
    __tablename__ = "order"

    id = Column(String(36), primary_key=True)
    order_code = Column(String(32), nullable=False, unique=True)
    items = Column(JSON, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    promo_code = Column(String(64), nullable=True)
    promo_discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="AUD")
    # customer snapshot
    customer_email = Column(String(255), nullable=False, index=True)
    customer_first_name = Column(String(128), nullable=True)
    customer_last_name = Column(String(128), nullable=True)
    customer_phone = Column(String(64), nullable=True)
    # shipping address snapshot
    shipping_address = Column(String(255), nullable=True)
    shipping_city = Column(String(128), nullable=True)
    shipping_state = Column(String(64), nullable=True)
    shipping_postcode = Column(String(16), nullable=True)
    status = Column(String(32), nullable=False, default="pending", index=True)
    payment_method = Column(String(32), nullable=False, default="card")
    payment_status = Column(String(32), nullable=False, default="pending")
    notes = Column(Text, nullable=True)
    # shipping metadata, null until the order ships
    tracking_number = Column(String(128), nullable=True)
    courier = Column(String(64), nullable=True)
    tracking_url = Column(String(512), nullable=True)
    delivery_days = Column(String(32), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def customer_name(self) -> str:
        return " ".join(p for p in (self.customer_first_name, self.customer_last_name) if p)
