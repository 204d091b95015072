from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, func
from .base import Base


DISCOUNT_TYPES = ("percentage", "fixed")


class PromoCode(Base):
    __tablename__ = "promo_code"

    id = Column(String(36), primary_key=True)
    # stored uppercase; lookups normalise the input the same way
    code = Column(String(64), nullable=False, unique=True)
    discount_type = Column(String(16), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    min_order = Column(Numeric(12, 2), nullable=False, default=0)
    usage_limit = Column(Integer, nullable=False, default=0)
    usage_count = Column(Integer, nullable=False, default=0)
    expiry_date = Column(DateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
