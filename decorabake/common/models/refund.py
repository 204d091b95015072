from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship
from .base import Base


REFUND_STATUSES = ("pending", "reviewing", "approved", "denied", "processed")
MESSAGE_SENDERS = ("customer", "operator")


class Refund(Base):
    __tablename__ = "refund"

    id = Column(String(36), primary_key=True)
    refund_code = Column(String(32), nullable=False, unique=True)
    order_id = Column(String(36), ForeignKey("order.id"), nullable=False, unique=True)
    order_code = Column(String(32), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_first_name = Column(String(128), nullable=True)
    customer_last_name = Column(String(128), nullable=True)
    customer_phone = Column(String(64), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, default="pending", index=True)
    admin_notes = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    messages = relationship(
        "RefundMessage",
        order_by="RefundMessage.seq",
        back_populates="refund",
        lazy="selectin",
    )


class RefundMessage(Base):
    """One entry of a refund's conversation thread. Rows are only ever inserted."""

    __tablename__ = "refund_message"
    __table_args__ = (UniqueConstraint("refund_id", "seq", name="uq_refund_message_seq"),)

    id = Column(String(36), primary_key=True)
    refund_id = Column(String(36), ForeignKey("refund.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    sender = Column(String(16), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    refund = relationship("Refund", back_populates="messages")
