"""
Payment database model
"""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from app.db.base import Base


class PaymentStatus(str, PyEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentMethod(str, PyEnum):
    ACH = "ACH"
    CHECK = "CHECK"
    CARD = "CARD"
    WIRE = "WIRE"


# Payments in these statuses count against the claim amount
COMMITTED_PAYMENT_STATUSES = frozenset({PaymentStatus.PROCESSING, PaymentStatus.COMPLETED})


class Payment(Base):
    """Claim payment routed through SpeedPay.

    A FAILED payment is final; a retry is a new row.
    """

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    transaction_id = Column(String(50), unique=True, nullable=False, index=True)
    external_transaction_id = Column(String(100))
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    failure_reason = Column(Text)
    requested_by = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime)

    # Relationships
    claim = relationship("Claim", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment {self.transaction_id} {self.amount} ({self.status.value})>"
