"""
Claim database model
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Column, String, Date, DateTime, Enum, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import relationship

from app.db.base import Base


class ClaimStatus(str, PyEnum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CLOSED = "CLOSED"


# Legal status transitions; anything not listed is rejected
CLAIM_TRANSITIONS = {
    ClaimStatus.PENDING: frozenset({ClaimStatus.IN_REVIEW}),
    ClaimStatus.IN_REVIEW: frozenset({ClaimStatus.APPROVED, ClaimStatus.REJECTED}),
    ClaimStatus.APPROVED: frozenset({ClaimStatus.CLOSED}),
    ClaimStatus.REJECTED: frozenset({ClaimStatus.CLOSED}),
    ClaimStatus.CLOSED: frozenset(),
}


class Claim(Base):
    """Insurance claim model."""

    __tablename__ = "claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(Integer, nullable=False)
    claim_number = Column(String(50), unique=True, nullable=False, index=True)
    policy_id = Column(Integer, ForeignKey("policies.id"), nullable=False, index=True)
    status = Column(Enum(ClaimStatus), default=ClaimStatus.PENDING, nullable=False)
    description = Column(Text)
    claim_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    incident_date = Column(Date, nullable=False)
    reported_date = Column(Date, nullable=False)
    created_by = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    policy = relationship("Policy", back_populates="claims")
    documents = relationship(
        "ClaimDocument", back_populates="claim", cascade="all, delete-orphan",
        order_by="ClaimDocument.id",
    )
    payments = relationship(
        "Payment", back_populates="claim", cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Claim {self.claim_number} ({self.status.value})>"

    def can_transition_to(self, target: ClaimStatus) -> bool:
        return target in CLAIM_TRANSITIONS[self.status]
