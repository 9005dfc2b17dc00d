"""
Policy, Coverage, Endorsement and PolicyExport database models
"""
from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import Column, String, Date, DateTime, Enum, ForeignKey, Numeric, Integer, Text
from sqlalchemy.orm import relationship

from app.db.base import Base


class PolicyStatus(str, PyEnum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TERMINAL_POLICY_STATUSES = frozenset(
    {PolicyStatus.TERMINATED, PolicyStatus.EXPIRED, PolicyStatus.CANCELLED}
)

# Statuses in which the policy provided cover for its (possibly shortened) term
IN_FORCE_POLICY_STATUSES = frozenset(
    {PolicyStatus.ACTIVE, PolicyStatus.TERMINATED, PolicyStatus.EXPIRED}
)


class ExportStatus(str, PyEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Policy(Base):
    """Insurance policy model."""

    __tablename__ = "policies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(Integer, nullable=False)
    policy_number = Column(String(50), unique=True, nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(PolicyStatus), default=PolicyStatus.DRAFT, nullable=False)
    total_premium = Column(Numeric(12, 2), nullable=False)
    effective_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", back_populates="policies")
    coverages = relationship(
        "Coverage", back_populates="policy", cascade="all, delete-orphan", lazy="selectin"
    )
    endorsements = relationship(
        "Endorsement", back_populates="policy", cascade="all, delete-orphan", lazy="selectin"
    )
    exports = relationship(
        "PolicyExport", back_populates="policy", cascade="all, delete-orphan",
        order_by="PolicyExport.id",
    )
    claims = relationship("Claim", back_populates="policy")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Policy {self.policy_number} ({self.status.value})>"

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_POLICY_STATUSES

    def is_active(self) -> bool:
        """Check if policy is currently active."""
        today = date.today()
        return (
            self.status == PolicyStatus.ACTIVE
            and self.effective_date <= today <= self.expiry_date
        )

    def was_in_force_on(self, day: date) -> bool:
        """Whether the policy provided cover on ``day``."""
        return (
            self.status in IN_FORCE_POLICY_STATUSES
            and self.effective_date <= day <= self.expiry_date
        )


class Coverage(Base):
    """Coverage line on a policy."""

    __tablename__ = "policy_coverages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey("policies.id", ondelete="CASCADE"), nullable=False)
    coverage_type = Column(String(50), nullable=False)  # e.g. "liability", "uninsured_motorist"
    description = Column(String(255))
    limit_amount = Column(Numeric(12, 2), nullable=False)
    deductible = Column(Numeric(12, 2), default=0, nullable=False)
    premium = Column(Numeric(12, 2), default=0, nullable=False)

    # Relationships
    policy = relationship("Policy", back_populates="coverages")

    def __repr__(self) -> str:
        return f"<Coverage {self.coverage_type} limit={self.limit_amount}>"


class Endorsement(Base):
    """Mid-term amendment to a policy."""

    __tablename__ = "policy_endorsements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey("policies.id", ondelete="CASCADE"), nullable=False)
    endorsement_number = Column(String(50), unique=True, nullable=False)
    description = Column(String(255))
    premium_adjustment = Column(Numeric(12, 2), default=0, nullable=False)
    effective_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    policy = relationship("Policy", back_populates="endorsements")

    def __repr__(self) -> str:
        return f"<Endorsement {self.endorsement_number}>"


class PolicyExport(Base):
    """Outcome of one PolicySTAR export attempt."""

    __tablename__ = "policy_exports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey("policies.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(ExportStatus), default=ExportStatus.PENDING, nullable=False)
    export_reference = Column(String(100))
    error_kind = Column(String(50))
    error_message = Column(Text)
    requested_by = Column(String(100))
    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime)

    # Relationships
    policy = relationship("Policy", back_populates="exports")

    def __repr__(self) -> str:
        return f"<PolicyExport policy={self.policy_id} ({self.status.value})>"
