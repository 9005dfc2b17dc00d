"""
Claim document database model
"""
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import BigInteger, Column, String, DateTime, Enum, ForeignKey, Integer
from sqlalchemy.orm import relationship

from app.db.base import Base


class DocumentType(str, PyEnum):
    PDF = "PDF"
    IMAGE = "IMAGE"


# Accepted upload content types and the document type they are stored as
ALLOWED_CONTENT_TYPES = {
    "application/pdf": DocumentType.PDF,
    "image/jpeg": DocumentType.IMAGE,
    "image/png": DocumentType.IMAGE,
}


class ClaimDocument(Base):
    """Document attached to a claim. Rows are never updated."""

    __tablename__ = "claim_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey("claims.id", ondelete="CASCADE"), nullable=False, index=True)
    document_type = Column(Enum(DocumentType), nullable=False)
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=False)
    file_size = Column(BigInteger, nullable=False)
    storage_location = Column(String(500), nullable=False)
    uploaded_by = Column(String(100))
    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    claim = relationship("Claim", back_populates="documents")

    def __repr__(self) -> str:
        return f"<ClaimDocument {self.file_name} ({self.document_type.value})>"
