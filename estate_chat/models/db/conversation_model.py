import uuid

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship

from estate_chat.database import Base


class ConversationModel(Base):
    """SQLAlchemy model for conversations table."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "participant_low",
            "participant_high",
            "listing_scope",
            name="uq_conversation_pair",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    listing_id = Column(Uuid(as_uuid=True), nullable=True)
    # The pair in sorted order; keeps lookups symmetric in the two participants
    participant_low = Column(String(128), nullable=False)
    participant_high = Column(String(128), nullable=False)
    # str(listing_id) or "" so the unique constraint also covers "no listing"
    listing_scope = Column(String(64), nullable=False, default="")
    last_message = Column(Text, nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Relationships
    messages = relationship(
        "MessageModel", back_populates="conversation", cascade="all, delete-orphan"
    )
    participants = relationship(
        "ParticipantModel", back_populates="conversation", cascade="all, delete-orphan"
    )
