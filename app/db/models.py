"""Database models."""
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Campaign(Base):
    """Campaign configuration (managed outside the call flow)."""

    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    script = Column(Text, nullable=True)
    ai_prompt = Column(Text, nullable=True)
    intro_line = Column(Text, nullable=True)
    language = Column(String, default="en", nullable=False)
    openai_model = Column(String, nullable=True)
    voice_id = Column(String, nullable=True)
    voice_config = Column(JSON, nullable=True)  # stability, similarityBoost, style, useSpeakerBoost
    elevenlabs_model = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    calls = relationship("Call", back_populates="campaign")


class Contact(Base):
    """Contact reached by a campaign."""

    __tablename__ = "contacts"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    calls = relationship("Call", back_populates="contact")


class Call(Base):
    """Durable record of an outbound call."""

    __tablename__ = "calls"

    id = Column(String, primary_key=True, default=_new_id)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=True)
    campaign_id = Column(String, ForeignKey("campaigns.id"), nullable=True)
    phone_number = Column(String, nullable=False)
    twilio_call_sid = Column(String, index=True, nullable=True)
    status = Column(String, default="active", nullable=False)  # active, completed, failed
    start_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    extracted_whatsapp = Column(String, nullable=True)
    extracted_email = Column(String, nullable=True)
    conversation_summary = Column(Text, nullable=True)
    whatsapp_sent = Column(Boolean, default=False, nullable=False)

    # Relationships
    campaign = relationship("Campaign", back_populates="calls")
    contact = relationship("Contact", back_populates="calls")
    messages = relationship(
        "CallMessage",
        back_populates="call",
        cascade="all, delete-orphan",
        order_by="CallMessage.id",
    )


class CallMessage(Base):
    """One persisted conversation message."""

    __tablename__ = "call_messages"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, ForeignKey("calls.id"), index=True, nullable=False)
    role = Column(String, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    call = relationship("Call", back_populates="messages")
