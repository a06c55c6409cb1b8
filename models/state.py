from sqlalchemy import Column, Integer, String, BigInteger, DateTime, ForeignKey
from models.base import Base, utcnow

STATE_AWAITING_NAME = "awaiting_name"
STATE_AWAITING_VARIANT = "awaiting_variant"
STATE_TESTING = "testing"


class ConversationState(Base):
    """
    Persisted step of an identity's conversation.

    No row means idle. session_id is set only while testing; pending_name
    holds the typed name between the name and variant steps.
    """
    __tablename__ = "conversation_states"

    identity = Column(BigInteger, primary_key=True)
    state = Column(String(32), nullable=False, default=STATE_AWAITING_NAME)
    session_id = Column(Integer, ForeignKey("test_sessions.id"), nullable=True)
    pending_name = Column(String(255), nullable=True)
    current_question_index = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<ConversationState identity={self.identity} state={self.state}>"
