from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base


class AnswerLog(Base):
    __tablename__ = "answer_log"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("test_sessions.id"), index=True, nullable=False)
    # 0-based serving order, matches ConversationState.current_question_index
    position = Column(Integer, nullable=False)

    question_source_id = Column(String(64), nullable=False)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False)
    correct_option_index = Column(Integer, nullable=False)

    # Set exactly once, when the question is answered
    user_option_index = Column(Integer, nullable=True)
    is_correct = Column(Boolean, nullable=True)
    answered_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("QuizSession", back_populates="answers")

    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_answer_log_session_position"),
    )

    @property
    def is_answered(self) -> bool:
        return self.user_option_index is not None
