from sqlalchemy import Column, Integer, String, BigInteger, DateTime, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin, utcnow

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


class QuizSession(Base, TimestampMixin):
    """One attempt at a test variant by one identity. Never deleted."""
    __tablename__ = "test_sessions"

    id = Column(Integer, primary_key=True, index=True)
    identity = Column(BigInteger, index=True, nullable=False)
    display_name = Column(String(255), nullable=False)
    variant = Column(String(64), nullable=False)

    # Copied from the variant so later config changes don't affect in-flight sessions
    total_questions = Column(Integer, nullable=False)
    score = Column(Integer, default=0, server_default="0", nullable=False)
    status = Column(String(20), default=STATUS_IN_PROGRESS, nullable=False)

    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    answers = relationship("AnswerLog", back_populates="session", order_by="AnswerLog.position")

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= total_questions", name="ck_test_sessions_score_range"),
        # At most one in-progress attempt per identity
        Index(
            "uq_test_sessions_identity_in_progress",
            "identity",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED
