from models.base import Base
from models.session import QuizSession
from models.answer import AnswerLog
from models.state import ConversationState

__all__ = ["Base", "QuizSession", "AnswerLog", "ConversationState"]
