from typing import List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from models.base import utcnow
from models.session import QuizSession, STATUS_IN_PROGRESS, STATUS_COMPLETED
from models.answer import AnswerLog
from services.base import DbService
from services.question_bank import Question, QuestionBank
from core.config import QuizVariant
from core.exceptions import NotFoundError, ValidationError
from core.logger import logger


class SessionService(DbService):
    """Owns test sessions and their answer logs: creation, scoring and completion."""

    def __init__(self, db: AsyncSession, bank: QuestionBank):
        super().__init__(db)
        self.bank = bank

    async def create_session(self, identity: int, name: str, variant: QuizVariant, commit: bool = True) -> QuizSession:
        session = QuizSession(
            identity=identity,
            display_name=name,
            variant=variant.name,
            total_questions=variant.questions_per_test,
            score=0,
            status=STATUS_IN_PROGRESS,
            started_at=utcnow(),
        )
        async with self.storage("create_session"):
            self.db.add(session)
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
        logger.info("Quiz session created", identity=identity, session_id=session.id, variant=variant.name)
        return session

    def generate_test(self, variant: QuizVariant) -> List[Question]:
        return self.bank.select_questions(variant)

    async def materialize_questions(self, session_id: int, questions: Sequence[Question], commit: bool = True):
        """Insert one answer log row per question; the list order is the serving order."""
        async with self.storage("materialize_questions"):
            self.db.add_all([
                AnswerLog(
                    session_id=session_id,
                    position=position,
                    question_source_id=q.id,
                    question_text=q.text,
                    options=list(q.options),
                    correct_option_index=q.correct_index,
                )
                for position, q in enumerate(questions)
            ])
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()

    async def start_session(self, identity: int, name: str, variant: QuizVariant) -> QuizSession:
        """Create the session and all of its questions in a single transaction."""
        questions = self.generate_test(variant)
        session = await self.create_session(identity, name, variant, commit=False)
        await self.materialize_questions(session.id, questions, commit=False)
        async with self.storage("start_session"):
            await self.db.commit()
        return session

    async def get_question(self, session_id: int, question_index: int, for_update: bool = False) -> Optional[AnswerLog]:
        query = select(AnswerLog).filter(AnswerLog.session_id == session_id, AnswerLog.position == question_index)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        async with self.storage("get_question"):
            result = await self.db.execute(query)
            return result.scalar_one_or_none()

    async def record_answer(self, session_id: int, question_index: int, option_index: int) -> bool:
        """
        Store the chosen option and score it. An already answered position
        returns its stored result and is never scored twice.
        """
        entry = await self.get_question(session_id, question_index, for_update=True)
        if not entry:
            raise NotFoundError(f"Session {session_id} has no question at position {question_index}")

        if entry.is_answered:
            logger.warning("Answer already recorded", session_id=session_id, index=question_index)
            return bool(entry.is_correct)

        if not 0 <= option_index < len(entry.options):
            raise ValidationError(f"Option {option_index} out of range for question {question_index}")

        async with self.storage("record_answer"):
            result = await self.db.execute(
                select(QuizSession)
                .filter(QuizSession.id == session_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            session = result.scalar_one_or_none()
            if not session:
                raise NotFoundError(f"Session {session_id} not found")

            is_correct = option_index == entry.correct_option_index
            entry.user_option_index = option_index
            entry.is_correct = is_correct
            entry.answered_at = utcnow()
            if is_correct:
                session.score += 1
            await self.db.commit()

        logger.info("Answer recorded", session_id=session_id, index=question_index, is_correct=is_correct)
        return is_correct

    async def complete_session(self, session_id: int) -> Tuple[int, int, bool]:
        """Mark the session completed. The flag is True only for the call that changed its status."""
        session = await self.find_session_by_id(session_id, for_update=True)
        if not session:
            raise NotFoundError(f"Session {session_id} not found")

        if not session.is_completed:
            async with self.storage("complete_session"):
                session.status = STATUS_COMPLETED
                session.completed_at = utcnow()
                await self.db.commit()
            logger.info("Quiz session completed", session_id=session_id, score=session.score, total=session.total_questions)
            return session.score, session.total_questions, True
        return session.score, session.total_questions, False

    async def find_completed_session(self, identity: int) -> Optional[QuizSession]:
        async with self.storage("find_completed_session"):
            result = await self.db.execute(
                select(QuizSession)
                .filter(QuizSession.identity == identity, QuizSession.status == STATUS_COMPLETED)
                .order_by(QuizSession.completed_at.desc(), QuizSession.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_active_session(self, identity: int) -> Optional[QuizSession]:
        async with self.storage("find_active_session"):
            result = await self.db.execute(
                select(QuizSession).filter(QuizSession.identity == identity, QuizSession.status == STATUS_IN_PROGRESS)
            )
            return result.scalar_one_or_none()

    async def find_session_by_id(self, session_id: int, for_update: bool = False) -> Optional[QuizSession]:
        query = select(QuizSession).filter(QuizSession.id == session_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        async with self.storage("find_session_by_id"):
            result = await self.db.execute(query)
            return result.scalar_one_or_none()

    async def first_unanswered_position(self, session_id: int) -> Optional[int]:
        """Lowest position without an answer, or None when every question is answered."""
        async with self.storage("first_unanswered_position"):
            result = await self.db.execute(
                select(func.min(AnswerLog.position)).filter(
                    AnswerLog.session_id == session_id,
                    AnswerLog.user_option_index.is_(None),
                )
            )
            return result.scalar()
