from typing import Any, Dict, List, Optional
from sqlalchemy import select, func
from models.session import QuizSession, STATUS_COMPLETED
from models.answer import AnswerLog
from services.base import DbService


def _session_summary(session: QuizSession) -> Dict[str, Any]:
    return {
        "id": session.id,
        "identity": session.identity,
        "display_name": session.display_name,
        "variant": session.variant,
        "score": session.score,
        "total_questions": session.total_questions,
        "status": session.status,
        "started_at": session.started_at,
        "completed_at": session.completed_at,
    }


def _answer_row(entry: AnswerLog) -> Dict[str, Any]:
    options = list(entry.options or [])
    chosen = entry.user_option_index
    return {
        "position": entry.position,
        "question_source_id": entry.question_source_id,
        "question_text": entry.question_text,
        "options": options,
        "correct_option_index": entry.correct_option_index,
        "correct_option": options[entry.correct_option_index] if entry.correct_option_index < len(options) else None,
        "user_option_index": chosen,
        "user_option": options[chosen] if chosen is not None and chosen < len(options) else None,
        "is_correct": bool(entry.is_correct),
        "answered_at": entry.answered_at,
    }


class ResultService(DbService):
    """Read-only views over stored sessions for the admin API and notifications."""

    async def list_completed(self, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        query = (
            select(QuizSession)
            .filter(QuizSession.status == STATUS_COMPLETED)
            .order_by(QuizSession.completed_at.desc(), QuizSession.id.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        async with self.storage("list_completed"):
            result = await self.db.execute(query)
            return [_session_summary(s) for s in result.scalars().all()]

    async def get_result_detail(self, session_id: int) -> Optional[Dict[str, Any]]:
        async with self.storage("get_result_detail"):
            result = await self.db.execute(select(QuizSession).filter(QuizSession.id == session_id))
            session = result.scalar_one_or_none()
            if not session:
                return None

            result = await self.db.execute(
                select(AnswerLog).filter(AnswerLog.session_id == session_id).order_by(AnswerLog.position)
            )
            answers = [_answer_row(entry) for entry in result.scalars().all()]

        return {"session": _session_summary(session), "answers": answers}

    async def get_statistics(self) -> Dict[str, Any]:
        async with self.storage("get_statistics"):
            result = await self.db.execute(
                select(
                    func.count(QuizSession.id),
                    func.avg(QuizSession.score),
                    func.min(QuizSession.score),
                    func.max(QuizSession.score),
                ).filter(QuizSession.status == STATUS_COMPLETED)
            )
            total, average, minimum, maximum = result.one()

        return {
            "total_tests": total or 0,
            "average_score": round(float(average), 2) if average is not None else None,
            "min_score": minimum,
            "max_score": maximum,
        }
