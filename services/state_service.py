from typing import Optional
from sqlalchemy import select, update, delete
from models.base import utcnow
from models.state import ConversationState, STATE_TESTING
from services.base import DbService
from core.logger import logger


class StateService(DbService):
    """Persisted per-identity conversation state. A missing row means idle."""

    async def get_state(self, identity: int) -> Optional[ConversationState]:
        async with self.storage("get_state"):
            result = await self.db.execute(
                select(ConversationState)
                .filter(ConversationState.identity == identity)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def set_state(
        self,
        identity: int,
        state: str,
        session_id: Optional[int] = None,
        question_index: int = 0,
        pending_name: Optional[str] = None,
    ) -> ConversationState:
        """Upsert the identity's row, overwriting every field."""
        if (state == STATE_TESTING) != (session_id is not None):
            raise ValueError("session_id must be set exactly when state is testing")

        row = await self.get_state(identity)
        async with self.storage("set_state"):
            if not row:
                row = ConversationState(identity=identity)
                self.db.add(row)
            row.state = state
            row.session_id = session_id
            row.current_question_index = question_index
            row.pending_name = pending_name
            row.updated_at = utcnow()
            await self.db.commit()
        logger.info("Conversation state set", identity=identity, state=state, session_id=session_id, index=question_index)
        return row

    async def advance_question_index(self, identity: int, expected_index: int, next_index: int) -> bool:
        """Move the pointer only if it still equals expected_index."""
        async with self.storage("advance_question_index"):
            result = await self.db.execute(
                update(ConversationState)
                .where(
                    ConversationState.identity == identity,
                    ConversationState.state == STATE_TESTING,
                    ConversationState.current_question_index == expected_index,
                )
                .values(current_question_index=next_index, updated_at=utcnow())
            )
            await self.db.commit()
        return result.rowcount > 0

    async def clear_state(self, identity: int):
        async with self.storage("clear_state"):
            await self.db.execute(delete(ConversationState).where(ConversationState.identity == identity))
            await self.db.commit()
        logger.info("Conversation state cleared", identity=identity)
