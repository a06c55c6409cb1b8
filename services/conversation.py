"""
Per-identity conversation flow for taking a test.

    idle --/start--> awaiting_name --name--> [awaiting_variant --variant-->] testing --last answer--> idle

Every step reads the persisted ConversationState and writes the next one
back, so a restarted process continues exactly where the user left off.
Answer buttons carry the question index they were sent for; a press whose
index differs from the stored pointer is stale and is never scored.
"""
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from constants.messages import Messages
from core.config import QuizVariant, settings
from core.exceptions import BankError, NotFoundError, StaleEventError, StorageError, ValidationError
from core.logger import logger
from models.session import QuizSession
from models.state import STATE_AWAITING_NAME, STATE_AWAITING_VARIANT, STATE_TESTING
from services.question_bank import QuestionBank
from services.session_service import SessionService
from services.state_service import StateService
from utils.callbacks import AnswerSelection, VariantSelection, encode_answer, encode_variant, parse_choice
from utils.formatting import format_datetime, score_percent, verdict_key
from utils.transport import Choice, ChoiceEvent, Transport

# Failures reported to the user as "something went wrong, retry"
RECOVERABLE_ERRORS = (StorageError, NotFoundError, BankError)

Ack = Callable[[Optional[str]], Awaitable[None]]


class ConversationEngine:
    def __init__(
        self,
        db: AsyncSession,
        transport: Transport,
        bank: QuestionBank,
        notifier=None,
        variants: Optional[Sequence[QuizVariant]] = None,
        lang: Optional[str] = None,
        next_question_delay: Optional[float] = None,
    ):
        self.sessions = SessionService(db, bank)
        self.states = StateService(db)
        self.transport = transport
        self.notifier = notifier
        self.variants: List[QuizVariant] = list(settings.TEST_VARIANTS if variants is None else variants)
        self.lang = lang or settings.LANGUAGE
        self.next_question_delay = settings.NEXT_QUESTION_DELAY_SECONDS if next_question_delay is None else next_question_delay

    def _text(self, key: str, **params) -> str:
        text = Messages.get(key, self.lang)
        return text.format(**params) if params else text

    async def _say(self, chat_id: int, key: str, choices: Optional[Sequence[Choice]] = None, **params):
        await self.transport.send_text(chat_id, self._text(key, **params), choices)

    def _variant(self, name: str) -> Optional[QuizVariant]:
        return next((v for v in self.variants if v.name == name), None)

    def _variant_choices(self) -> List[Choice]:
        return [Choice(text=v.display_title, data=encode_variant(v.name)) for v in self.variants]

    # Inbound events

    async def handle_begin(self, identity: int, chat_id: int):
        try:
            await self._begin(identity, chat_id)
        except RECOVERABLE_ERRORS as e:
            logger.error("Begin failed", identity=identity, error=str(e), error_type=type(e).__name__)
            await self._say(chat_id, "GENERIC_ERROR")

    async def handle_text(self, identity: int, chat_id: int, text: str):
        try:
            state = await self.states.get_state(identity)
            if not state:
                await self._say(chat_id, "SEND_START")
            elif state.state == STATE_AWAITING_NAME:
                await self._accept_name(identity, chat_id, text)
            elif state.state == STATE_AWAITING_VARIANT:
                await self._say(chat_id, "CHOOSE_VARIANT", self._variant_choices(), name=state.pending_name or "")
            else:
                await self._say(chat_id, "USE_BUTTONS")
        except RECOVERABLE_ERRORS as e:
            logger.error("Text handling failed", identity=identity, error=str(e), error_type=type(e).__name__)
            await self._say(chat_id, "GENERIC_ERROR")

    async def handle_choice(self, event: ChoiceEvent):
        acknowledged = False

        async def ack(key: Optional[str] = None):
            nonlocal acknowledged
            if acknowledged:
                return
            acknowledged = True
            await self.transport.acknowledge(event.event_id, self._text(key) if key else None)

        try:
            selection = parse_choice(event.data)
            if isinstance(selection, VariantSelection):
                await self._select_variant(event, selection, ack)
            else:
                await self._answer(event, selection, ack)
        except StaleEventError as e:
            logger.warning("Malformed choice ignored", identity=event.identity, error=str(e))
            await ack("INVALID_DATA")
        except RECOVERABLE_ERRORS as e:
            logger.error("Choice handling failed", identity=event.identity, data=event.data,
                         error=str(e), error_type=type(e).__name__)
            if acknowledged:
                await self._say(event.chat_id, "ANSWER_ERROR")
            else:
                await ack("ANSWER_ERROR")
        finally:
            if not acknowledged:
                await ack()

    # Transitions

    async def _begin(self, identity: int, chat_id: int):
        completed = await self.sessions.find_completed_session(identity)
        if completed:
            await self.states.clear_state(identity)
            await self._say(
                chat_id, "ALREADY_COMPLETED",
                score=completed.score, total=completed.total_questions,
                completed_at=format_datetime(completed.completed_at),
            )
            return

        state = await self.states.get_state(identity)
        if state and state.state == STATE_TESTING:
            session = await self._load_session(state.session_id)
            await self._say(chat_id, "RESUMING", number=state.current_question_index + 1, total=session.total_questions)
            await self._send_question(chat_id, session, state.current_question_index)
            return

        active = await self.sessions.find_active_session(identity)
        if active:
            # Session was created but the testing state never got written
            await self._resume_session(identity, chat_id, active)
            return

        await self.states.set_state(identity, STATE_AWAITING_NAME)
        await self._say(chat_id, "WELCOME")

    async def _accept_name(self, identity: int, chat_id: int, text: Optional[str]):
        name = (text or "").strip()
        if len(name) < settings.NAME_MIN_LENGTH:
            await self._say(chat_id, "NAME_TOO_SHORT", min_length=settings.NAME_MIN_LENGTH)
            return
        if len(name) > settings.NAME_MAX_LENGTH:
            await self._say(chat_id, "NAME_TOO_LONG", max_length=settings.NAME_MAX_LENGTH)
            return

        if len(self.variants) == 1:
            await self._start_test(identity, chat_id, name, self.variants[0])
            return

        await self.states.set_state(identity, STATE_AWAITING_VARIANT, pending_name=name)
        await self._say(chat_id, "CHOOSE_VARIANT", self._variant_choices(), name=name)

    async def _select_variant(self, event: ChoiceEvent, selection: VariantSelection, ack: Ack):
        state = await self.states.get_state(event.identity)
        if not state:
            await ack("START_FIRST")
            return
        if state.state != STATE_AWAITING_VARIANT:
            await ack("CHOICE_EXPIRED")
            return

        variant = self._variant(selection.name)
        if not variant:
            logger.warning("Unknown variant selected", identity=event.identity, variant=selection.name)
            await ack("UNKNOWN_VARIANT")
            await self._say(event.chat_id, "UNKNOWN_VARIANT", self._variant_choices())
            return

        await ack()
        if event.message_id:
            await self.transport.clear_choices(event.chat_id, event.message_id)

        if not state.pending_name:
            await self.states.set_state(event.identity, STATE_AWAITING_NAME)
            await self._say(event.chat_id, "WELCOME")
            return
        await self._start_test(event.identity, event.chat_id, state.pending_name, variant)

    async def _start_test(self, identity: int, chat_id: int, name: str, variant: QuizVariant):
        active = await self.sessions.find_active_session(identity)
        if active:
            await self._resume_session(identity, chat_id, active)
            return

        session = await self.sessions.start_session(identity, name, variant)
        await self.states.set_state(identity, STATE_TESTING, session_id=session.id, question_index=0)
        await self._say(chat_id, "TEST_INTRO", name=name, total=session.total_questions)
        await self._send_question(chat_id, session, 0)

    async def _resume_session(self, identity: int, chat_id: int, session: QuizSession):
        index = await self.sessions.first_unanswered_position(session.id)
        if index is None:
            await self._finish(identity, chat_id, session.id)
            return
        logger.info("Restoring testing state", identity=identity, session_id=session.id, index=index)
        await self.states.set_state(identity, STATE_TESTING, session_id=session.id, question_index=index)
        await self._say(chat_id, "RESUMING", number=index + 1, total=session.total_questions)
        await self._send_question(chat_id, session, index)

    async def _answer(self, event: ChoiceEvent, selection: AnswerSelection, ack: Ack):
        state = await self.states.get_state(event.identity)
        if not state or state.state != STATE_TESTING or state.session_id is None:
            await ack("START_FIRST")
            return

        if selection.question_index != state.current_question_index:
            logger.info("Stale answer ignored", identity=event.identity,
                        current=state.current_question_index, received=selection.question_index)
            await ack("NOT_CURRENT_QUESTION")
            return

        session = await self._load_session(state.session_id)
        try:
            is_correct = await self.sessions.record_answer(session.id, selection.question_index, selection.option_index)
        except ValidationError as e:
            logger.warning("Invalid option ignored", identity=event.identity, error=str(e))
            await ack("INVALID_DATA")
            return

        await ack("ANSWER_CORRECT" if is_correct else "ANSWER_INCORRECT")
        if event.message_id:
            await self.transport.clear_choices(event.chat_id, event.message_id)

        next_index = selection.question_index + 1
        if next_index >= session.total_questions:
            await self._finish(event.identity, event.chat_id, session.id)
            return

        if not await self.states.advance_question_index(event.identity, selection.question_index, next_index):
            logger.warning("Question pointer moved concurrently", identity=event.identity, index=selection.question_index)
            return

        if self.next_question_delay > 0:
            await asyncio.sleep(self.next_question_delay)
        await self._send_question(event.chat_id, session, next_index)

    async def _finish(self, identity: int, chat_id: int, session_id: int):
        score, total, completed_now = await self.sessions.complete_session(session_id)
        await self.states.clear_state(identity)

        if self.notifier and completed_now:
            self.notifier.dispatch(session_id)

        percent = score_percent(score, total)
        await self._say(
            chat_id, "TEST_FINISHED",
            score=score, total=total, percent=percent, verdict=self._text(verdict_key(percent)),
        )

    # Helpers

    async def _load_session(self, session_id: Optional[int]) -> QuizSession:
        session = await self.sessions.find_session_by_id(session_id) if session_id is not None else None
        if not session:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    async def _send_question(self, chat_id: int, session: QuizSession, index: int):
        entry = await self.sessions.get_question(session.id, index)
        if not entry:
            raise NotFoundError(f"Session {session.id} has no question at position {index}")

        choices = [Choice(text=option, data=encode_answer(index, i)) for i, option in enumerate(entry.options)]
        await self._say(chat_id, "QUESTION", choices, number=index + 1, total=session.total_questions, text=entry.question_text)
