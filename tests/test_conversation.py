"""
End-to-end conversation flows against an in-memory database.

Every bank used here has the right answer at option 0.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiogram.exceptions import TelegramBadRequest
from sqlalchemy import select, func

from constants.messages import Messages
from core.exceptions import StorageError
from models.session import QuizSession, STATUS_COMPLETED
from models.state import STATE_AWAITING_NAME, STATE_AWAITING_VARIANT, STATE_TESTING
from services.question_bank import QuestionBank
from services.result_service import ResultService
from services.session_service import SessionService
from services.state_service import StateService
from utils.transport import TelegramTransport
from tests.conftest import IDENTITY


def msg(key, **params):
    text = Messages.get(key, "EN")
    return text.format(**params) if params else text


async def load_state(session_factory, identity=IDENTITY):
    async with session_factory() as db:
        return await StateService(db).get_state(identity)


async def load_sessions(session_factory, identity=IDENTITY):
    async with session_factory() as db:
        result = await db.execute(select(QuizSession).filter(QuizSession.identity == identity))
        return result.scalars().all()


async def start_test(conv, name="Jo Smith"):
    await conv.begin()
    await conv.text(name)


@pytest.mark.asyncio
async def test_begin_asks_for_name(conversation, session_factory):
    conv = conversation()
    await conv.begin()

    assert conv.transport.last.text == msg("WELCOME")
    state = await load_state(session_factory)
    assert state.state == STATE_AWAITING_NAME


@pytest.mark.asyncio
async def test_short_name_rejected_then_accepted(conversation, session_factory):
    conv = conversation()
    await conv.begin()

    await conv.text("Jo")
    assert conv.transport.last.text == msg("NAME_TOO_SHORT", min_length=3)
    assert (await load_state(session_factory)).state == STATE_AWAITING_NAME

    await conv.text("   Jo  ")
    assert conv.transport.last.text == msg("NAME_TOO_SHORT", min_length=3)

    await conv.text("Jo Smith")
    intro, question = conv.transport.sent[-2:]
    assert intro.text == msg("TEST_INTRO", name="Jo Smith", total=3)
    assert question.text.startswith(msg("QUESTION", number=1, total=3, text=""))
    assert [c.data for c in question.choices] == ["answer:0:0", "answer:0:1", "answer:0:2"]

    state = await load_state(session_factory)
    assert state.state == STATE_TESTING
    assert state.current_question_index == 0
    sessions = await load_sessions(session_factory)
    assert len(sessions) == 1
    assert sessions[0].display_name == "Jo Smith"


@pytest.mark.asyncio
async def test_full_run_scores_correct_answers(conversation, session_factory):
    conv = conversation()
    await start_test(conv)

    first = await conv.press("answer:0:0")
    second = await conv.press("answer:1:1")
    third = await conv.press("answer:2:0")

    assert conv.ack_for(first) == msg("ANSWER_CORRECT")
    assert conv.ack_for(second) == msg("ANSWER_INCORRECT")
    assert conv.ack_for(third) == msg("ANSWER_CORRECT")
    assert conv.transport.cleared == [(IDENTITY, 77)] * 3
    assert conv.transport.last.text == msg(
        "TEST_FINISHED", score=2, total=3, percent=67, verdict=msg("VERDICT_GOOD")
    )

    assert await load_state(session_factory) is None
    (session,) = await load_sessions(session_factory)
    assert session.score == 2
    assert session.status == STATUS_COMPLETED
    assert session.completed_at is not None
    assert conv.notifier.dispatched == [session.id]

    async with session_factory() as db:
        detail = await ResultService(db).get_result_detail(session.id)
    assert len(detail["answers"]) == 3
    assert [a["is_correct"] for a in detail["answers"]] == [True, False, True]
    assert detail["answers"][1]["user_option_index"] == 1


@pytest.mark.asyncio
async def test_begin_while_testing_resends_current_question(conversation, session_factory):
    conv = conversation()
    await start_test(conv)
    await conv.press("answer:0:0")

    await conv.begin()

    resuming, question = conv.transport.sent[-2:]
    assert resuming.text == msg("RESUMING", number=2, total=3)
    assert question.text.startswith(msg("QUESTION", number=2, total=3, text=""))
    assert question.choices[0].data == "answer:1:0"
    assert len(await load_sessions(session_factory)) == 1
    assert (await load_state(session_factory)).current_question_index == 1


@pytest.mark.asyncio
async def test_duplicate_press_is_rejected_as_stale(conversation, session_factory):
    conv = conversation()
    await start_test(conv)
    await conv.press("answer:0:0")
    await conv.press("answer:1:0")

    duplicate = await conv.press("answer:1:0")

    assert conv.ack_for(duplicate) == msg("NOT_CURRENT_QUESTION")
    (session,) = await load_sessions(session_factory)
    assert session.score == 2
    assert (await load_state(session_factory)).current_question_index == 2


@pytest.mark.asyncio
async def test_future_question_press_is_rejected(conversation, session_factory):
    conv = conversation()
    await start_test(conv)

    early = await conv.press("answer:2:0")

    assert conv.ack_for(early) == msg("NOT_CURRENT_QUESTION")
    (session,) = await load_sessions(session_factory)
    assert session.score == 0


@pytest.mark.asyncio
async def test_completed_identity_cannot_start_again(conversation, session_factory):
    conv = conversation()
    await start_test(conv)
    for index in range(3):
        await conv.press(f"answer:{index}:0")

    await conv.begin()
    await conv.begin()

    assert conv.transport.last.text.startswith(msg("ALREADY_COMPLETED", score=3, total=3, completed_at="")[:20])
    assert await load_state(session_factory) is None
    assert len(await load_sessions(session_factory)) == 1

    await conv.text("Jo Smith")
    assert conv.transport.last.text == msg("SEND_START")


@pytest.mark.asyncio
async def test_multiple_variants_ask_for_a_choice(conversation, make_variant, session_factory):
    alpha = make_variant(name="alpha", title="Alpha test", bank_size=5, per_test=3)
    beta = make_variant(name="beta", bank_size=6, per_test=4)
    conv = conversation(alpha, beta)
    await start_test(conv)

    prompt = conv.transport.last
    assert prompt.text == msg("CHOOSE_VARIANT", name="Jo Smith")
    assert [(c.text, c.data) for c in prompt.choices] == [("Alpha test", "variant:alpha"), ("beta", "variant:beta")]
    state = await load_state(session_factory)
    assert state.state == STATE_AWAITING_VARIANT
    assert state.pending_name == "Jo Smith"

    # Typing instead of choosing shows the variants again
    await conv.text("beta")
    assert conv.transport.last.choices == prompt.choices

    event_id = await conv.press("variant:beta")

    assert conv.ack_for(event_id) is None
    (session,) = await load_sessions(session_factory)
    assert session.variant == "beta"
    assert session.total_questions == 4
    assert conv.transport.sent[-2].text == msg("TEST_INTRO", name="Jo Smith", total=4)
    state = await load_state(session_factory)
    assert state.state == STATE_TESTING
    assert state.pending_name is None


@pytest.mark.asyncio
async def test_unknown_variant_reprompts(conversation, make_variant, session_factory):
    conv = conversation(make_variant(name="alpha"), make_variant(name="beta"))
    await start_test(conv)

    event_id = await conv.press("variant:gamma")

    assert conv.ack_for(event_id) == msg("UNKNOWN_VARIANT")
    assert conv.transport.last.text == msg("UNKNOWN_VARIANT")
    assert len(conv.transport.last.choices) == 2
    assert (await load_state(session_factory)).state == STATE_AWAITING_VARIANT
    assert await load_sessions(session_factory) == []


@pytest.mark.asyncio
async def test_variant_button_after_start_is_expired(conversation, make_variant, session_factory):
    conv = conversation(make_variant(name="alpha"), make_variant(name="beta"))
    await start_test(conv)
    await conv.press("variant:alpha")

    event_id = await conv.press("variant:beta")

    assert conv.ack_for(event_id) == msg("CHOICE_EXPIRED")
    (session,) = await load_sessions(session_factory)
    assert session.variant == "alpha"


@pytest.mark.asyncio
async def test_begin_while_awaiting_variant_asks_name_again(conversation, make_variant, session_factory):
    conv = conversation(make_variant(name="alpha"), make_variant(name="beta"))
    await start_test(conv)

    await conv.begin()

    assert conv.transport.last.text == msg("WELCOME")
    state = await load_state(session_factory)
    assert state.state == STATE_AWAITING_NAME
    assert state.pending_name is None


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", ["garbage", "answer:0", "answer:0:x", ""])
async def test_malformed_payload_changes_nothing(conversation, session_factory, payload):
    conv = conversation()
    await start_test(conv)

    event_id = await conv.press(payload)

    assert conv.ack_for(event_id) == msg("INVALID_DATA")
    state = await load_state(session_factory)
    assert state.current_question_index == 0
    (session,) = await load_sessions(session_factory)
    assert session.score == 0


@pytest.mark.asyncio
async def test_option_out_of_range_is_ignored(conversation, session_factory):
    conv = conversation()
    await start_test(conv)

    event_id = await conv.press("answer:0:7")

    assert conv.ack_for(event_id) == msg("INVALID_DATA")
    assert (await load_state(session_factory)).current_question_index == 0


@pytest.mark.asyncio
async def test_answer_without_running_test(conversation):
    conv = conversation()
    event_id = await conv.press("answer:0:0")
    assert conv.ack_for(event_id) == msg("START_FIRST")


@pytest.mark.asyncio
async def test_text_outside_name_step(conversation):
    conv = conversation()
    await conv.text("hello")
    assert conv.transport.last.text == msg("SEND_START")

    await start_test(conv)
    await conv.text("the first one")
    assert conv.transport.last.text == msg("USE_BUTTONS")


@pytest.mark.asyncio
async def test_begin_restores_session_without_state(conversation, make_variant, session_factory):
    variant = make_variant()
    conv = conversation(variant)
    # Process died after the session was stored but before the testing state was
    async with session_factory() as db:
        service = SessionService(db, QuestionBank())
        session = await service.start_session(IDENTITY, "Jo Smith", variant)
        await service.record_answer(session.id, 0, 0)

    await conv.begin()

    assert conv.transport.sent[-2].text == msg("RESUMING", number=2, total=3)
    state = await load_state(session_factory)
    assert state.state == STATE_TESTING
    assert state.session_id == session.id
    assert state.current_question_index == 1


@pytest.mark.asyncio
async def test_begin_finishes_fully_answered_session(conversation, make_variant, session_factory):
    variant = make_variant()
    conv = conversation(variant)
    async with session_factory() as db:
        service = SessionService(db, QuestionBank())
        session = await service.start_session(IDENTITY, "Jo Smith", variant)
        for index in range(3):
            await service.record_answer(session.id, index, 0)

    await conv.begin()

    assert conv.transport.last.text == msg(
        "TEST_FINISHED", score=3, total=3, percent=100, verdict=msg("VERDICT_EXCELLENT")
    )
    assert conv.notifier.dispatched == [session.id]
    assert await load_state(session_factory) is None


@pytest.mark.asyncio
async def test_storage_failure_reports_generic_error(conversation, session_factory):
    conv = conversation()
    with patch.object(StateService, "get_state", AsyncMock(side_effect=StorageError("get_state"))):
        await conv.begin()
        assert conv.transport.last.text == msg("GENERIC_ERROR")

        event_id = await conv.press("answer:0:0")
        assert conv.ack_for(event_id) == msg("ANSWER_ERROR")

    assert await load_state(session_factory) is None


@pytest.mark.asyncio
async def test_each_identity_has_its_own_test(conversation, session_factory):
    conv = conversation()
    await start_test(conv)
    await conv.begin(identity=2002)
    await conv.text("Ann Lee", identity=2002)
    await conv.press("answer:0:0", identity=2002)

    assert (await load_state(session_factory)).current_question_index == 0
    assert (await load_state(session_factory, 2002)).current_question_index == 1
    async with session_factory() as db:
        assert await db.scalar(select(func.count(QuizSession.id))) == 2


async def finish_test(conv):
    await start_test(conv)
    for index in range(3):
        await conv.press(f"answer:{index}:0")
    (session,) = await load_sessions(conv.session_factory)
    return session


async def restore_last_question(session_factory, session_id):
    async with session_factory() as db:
        await StateService(db).set_state(IDENTITY, STATE_TESTING, session_id=session_id, question_index=2)


@pytest.mark.asyncio
async def test_repeated_finish_notifies_once(conversation, session_factory):
    conv = conversation()
    session = await finish_test(conv)
    # State row left behind by a crash right after completion
    await restore_last_question(session_factory, session.id)

    event_id = await conv.press("answer:2:0")

    assert conv.ack_for(event_id) == msg("ANSWER_CORRECT")
    assert conv.transport.last.text == msg(
        "TEST_FINISHED", score=3, total=3, percent=100, verdict=msg("VERDICT_EXCELLENT")
    )
    assert conv.notifier.dispatched == [session.id]
    assert await load_state(session_factory) is None
    (reloaded,) = await load_sessions(session_factory)
    assert reloaded.score == 3


@pytest.mark.asyncio
async def test_begin_after_completion_clears_leftover_state(conversation, session_factory):
    conv = conversation()
    session = await finish_test(conv)
    await restore_last_question(session_factory, session.id)

    await conv.begin()

    assert conv.transport.last.text.startswith(msg("ALREADY_COMPLETED", score=3, total=3, completed_at="")[:20])
    assert await load_state(session_factory) is None
    assert conv.notifier.dispatched == [session.id]


@pytest.mark.asyncio
async def test_expired_callback_query_still_advances(conversation, session_factory):
    conv = conversation()
    await start_test(conv)
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.edit_message_reply_markup = AsyncMock()
    bot.answer_callback_query = AsyncMock(side_effect=TelegramBadRequest(
        method=MagicMock(), message="Bad Request: query is too old and response timeout expired",
    ))
    conv.transport = TelegramTransport(bot)

    await conv.press("answer:0:0")

    state = await load_state(session_factory)
    assert state.current_question_index == 1
    (session,) = await load_sessions(session_factory)
    assert session.score == 1
    sent = bot.send_message.await_args.args
    assert sent[0] == IDENTITY
    assert sent[1].startswith(msg("QUESTION", number=2, total=3, text=""))
