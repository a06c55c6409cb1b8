import pytest

from services.question_bank import QuestionBank
from services.result_service import ResultService
from services.session_service import SessionService


async def finished_session(db, variant, identity, name, answers):
    service = SessionService(db, QuestionBank())
    session = await service.start_session(identity, name, variant)
    for index, option in enumerate(answers):
        await service.record_answer(session.id, index, option)
    await service.complete_session(session.id)
    return session


@pytest.mark.asyncio
async def test_list_completed_newest_first(db, make_variant):
    variant = make_variant(bank_size=5, per_test=3)
    first = await finished_session(db, variant, 1, "First User", [0, 0, 0])
    second = await finished_session(db, variant, 2, "Second User", [1, 1, 0])
    # In-progress sessions are not results
    await SessionService(db, QuestionBank()).start_session(3, "Still Going", variant)

    results = await ResultService(db).list_completed()

    assert [r["id"] for r in results] == [second.id, first.id]
    assert results[0]["display_name"] == "Second User"
    assert results[0]["score"] == 1
    assert results[1]["score"] == 3

    page = await ResultService(db).list_completed(limit=1, offset=1)
    assert [r["id"] for r in page] == [first.id]


@pytest.mark.asyncio
async def test_detail_resolves_options(db, make_variant):
    variant = make_variant(bank_size=5, per_test=3)
    session = await finished_session(db, variant, 1, "Jo Smith", [0, 2, 0])

    detail = await ResultService(db).get_result_detail(session.id)

    assert detail["session"]["score"] == 2
    assert detail["session"]["status"] == "completed"
    wrong = [a for a in detail["answers"] if not a["is_correct"]]
    assert len(wrong) == 1
    assert wrong[0]["position"] == 1
    assert wrong[0]["user_option"] == wrong[0]["options"][2]
    assert wrong[0]["correct_option"] == wrong[0]["options"][0]
    assert all(isinstance(a["is_correct"], bool) for a in detail["answers"])


@pytest.mark.asyncio
async def test_detail_of_unanswered_question(db, make_variant):
    variant = make_variant(bank_size=5, per_test=3)
    session = await SessionService(db, QuestionBank()).start_session(1, "Jo Smith", variant)

    detail = await ResultService(db).get_result_detail(session.id)

    assert detail["answers"][0]["user_option"] is None
    assert detail["answers"][0]["is_correct"] is False


@pytest.mark.asyncio
async def test_detail_missing(db):
    assert await ResultService(db).get_result_detail(404) is None


@pytest.mark.asyncio
async def test_statistics(db, make_variant):
    service = ResultService(db)
    assert await service.get_statistics() == {
        "total_tests": 0, "average_score": None, "min_score": None, "max_score": None,
    }

    variant = make_variant(bank_size=5, per_test=3)
    await finished_session(db, variant, 1, "First User", [0, 0, 0])
    await finished_session(db, variant, 2, "Second User", [1, 1, 0])

    assert await service.get_statistics() == {
        "total_tests": 2, "average_score": 2.0, "min_score": 1, "max_score": 3,
    }
