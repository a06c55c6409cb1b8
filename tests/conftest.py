"""
Pytest configuration and fixtures for the test bot.
"""
import sys
import os
import json
from dataclasses import dataclass, field
from typing import List, Optional

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "development")

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.config import QuizVariant  # noqa: E402
from models import Base  # noqa: E402
from services.conversation import ConversationEngine  # noqa: E402
from services.question_bank import QuestionBank  # noqa: E402
from utils.transport import Choice, ChoiceEvent  # noqa: E402

IDENTITY = 1001


@dataclass
class SentMessage:
    chat_id: int
    text: str
    choices: List[Choice] = field(default_factory=list)
    html: bool = False


class FakeTransport:
    """Records everything the engine would send to Telegram."""

    def __init__(self):
        self.sent: List[SentMessage] = []
        self.acks: List[tuple] = []
        self.cleared: List[tuple] = []

    async def send_text(self, chat_id, text, choices=None, html=False):
        self.sent.append(SentMessage(chat_id, text, list(choices or []), html))

    async def acknowledge(self, event_id, text=None):
        self.acks.append((event_id, text))

    async def clear_choices(self, chat_id, message_id):
        self.cleared.append((chat_id, message_id))

    @property
    def last(self) -> SentMessage:
        return self.sent[-1]


class FakeNotifier:
    def __init__(self):
        self.dispatched: List[int] = []

    def dispatch(self, session_id: int):
        self.dispatched.append(session_id)


def write_bank(path, count: int, correct_index: int = 0) -> str:
    """JSON bank where option `correct_index` is always the right one."""
    questions = [
        {
            "id": f"q{i}",
            "question": f"Question {i}?",
            "options": [f"right {i}", f"wrong {i}a", f"wrong {i}b"] if correct_index == 0
            else [f"wrong {i}a", f"right {i}", f"wrong {i}b"],
            "correctAnswerIndex": correct_index,
        }
        for i in range(1, count + 1)
    ]
    path.write_text(json.dumps(questions), encoding="utf-8")
    return str(path)


@pytest.fixture
def make_variant(tmp_path):
    def factory(name: str = "default", bank_size: int = 5, per_test: int = 3, title: str = "") -> QuizVariant:
        source = write_bank(tmp_path / f"{name}.json", bank_size)
        return QuizVariant(name=name, title=title, source=source, questions_per_test=per_test)
    return factory


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Conversation:
    """Drives the engine the way the dispatcher does: a fresh database session per update."""

    def __init__(self, session_factory, variants: List[QuizVariant]):
        self.session_factory = session_factory
        self.variants = variants
        self.bank = QuestionBank()
        self.transport = FakeTransport()
        self.notifier = FakeNotifier()
        self._event_seq = 0

    async def _run(self, action):
        async with self.session_factory() as db:
            engine = ConversationEngine(
                db, self.transport, self.bank, self.notifier,
                variants=self.variants, lang="EN", next_question_delay=0,
            )
            await action(engine)

    async def begin(self, identity: int = IDENTITY):
        await self._run(lambda engine: engine.handle_begin(identity, identity))

    async def text(self, text: str, identity: int = IDENTITY):
        await self._run(lambda engine: engine.handle_text(identity, identity, text))

    async def press(self, data: str, identity: int = IDENTITY, message_id: Optional[int] = 77) -> str:
        self._event_seq += 1
        event = ChoiceEvent(identity=identity, chat_id=identity, data=data,
                            event_id=f"cb-{self._event_seq}", message_id=message_id)
        await self._run(lambda engine: engine.handle_choice(event))
        return event.event_id

    def ack_for(self, event_id: str) -> Optional[str]:
        texts = [text for eid, text in self.transport.acks if eid == event_id]
        assert len(texts) == 1, f"expected exactly one acknowledgement for {event_id}, got {texts}"
        return texts[0]


@pytest.fixture
def conversation(session_factory, make_variant):
    def factory(*variants: QuizVariant) -> Conversation:
        return Conversation(session_factory, list(variants) or [make_variant()])
    return factory
