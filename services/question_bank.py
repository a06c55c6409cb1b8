import os
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from core.config import QuizVariant
from core.exceptions import BankError, InsufficientBankError
from core.logger import logger
from utils.parser import ParserError, parse_docx_file, parse_json_file, parse_text_file


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    options: Tuple[str, ...]
    correct_index: int


_LOADERS = {
    ".json": parse_json_file,
    ".txt": parse_text_file,
    ".docx": parse_docx_file,
}


def load_questions(source: str) -> Tuple[Question, ...]:
    """Read and validate a bank file. Any malformed question fails the whole bank."""
    ext = os.path.splitext(source)[1].lower()
    loader = _LOADERS.get(ext)
    if loader is None:
        raise BankError(f"Unsupported question bank format: {source}")
    if not os.path.exists(source):
        raise BankError(f"Question bank not found: {source}")

    try:
        raw, errors = loader(source)
    except ParserError as e:
        raise BankError(str(e)) from e

    if errors:
        for error in errors:
            logger.error("Invalid question in bank", source=source, error=error)
        raise BankError(f"{len(errors)} invalid question(s) in {source}: {errors[0]}")

    questions = tuple(
        Question(id=q["id"], text=q["question"], options=tuple(q["options"]), correct_index=q["correct_option_id"])
        for q in raw
    )
    ids = [q.id for q in questions]
    if len(set(ids)) != len(ids):
        raise BankError(f"Duplicate question ids in {source}")
    return questions


class QuestionBank:
    """Immutable question sets per variant, loaded lazily and cached for the process lifetime."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._banks: Dict[str, Tuple[Question, ...]] = {}
        self._rng = rng or random.SystemRandom()

    def load(self, variant: QuizVariant) -> Tuple[Question, ...]:
        if variant.name not in self._banks:
            questions = load_questions(variant.source)
            self._banks[variant.name] = questions
            logger.info("Question bank loaded", variant=variant.name, source=variant.source, count=len(questions))
        return self._banks[variant.name]

    def preload(self, variants: Iterable[QuizVariant]):
        """Load every variant up front and check it can fill a test."""
        for variant in variants:
            available = len(self.load(variant))
            if available < variant.questions_per_test:
                raise InsufficientBankError(variant.name, available, variant.questions_per_test)

    def select_questions(self, variant: QuizVariant) -> List[Question]:
        """N distinct questions in random serving order (Fisher-Yates over the whole bank)."""
        questions = self.load(variant)
        required = variant.questions_per_test
        if len(questions) < required:
            raise InsufficientBankError(variant.name, len(questions), required)

        shuffled = list(questions)
        self._rng.shuffle(shuffled)
        return shuffled[:required]
