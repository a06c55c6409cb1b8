import re
from dataclasses import dataclass
from typing import Union

from core.exceptions import StaleEventError

ANSWER_PREFIX = "answer"
VARIANT_PREFIX = "variant"

# Telegram limits callback_data to 64 bytes
MAX_CALLBACK_BYTES = 64

_ANSWER_RE = re.compile(r"^answer:(\d{1,6}):(\d{1,3})$", re.ASCII)
_VARIANT_RE = re.compile(r"^variant:([\w\-]{1,48})$", re.ASCII)


@dataclass(frozen=True)
class AnswerSelection:
    question_index: int
    option_index: int


@dataclass(frozen=True)
class VariantSelection:
    name: str


def encode_answer(question_index: int, option_index: int) -> str:
    return f"{ANSWER_PREFIX}:{question_index}:{option_index}"


def encode_variant(name: str) -> str:
    data = f"{VARIANT_PREFIX}:{name}"
    if len(data.encode()) > MAX_CALLBACK_BYTES:
        raise ValueError(f"Variant name too long for callback data: {name}")
    return data


def parse_choice(data: str) -> Union[AnswerSelection, VariantSelection]:
    """Decode a button payload. Anything unrecognised raises StaleEventError."""
    if not data:
        raise StaleEventError("Empty callback data")

    match = _ANSWER_RE.match(data)
    if match:
        return AnswerSelection(question_index=int(match.group(1)), option_index=int(match.group(2)))

    match = _VARIANT_RE.match(data)
    if match:
        return VariantSelection(name=match.group(1))

    raise StaleEventError(f"Malformed callback data: {data[:MAX_CALLBACK_BYTES]!r}")
