import json
from typing import List, Dict, Tuple

import docx

from core.logger import logger

MAX_OPTIONS = 10


class ParserError(Exception):
    """Custom exception for parser errors."""
    pass


def parse_docx_file(file_path: str) -> Tuple[List[Dict], List[str]]:
    """Parses a .docx question file."""
    try:
        doc = docx.Document(file_path)
    except Exception as e:
        logger.error("Failed to open docx file", path=file_path, error=str(e))
        raise ParserError(f"Cannot read {file_path}: {e}") from e
    return parse_lines(para.text for para in doc.paragraphs)


def parse_text_file(file_path: str) -> Tuple[List[Dict], List[str]]:
    try:
        with open(file_path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise ParserError(f"Cannot read {file_path}: {e}") from e
    return parse_lines(lines)


def parse_json_file(file_path: str) -> Tuple[List[Dict], List[str]]:
    """
    Parses a JSON bank: a list of objects with question, options and either
    correctAnswerIndex or correct_option_id. Missing ids get the 1-based position.
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ParserError(f"Cannot read {file_path}: {e}") from e

    if isinstance(raw, dict):
        raw = raw.get("questions", [])
    if not isinstance(raw, list):
        raise ParserError(f"{file_path}: expected a list of questions")

    questions = []
    errors = []
    for i, item in enumerate(raw, 1):
        if not isinstance(item, dict):
            errors.append(f"Item {i}: expected an object")
            continue
        correct = item.get("correctAnswerIndex", item.get("correct_option_id"))
        q = {
            "id": str(item.get("id", i)),
            "question": str(item.get("question", "")).strip(),
            "options": [str(o).strip() for o in item.get("options") or []],
            "correct_option_id": correct if isinstance(correct, int) and not isinstance(correct, bool) else None,
        }
        try:
            validate_question(q, i)
            questions.append(q)
        except ParserError as e:
            errors.append(str(e))
    return questions, errors


def parse_lines(lines) -> Tuple[List[Dict], List[str]]:
    """
    Parses question lines:
        ?Question text
        +Correct option
        =Wrong option
    Lines without a prefix continue the previous question or option.
    """
    questions = []
    errors = []
    current_question = None
    current_question_start_line = 0

    def close_current():
        if not current_question:
            return
        try:
            validate_question(current_question, current_question_start_line)
            current_question.pop("last_item_type", None)
            current_question["id"] = str(len(questions) + 1)
            questions.append(current_question)
        except ParserError as e:
            errors.append(str(e))

    for i, text in enumerate(lines, 1):
        text = text.strip()
        if not text:
            continue

        if text.startswith('?'):
            close_current()
            current_question = {
                'question': text[1:].strip(),
                'options': [],
                'correct_option_id': None,
                'last_item_type': 'q'  # 'q' question, 'c' correct option, 'w' wrong option
            }
            current_question_start_line = i

        elif text.startswith('+'):
            if not current_question:
                continue
            if current_question['correct_option_id'] is not None:
                current_question['__error'] = f"Line {i}: question at line {current_question_start_line} has more than one correct option"
            current_question['correct_option_id'] = len(current_question['options'])
            current_question['options'].append(text[1:].strip())
            current_question['last_item_type'] = 'c'

        elif text.startswith('='):
            if not current_question:
                continue
            current_question['options'].append(text[1:].strip())
            current_question['last_item_type'] = 'w'

        elif current_question:
            # Multiline support: append to last item
            last_type = current_question.get('last_item_type')
            if last_type == 'q':
                current_question['question'] += " " + text
            elif last_type in ('c', 'w') and current_question['options']:
                current_question['options'][-1] += " " + text
        else:
            errors.append(f"Line {i}: unexpected text before the first question: {text[:20]}...")

    close_current()

    if not questions and not errors:
        raise ParserError("No questions found")

    return questions, errors


def validate_question(q: Dict, line_num: int):
    """Ensures a question has text, options and exactly one correct answer."""
    if '__error' in q:
        raise ParserError(q['__error'])

    if not q['question']:
        raise ParserError(f"Question {line_num}: empty question text")

    if len(q['options']) < 2:
        raise ParserError(f"Question {line_num}: needs at least 2 options, got {len(q['options'])}")

    if len(q['options']) > MAX_OPTIONS:
        raise ParserError(f"Question {line_num}: at most {MAX_OPTIONS} options allowed, got {len(q['options'])}")

    if any(not opt for opt in q['options']):
        raise ParserError(f"Question {line_num}: empty option text")

    correct = q['correct_option_id']
    if correct is None:
        raise ParserError(f"Question {line_num}: no correct option marked")
    if not 0 <= correct < len(q['options']):
        raise ParserError(f"Question {line_num}: correct option index {correct} out of range")
