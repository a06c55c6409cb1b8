import docx
from docx.shared import RGBColor
from typing import Dict, Any
import io

from constants.messages import Messages
from utils.formatting import format_datetime, score_percent

CORRECT_COLOR = RGBColor(0x28, 0xA7, 0x45)
WRONG_COLOR = RGBColor(0xDC, 0x35, 0x45)


def generate_result_docx(detail: Dict[str, Any], lang: str) -> io.BytesIO:
    """Generates a .docx transcript of one session from its detail view."""
    session = detail["session"]
    doc = docx.Document()
    doc.add_heading(Messages.get("EXPORT_TITLE", lang).format(name=session["display_name"]), 0)
    doc.add_paragraph(Messages.get("EXPORT_SUMMARY", lang).format(
        identity=session["identity"],
        variant=session["variant"],
        score=session["score"],
        total=session["total_questions"],
        percent=score_percent(session["score"], session["total_questions"]),
        completed_at=format_datetime(session["completed_at"]),
    ))

    for answer in detail["answers"]:
        para = doc.add_paragraph(style='List Number')
        para.add_run(answer["question_text"]).bold = True

        chosen = answer["user_option"] if answer["user_option"] is not None else Messages.get("NO_ANSWER", lang)
        run = doc.add_paragraph().add_run(Messages.get("EXPORT_CHOSEN", lang).format(answer=chosen))
        run.font.color.rgb = CORRECT_COLOR if answer["is_correct"] else WRONG_COLOR

        if not answer["is_correct"]:
            doc.add_paragraph(Messages.get("EXPORT_CORRECT", lang).format(answer=answer["correct_option"] or ""))

    buffer = io.BytesIO()
    doc.save(buffer)
    buffer.seek(0)
    return buffer
