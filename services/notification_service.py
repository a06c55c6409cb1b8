"""
Result notifications for completed test sessions.

Each completed session is reported to every configured admin chat (a header
plus the answers in chunks) and, when SMTP is configured, by email. Delivery
runs as a background task: failures are logged and never reach the user who
just finished the test.
"""
import asyncio
import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional

from aiogram.exceptions import TelegramAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from constants.messages import Messages
from core.config import settings
from core.exceptions import NotificationError, StorageError
from core.logger import logger
from services.result_service import ResultService
from services.task_manager import task_manager
from utils.formatting import format_datetime, score_percent, verdict_key
from utils.transport import Transport

RESULT_HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 800px; margin: 0 auto; padding: 20px;">
    <div style="background: #007bff; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
        <h1 style="margin: 0;">{title}</h1>
    </div>
    <div style="background: #f9f9f9; padding: 20px; border-radius: 0 0 8px 8px;">
        <p><strong>{name}</strong> (Telegram ID: {identity})</p>
        <p>{variant} | {completed_at}</p>
        <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0; text-align: center;">
            <div style="font-size: 48px; font-weight: bold; color: {score_color};">{score} / {total}</div>
            <div style="font-size: 24px; color: #666;">{percent}%</div>
            <div style="margin-top: 10px; font-size: 18px;">{verdict}</div>
        </div>
        <table style="width: 100%; border-collapse: collapse; background: white;">
            <tbody>
{rows}
            </tbody>
        </table>
    </div>
</body>
</html>
"""

RESULT_ROW_TEMPLATE = """                <tr style="border-bottom: 1px solid #eee;">
                    <td style="padding: 10px; vertical-align: top; width: 30px;">{number}</td>
                    <td style="padding: 10px;"><strong>{text}</strong><br>{answer_html}</td>
                </tr>"""


def _score_color(percent: int) -> str:
    if percent >= 80:
        return "#28a745"
    if percent >= 60:
        return "#ffc107"
    return "#dc3545"


def format_admin_messages(detail: Dict[str, Any], lang: str, per_message: int) -> List[str]:
    """Header message followed by answer chunks of per_message answers each."""
    session = detail["session"]
    answers = detail["answers"]
    percent = score_percent(session["score"], session["total_questions"])

    messages = [Messages.get("NOTIFY_HEADER", lang).format(
        name=html.escape(session["display_name"]),
        identity=session["identity"],
        variant=html.escape(session["variant"]),
        completed_at=format_datetime(session["completed_at"]),
        score=session["score"],
        total=session["total_questions"],
        percent=percent,
        verdict=Messages.get(verdict_key(percent), lang),
    )]

    for start in range(0, len(answers), per_message):
        chunk = answers[start:start + per_message]
        text = Messages.get("NOTIFY_ANSWERS_HEADER", lang).format(
            start=start + 1, end=start + len(chunk), total=len(answers)
        )
        for offset, answer in enumerate(chunk):
            chosen = answer["user_option"] if answer["user_option"] is not None else Messages.get("NO_ANSWER", lang)
            key = "NOTIFY_ANSWER_CORRECT" if answer["is_correct"] else "NOTIFY_ANSWER_WRONG"
            text += Messages.get(key, lang).format(
                number=start + offset + 1,
                text=html.escape(answer["question_text"]),
                answer=html.escape(chosen),
                correct=html.escape(answer["correct_option"] or ""),
            )
        messages.append(text)
    return messages


def format_result_email(detail: Dict[str, Any], lang: str) -> Dict[str, str]:
    session = detail["session"]
    percent = score_percent(session["score"], session["total_questions"])
    rows = []
    for answer in detail["answers"]:
        chosen = answer["user_option"] if answer["user_option"] is not None else Messages.get("NO_ANSWER", lang)
        if answer["is_correct"]:
            answer_html = f'<span style="color: #28a745;">✅ {html.escape(chosen)}</span>'
        else:
            answer_html = (
                f'<span style="color: #dc3545;">❌ {html.escape(chosen)}</span><br>'
                f'<span style="color: #28a745;">✓ {html.escape(answer["correct_option"] or "")}</span>'
            )
        rows.append(RESULT_ROW_TEMPLATE.format(
            number=answer["position"] + 1,
            text=html.escape(answer["question_text"]),
            answer_html=answer_html,
        ))

    subject = Messages.get("EMAIL_SUBJECT", lang).format(
        name=session["display_name"], score=session["score"], total=session["total_questions"], percent=percent
    )
    body = RESULT_HTML_TEMPLATE.format(
        title=html.escape(subject),
        name=html.escape(session["display_name"]),
        identity=session["identity"],
        variant=html.escape(session["variant"]),
        completed_at=format_datetime(session["completed_at"]),
        score_color=_score_color(percent),
        score=session["score"],
        total=session["total_questions"],
        percent=percent,
        verdict=Messages.get(verdict_key(percent), lang),
        rows="\n".join(rows),
    )
    return {"subject": subject, "html": body}


class EmailSender:
    """Blocking SMTP delivery; call it from a worker thread."""

    def __init__(self, host: str, port: int, user: str, password: str, use_tls: bool, sender: str, timeout: int):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.sender = sender or user
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> Optional["EmailSender"]:
        if not settings.SMTP_HOST or not settings.email_recipients:
            return None
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.EMAIL_FROM,
            timeout=settings.SMTP_TIMEOUT_SECONDS,
        )

    def send(self, recipients: List[str], subject: str, html_body: str):
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, recipients, message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery failed: {e}") from e


class NotificationService:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        transport: Transport,
        email_sender: Optional[EmailSender] = None,
        admin_chat_ids: Optional[List[int]] = None,
        email_recipients: Optional[List[str]] = None,
        lang: str = settings.LANGUAGE,
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.email_sender = email_sender
        self.admin_chat_ids = settings.admin_chat_ids if admin_chat_ids is None else admin_chat_ids
        self.email_recipients = settings.email_recipients if email_recipients is None else email_recipients
        self.lang = lang

    def dispatch(self, session_id: int) -> asyncio.Task:
        """Schedule delivery without waiting for it."""
        return task_manager.spawn(self.notify(session_id), name=f"notify_results:{session_id}")

    async def notify(self, session_id: int) -> bool:
        try:
            async with self.session_factory() as db:
                detail = await ResultService(db).get_result_detail(session_id)
            if not detail:
                raise NotificationError(f"Session {session_id} not found")

            delivered = await self._send_to_admins(detail)
            delivered += await self._send_email(detail)
            logger.info("Result notification finished", session_id=session_id, delivered=delivered)
            return delivered > 0
        except (NotificationError, StorageError) as e:
            logger.error("Result notification failed", session_id=session_id, error=str(e))
            return False

    async def _send_to_admins(self, detail: Dict[str, Any]) -> int:
        if not self.admin_chat_ids:
            logger.debug("ADMIN_CHAT_IDS not configured, skipping chat notification")
            return 0

        messages = format_admin_messages(detail, self.lang, settings.NOTIFY_ANSWERS_PER_MESSAGE)
        delivered = 0
        for chat_id in self.admin_chat_ids:
            try:
                for text in messages:
                    await self.transport.send_text(chat_id, text, html=True)
                    await asyncio.sleep(settings.NOTIFY_MESSAGE_DELAY_SECONDS)
                delivered += 1
                logger.info("Result sent to admin chat", chat_id=chat_id, messages=len(messages))
            except TelegramAPIError as e:
                logger.error("Failed to send result to admin chat", chat_id=chat_id, error=str(e))
        return delivered

    async def _send_email(self, detail: Dict[str, Any]) -> int:
        if not self.email_sender or not self.email_recipients:
            return 0

        email = format_result_email(detail, self.lang)
        try:
            await asyncio.to_thread(self.email_sender.send, self.email_recipients, email["subject"], email["html"])
        except NotificationError as e:
            logger.error("Failed to send result email", recipients=self.email_recipients, error=str(e))
            return 0
        logger.info("Result email sent", recipients=self.email_recipients)
        return 1
