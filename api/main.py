from fastapi import FastAPI, HTTPException, Depends, Header, Request, Query
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from aiogram.types import Update
import hmac
import structlog
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from core.config import settings
from core.exceptions import StorageError
from db.session import get_db
from services.result_service import ResultService
from services.task_manager import task_manager
from utils.exporter import generate_result_docx

logger = structlog.get_logger()

# API Documentation
API_DESCRIPTION = """
## Test Results API

Read-only access to completed test sessions recorded by the Telegram bot.

### Authentication

When `ADMIN_API_TOKEN` is configured every endpoint except `/api/health`
requires the header `X-Admin-Token: <token>`.
"""

TAGS_METADATA = [
    {
        "name": "results",
        "description": "Completed test sessions and their answer transcripts.",
    },
    {
        "name": "info",
        "description": "Service health.",
    },
]

app = FastAPI(
    title="Test Results API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("API storage failure", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

# === Pydantic Models with Documentation ===

class ResultSummary(BaseModel):
    """One test session as listed by the API."""
    id: int = Field(..., description="Session ID")
    identity: int = Field(..., description="Telegram user ID of the participant")
    display_name: str = Field(..., description="Name typed by the participant")
    variant: str = Field(..., description="Test variant name")
    score: int = Field(..., description="Number of correct answers")
    total_questions: int = Field(..., description="Number of questions in the session")
    status: str = Field(..., description="in_progress or completed")
    started_at: datetime = Field(..., description="When the session was created")
    completed_at: Optional[datetime] = Field(None, description="When the last answer was recorded")


class AnswerDetail(BaseModel):
    """A question of the session with the participant's choice."""
    position: int = Field(..., description="0-based position in the session")
    question_source_id: str = Field(..., description="Question id in the bank")
    question_text: str
    options: List[str]
    correct_option_index: int
    correct_option: Optional[str] = None
    user_option_index: Optional[int] = Field(None, description="Chosen option, null if never answered")
    user_option: Optional[str] = None
    is_correct: bool
    answered_at: Optional[datetime] = None


class ResultDetail(BaseModel):
    """Session summary with the ordered answer transcript."""
    session: ResultSummary
    answers: List[AnswerDetail]


class Statistics(BaseModel):
    """Aggregates over completed sessions."""
    total_tests: int = Field(..., description="Number of completed sessions")
    average_score: Optional[float] = Field(None, description="Average score, null when there are no results")
    min_score: Optional[int] = None
    max_score: Optional[int] = None


class HealthStatus(BaseModel):
    status: str = Field(default="ok")


def require_admin_token(x_admin_token: Optional[str] = Header(None)):
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        logger.warning("Auth failed: missing or invalid admin token")
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.get(
    "/api/results",
    response_model=List[ResultSummary],
    tags=["results"],
    summary="List completed results",
    description="Returns completed test sessions, newest first.",
    dependencies=[Depends(require_admin_token)],
)
async def list_results(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await ResultService(db).list_completed(limit=limit, offset=offset)


@app.get(
    "/api/results/{session_id}",
    response_model=ResultDetail,
    tags=["results"],
    summary="Get result details",
    description="Returns the session summary and every question with the chosen and correct options.",
    responses={404: {"description": "Session not found"}},
    dependencies=[Depends(require_admin_token)],
)
async def get_result(session_id: int, db: AsyncSession = Depends(get_db)):
    detail = await ResultService(db).get_result_detail(session_id)
    if not detail:
        raise HTTPException(status_code=404, detail="Result not found")
    return detail


@app.get(
    "/api/results/{session_id}/export",
    tags=["results"],
    summary="Export result as .docx",
    responses={
        200: {"content": {DOCX_MEDIA_TYPE: {}}, "description": "Word transcript"},
        404: {"description": "Session not found"},
    },
    dependencies=[Depends(require_admin_token)],
)
async def export_result(session_id: int, db: AsyncSession = Depends(get_db)):
    detail = await ResultService(db).get_result_detail(session_id)
    if not detail:
        raise HTTPException(status_code=404, detail="Result not found")

    buffer = generate_result_docx(detail, settings.LANGUAGE)
    filename = f"result_{session_id}.docx"
    return StreamingResponse(
        buffer,
        media_type=DOCX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get(
    "/api/statistics",
    response_model=Statistics,
    tags=["results"],
    summary="Result statistics",
    dependencies=[Depends(require_admin_token)],
)
async def get_statistics(db: AsyncSession = Depends(get_db)):
    return await ResultService(db).get_statistics()


@app.get("/api/health", response_model=HealthStatus, tags=["info"], summary="Health check")
async def health():
    return {"status": "ok"}


@app.post(settings.WEBHOOK_PATH, include_in_schema=False)
async def telegram_webhook(request: Request, x_telegram_bot_api_secret_token: Optional[str] = Header(None)):
    bot = getattr(request.app.state, "bot", None)
    dp = getattr(request.app.state, "dp", None)
    if bot is None or dp is None:
        raise HTTPException(status_code=404, detail="Webhook delivery is not enabled")

    if settings.WEBHOOK_SECRET and not hmac.compare_digest(x_telegram_bot_api_secret_token or "", settings.WEBHOOK_SECRET):
        logger.warning("Webhook rejected: bad secret token")
        raise HTTPException(status_code=401, detail="Unauthorized")

    update = Update.model_validate(await request.json(), context={"bot": bot})
    # Telegram retries slow webhooks, so the update is processed after replying
    task_manager.spawn(dp.feed_update(bot, update), name=f"update:{update.update_id}")
    return {"ok": True}
