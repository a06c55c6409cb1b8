from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from core.config import settings


def score_percent(score: int, total: int) -> int:
    return round(score / total * 100) if total > 0 else 0


def verdict_key(percent: int) -> str:
    if percent >= 80:
        return "VERDICT_EXCELLENT"
    if percent >= 60:
        return "VERDICT_GOOD"
    return "VERDICT_POOR"


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    # SQLite hands back naive values; they are stored as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(settings.TIMEZONE)).strftime("%d.%m.%Y %H:%M")
