"""回答期限の判定 — 期限日はローカル時刻の当日末まで有効"""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from src.config.settings import get_settings


def _tz(tz_name: str | None) -> ZoneInfo:
    return ZoneInfo(tz_name or get_settings().app_timezone)


def response_deadline(due_date: date, tz_name: str | None = None) -> datetime:
    """期限日の23:59:59.999999（ローカル）を返す"""
    return datetime.combine(due_date, time.max, tzinfo=_tz(tz_name))


def is_window_open(now: datetime, due_date: date, tz_name: str | None = None) -> bool:
    """now 時点で回答受付中か"""
    return now <= response_deadline(due_date, tz_name)


def remaining_days(now: datetime, due_date: date, tz_name: str | None = None) -> int:
    """期限日までの暦日数（期限当日は0、超過時は負）"""
    today = now.astimezone(_tz(tz_name)).date()
    return (due_date - today).days
