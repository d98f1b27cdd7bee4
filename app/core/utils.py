from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union
from uuid import uuid4

from .config import settings

BADGE_PREFIX = 'BADGE-'


def current_time() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_date(day: Union[date, datetime]) -> date:
    return day.date() if isinstance(day, datetime) else day


def day_range(day: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """Inclusive [00:00:00, 23:59:59.999999] bounds of the given day."""
    day = _as_date(day)
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def week_range(
    day: Union[date, datetime], week_start: Optional[int] = None
) -> Tuple[datetime, datetime]:
    """
    Half-open [start, end) bounds of the calendar week containing ``day``.
    ``week_start`` uses Python weekday numbers (Monday=0 ... Sunday=6).
    """
    if week_start is None:
        week_start = settings.WEEK_START_DAY
    day = _as_date(day)
    offset = (day.weekday() - week_start) % 7
    start = datetime.combine(day - timedelta(days=offset), time.min)
    return start, start + timedelta(days=7)


def format_duration(
    check_in: datetime,
    check_out: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> str:
    end = check_out or now or current_time()
    minutes = int((end - check_in).total_seconds() // 60)
    if minutes < 0:
        return '0m'

    hours, minutes = divmod(minutes, 60)
    if hours > 0:
        return f'{hours}h {minutes}m'
    return f'{minutes}m'


def generate_badge_number() -> str:
    return BADGE_PREFIX + uuid4().hex[:8].upper()


def storage_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    base = settings.STORAGE_BASE_URL.rstrip('/')
    if path.startswith(('http://', 'https://', 'data:', f'{base}/')):
        return path
    return f'{base}/{path.lstrip("/")}'
