"""
Calendar Layout

Pure helpers for the expert calendar: positioning appointment blocks on a
vertical time grid, bucketing appointments into days and weeks, and the
Turkish date and label formatting used by the calendar views.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from rejimde.config import settings
from rejimde.models.schemas import Appointment

logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]
AppointmentLike = Union[Appointment, Mapping[str, Any]]

MONTH_NAMES = (
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
)
MONTH_SHORT_NAMES = (
    "Oca", "Şub", "Mar", "Nis", "May", "Haz",
    "Tem", "Ağu", "Eyl", "Eki", "Kas", "Ara",
)
DAY_NAMES = ("Pazartesi", "Salı", "Çarşamba", "Perşembe", "Cuma", "Cumartesi", "Pazar")
DAY_SHORT_NAMES = ("Pzt", "Sal", "Çar", "Per", "Cum", "Cmt", "Paz")

STATUS_LABELS = {
    "pending": "Beklemede",
    "confirmed": "Onaylandı",
    "completed": "Tamamlandı",
    "cancelled": "İptal Edildi",
    "no_show": "Gelmedi",
}
TYPE_LABELS = {
    "online": "Online",
    "in_person": "Yüz Yüze",
    "phone": "Telefon",
}


class GridBlock(BaseModel):
    """Vertical placement of one appointment on the day grid (pixels)."""

    appointment_id: Optional[int] = None
    date: Optional[str] = None
    start_time: str
    end_time: str
    top: float
    height: float
    overflows_grid: bool = False


# ==========================================
# TIME ARITHMETIC
# ==========================================

def _minutes(time_str: str) -> int:
    parts = time_str.split(":")
    hours = int(parts[0])
    minutes = int(parts[1]) if len(parts) > 1 else 0
    return hours * 60 + minutes


def format_time(time_str: str) -> str:
    """Trim "14:30:00" to "14:30"."""
    if not time_str:
        return ""
    parts = time_str.split(":")
    return f"{parts[0]}:{parts[1]}" if len(parts) > 1 else parts[0]


def get_time_position(time_str: str, start_hour: int = 0, hour_height: float = 64) -> float:
    """
    Offset of a time from the top of the grid.

    Args:
        time_str: "HH:MM" (seconds are ignored)
        start_hour: Hour shown at the top edge of the grid
        hour_height: Pixel height of one hour

    Returns:
        Top position in pixels; negative for times before start_hour
    """
    total = _minutes(time_str) - start_hour * 60
    return total / 60 * hour_height


def get_appointment_height(start_time: str, end_time: str, hour_height: float = 64) -> float:
    return calculate_duration(start_time, end_time) / 60 * hour_height


def calculate_duration(start_time: str, end_time: str) -> int:
    return _minutes(end_time) - _minutes(start_time)


def add_minutes_to_time(time_str: str, minutes: int) -> str:
    total = _minutes(time_str) + minutes
    return f"{(total // 60) % 24:02d}:{total % 60:02d}"


def _as_appointment(appointment: AppointmentLike) -> Appointment:
    if isinstance(appointment, Appointment):
        return appointment
    return Appointment(**appointment)


def layout_appointment(
    appointment: AppointmentLike,
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
    hour_height: Optional[float] = None,
    clip: bool = False,
) -> GridBlock:
    """
    Place an appointment on the time grid.

    Missing end times are derived from start time plus duration (60 minutes
    when no duration is given). Blocks reaching outside
    [start_hour, end_hour] are reported via ``overflows_grid`` and are only
    trimmed to the grid when ``clip`` is set.

    Example:
        >>> block = layout_appointment({"id": 1, "date": "2025-01-06", "start_time": "10:00"})
        >>> block.top, block.height
        (128.0, 64.0)
    """
    start_hour = settings.calendar_start_hour if start_hour is None else start_hour
    end_hour = settings.calendar_end_hour if end_hour is None else end_hour
    hour_height = settings.calendar_hour_height if hour_height is None else hour_height

    appt = _as_appointment(appointment)
    end_time = appt.end_time or add_minutes_to_time(appt.start_time, appt.duration)

    top = get_time_position(appt.start_time, start_hour, hour_height)
    height = get_appointment_height(appt.start_time, end_time, hour_height)
    grid_height = (end_hour - start_hour) * hour_height
    overflows = top < 0 or top + height > grid_height

    if clip and overflows:
        bottom = min(max(top + height, 0), grid_height)
        top = min(max(top, 0), grid_height)
        height = bottom - top

    return GridBlock(
        appointment_id=appt.id,
        date=appt.date,
        start_time=format_time(appt.start_time),
        end_time=format_time(end_time),
        top=top,
        height=height,
        overflows_grid=overflows,
    )


def generate_time_slots(start_hour: int = 0, end_hour: int = 24, interval: int = 30) -> List[str]:
    return [
        f"{hour:02d}:{minute:02d}"
        for hour in range(start_hour, end_hour)
        for minute in range(0, 60, interval)
    ]


def get_day_hours(start_hour: int = 8, end_hour: int = 20) -> List[int]:
    """Hour labels of the day view, both ends inclusive."""
    return list(range(start_hour, end_hour + 1))


def is_time_slot_available(
    time_str: str,
    duration: int,
    booked_slots: Iterable[Mapping[str, str]],
) -> bool:
    """True when [time, time + duration) overlaps none of the booked slots."""
    start = _minutes(time_str)
    end = start + duration
    for slot in booked_slots:
        slot_start = _minutes(slot["start_time"])
        slot_end = _minutes(slot["end_time"])
        if start < slot_end and end > slot_start:
            return False
    return True


# ==========================================
# DATES
# ==========================================

def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def to_iso_date(value: DateLike) -> str:
    return to_date(value).isoformat()


def format_date(value: DateLike) -> str:
    """Long Turkish date, e.g. "27 Aralık 2025"."""
    d = to_date(value)
    return f"{d.day} {MONTH_NAMES[d.month - 1]} {d.year}"


def format_date_range(start: DateLike, end: DateLike) -> str:
    s, e = to_date(start), to_date(end)
    return f"{s.day} {MONTH_SHORT_NAMES[s.month - 1]} - {e.day} {MONTH_SHORT_NAMES[e.month - 1]}"


def get_relative_time(value: Union[str, datetime], now: Optional[datetime] = None) -> str:
    """
    Human readable age of a timestamp ("5 dakika önce").

    Falls back to the long date after a week.
    """
    moment = datetime.fromisoformat(value) if isinstance(value, str) else value
    now = now or datetime.now(moment.tzinfo)
    diff_minutes = int((now - moment).total_seconds() // 60)
    diff_hours = diff_minutes // 60
    diff_days = diff_hours // 24

    if diff_minutes < 1:
        return "Az önce"
    if diff_minutes < 60:
        return f"{diff_minutes} dakika önce"
    if diff_hours < 24:
        return f"{diff_hours} saat önce"
    if diff_days < 7:
        return f"{diff_days} gün önce"
    return format_date(moment)


def get_week_start(value: DateLike) -> date:
    d = to_date(value)
    return d - timedelta(days=d.weekday())


def get_week_end(value: DateLike) -> date:
    return get_week_start(value) + timedelta(days=6)


def get_month_start(value: DateLike) -> date:
    return to_date(value).replace(day=1)


def get_month_end(value: DateLike) -> date:
    d = to_date(value)
    next_month = d.replace(day=28) + timedelta(days=4)
    return next_month - timedelta(days=next_month.day)


def get_week_days(value: DateLike, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Monday-first days of the week containing ``value``."""
    today = today or date.today()
    start = get_week_start(value)
    days = []
    for offset in range(7):
        current = start + timedelta(days=offset)
        days.append({
            "date": current.isoformat(),
            "day_name": DAY_NAMES[current.weekday()],
            "day_number": current.day,
            "is_today": current == today,
            "full_date": format_date(current),
        })
    return days


def date_strip(current: DateLike, radius: int = 3, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Day picker of the daily view: ``current`` plus ``radius`` days either side."""
    today = today or date.today()
    center = to_date(current)
    strip = []
    for offset in range(-radius, radius + 1):
        day = center + timedelta(days=offset)
        strip.append({
            "date": day.isoformat(),
            "day_name": DAY_SHORT_NAMES[day.weekday()],
            "day_number": day.day,
            "is_selected": offset == 0,
            "is_today": day == today,
        })
    return strip


def get_month_grid(value: DateLike, today: Optional[date] = None) -> List[List[Dict[str, Any]]]:
    """
    Weeks of the month view.

    The grid starts on the Monday on or before the 1st and ends on the
    Sunday on or after the last day; padding days carry ``in_month=False``.
    """
    today = today or date.today()
    first = get_month_start(value)
    last = get_month_end(value)
    cursor = get_week_start(first)
    end = get_week_end(last)

    weeks: List[List[Dict[str, Any]]] = []
    while cursor <= end:
        week = []
        for _ in range(7):
            week.append({
                "date": cursor.isoformat(),
                "day_number": cursor.day,
                "in_month": cursor.month == first.month,
                "is_today": cursor == today,
            })
            cursor += timedelta(days=1)
        weeks.append(week)
    return weeks


# ==========================================
# BUCKETING
# ==========================================

def appointments_for_date(appointments: Sequence[AppointmentLike], day: DateLike) -> List[Appointment]:
    """Appointments whose ``date`` string equals ``day``, earliest first."""
    key = day if isinstance(day, str) else to_iso_date(day)
    matches = [appt for appt in map(_as_appointment, appointments) if appt.date == key]
    return sorted(matches, key=lambda appt: _minutes(appt.start_time))


def bucket_by_date(appointments: Sequence[AppointmentLike]) -> Dict[str, List[Appointment]]:
    buckets: Dict[str, List[Appointment]] = {}
    for appt in map(_as_appointment, appointments):
        buckets.setdefault(appt.date, []).append(appt)
    for items in buckets.values():
        items.sort(key=lambda appt: _minutes(appt.start_time))
    return buckets


def get_status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def get_type_label(appointment_type: str) -> str:
    return TYPE_LABELS.get(appointment_type, appointment_type)
