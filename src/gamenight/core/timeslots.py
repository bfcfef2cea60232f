"""Parse and format the date/time pairs submitted through the time slot modal.

Times are wall-clock times as typed by the poll participants; no timezone
conversion is applied.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from gamenight.core.errors import ValidationError

ACCEPTED_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y %Hh%M",
)

FORMAT_HINT = "YYYY-MM-DD HH:MM"

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class SlotWindow:
    start: datetime
    end: datetime


def parse_time(raw: str, field_label: str) -> datetime:
    """Parse one user-typed date/time. Raises ValidationError when unreadable."""
    text = " ".join(raw.split())
    for fmt in ACCEPTED_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    msg = f"Couldn't read the {field_label} \"{raw.strip()}\". Please use {FORMAT_HINT}."
    raise ValidationError(msg)


def parse_window(start_raw: str, end_raw: str) -> SlotWindow:
    """Parse and check a start/end pair from the modal."""
    start = parse_time(start_raw, "start time")
    end = parse_time(end_raw, "end time")
    if end <= start:
        raise ValidationError("The end time must be after the start time.")
    return SlotWindow(start=start, end=end)


def format_time(moment: datetime) -> str:
    """Short human format, e.g. ``Sun Jan 5 20h00``."""
    day = _DAYS[moment.weekday()]
    month = _MONTHS[moment.month - 1]
    return f"{day} {month} {moment.day} {moment.hour:02d}h{moment.minute:02d}"


def format_window(start: datetime, end: datetime) -> str:
    """Format a slot, dropping the end date when the slot fits in one day."""
    if start.date() == end.date():
        return f"{format_time(start)} → {end.hour:02d}h{end.minute:02d}"
    return f"{format_time(start)} → {format_time(end)}"
