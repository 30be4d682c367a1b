"""iCalendar export of a saved schedule."""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta

from sunday.services.insights import parse_clock_minutes

ICS_DATETIME_FORMAT = "%Y%m%dT%H%M%S"


def escape_text(value: str) -> str:
    """Escape a TEXT value per RFC 5545."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _at(day: date, clock: str) -> datetime:
    return datetime.combine(day, time()) + timedelta(minutes=parse_clock_minutes(clock))


def build_calendar(schedule_id: str, day: date, entries: Iterable[Mapping], now: datetime | None = None) -> str:
    """Render entries as floating local-time VEVENTs, CRLF-separated."""
    stamp = (now or datetime.now()).strftime(ICS_DATETIME_FORMAT)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Sunday App//Schedule//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for index, entry in enumerate(entries):
        start = _at(day, entry["start_time"])
        end = _at(day, entry["end_time"])
        if end < start:
            end += timedelta(days=1)
        lines += [
            "BEGIN:VEVENT",
            f"DTSTART:{start.strftime(ICS_DATETIME_FORMAT)}",
            f"DTEND:{end.strftime(ICS_DATETIME_FORMAT)}",
            f"SUMMARY:{escape_text(entry['description'])}",
        ]
        if entry.get("note"):
            lines.append(f"DESCRIPTION:{escape_text(entry['note'])}")
        lines += [
            f"UID:{schedule_id}-{index}@sunday-app",
            f"DTSTAMP:{stamp}",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"
