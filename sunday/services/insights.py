"""Basic analytics over a saved schedule: time spent per activity category."""

from collections.abc import Iterable, Mapping

# First match wins, so the order matters.
CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Work", ("work", "meeting", "task", "project", "sprint", "brainstorm")),
    ("Meals", ("breakfast", "lunch", "dinner", "eat", "meal")),
    ("Exercise", ("gym", "exercise", "workout", "run", "fitness")),
    ("Travel", ("travel", "commute", "driving", "drive", "transit")),
    ("Social", ("social", "friend", "family", "call", "event", "team")),
    ("Shopping", ("shop", "grocery", "errand", "store")),
    (
        "Personal Care",
        ("clean", "chores", "laundry", "morning routine", "getting ready", "shower", "routine"),
    ),
    ("Entertainment", ("youtube", "tv", "video", "watch", "game", "movie")),
    ("Learning", ("read", "study", "course", "class", "training")),
]
FALLBACK_CATEGORY = "Other"
MINUTES_PER_DAY = 24 * 60


def categorize(description: str) -> str:
    lower = description.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return category
    return FALLBACK_CATEGORY


def parse_clock_minutes(value: str) -> int:
    """Minutes after midnight for a 'HH:MM AM/PM' string."""
    clock, _, period = value.strip().partition(" ")
    hours_text, _, minutes_text = clock.partition(":")
    hours, minutes = int(hours_text), int(minutes_text)
    period = period.strip().upper()
    if period == "PM" and hours != 12:
        hours += 12
    if period == "AM" and hours == 12:
        hours = 0
    return hours * 60 + minutes


def duration_minutes(start_time: str, end_time: str) -> int:
    """Length of an entry; an end before its start runs past midnight."""
    delta = parse_clock_minutes(end_time) - parse_clock_minutes(start_time)
    if delta < 0:
        delta += MINUTES_PER_DAY
    return delta


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"


def summarize_schedule(entries: Iterable[Mapping]) -> tuple[int, list[dict]]:
    """Group entries by category.

    Returns the total minutes and one summary per category, longest first.
    """
    totals: dict[str, dict] = {}
    total_minutes = 0
    for entry in entries:
        minutes = duration_minutes(entry["start_time"], entry["end_time"])
        category = categorize(entry["description"])
        bucket = totals.setdefault(category, {"minutes": 0, "activities": []})
        bucket["minutes"] += minutes
        bucket["activities"].append(entry["description"])
        total_minutes += minutes

    summaries = [
        {
            "category": category,
            "minutes": bucket["minutes"],
            "duration": format_minutes(bucket["minutes"]),
            "percentage": round(100 * bucket["minutes"] / total_minutes, 1) if total_minutes else 0.0,
            "activities": bucket["activities"],
        }
        for category, bucket in totals.items()
    ]
    summaries.sort(key=lambda s: s["minutes"], reverse=True)
    return total_minutes, summaries
