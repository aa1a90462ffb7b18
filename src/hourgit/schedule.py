"""Working-hours schedules: parsing, storage form, expansion and display."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from dateutil.rrule import rrulestr

from .errors import InvalidInputError

_TIME_PATTERNS = (
    (re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)$"), True),
    (re.compile(r"^(\d{1,2})\.(\d{2})\s*(am|pm)$"), True),
    (re.compile(r"^(\d{1,2})()\s*(am|pm)$"), True),
    (re.compile(r"^(\d{1,2}):(\d{2})()$"), False),
    (re.compile(r"^(\d{1,2})\.(\d{2})()$"), False),
)

_EVERY_N_WEEKS = re.compile(r"^every (\d+) weeks?$")
_DTSTART = re.compile(r"DTSTART(?:;[^:]*)?:(\d{8})", re.IGNORECASE)
_UNTIL = re.compile(r"UNTIL=(\d{8})", re.IGNORECASE)

WEEKDAYS = {
    "monday": "MO",
    "tuesday": "TU",
    "wednesday": "WE",
    "thursday": "TH",
    "friday": "FR",
    "saturday": "SA",
    "sunday": "SU",
}
_WEEKDAY_NAMES = {code: name.capitalize() for name, code in WEEKDAYS.items()}

_NATURAL_RULES = {
    "every day": "FREQ=DAILY",
    "daily": "FREQ=DAILY",
    "every weekday": "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR",
    "weekdays": "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR",
    "every weekend": "FREQ=WEEKLY;BYDAY=SA,SU",
    "weekends": "FREQ=WEEKLY;BYDAY=SA,SU",
    "every other week": "FREQ=WEEKLY;INTERVAL=2",
    "every second week": "FREQ=WEEKLY;INTERVAL=2",
}

_DATE_FORMATS = ("%b %d", "%B %d", "%d %b", "%d %B")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    hour: int
    minute: int

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def total_minutes(self) -> int:
        return self.hour * 60 + self.minute

    def as_time(self) -> time:
        return time(self.hour, self.minute)

    def format_12h(self) -> str:
        suffix = "PM" if self.hour >= 12 else "AM"
        display = self.hour % 12 or 12
        return f"{display}:{self.minute:02d} {suffix}"


@dataclass(frozen=True)
class TimeRange:
    start: TimeOfDay
    end: TimeOfDay

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"

    @property
    def minutes(self) -> int:
        return self.end.total_minutes - self.start.total_minutes


@dataclass(frozen=True)
class ScheduleEntry:
    ranges: tuple[TimeRange, ...]
    rrule: str = ""
    override: bool = False


@dataclass(frozen=True)
class DaySchedule:
    day: date
    windows: tuple[TimeRange, ...]

    @property
    def scheduled_minutes(self) -> int:
        return sum(window.minutes for window in self.windows)


def parse_time_of_day(value: str) -> TimeOfDay:
    text = value.strip().lower()
    for pattern, twelve_hour in _TIME_PATTERNS:
        match = pattern.match(text)
        if match is None:
            continue
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if minute > 59:
            raise InvalidInputError(f"minute {minute} out of range in '{value}'")
        if twelve_hour:
            if not 1 <= hour <= 12:
                raise InvalidInputError(f"hour {hour} out of range for 12-hour format")
            if match.group(3) == "am":
                hour = 0 if hour == 12 else hour
            elif hour != 12:
                hour += 12
        elif hour > 23:
            raise InvalidInputError(f"hour {hour} out of range in '{value}'")
        return TimeOfDay(hour, minute)
    raise InvalidInputError(f"unrecognized time format '{value}'")


def parse_time_range(start: str, end: str) -> TimeRange:
    time_range = TimeRange(parse_time_of_day(start), parse_time_of_day(end))
    validate_ranges([time_range])
    return time_range


def validate_ranges(ranges: Sequence[TimeRange]) -> None:
    for time_range in ranges:
        if not time_range.start < time_range.end:
            raise InvalidInputError(
                f"start time {time_range.start} must be before end time {time_range.end}"
            )
    ordered = sorted(ranges, key=lambda item: item.start)
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            raise InvalidInputError(f"time ranges overlap: {previous} and {current}")


def parse_date(value: str, today: date) -> date:
    text = value.strip().lower()
    if text.startswith("on "):
        text = text[3:].strip()
    if text == "today":
        return today
    if text == "tomorrow":
        return today + timedelta(days=1)
    weekday = WEEKDAYS.get(text.removeprefix("next ").strip())
    if weekday is not None:
        target = list(WEEKDAYS.values()).index(weekday)
        days_ahead = target - today.weekday()
        if days_ahead <= 0:
            days_ahead += 7
        return today + timedelta(days=days_ahead)
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    cleaned = " ".join(text.replace(",", " ").split())
    for layout in _DATE_FORMATS:
        for candidate, fmt in (
            (cleaned, f"{layout} %Y"),
            (f"{cleaned} {today.year}", f"{layout} %Y"),
        ):
            try:
                return datetime.strptime(candidate, fmt).date()
            except ValueError:
                continue
    raise InvalidInputError(f"unrecognized date '{value}'")


def is_raw_rrule(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered.startswith("freq=") or lowered.startswith("rrule:")


def is_natural_recurrence(text: str) -> bool:
    lowered = text.strip().lower()
    return lowered.startswith("every ") or lowered in _NATURAL_RULES


def parse_recurrence(value: str) -> str:
    """Return the canonical RRULE string for a raw rule or a phrase like ``every monday``."""
    text = value.strip().lower()
    if is_raw_rrule(text):
        raw = text.upper().removeprefix("RRULE:")
        load_rule(raw, datetime(2000, 1, 1))
        return raw
    if text in _NATURAL_RULES:
        return _NATURAL_RULES[text]
    match = _EVERY_N_WEEKS.match(text)
    if match:
        interval = int(match.group(1))
        if interval <= 0:
            raise InvalidInputError(f"unrecognized recurrence '{value}'")
        return f"FREQ=WEEKLY;INTERVAL={interval}"
    if text.startswith("every "):
        weekday = WEEKDAYS.get(text[len("every "):].strip())
        if weekday is not None:
            return f"FREQ=WEEKLY;BYDAY={weekday}"
    raise InvalidInputError(f"unrecognized recurrence '{value}'")


def one_off_rule(day: date) -> str:
    return f"DTSTART:{day:%Y%m%d}T000000\nRRULE:FREQ=DAILY;COUNT=1"


def date_range_rule(start: date, end: date) -> str:
    if not start < end:
        raise InvalidInputError("start date must be before end date")
    return f"DTSTART:{start:%Y%m%d}T000000\nRRULE:FREQ=DAILY;UNTIL={end:%Y%m%d}T235959"


def load_rule(text: str, anchor: datetime):
    """Build a dateutil rule; ``anchor`` is used as DTSTART when the rule has none."""
    try:
        return rrulestr(text, dtstart=anchor, ignoretz=True)
    except (ValueError, TypeError) as exc:
        raise InvalidInputError(f"invalid rrule '{text}': {exc}") from exc


def parse_schedule(value: str, today: date, *, override: bool = False) -> ScheduleEntry:
    """Parse ``from <time> to <time> [date | recurrence | between <date> and <date>]``."""
    text = " ".join(value.strip().lower().split())
    if not text.startswith("from "):
        raise InvalidInputError(f"expected 'from <time> to <time>', got '{value}'")
    after_from = text[len("from "):]
    start_text, separator, after_to = after_from.partition(" to ")
    if not separator:
        raise InvalidInputError(f"expected 'to <time>' in '{value}'")
    end_text, _, remainder = after_to.partition(" ")
    try:
        start = parse_time_of_day(start_text)
    except InvalidInputError as exc:
        raise InvalidInputError(f"invalid start time '{start_text}': {exc}") from exc
    try:
        end = parse_time_of_day(end_text)
    except InvalidInputError as exc:
        raise InvalidInputError(f"invalid end time '{end_text}': {exc}") from exc
    time_range = TimeRange(start, end)
    validate_ranges([time_range])

    remainder = remainder.strip()
    if not remainder:
        rule = ""
    elif is_raw_rrule(remainder) or is_natural_recurrence(remainder):
        rule = parse_recurrence(remainder)
    elif remainder.startswith("between "):
        first, separator, second = remainder[len("between "):].partition(" and ")
        if not separator:
            raise InvalidInputError(f"expected 'between <date> and <date>' in '{value}'")
        rule = date_range_rule(parse_date(first, today), parse_date(second, today))
    else:
        rule = one_off_rule(parse_date(remainder, today))
    return ScheduleEntry(ranges=(time_range,), rrule=rule, override=override)


def default_schedules() -> list[ScheduleEntry]:
    return [
        ScheduleEntry(
            ranges=(TimeRange(TimeOfDay(9, 0), TimeOfDay(17, 0)),),
            rrule="FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR",
        )
    ]


def schedule_to_dict(entry: ScheduleEntry) -> dict[str, object]:
    payload: dict[str, object] = {}
    if len(entry.ranges) == 1:
        payload["from"] = str(entry.ranges[0].start)
        payload["to"] = str(entry.ranges[0].end)
    else:
        payload["ranges"] = [
            {"from": str(item.start), "to": str(item.end)} for item in entry.ranges
        ]
    payload["rrule"] = entry.rrule
    if entry.override:
        payload["override"] = True
    return payload


def schedule_from_dict(payload: Mapping[str, object]) -> ScheduleEntry:
    raw_ranges = payload.get("ranges")
    if not raw_ranges and "from" in payload:
        raw_ranges = [{"from": payload.get("from"), "to": payload.get("to")}]
    if not isinstance(raw_ranges, list) or not raw_ranges:
        raise InvalidInputError("schedule entry has no time ranges")
    try:
        ranges = tuple(
            TimeRange(parse_time_of_day(str(item["from"])), parse_time_of_day(str(item["to"])))
            for item in raw_ranges
        )
    except (KeyError, TypeError):
        raise InvalidInputError("schedule range needs 'from' and 'to'") from None
    validate_ranges(ranges)
    rule = str(payload.get("rrule") or "")
    if rule:
        load_rule(rule, datetime(2000, 1, 1))
    return ScheduleEntry(ranges=ranges, rrule=rule, override=bool(payload.get("override")))


def expand_schedules(
    entries: Iterable[ScheduleEntry], start: date, end: date
) -> list[DaySchedule]:
    """Expand entries into per-day working windows for ``start..end`` inclusive.

    Later entries flagged ``override`` replace the windows earlier entries
    produced for the days they match. Entries without a rule contribute nothing.
    """
    window_start = datetime.combine(start, time.min)
    window_end = datetime.combine(end, time(23, 59, 59))
    days: dict[date, list[TimeRange]] = {}
    for entry in entries:
        if not entry.rrule:
            continue
        rule = load_rule(entry.rrule, window_start)
        for occurrence in rule.between(window_start, window_end, inc=True):
            key = occurrence.date()
            if entry.override:
                days[key] = list(entry.ranges)
            else:
                days.setdefault(key, []).extend(entry.ranges)
    return [
        DaySchedule(day=key, windows=tuple(sorted(windows, key=lambda item: item.start)))
        for key, windows in sorted(days.items())
    ]


def schedule_for(day_schedules: Iterable[DaySchedule], day: date) -> DaySchedule | None:
    for item in day_schedules:
        if item.day == day:
            return item
    return None


def format_time_range(time_range: TimeRange) -> str:
    return f"{time_range.start.format_12h()} - {time_range.end.format_12h()}"


def _rule_parts(rule: str) -> dict[str, str]:
    parts: dict[str, str] = {}
    for line in rule.upper().splitlines():
        line = line.strip()
        if line.startswith("DTSTART"):
            continue
        for segment in line.removeprefix("RRULE:").split(";"):
            key, separator, val = segment.partition("=")
            if separator:
                parts[key] = val
    return parts


def format_rrule(rule: str) -> str:
    parts = _rule_parts(rule)
    freq = parts.get("FREQ", "")
    byday = [day for day in parts.get("BYDAY", "").split(",") if day]
    try:
        interval = int(parts.get("INTERVAL", "1"))
    except ValueError:
        interval = 1
    if freq == "WEEKLY" and byday:
        if set(byday) == {"MO", "TU", "WE", "TH", "FR"} and len(byday) == 5:
            return "every weekday"
        if set(byday) == {"SA", "SU"} and len(byday) == 2:
            return "every weekend"
        return "every " + ", ".join(_WEEKDAY_NAMES.get(day, day) for day in byday)
    if freq == "DAILY":
        return f"every {interval} days" if interval > 1 else "every day"
    if freq == "WEEKLY":
        return f"every {interval} weeks" if interval > 1 else "every week"
    return rule


def format_rrule_date_info(rule: str) -> str:
    match = _DTSTART.search(rule)
    if match is None:
        return ""
    start = datetime.strptime(match.group(1), "%Y%m%d").date()
    parts = _rule_parts(rule)
    if parts.get("COUNT") == "1":
        return f"on {start:%b} {start.day}"
    until = _UNTIL.search(rule)
    if until is not None:
        end = datetime.strptime(until.group(1), "%Y%m%d").date()
        return f"{start:%b} {start.day} – {end:%b} {end.day}"
    return ""


def format_schedule_entry(entry: ScheduleEntry) -> str:
    result = " + ".join(format_time_range(item) for item in entry.ranges)
    if entry.rrule:
        result = f"{result}, {format_rrule_date_info(entry.rrule) or format_rrule(entry.rrule)}"
    if entry.override:
        result += " (override)"
    return result


def format_day_schedule(day_schedule: DaySchedule) -> str:
    day = day_schedule.day
    windows = ", ".join(format_time_range(window) for window in day_schedule.windows)
    return f"{day:%a %b} {day.day:>2}:  {windows}"
