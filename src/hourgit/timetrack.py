"""Attribution of working minutes to branches and logged tasks.

Checkout events split time into ranges during which one branch is active.
Each range is clipped to the scheduled working windows of every day it
touches, then per-day checkout totals are scaled down so that, together with
manually logged minutes, they never exceed the day's scheduled minutes.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from .models import SOURCE_CHECKOUT_GENERATED, CheckoutEntry, LogEntry
from .schedule import DaySchedule, TimeRange

SOURCE_CHECKOUT = "checkout"
SYNTHETIC_START = time(9, 0)


@dataclass(frozen=True)
class TaskRow:
    name: str
    days: dict[int, int]
    total_minutes: int


@dataclass(frozen=True)
class ReportData:
    year: int
    month: int
    days_in_month: int
    rows: list[TaskRow]


@dataclass(frozen=True)
class CellEntry:
    id: str
    start: datetime
    minutes: int
    message: str
    task: str
    source: str
    persisted: bool
    entry: LogEntry | None = None


@dataclass
class CellData:
    entries: list[CellEntry] = field(default_factory=list)
    total_minutes: int = 0

    def add(self, item: CellEntry) -> None:
        self.entries.append(item)
        self.total_minutes += item.minutes


@dataclass
class DetailedTaskRow:
    name: str
    days: dict[date, CellData] = field(default_factory=dict)
    total_minutes: int = 0

    def add(self, day: date, item: CellEntry) -> None:
        self.days.setdefault(day, CellData()).add(item)
        self.total_minutes += item.minutes


@dataclass(frozen=True)
class DetailedReportData:
    start: date
    end: date
    rows: list[DetailedTaskRow]
    scheduled_days: frozenset[date]

    @property
    def dates(self) -> list[date]:
        return list(iter_days(self.start, self.end))

    def in_memory_entries(self) -> list[tuple[date, CellEntry]]:
        return [
            (day, item)
            for row in self.rows
            for day, cell in sorted(row.days.items())
            for item in cell.entries
            if not item.persisted
        ]


@dataclass(frozen=True)
class ExportEntry:
    start: datetime
    minutes: int
    message: str


@dataclass(frozen=True)
class ExportTaskGroup:
    task: str
    entries: list[ExportEntry]
    total_minutes: int


@dataclass(frozen=True)
class ExportDay:
    day: date
    groups: list[ExportTaskGroup]
    total_minutes: int


@dataclass(frozen=True)
class ExportData:
    project_name: str
    year: int
    month: int
    days: list[ExportDay]
    total_minutes: int


def clean_branch_name(name: str) -> str:
    return name.removeprefix("remotes/")


def display_branch_name(name: str) -> str:
    """Last path segment of a branch, e.g. ``feature/ENG-641/foo`` -> ``foo``."""
    return clean_branch_name(name).rsplit("/", 1)[-1]


def iter_days(start: date, end: date) -> Iterable[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def log_day(entry: LogEntry) -> date:
    return entry.start.astimezone(timezone.utc).date()


def _schedule_lookup(
    day_schedules: Iterable[DaySchedule], start: date, end: date
) -> tuple[dict[date, tuple[TimeRange, ...]], dict[date, int]]:
    windows: dict[date, tuple[TimeRange, ...]] = {}
    scheduled: dict[date, int] = {}
    for item in day_schedules:
        if start <= item.day <= end:
            windows[item.day] = item.windows
            scheduled[item.day] = item.scheduled_minutes
    return windows, scheduled


def overlap_minutes(
    start: datetime, end: datetime, day: date, windows: Sequence[TimeRange], tz
) -> int:
    total = 0
    for window in windows:
        window_start = datetime.combine(day, window.start.as_time(), tzinfo=tz)
        window_end = datetime.combine(day, window.end.as_time(), tzinfo=tz)
        overlap_start = max(start, window_start)
        overlap_end = min(end, window_end)
        if overlap_end > overlap_start:
            total += int((overlap_end - overlap_start).total_seconds() // 60)
    return total


def _checkout_ranges(
    checkouts: Iterable[CheckoutEntry], start: date, end: date, now: datetime
) -> list[tuple[str, datetime, datetime]]:
    tz = now.tzinfo
    period_start = datetime.combine(start, time.min, tzinfo=tz)
    period_end = datetime.combine(end, time(23, 59, 59), tzinfo=tz)

    ordered: list[CheckoutEntry] = []
    for item in sorted(checkouts, key=lambda entry: entry.timestamp):
        if ordered and clean_branch_name(ordered[-1].next) == clean_branch_name(item.next):
            continue
        ordered.append(item)

    starts: list[tuple[str, datetime]] = []
    before = [item for item in ordered if item.timestamp <= period_start]
    if before:
        starts.append((clean_branch_name(before[-1].next), period_start))
    for item in ordered:
        if period_start < item.timestamp <= period_end:
            starts.append((clean_branch_name(item.next), item.timestamp))

    # An open range never extends past now.
    last_end = min(now, period_end + timedelta(seconds=1))
    ranges = []
    for index, (branch, range_start) in enumerate(starts):
        range_end = starts[index + 1][1] if index + 1 < len(starts) else last_end
        if branch:
            ranges.append((branch, range_start, range_end))
    return ranges


def _checkout_bucket(
    checkouts: Iterable[CheckoutEntry],
    start: date,
    end: date,
    windows: dict[date, tuple[TimeRange, ...]],
    now: datetime,
) -> dict[str, dict[date, int]]:
    bucket: dict[str, dict[date, int]] = defaultdict(dict)
    for branch, range_start, range_end in _checkout_ranges(checkouts, start, end, now):
        for day, day_windows in windows.items():
            minutes = overlap_minutes(range_start, range_end, day, day_windows, now.tzinfo)
            if minutes > 0:
                bucket[branch][day] = bucket[branch].get(day, 0) + minutes
    return dict(bucket)


def _deduct_overrun(
    bucket: dict[str, dict[date, int]],
    log_minutes: dict[date, int],
    scheduled: dict[date, int],
    skip_days: Collection[date] = (),
) -> None:
    for day, scheduled_minutes in scheduled.items():
        if day in skip_days or scheduled_minutes <= 0:
            continue
        available = max(scheduled_minutes - log_minutes.get(day, 0), 0)
        total = sum(days.get(day, 0) for days in bucket.values())
        if total > available and total > 0:
            for days in bucket.values():
                if day in days:
                    days[day] = days[day] * available // total


def _generated_dates(generated_days: Iterable[str]) -> set[date]:
    result = set()
    for value in generated_days:
        try:
            result.add(date.fromisoformat(value))
        except ValueError:
            continue
    return result


def _drop_days(bucket: dict[str, dict[date, int]], days: Collection[date]) -> None:
    for day_map in bucket.values():
        for day in days:
            day_map.pop(day, None)


def build_attribution(
    checkouts: Iterable[CheckoutEntry],
    logs: Iterable[LogEntry],
    day_schedules: Iterable[DaySchedule],
    start: date,
    end: date,
    now: datetime,
    generated_days: Iterable[str] = (),
) -> dict[str, dict[date, int]]:
    """Checkout minutes per branch per date after generated-day removal and deduction."""
    windows, scheduled = _schedule_lookup(day_schedules, start, end)
    bucket = _checkout_bucket(checkouts, start, end, windows, now)
    generated = _generated_dates(generated_days)
    _drop_days(bucket, generated)
    log_minutes: dict[date, int] = defaultdict(int)
    for entry in logs:
        day = log_day(entry)
        if start <= day <= end:
            log_minutes[day] += entry.minutes
    _deduct_overrun(bucket, log_minutes, scheduled, generated)
    return bucket


def _sort_rows(rows):
    return sorted(rows, key=lambda row: (-row.total_minutes, row.name))


def build_report(
    checkouts: Iterable[CheckoutEntry],
    logs: Iterable[LogEntry],
    day_schedules: Iterable[DaySchedule],
    year: int,
    month: int,
    now: datetime,
    generated_days: Iterable[str] = (),
) -> ReportData:
    start, end = month_bounds(year, month)
    logs = list(logs)
    bucket = build_attribution(checkouts, logs, day_schedules, start, end, now, generated_days)

    rows: dict[str, dict[int, int]] = {}
    for branch, days in bucket.items():
        kept = {day.day: minutes for day, minutes in days.items() if minutes > 0}
        if kept:
            rows[branch] = kept
    for entry in logs:
        day = log_day(entry)
        if start <= day <= end:
            days = rows.setdefault(entry.task_key, {})
            days[day.day] = days.get(day.day, 0) + entry.minutes

    task_rows = [
        TaskRow(name=name, days=days, total_minutes=sum(days.values()))
        for name, days in rows.items()
    ]
    return ReportData(
        year=year,
        month=month,
        days_in_month=end.day,
        rows=_sort_rows(row for row in task_rows if row.total_minutes > 0),
    )


def build_detailed_report(
    checkouts: Iterable[CheckoutEntry],
    logs: Iterable[LogEntry],
    day_schedules: Iterable[DaySchedule],
    start: date,
    end: date,
    now: datetime,
    generated_days: Iterable[str] = (),
) -> DetailedReportData:
    """Entry-level report for ``start..end``.

    Persisted log entries appear as-is. Checkout minutes become one in-memory
    entry per branch per day unless a ``checkout-generated`` log already
    stands in for that cell.
    """
    day_schedules = list(day_schedules)
    _, scheduled = _schedule_lookup(day_schedules, start, end)
    in_range = [entry for entry in logs if start <= log_day(entry) <= end]

    replaced = {
        (entry.task_key, log_day(entry))
        for entry in in_range
        if entry.source == SOURCE_CHECKOUT_GENERATED
    }
    rows: dict[str, DetailedTaskRow] = {}
    for entry in in_range:
        row = rows.setdefault(entry.task_key, DetailedTaskRow(name=entry.task_key))
        row.add(
            log_day(entry),
            CellEntry(
                id=entry.id,
                start=entry.start,
                minutes=entry.minutes,
                message=entry.message,
                task=entry.task,
                source=entry.source,
                persisted=True,
                entry=entry,
            ),
        )

    bucket = build_attribution(
        checkouts, in_range, day_schedules, start, end, now, generated_days
    )
    for branch, days in bucket.items():
        for day, minutes in sorted(days.items()):
            if minutes <= 0 or (branch, day) in replaced:
                continue
            row = rows.setdefault(branch, DetailedTaskRow(name=branch))
            row.add(
                day,
                CellEntry(
                    id="",
                    start=datetime.combine(day, SYNTHETIC_START, tzinfo=timezone.utc),
                    minutes=minutes,
                    message=branch,
                    task=branch,
                    source=SOURCE_CHECKOUT,
                    persisted=False,
                ),
            )

    return DetailedReportData(
        start=start,
        end=end,
        rows=_sort_rows(row for row in rows.values() if row.total_minutes > 0),
        scheduled_days=frozenset(day for day, minutes in scheduled.items() if minutes > 0),
    )


def build_export_data(
    checkouts: Iterable[CheckoutEntry],
    logs: Iterable[LogEntry],
    day_schedules: Iterable[DaySchedule],
    year: int,
    month: int,
    now: datetime,
    generated_days: Iterable[str],
    project_name: str,
) -> ExportData:
    start, end = month_bounds(year, month)
    logs = list(logs)
    bucket = build_attribution(checkouts, logs, day_schedules, start, end, now, generated_days)

    groups: dict[date, dict[str, list[ExportEntry]]] = defaultdict(lambda: defaultdict(list))
    for entry in logs:
        day = log_day(entry)
        if start <= day <= end:
            groups[day][entry.task_key].append(
                ExportEntry(start=entry.start, minutes=entry.minutes, message=entry.message)
            )
    for branch, days in bucket.items():
        name = display_branch_name(branch)
        for day, minutes in days.items():
            if minutes <= 0:
                continue
            groups[day][name].append(
                ExportEntry(
                    start=datetime.combine(day, SYNTHETIC_START, tzinfo=timezone.utc),
                    minutes=minutes,
                    message=name,
                )
            )

    export_days: list[ExportDay] = []
    for day in sorted(groups):
        day_groups = []
        for task in sorted(groups[day]):
            entries = sorted(groups[day][task], key=lambda item: item.start)
            total = sum(item.minutes for item in entries)
            if total > 0:
                day_groups.append(ExportTaskGroup(task=task, entries=entries, total_minutes=total))
        if day_groups:
            export_days.append(
                ExportDay(
                    day=day,
                    groups=day_groups,
                    total_minutes=sum(group.total_minutes for group in day_groups),
                )
            )
    return ExportData(
        project_name=project_name,
        year=year,
        month=month,
        days=export_days,
        total_minutes=sum(item.total_minutes for item in export_days),
    )
