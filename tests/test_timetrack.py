from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from hourgit.models import CheckoutEntry, LogEntry
from hourgit.schedule import (
    ScheduleEntry,
    TimeOfDay,
    TimeRange,
    default_schedules,
    expand_schedules,
    one_off_rule,
)
from hourgit.timetrack import (
    build_attribution,
    build_detailed_report,
    build_export_data,
    build_report,
    clean_branch_name,
    display_branch_name,
)

UTC = timezone.utc
JAN_START = date(2025, 1, 1)
JAN_END = date(2025, 1, 31)
AFTER_JANUARY = datetime(2025, 2, 15, 12, 0, tzinfo=UTC)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=UTC)


def checkout(timestamp: datetime, previous: str, next_branch: str) -> CheckoutEntry:
    return CheckoutEntry(
        id=f"{timestamp:%d%H%M}0"[:7],
        timestamp=timestamp,
        previous=previous,
        next=next_branch,
    )


def log(
    start: datetime, minutes: int, task: str = "", message: str = "work", source: str = "manual"
) -> LogEntry:
    return LogEntry(
        id=f"{start:%d%H%M}f"[:7],
        start=start,
        minutes=minutes,
        message=message,
        created_at=start,
        task=task,
        source=source,
    )


def weekdays_in_january():
    return expand_schedules(default_schedules(), JAN_START, JAN_END)


def only_jan_2():
    entry = ScheduleEntry(
        ranges=(TimeRange(TimeOfDay(9, 0), TimeOfDay(17, 0)),),
        rrule=one_off_rule(date(2025, 1, 2)),
    )
    return expand_schedules([entry], JAN_START, JAN_END)


def test_full_month_single_branch() -> None:
    checkouts = [checkout(datetime(2024, 12, 30, 10, 0, tzinfo=UTC), "main", "feature-x")]
    report = build_report(checkouts, [], weekdays_in_january(), 2025, 1, AFTER_JANUARY)

    assert report.days_in_month == 31
    assert [row.name for row in report.rows] == ["feature-x"]
    assert report.rows[0].total_minutes == 480 * 23
    assert set(report.rows[0].days.values()) == {480}


def test_split_day() -> None:
    checkouts = [checkout(at(2, 9), "main", "a"), checkout(at(2, 13), "a", "b")]
    report = build_report(checkouts, [], only_jan_2(), 2025, 1, AFTER_JANUARY)

    rows = {row.name: row.days for row in report.rows}
    assert rows == {"a": {2: 240}, "b": {2: 240}}


def test_log_deducts_checkout() -> None:
    checkouts = [checkout(datetime(2024, 12, 31, 9, 0, tzinfo=UTC), "main", "x")]
    logs = [log(at(2, 10), 120, task="research")]
    report = build_report(checkouts, logs, only_jan_2(), 2025, 1, AFTER_JANUARY)

    rows = {row.name: row.days for row in report.rows}
    assert rows == {"x": {2: 360}, "research": {2: 120}}
    assert [row.name for row in report.rows] == ["x", "research"]


def test_overrun_keeps_proportions() -> None:
    checkouts = [
        checkout(at(2, 9), "main", "a"),
        checkout(at(2, 15), "a", "b"),
        checkout(at(2, 17), "b", "main-off"),
    ]
    schedule = only_jan_2()
    logs = [log(at(2, 20), 200, task="meeting")]
    bucket = build_attribution(checkouts, logs, schedule, JAN_START, JAN_END, AFTER_JANUARY)

    # raw: a=360, b=120; available = 480 - 200 = 280
    assert bucket["a"][date(2025, 1, 2)] == 360 * 280 // 480
    assert bucket["b"][date(2025, 1, 2)] == 120 * 280 // 480
    total = sum(days.get(date(2025, 1, 2), 0) for days in bucket.values())
    assert total <= 280


def test_no_deduction_when_under_capacity() -> None:
    checkouts = [checkout(at(2, 9), "main", "a"), checkout(at(2, 12), "a", "")]
    logs = [log(at(2, 13), 60, task="review")]
    bucket = build_attribution(checkouts, logs, only_jan_2(), JAN_START, JAN_END, AFTER_JANUARY)
    assert bucket["a"] == {date(2025, 1, 2): 180}


def test_open_range_is_capped_at_now() -> None:
    checkouts = [checkout(at(2, 9), "main", "a")]
    now = at(2, 13)
    report = build_report(checkouts, [], weekdays_in_january(), 2025, 1, now)
    assert {row.name: row.days for row in report.rows} == {"a": {2: 240}}


def test_unscheduled_days_contribute_nothing() -> None:
    checkouts = [checkout(datetime(2024, 12, 31, 9, 0, tzinfo=UTC), "main", "a")]
    bucket = build_attribution(checkouts, [], only_jan_2(), JAN_START, JAN_END, AFTER_JANUARY)
    assert bucket == {"a": {date(2025, 1, 2): 480}}


def test_schedule_windows_follow_local_timezone() -> None:
    local = timezone(timedelta(hours=1))
    night = ScheduleEntry(
        ranges=(TimeRange(TimeOfDay(0, 0), TimeOfDay(8, 0)),),
        rrule=one_off_rule(date(2025, 1, 2)),
    )
    windows = expand_schedules([night], JAN_START, JAN_END)
    # 00:00-08:00 at UTC+1 is 23:00 on Jan 1 to 07:00 on Jan 2 in UTC.
    checkouts = [checkout(datetime(2025, 1, 1, 22, 30, tzinfo=UTC), "main", "x")]
    report = build_report(checkouts, [], windows, 2025, 1, datetime(2025, 2, 10, tzinfo=local))
    assert [(row.name, row.days) for row in report.rows] == [("x", {2: 480})]

    late = [checkout(datetime(2025, 1, 2, 6, 0, tzinfo=UTC), "main", "x")]
    report = build_report(late, [], windows, 2025, 1, datetime(2025, 2, 10, tzinfo=local))
    assert [(row.name, row.days) for row in report.rows] == [("x", {2: 60})]


def test_generated_days_drop_checkout_time() -> None:
    checkouts = [checkout(at(2, 9), "main", "a")]
    logs = [log(at(2, 9), 480, task="a", message="a", source="generate")]
    bucket = build_attribution(
        checkouts, logs, weekdays_in_january(), JAN_START, JAN_END, at(3, 17), ["2025-01-02"]
    )
    assert date(2025, 1, 2) not in bucket["a"]
    assert bucket["a"][date(2025, 1, 3)] == 480

    report = build_report(checkouts, logs, weekdays_in_january(), 2025, 1, at(3, 17), ["2025-01-02"])
    assert report.rows[0].days == {2: 480, 3: 480}


def test_remote_prefix_is_stripped_for_attribution() -> None:
    assert clean_branch_name("remotes/origin/feature") == "origin/feature"
    assert display_branch_name("feature/ENG-641/foo") == "foo"
    assert display_branch_name("main") == "main"


def test_detailed_report_marks_in_memory_entries() -> None:
    checkouts = [checkout(at(2, 9), "main", "a")]
    logs = [log(at(2, 14), 60, task="review")]
    report = build_detailed_report(
        checkouts, logs, only_jan_2(), date(2024, 12, 30), date(2025, 1, 5), AFTER_JANUARY
    )

    assert report.dates[0] == date(2024, 12, 30)
    assert report.scheduled_days == frozenset({date(2025, 1, 2)})
    rows = {row.name: row for row in report.rows}
    cell = rows["a"].days[date(2025, 1, 2)]
    assert cell.total_minutes == 420
    assert [item.persisted for item in cell.entries] == [False]
    assert cell.entries[0].start == at(2, 9)
    assert rows["review"].days[date(2025, 1, 2)].entries[0].persisted

    pending = report.in_memory_entries()
    assert [(day, item.task, item.minutes) for day, item in pending] == [(date(2025, 1, 2), "a", 420)]


def test_detailed_report_suppresses_saved_checkout_cells() -> None:
    checkouts = [checkout(at(2, 9), "main", "a")]
    saved = log(at(2, 9), 100, task="a", message="a", source="checkout-generated")
    report = build_detailed_report(checkouts, [saved], only_jan_2(), JAN_START, JAN_END, AFTER_JANUARY)

    assert report.in_memory_entries() == []
    cell = report.rows[0].days[date(2025, 1, 2)]
    assert cell.total_minutes == 100
    assert cell.entries[0].entry == saved


def test_export_groups_by_day_and_task() -> None:
    checkouts = [
        checkout(at(2, 9), "main", "feature/ENG-641/foo"),
        checkout(at(2, 13), "feature/ENG-641/foo", ""),
    ]
    logs = [
        log(at(2, 14), 60, task="review", message="PR 12"),
        log(at(2, 15), 30, task="review", message="PR 13"),
        log(at(3, 10), 45, message="standup"),
    ]
    data = build_export_data(
        checkouts, logs, weekdays_in_january(), 2025, 1, AFTER_JANUARY, [], "Acme"
    )

    assert data.project_name == "Acme"
    assert [day.day for day in data.days] == [date(2025, 1, 2), date(2025, 1, 3)]
    first = data.days[0]
    assert [group.task for group in first.groups] == ["foo", "review"]
    assert first.groups[0].total_minutes == 240
    assert [entry.message for entry in first.groups[1].entries] == ["PR 12", "PR 13"]
    assert first.total_minutes == 330
    assert data.total_minutes == 330 + 45
