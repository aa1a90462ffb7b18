from __future__ import annotations

from datetime import date

import pytest

from hourgit.errors import InvalidInputError
from hourgit.schedule import (
    DaySchedule,
    ScheduleEntry,
    TimeOfDay,
    TimeRange,
    date_range_rule,
    default_schedules,
    expand_schedules,
    format_day_schedule,
    format_schedule_entry,
    one_off_rule,
    parse_date,
    parse_recurrence,
    parse_schedule,
    parse_time_of_day,
    schedule_from_dict,
    schedule_to_dict,
    validate_ranges,
)

TODAY = date(2026, 2, 1)
NINE_TO_FIVE = TimeRange(TimeOfDay(9, 0), TimeOfDay(17, 0))


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("9am", TimeOfDay(9, 0)),
        ("12am", TimeOfDay(0, 0)),
        ("12pm", TimeOfDay(12, 0)),
        ("2:30pm", TimeOfDay(14, 30)),
        ("14:00", TimeOfDay(14, 0)),
        ("9.15", TimeOfDay(9, 15)),
    ],
)
def test_parse_time_of_day(text: str, expected: TimeOfDay) -> None:
    assert parse_time_of_day(text) == expected


@pytest.mark.parametrize("text", ["25:00", "13pm", "9:75", "noon"])
def test_parse_time_of_day_rejects(text: str) -> None:
    with pytest.raises(InvalidInputError):
        parse_time_of_day(text)


def test_validate_ranges() -> None:
    with pytest.raises(InvalidInputError, match="must be before"):
        validate_ranges([TimeRange(TimeOfDay(17, 0), TimeOfDay(9, 0))])
    with pytest.raises(InvalidInputError, match="overlap"):
        validate_ranges(
            [
                TimeRange(TimeOfDay(9, 0), TimeOfDay(12, 0)),
                TimeRange(TimeOfDay(11, 0), TimeOfDay(13, 0)),
            ]
        )


def test_parse_date_forms() -> None:
    assert parse_date("2026-02-10", TODAY) == date(2026, 2, 10)
    assert parse_date("tomorrow", TODAY) == date(2026, 2, 2)
    assert parse_date("next monday", TODAY) == date(2026, 2, 2)
    assert parse_date("Feb 14", TODAY) == date(2026, 2, 14)


def test_parse_recurrence() -> None:
    assert parse_recurrence("every weekday") == "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR"
    assert parse_recurrence("every friday") == "FREQ=WEEKLY;BYDAY=FR"
    assert parse_recurrence("every 2 weeks") == "FREQ=WEEKLY;INTERVAL=2"
    assert parse_recurrence("RRULE:FREQ=DAILY") == "FREQ=DAILY"
    with pytest.raises(InvalidInputError):
        parse_recurrence("every blue moon")


def test_parse_schedule_recurring() -> None:
    entry = parse_schedule("from 9am to 5pm every weekday", TODAY)
    assert entry.ranges == (NINE_TO_FIVE,)
    assert entry.rrule == "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR"
    assert not entry.override


def test_parse_schedule_one_off_and_range() -> None:
    one_off = parse_schedule("from 10:00 to 12:00 on 2026-02-10", TODAY, override=True)
    assert one_off.override
    days = expand_schedules([one_off], date(2026, 2, 1), date(2026, 2, 28))
    assert [item.day for item in days] == [date(2026, 2, 10)]

    ranged = parse_schedule("from 8am to 4pm between 2026-02-09 and 2026-02-11", TODAY)
    days = expand_schedules([ranged], date(2026, 2, 1), date(2026, 2, 28))
    assert [item.day for item in days] == [date(2026, 2, 9), date(2026, 2, 10), date(2026, 2, 11)]


def test_parse_schedule_rejects_bad_input() -> None:
    with pytest.raises(InvalidInputError):
        parse_schedule("9am to 5pm", TODAY)
    with pytest.raises(InvalidInputError):
        parse_schedule("from 5pm to 9am", TODAY)
    with pytest.raises(InvalidInputError, match="start date must be before end date"):
        date_range_rule(date(2026, 2, 5), date(2026, 2, 1))


def test_default_schedule_february_2026() -> None:
    days = expand_schedules(default_schedules(), date(2026, 2, 1), date(2026, 2, 28))
    assert len(days) == 20
    assert all(item.day.weekday() < 5 for item in days)
    assert all(item.windows == (NINE_TO_FIVE,) for item in days)
    assert days[0].day == date(2026, 2, 2)


def test_override_replaces_only_matching_days() -> None:
    mornings = TimeRange(TimeOfDay(10, 0), TimeOfDay(12, 0))
    entries = default_schedules() + [
        ScheduleEntry(ranges=(mornings,), rrule="FREQ=WEEKLY;BYDAY=MO", override=True)
    ]
    days = {item.day: item for item in expand_schedules(entries, date(2026, 2, 1), date(2026, 2, 28))}
    assert days[date(2026, 2, 2)].windows == (mornings,)
    assert days[date(2026, 2, 9)].windows == (mornings,)
    assert days[date(2026, 2, 3)].windows == (NINE_TO_FIVE,)
    assert len(days) == 20


def test_additive_entries_are_merged_and_sorted() -> None:
    afternoon = TimeRange(TimeOfDay(13, 0), TimeOfDay(17, 0))
    morning = TimeRange(TimeOfDay(9, 0), TimeOfDay(12, 0))
    entries = [
        ScheduleEntry(ranges=(afternoon,), rrule="FREQ=DAILY"),
        ScheduleEntry(ranges=(morning,), rrule="FREQ=DAILY"),
    ]
    days = expand_schedules(entries, date(2026, 2, 3), date(2026, 2, 5))
    assert [item.day for item in days] == [date(2026, 2, 3), date(2026, 2, 4), date(2026, 2, 5)]
    assert all(item.windows == (morning, afternoon) for item in days)
    assert days[0].scheduled_minutes == 420


def test_bare_entry_contributes_nothing() -> None:
    assert expand_schedules([ScheduleEntry(ranges=(NINE_TO_FIVE,))], date(2026, 2, 1), date(2026, 2, 28)) == []


def test_schedule_round_trip() -> None:
    entries = [
        default_schedules()[0],
        ScheduleEntry(
            ranges=(TimeRange(TimeOfDay(8, 0), TimeOfDay(12, 0)), TimeRange(TimeOfDay(13, 0), TimeOfDay(16, 30))),
            rrule="FREQ=WEEKLY;BYDAY=SA",
            override=True,
        ),
        ScheduleEntry(ranges=(NINE_TO_FIVE,), rrule=one_off_rule(date(2026, 3, 4))),
        ScheduleEntry(ranges=(NINE_TO_FIVE,), rrule=date_range_rule(date(2026, 3, 1), date(2026, 3, 5))),
    ]
    for entry in entries:
        assert schedule_from_dict(schedule_to_dict(entry)) == entry


def test_single_range_serialises_flat() -> None:
    payload = schedule_to_dict(default_schedules()[0])
    assert payload == {"from": "09:00", "to": "17:00", "rrule": "FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR"}


@pytest.mark.parametrize(
    "payload",
    [
        {"ranges": [{"from": "09:00"}], "rrule": ""},
        {"ranges": [{"to": "17:00"}], "rrule": ""},
        {"ranges": ["09:00-17:00"], "rrule": ""},
    ],
)
def test_schedule_range_without_bounds_is_rejected(payload) -> None:
    with pytest.raises(InvalidInputError, match="needs 'from' and 'to'"):
        schedule_from_dict(payload)


def test_formatting() -> None:
    assert format_schedule_entry(default_schedules()[0]) == "9:00 AM - 5:00 PM, every weekday"
    one_off = ScheduleEntry(ranges=(NINE_TO_FIVE,), rrule=one_off_rule(date(2026, 1, 2)), override=True)
    assert format_schedule_entry(one_off) == "9:00 AM - 5:00 PM, on Jan 2 (override)"
    day = DaySchedule(day=date(2026, 2, 2), windows=(NINE_TO_FIVE,))
    assert format_day_schedule(day) == "Mon Feb  2:  9:00 AM - 5:00 PM"
