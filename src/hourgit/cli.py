from __future__ import annotations

import argparse
import calendar
import logging
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

import yaml
from dateutil.tz import tzlocal

from . import __version__, reflog
from .durations import format_minutes, parse_duration
from .errors import (
    HourgitError,
    InvalidInputError,
    NotFoundError,
    PreconditionError,
    WrongKindError,
)
from .ids import id_fresh
from .models import (
    SOURCE_CHECKOUT_GENERATED,
    SOURCE_GENERATE,
    SOURCE_MANUAL,
    CheckoutEntry,
    FoundEntry,
    GeneratedDayEntry,
    HistoryItem,
    LogEntry,
    Project,
    SubmitEntry,
)
from .pdf import render_export_pdf
from .prompts import PromptKit
from .registry import (
    assign_repo,
    create_project,
    find_project_by_slug,
    find_repo,
    get_schedules,
    install_hook,
    load_registry,
    read_marker,
    remove_project,
    resolve_context,
    resolve_project,
    set_defaults,
    set_schedules,
    write_marker,
)
from .schedule import (
    DaySchedule,
    ScheduleEntry,
    default_schedules,
    expand_schedules,
    format_day_schedule,
    format_schedule_entry,
    format_time_range,
    parse_schedule,
    parse_time_of_day,
    schedule_for,
    schedule_from_dict,
)
from .storage import EntryStore
from .timetrack import (
    DetailedReportData,
    build_attribution,
    build_detailed_report,
    build_export_data,
    build_report,
    iter_days,
    log_day,
    month_bounds,
    overlap_minutes,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
MAX_ENTRY_MINUTES = 24 * 60
DEFAULT_HISTORY_LIMIT = 50


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format=LOG_FORMAT)


def local_now() -> datetime:
    return datetime.now(tzlocal())


def current_project(args: argparse.Namespace) -> Project:
    return resolve_context(args.home, args.repo, getattr(args, "project", None))


def require_repo(args: argparse.Namespace) -> Path:
    if args.repo is None:
        raise PreconditionError("not a git repository")
    return args.repo


def confirm(args: argparse.Namespace, label: str) -> bool:
    return args.prompts.confirm(label)


def day_schedules_for(
    args: argparse.Namespace, project: Project | None, start: date, end: date
) -> list[DaySchedule]:
    return expand_schedules(get_schedules(load_registry(args.home), project), start, end)


def parse_day(value: str, flag: str = "--date") -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise InvalidInputError(f"invalid {flag} format, expected YYYY-MM-DD") from None


def parse_from_to(from_text: str, to_text: str, day: date, tz) -> tuple[datetime, int]:
    start = parse_time_of_day(from_text)
    end = parse_time_of_day(to_text)
    if not start < end:
        raise InvalidInputError(f"--from ({from_text}) must be before --to ({to_text})")
    return (
        datetime.combine(day, start.as_time(), tzinfo=tz),
        end.total_minutes - start.total_minutes,
    )


def validate_entry(minutes: int, message: str) -> None:
    if minutes <= 0:
        raise InvalidInputError("duration must be positive")
    if minutes > MAX_ENTRY_MINUTES:
        raise InvalidInputError("cannot log more than 24h in a single entry")
    if not message:
        raise InvalidInputError("message is required")


def check_schedule_warnings(
    args: argparse.Namespace,
    project: Project,
    start: datetime,
    minutes: int,
    exclude_id: str = "",
) -> bool:
    """Warn about entries outside the schedule or over the day's budget.

    Returns False when the user declines to continue after a warning.
    """
    tz = args.now.tzinfo
    local_start = start.astimezone(tz)
    day = local_start.date()
    today = schedule_for(day_schedules_for(args, project, day, day), day)
    if today is None or not today.windows:
        print("Warning: this day has no scheduled working hours.")
        return confirm(args, "Continue anyway?")

    end = local_start + timedelta(minutes=minutes)
    covered = overlap_minutes(local_start, end, day, today.windows, tz)
    if covered < minutes:
        windows = ", ".join(format_time_range(window) for window in today.windows)
        extent = "falls" if covered == 0 else "partially falls"
        print(f"Warning: this entry {extent} outside your scheduled hours ({windows}).")
        if not confirm(args, "Continue anyway?"):
            return False

    logged = sum(
        entry.minutes
        for entry in EntryStore(args.home).read_all_logs(project.slug)
        if entry.id != exclude_id and entry.start.astimezone(tz).date() == day
    )
    scheduled = today.scheduled_minutes
    remaining = scheduled - logged
    if remaining <= 0:
        print(
            "Warning: you have already logged your full schedule for this day "
            f"({format_minutes(scheduled)} scheduled, {format_minutes(logged)} logged)."
        )
        return confirm(args, "Continue anyway?")
    if minutes > remaining:
        print(
            f"Warning: you are about to log {format_minutes(minutes)}, but only "
            f"{format_minutes(remaining)} remains in today's schedule "
            f"({format_minutes(scheduled)} scheduled, {format_minutes(logged)} already logged)."
        )
        return confirm(args, "Continue anyway?")
    return True


def print_assignment(project: Project | None, status: str) -> None:
    if status == "declined" or project is None:
        print("project assignment skipped")
        return
    if status == "unchanged":
        print(f"repository is already assigned to project '{project.name}'")
        return
    if status == "created":
        print(f"project '{project.name}' created ({project.id})")
    print(f"repository assigned to project '{project.name}'")


def init_command(args: argparse.Namespace) -> int:
    repo = require_repo(args)
    install_hook(repo, force=args.force, merge=args.merge)
    print("hourgit initialized successfully")
    if args.project:
        project, status = assign_repo(
            args.home,
            repo,
            args.project,
            confirm_create=lambda name: confirm(
                args, f"Project '{name}' does not exist. Create it?"
            ),
        )
        print_assignment(project, status)
    return 0


def project_add_command(args: argparse.Namespace) -> int:
    project = create_project(args.home, args.name)
    print(f"project '{project.name}' created ({project.id})")
    return 0


def project_list_command(args: argparse.Namespace) -> int:
    registry = load_registry(args.home)
    if not registry.projects:
        print("No projects found.")
        return 0
    for index, project in enumerate(registry.projects):
        if index:
            print()
        print(f"{project.id}  {project.name}")
        if not project.repos:
            print("└── (no repositories assigned)")
            continue
        for position, repo in enumerate(project.repos, start=1):
            branch = "└──" if position == len(project.repos) else "├──"
            print(f"{branch} {repo}")
    return 0


def project_assign_command(args: argparse.Namespace) -> int:
    repo = require_repo(args)
    project, status = assign_repo(
        args.home,
        repo,
        args.name,
        force=args.force,
        confirm_create=lambda name: confirm(args, f"Project '{name}' does not exist. Create it?"),
    )
    print_assignment(project, status)
    return 0


def project_remove_command(args: argparse.Namespace) -> int:
    project = resolve_project(load_registry(args.home), args.name)
    if project is None:
        raise NotFoundError(f"project '{args.name}' not found")
    label = f"Remove project '{project.name}'"
    if project.repos:
        label += f" and unassign {len(project.repos)} repository(ies)"
    if not confirm(args, f"{label}?"):
        print("aborted")
        return 0
    remove_project(args.home, project.id)
    print(f"project '{project.name}' removed")
    return 0


def checkout_command(args: argparse.Namespace) -> int:
    if args.prev == args.next:
        return 0
    project = current_project(args)
    entry = CheckoutEntry(
        id=id_fresh("checkout"),
        timestamp=args.now.astimezone(timezone.utc),
        previous=args.prev,
        next=args.next,
    )
    EntryStore(args.home).write_checkout(project.slug, entry)
    print(f"checkout {args.prev} -> {args.next} for project '{project.name}' ({entry.id})")
    return 0


def sync_command(args: argparse.Namespace) -> int:
    repo = require_repo(args)
    project = current_project(args)
    store = EntryStore(args.home)
    marker = read_marker(repo)
    since = marker.last_sync if marker is not None else None

    records = reflog.parse_reflog(reflog.read_reflog(repo, since))
    known = {entry.id for entry in store.read_all_checkouts(project.slug)}
    created = 0
    newest: datetime | None = None
    for record in reversed(records):
        if not reflog.is_trackable(record):
            logger.debug("Skipping reflog record %s -> %s", record.previous, record.next)
            continue
        if newest is None or record.timestamp > newest:
            newest = record.timestamp
        entry_id = reflog.record_id(record)
        if entry_id in known:
            continue
        store.write_checkout(
            project.slug,
            CheckoutEntry(
                id=entry_id,
                timestamp=record.timestamp,
                previous=record.previous,
                next=record.next,
                commit_ref=record.commit_ref,
            ),
        )
        known.add(entry_id)
        created += 1

    if marker is not None and newest is not None:
        write_marker(repo, replace(marker, last_sync=newest))
    if created == 0:
        print("already up to date")
    else:
        print(f"synced {created} checkout(s) for project '{project.name}'")
    return 0


def week_bounds(day: date) -> tuple[date, date]:
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def generate_range(args: argparse.Namespace, today: date) -> tuple[date, date]:
    chosen = sum(1 for flag in (args.today, args.week, args.month, args.date) if flag)
    if chosen > 1:
        raise InvalidInputError("only one of --today, --week, --month, or --date can be specified")
    if args.today:
        return today, today
    if args.week:
        return week_bounds(today)
    if args.month:
        return month_bounds(parse_year(args.year, today.year), today.month)
    if args.date:
        day = parse_day(args.date)
        return day, day

    choice = args.prompts.select(
        "Generate for which timeframe?",
        ["Today", "This week (Mon-Sun)", "Specific date", "This month"],
    )
    if choice == 0:
        return today, today
    if choice == 1:
        return week_bounds(today)
    if choice == 2:
        day = parse_day(args.prompts.prompt("Date (YYYY-MM-DD)"))
        return day, day
    return month_bounds(today.year, today.month)


def generate_command(args: argparse.Namespace) -> int:
    project = current_project(args)
    store = EntryStore(args.home)
    start, end = generate_range(args, args.now.date())
    requested = {day.isoformat() for day in iter_days(start, end)}

    overlap = sorted(
        {marker.date for marker in store.read_all_generated_days(project.slug)} & requested
    )
    if overlap:
        print(f"Warning: {len(overlap)} day(s) in this range have already been generated.")
        if not confirm(args, "Overwrite existing generated entries?"):
            print("cancelled")
            return 0
        for entry in store.read_all_logs(project.slug):
            if entry.source == SOURCE_GENERATE and log_day(entry).isoformat() in overlap:
                store.delete(project.slug, entry.id)
        store.delete_generated_days_by_date(project.slug, overlap)

    span_start = month_bounds(start.year, start.month)[0]
    span_end = month_bounds(end.year, end.month)[1]
    bucket = build_attribution(
        store.read_all_checkouts(project.slug),
        store.read_all_logs(project.slug),
        day_schedules_for(args, project, span_start, span_end),
        span_start,
        span_end,
        args.now,
        [marker.date for marker in store.read_all_generated_days(project.slug)],
    )
    planned = sorted(
        (day, branch, minutes)
        for branch, days in bucket.items()
        for day, minutes in days.items()
        if start <= day <= end and minutes > 0
    )
    if not planned:
        print("No checkout time to generate for the selected range.")
        return 0

    print("Entries to generate:")
    print()
    for day, branch, minutes in planned:
        print(f"  {day.isoformat()}  {branch}  {format_minutes(minutes)}")
    print()
    if not confirm(args, f"Create {len(planned)} entries?"):
        print("cancelled")
        return 0

    created_at = args.now.astimezone(timezone.utc)
    marked: set[date] = set()
    for day, branch, minutes in planned:
        store.write_log(
            project.slug,
            LogEntry(
                id=id_fresh("generate"),
                start=datetime.combine(day, time(9, 0), tzinfo=timezone.utc),
                minutes=minutes,
                message=branch,
                task=branch,
                source=SOURCE_GENERATE,
                created_at=created_at,
            ),
        )
        if day not in marked:
            marked.add(day)
            store.write_generated_day(
                project.slug, GeneratedDayEntry(id=id_fresh("generated_day"), date=day.isoformat())
            )
    print(
        f"Generated {len(planned)} entries across {len(marked)} days "
        f"for project '{project.name}'."
    )
    return 0


def log_command(args: argparse.Namespace) -> int:
    if args.duration and (args.from_time or args.to_time):
        raise InvalidInputError("--duration and --from/--to are mutually exclusive")
    if bool(args.from_time) != bool(args.to_time):
        raise InvalidInputError("--from and --to must be used together")
    project = current_project(args)
    now = args.now
    tz = now.tzinfo
    prompts = args.prompts
    message = args.message or ""
    duration_text = args.duration
    from_text, to_text = args.from_time, args.to_time

    interactive = not (duration_text or from_text)
    if interactive:
        answer = args.date or prompts.prompt("Date (YYYY-MM-DD, default: today)")
        day = parse_day(answer) if answer.strip() else now.date()
        mode = prompts.select(
            "How do you want to log time?",
            ["Duration (e.g. 3h30m)", "Time range (e.g. 9am to 5pm)"],
        )
        if mode == 0:
            duration_text = prompts.prompt("Duration (e.g. 30m, 3h, 3h30m)")
        else:
            from_text = prompts.prompt("From (e.g. 9am, 14:00)")
            to_text = prompts.prompt("To (e.g. 5pm, 17:00)")
        if not message:
            message = prompts.prompt("Message").strip()
    else:
        day = parse_day(args.date) if args.date else now.date()

    if duration_text:
        minutes = parse_duration(duration_text)
        start = datetime.combine(day, time(now.hour, now.minute), tzinfo=tz) - timedelta(
            minutes=minutes
        )
    else:
        start, minutes = parse_from_to(from_text, to_text, day, tz)
    validate_entry(minutes, message)

    if not check_schedule_warnings(args, project, start, minutes):
        print("cancelled")
        return 0

    entry = LogEntry(
        id=id_fresh("log"),
        start=start.astimezone(timezone.utc),
        minutes=minutes,
        message=message,
        task=args.task or "",
        source=SOURCE_MANUAL,
        created_at=now.astimezone(timezone.utc),
    )
    EntryStore(args.home).write_log(project.slug, entry)
    print(f"logged {format_minutes(minutes)} for project '{project.name}' ({entry.id})")
    return 0


def locate_log(args: argparse.Namespace) -> tuple[str, Project | None, LogEntry]:
    """Find a log entry by project flag, then repo context, then across all projects."""
    store = EntryStore(args.home)
    registry = load_registry(args.home)
    entry_id = args.entry_id

    def read_in(project: Project) -> LogEntry:
        try:
            return store.read_log(project.slug, entry_id)
        except NotFoundError:
            if store.is_checkout(project.slug, entry_id):
                raise WrongKindError(
                    f"entry '{entry_id}' is a checkout entry and cannot be edited"
                ) from None
            raise

    if args.project:
        project = resolve_project(registry, args.project)
        if project is None:
            raise NotFoundError(f"project '{args.project}' not found")
        return project.slug, project, read_in(project)

    if args.repo is not None:
        try:
            project = resolve_context(args.home, args.repo, None)
        except HourgitError:
            project = None
        if project is not None:
            try:
                return project.slug, project, read_in(project)
            except NotFoundError:
                logger.debug("Entry %s not in %s, scanning all projects", entry_id, project.slug)

    slug, entry = store.find_log_across_projects(entry_id)
    return slug, find_project_by_slug(registry, slug), entry


def apply_flag_edits(args: argparse.Namespace, entry: LogEntry) -> LogEntry:
    tz = args.now.tzinfo
    if args.duration is not None and (args.from_time is not None or args.to_time is not None):
        raise InvalidInputError("--duration and --from/--to are mutually exclusive")

    local_start = entry.start.astimezone(tz)
    if args.date is not None:
        local_start = datetime.combine(parse_day(args.date), local_start.timetz())
    start, minutes = local_start, entry.minutes
    if args.duration is not None:
        minutes = parse_duration(args.duration)
    elif args.from_time is not None or args.to_time is not None:
        old_end = local_start + timedelta(minutes=entry.minutes)
        start, minutes = parse_from_to(
            args.from_time if args.from_time is not None else f"{local_start:%H:%M}",
            args.to_time if args.to_time is not None else f"{old_end:%H:%M}",
            local_start.date(),
            tz,
        )

    message = entry.message
    if args.message is not None:
        if not args.message:
            raise InvalidInputError("message is required")
        message = args.message
    task = args.task if args.task is not None else entry.task
    return replace(
        entry, start=start.astimezone(timezone.utc), minutes=minutes, message=message, task=task
    )


def apply_interactive_edits(args: argparse.Namespace, entry: LogEntry) -> LogEntry:
    tz = args.now.tzinfo
    prompts = args.prompts
    local_start = entry.start.astimezone(tz)
    old_end = local_start + timedelta(minutes=entry.minutes)
    day = parse_day(prompts.prompt_with_default("Date (YYYY-MM-DD)", f"{local_start:%Y-%m-%d}"))
    default_from, default_to = f"{local_start:%H:%M}", f"{old_end:%H:%M}"
    from_text = prompts.prompt_with_default("From (e.g. 9am, 14:00)", default_from)
    to_text = prompts.prompt_with_default("To (e.g. 5pm, 17:00)", default_to)
    if (from_text, to_text) == (default_from, default_to):
        # Untouched times keep the stored span, which may run past midnight.
        start, minutes = datetime.combine(day, local_start.timetz()), entry.minutes
    else:
        start, minutes = parse_from_to(from_text, to_text, day, tz)
    task = prompts.prompt_with_default("Task", entry.task)
    message = prompts.prompt_with_default("Message", entry.message)
    return replace(
        entry,
        start=start.astimezone(timezone.utc),
        minutes=minutes,
        task=task.strip(),
        message=message.strip(),
    )


def print_edit_diff(before: LogEntry, after: LogEntry, tz) -> None:
    if before.start != after.start:
        print(
            f"  date:     {before.start.astimezone(tz):%Y-%m-%d %H:%M} -> "
            f"{after.start.astimezone(tz):%Y-%m-%d %H:%M}"
        )
    if before.minutes != after.minutes:
        print(f"  duration: {format_minutes(before.minutes)} -> {format_minutes(after.minutes)}")
    if before.task != after.task:
        print(f"  task:     {before.task or '(none)'} -> {after.task or '(none)'}")
    if before.message != after.message:
        print(f"  message:  {before.message} -> {after.message}")
    print(f"updated entry {after.id}")


def edit_command(args: argparse.Namespace) -> int:
    slug, project, original = locate_log(args)
    flags = (args.duration, args.from_time, args.to_time, args.date, args.task, args.message)
    if any(value is not None for value in flags):
        edited = apply_flag_edits(args, original)
    else:
        edited = apply_interactive_edits(args, original)
    validate_entry(edited.minutes, edited.message)

    time_changed = edited.start != original.start or edited.minutes != original.minutes
    if time_changed and project is not None:
        if not check_schedule_warnings(args, project, edited.start, edited.minutes, original.id):
            print("cancelled")
            return 0

    if (
        not time_changed
        and edited.message == original.message
        and edited.task == original.task
    ):
        print("no changes")
        return 0

    store = EntryStore(args.home)
    store.write_log(slug, edited)
    print_edit_diff(original, edited, args.now.tzinfo)

    day = log_day(edited)
    for submit in store.read_all_submits(slug):
        if submit.covers(day, day):
            print(
                f"Warning: this entry falls inside a period submitted on "
                f"{submit.created_at:%Y-%m-%d} ({submit.from_date} to {submit.to_date}); "
                "re-submit the report to include the change."
            )
            break
    return 0


def locate_any(args: argparse.Namespace) -> FoundEntry:
    store = EntryStore(args.home)
    if args.project:
        project = resolve_project(load_registry(args.home), args.project)
        if project is None:
            raise NotFoundError(f"project '{args.project}' not found")
        found = store.find_any(project.slug, args.entry_id)
        if found is None:
            raise NotFoundError(f"entry '{args.entry_id}' not found")
        return found
    if args.repo is not None:
        try:
            project = resolve_context(args.home, args.repo, None)
        except HourgitError:
            project = None
        if project is not None:
            found = store.find_any(project.slug, args.entry_id)
            if found is not None:
                return found
    return store.find_any_across_projects(args.entry_id)


def remove_command(args: argparse.Namespace) -> int:
    found = locate_any(args)
    print(f"  type:   {found.kind}")
    print(f"  detail: {found.summary}")
    if not confirm(args, "Remove this entry?"):
        print("cancelled")
        return 0
    EntryStore(args.home).delete(found.slug, args.entry_id)
    print(f"removed entry {args.entry_id}")
    return 0


def history_items(store: EntryStore, project: Project) -> list[HistoryItem]:
    items = []
    for entry in store.read_all_logs(project.slug):
        detail = format_minutes(entry.minutes)
        if entry.task:
            detail += f"  [{entry.task}]"
        if entry.message:
            detail += f" {entry.message}" if entry.task else f"  {entry.message}"
        items.append(HistoryItem(entry.id, "log", entry.created_at, project.name, detail))
    for checkout in store.read_all_checkouts(project.slug):
        items.append(
            HistoryItem(
                checkout.id,
                "checkout",
                checkout.timestamp,
                project.name,
                f"{checkout.previous} -> {checkout.next}",
            )
        )
    return items


def history_command(args: argparse.Namespace) -> int:
    if args.limit < 0:
        raise InvalidInputError("--limit must be 0 or positive")
    registry = load_registry(args.home)
    if args.project:
        project = resolve_project(registry, args.project)
        if project is None:
            raise NotFoundError(f"project '{args.project}' not found")
        projects: Sequence[Project] = [project]
    else:
        projects = registry.projects

    store = EntryStore(args.home)
    items = [item for project in projects for item in history_items(store, project)]
    if not items:
        print("no entries found")
        return 0
    items.sort(key=lambda item: item.when, reverse=True)
    if args.limit:
        items = items[: args.limit]
    tz = args.now.tzinfo
    for item in items:
        print(
            f"{item.id}  {item.when.astimezone(tz):%Y-%m-%d %H:%M:%S}  "
            f"{item.kind:<8}  {item.project}  {item.detail}"
        )
    return 0


def parse_year(value: int | None, default: int) -> int:
    if value is None:
        return default
    if value <= 0:
        raise InvalidInputError(f"invalid --year value '{value}' (expected a positive number)")
    return value


def parse_month(value: int | None, default: int) -> int:
    if value is None:
        return default
    if not 1 <= value <= 12:
        raise InvalidInputError(f"invalid --month value '{value}' (expected 1-12)")
    return value


def report_period(args: argparse.Namespace) -> tuple[date, date, str]:
    today = args.now.date()
    if args.month is not None and args.week is not None:
        raise InvalidInputError("--month and --week are mutually exclusive")
    year = parse_year(args.year, today.year)
    if args.week is not None:
        try:
            monday = date.fromisocalendar(year, args.week, 1)
        except ValueError:
            raise InvalidInputError(
                f"invalid --week value '{args.week}' (expected 1-53)"
            ) from None
        sunday = monday + timedelta(days=6)
        return monday, sunday, f"week {args.week} of {year}"
    month = parse_month(args.month, today.month)
    start, end = month_bounds(year, month)
    return start, end, f"{calendar.month_name[month]} {year}"


def format_cell(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    if not hours:
        return f"{mins}m"
    return f"{hours}h" if not mins else f"{hours}h{mins:02d}"


def render_report_table(report: DetailedReportData) -> str:
    dates = report.dates
    name_width = max(len("Task"), *(len(row.name) for row in report.rows))
    header = "Task".ljust(name_width) + "".join(f"{day.day:>7}" for day in dates)
    lines = [header + f"{'Total':>11}"]
    totals = {day: 0 for day in dates}
    for row in report.rows:
        cells = []
        for day in dates:
            cell = row.days.get(day)
            if cell is None or cell.total_minutes == 0:
                cells.append(f"{'-':>7}")
                continue
            totals[day] += cell.total_minutes
            text = format_cell(cell.total_minutes)
            if any(not item.persisted for item in cell.entries):
                text += "*"
            cells.append(f"{text:>7}")
        lines.append(
            row.name.ljust(name_width) + "".join(cells) + f"{format_minutes(row.total_minutes):>11}"
        )
    footer = "".join(
        f"{format_cell(totals[day]) if totals[day] else '-':>7}" for day in dates
    )
    grand = sum(totals.values())
    lines.append("Total".ljust(name_width) + footer + f"{format_minutes(grand):>11}")
    if report.in_memory_entries():
        lines.append("")
        lines.append("* includes checkout time that has not been submitted")
    return "\n".join(lines)


def submit_report(
    args: argparse.Namespace, project: Project, report: DetailedReportData
) -> int:
    pending = report.in_memory_entries()
    label = f"Submit report for {report.start} to {report.end}"
    if pending:
        label += f" ({len(pending)} checkout entries will be saved)"
    if not confirm(args, f"{label}?"):
        print("cancelled")
        return 0
    store = EntryStore(args.home)
    created_at = args.now.astimezone(timezone.utc)
    for _, item in pending:
        store.write_log(
            project.slug,
            LogEntry(
                id=id_fresh("submit"),
                start=item.start,
                minutes=item.minutes,
                message=item.message,
                task=item.task,
                source=SOURCE_CHECKOUT_GENERATED,
                created_at=created_at,
            ),
        )
    store.write_submit(
        project.slug,
        SubmitEntry(
            id=id_fresh("submit-marker"),
            from_date=report.start,
            to_date=report.end,
            created_at=created_at,
        ),
    )
    print(
        f"submitted {report.start} to {report.end} for project '{project.name}' "
        f"({len(pending)} entries saved)"
    )
    return 0


def report_command(args: argparse.Namespace) -> int:
    if args.export and args.week is not None:
        raise InvalidInputError("--export only supports monthly reports")
    start, end, label = report_period(args)
    project = current_project(args)
    store = EntryStore(args.home)
    checkouts = store.read_all_checkouts(project.slug)
    logs = store.read_all_logs(project.slug)
    generated = [marker.date for marker in store.read_all_generated_days(project.slug)]
    day_schedules = day_schedules_for(args, project, start, end)

    if args.export:
        data = build_export_data(
            checkouts,
            logs,
            day_schedules,
            start.year,
            start.month,
            args.now,
            generated,
            project.name,
        )
        if not data.days:
            print(f"No time entries for {label}.")
            return 0
        if args.output:
            output = Path(args.output).expanduser()
        else:
            output = args.cwd / f"{project.slug}-{start.year}-{start.month:02d}.pdf"
        render_export_pdf(data, output)
        print(f"Exported report to {output}")
        return 0

    report = build_detailed_report(checkouts, logs, day_schedules, start, end, args.now, generated)
    if not report.rows:
        print(f"No time entries for {label}.")
        return 0
    print(f"Report for '{project.name}' ({label})")
    if any(submit.covers(start, end) for submit in store.read_all_submits(project.slug)):
        print("Previously submitted. Changes require re-submission.")
    print()
    print(render_report_table(report))
    if args.submit:
        print()
        return submit_report(args, project, report)
    return 0


def format_duration_ago(delta: timedelta) -> str:
    total = max(int(delta.total_seconds() // 60), 0)
    if total < 1:
        return "just now"
    hours, minutes = divmod(total, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def status_command(args: argparse.Namespace) -> int:
    project = current_project(args)
    now = args.now
    today = now.date()
    store = EntryStore(args.home)
    print(f"Project:      {project.name}")

    if args.repo is not None:
        try:
            branch = reflog.current_branch(args.repo)
        except (subprocess.CalledProcessError, OSError) as exc:
            logger.debug("Cannot read current branch: %s", exc)
            branch = ""
        if branch:
            print(f"Branch:       {branch}")

    checkouts = store.read_all_checkouts(project.slug)
    if checkouts:
        last = max(checkouts, key=lambda entry: entry.timestamp)
        print(f"Checked out:  {format_duration_ago(now - last.timestamp)} ago")

    month_start, month_end = month_bounds(today.year, today.month)
    day_schedules = day_schedules_for(args, project, month_start, month_end)
    todays = schedule_for(day_schedules, today)
    print()
    if todays is None or not todays.windows:
        print("Today:        not a working day")
        return 0

    report = build_report(
        checkouts,
        store.read_all_logs(project.slug),
        day_schedules,
        today.year,
        today.month,
        now,
        [marker.date for marker in store.read_all_generated_days(project.slug)],
    )
    logged = sum(row.days.get(today.day, 0) for row in report.rows)
    remaining = max(todays.scheduled_minutes - logged, 0)
    print(f"Today:        {format_minutes(logged)} logged  ·  {format_minutes(remaining)} remaining")
    print(f"Schedule:     {', '.join(format_time_range(window) for window in todays.windows)}")

    minute_of_day = now.hour * 60 + now.minute
    for window in todays.windows:
        if window.start.total_minutes <= minute_of_day < window.end.total_minutes:
            print(f"Tracking:     active (until {window.end.format_12h()})")
            break
    else:
        print("Tracking:     inactive (no scheduled hours remaining)")
    return 0


def schedule_scope(args: argparse.Namespace) -> tuple[str, Project | None, list[ScheduleEntry]]:
    """Label, project and effective schedules for ``config`` (project) or ``defaults``."""
    registry = load_registry(args.home)
    if args.scope == "defaults":
        return "default schedule", None, list(registry.defaults)
    project = current_project(args)
    return f"schedule for '{project.name}'", project, get_schedules(registry, project)


def save_scope(args: argparse.Namespace, project: Project | None, schedules) -> None:
    if project is None:
        set_defaults(args.home, schedules)
    else:
        set_schedules(args.home, project, schedules)


def print_schedules(schedules: Sequence[ScheduleEntry]) -> None:
    if not schedules:
        print("  (no schedules)")
        return
    for index, entry in enumerate(schedules, start=1):
        print(f"  {index}. {format_schedule_entry(entry)}")


def print_working_hours(label: str, day_schedules: Sequence[DaySchedule], month_label: str) -> None:
    print(f"Working hours for {label} ({month_label}):")
    if not day_schedules:
        print("  No working hours scheduled this month.")
        return
    for item in day_schedules:
        print(f"  {format_day_schedule(item)}")


def schedule_get_command(args: argparse.Namespace) -> int:
    label, _, schedules = schedule_scope(args)
    print(f"{label[0].upper()}{label[1:]}:")
    print_schedules(schedules)
    return 0


def load_schedule_file(path: Path, today: date) -> list[ScheduleEntry]:
    """Schedules from YAML: a list (or ``schedules:`` key) of expressions or mappings."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise InvalidInputError(f"cannot parse {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("schedules")
    if not isinstance(data, list) or not data:
        raise InvalidInputError(f"{path} must contain a list of schedules")
    schedules = []
    for item in data:
        if isinstance(item, str):
            schedules.append(parse_schedule(item, today))
        elif isinstance(item, dict):
            schedules.append(schedule_from_dict(item))
        else:
            raise InvalidInputError(f"unsupported schedule entry in {path}: {item!r}")
    return schedules


def prompt_schedule(args: argparse.Namespace) -> ScheduleEntry | None:
    text = args.prompts.prompt("Schedule (e.g. from 9am to 5pm every weekday)")
    override = args.prompts.confirm("Replace other schedules on matching days?")
    try:
        entry = parse_schedule(text, args.now.date(), override=override)
    except InvalidInputError as exc:
        print(f"error: {exc}")
        return None
    print(f"  -> {format_schedule_entry(entry)}")
    return entry


def edit_schedules_interactively(
    args: argparse.Namespace, label: str, schedules: Sequence[ScheduleEntry]
) -> list[ScheduleEntry] | None:
    prompts = args.prompts
    current = list(schedules)
    print(f"Editing {label}")
    while True:
        print()
        print_schedules(current)
        action = prompts.select("Action", ["Add", "Edit", "Delete", "Save", "Quit without saving"])
        if action == 0:
            entry = prompt_schedule(args)
            if entry is not None:
                current.append(entry)
        elif action in (1, 2) and not current:
            print("nothing to change")
        elif action == 1:
            index = prompts.select(
                "Edit which schedule?", [format_schedule_entry(item) for item in current]
            )
            entry = prompt_schedule(args)
            if entry is not None:
                current[index] = entry
        elif action == 2:
            picked = set(
                prompts.multi_select(
                    "Delete which schedules?", [format_schedule_entry(item) for item in current]
                )
            )
            current = [item for index, item in enumerate(current) if index not in picked]
        elif action == 3:
            return current
        else:
            return None


def schedule_set_command(args: argparse.Namespace) -> int:
    label, project, existing = schedule_scope(args)
    today = args.now.date()
    if args.file:
        schedules = load_schedule_file(Path(args.file).expanduser(), today)
    elif args.schedules:
        parsed = [parse_schedule(text, today, override=args.override) for text in args.schedules]
        schedules = existing + parsed if args.override else parsed
    else:
        edited = edit_schedules_interactively(args, label, existing)
        if edited is None:
            print("cancelled")
            return 0
        schedules = edited
    save_scope(args, project, schedules)
    print(f"{label} saved")
    print_schedules(schedules)
    return 0


def schedule_reset_command(args: argparse.Namespace) -> int:
    label, project, _ = schedule_scope(args)
    if not confirm(args, f"Reset {label} to default?"):
        print("aborted")
        return 0
    if project is None:
        set_defaults(args.home, default_schedules())
    else:
        set_schedules(args.home, project, [])
    print(f"{label} reset to default")
    return 0


def schedule_read_command(args: argparse.Namespace) -> int:
    _, project, schedules = schedule_scope(args)
    today = args.now.date()
    year = parse_year(getattr(args, "year", None), today.year)
    month = parse_month(getattr(args, "month", None), today.month)
    start, end = month_bounds(year, month)
    print_working_hours(
        f"'{project.name}'" if project is not None else "the default schedule",
        expand_schedules(schedules, start, end),
        f"{calendar.month_name[month]} {year}",
    )
    return 0


def version_command(args: argparse.Namespace) -> int:
    print(f"hourgit {__version__}")
    return 0


def add_project_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--project", "-p", help="Project name or ID")


def add_yes_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompts")


def add_schedule_commands(subparsers, scope: str, help_text: str) -> None:
    parser = subparsers.add_parser(scope, help=help_text)
    parser.set_defaults(scope=scope)
    commands = parser.add_subparsers(dest=f"{scope}_command", required=True)

    def leaf(name: str, help_: str, func: Callable[[argparse.Namespace], int]):
        sub = commands.add_parser(name, help=help_)
        if scope == "config":
            add_project_flag(sub)
        sub.set_defaults(func=func)
        return sub

    leaf("get", "Show schedule entries", schedule_get_command)

    set_parser = leaf("set", "Replace schedule entries", schedule_set_command)
    set_parser.add_argument(
        "schedules",
        nargs="*",
        help="Expressions like 'from 9am to 5pm every weekday'",
    )
    set_parser.add_argument(
        "--override",
        action="store_true",
        help="Append the expressions as overrides instead of replacing",
    )
    set_parser.add_argument("--file", help="YAML file with a list of schedules")

    reset_parser = leaf("reset", "Reset to the default schedule", schedule_reset_command)
    add_yes_flag(reset_parser)

    leaf("read", "Working hours for the current month", schedule_read_command)

    report_parser = leaf("report", "Working hours for a given month", schedule_read_command)
    report_parser.add_argument("--month", type=int, help="Month (1-12)")
    report_parser.add_argument("--year", type=int, help="Year")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hourgit",
        description="Git-branch time tracking with schedules and monthly timesheets.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Install the post-checkout hook")
    add_project_flag(init_parser)
    mode = init_parser.add_mutually_exclusive_group()
    mode.add_argument("--force", action="store_true", help="Overwrite an existing hook")
    mode.add_argument("--merge", action="store_true", help="Append to an existing hook")
    add_yes_flag(init_parser)
    init_parser.set_defaults(func=init_command)

    project_parser = subparsers.add_parser("project", help="Manage projects")
    project_commands = project_parser.add_subparsers(dest="project_command", required=True)

    project_add = project_commands.add_parser("add", help="Create a project")
    project_add.add_argument("name")
    project_add.set_defaults(func=project_add_command)

    project_list = project_commands.add_parser("list", help="List projects and repositories")
    project_list.set_defaults(func=project_list_command)

    project_assign = project_commands.add_parser(
        "assign", help="Assign the current repository to a project"
    )
    project_assign.add_argument("name", help="Project name or ID")
    project_assign.add_argument("--force", action="store_true", help="Reassign if needed")
    add_yes_flag(project_assign)
    project_assign.set_defaults(func=project_assign_command)

    project_remove = project_commands.add_parser("remove", help="Remove a project")
    project_remove.add_argument("name", help="Project name or ID")
    add_yes_flag(project_remove)
    project_remove.set_defaults(func=project_remove_command)

    checkout_parser = subparsers.add_parser("checkout", help="Record a branch checkout")
    checkout_parser.add_argument("--prev", required=True, help="Previous branch")
    checkout_parser.add_argument("--next", required=True, help="Next branch")
    add_project_flag(checkout_parser)
    checkout_parser.set_defaults(func=checkout_command)

    sync_parser = subparsers.add_parser("sync", help="Import checkouts from the git reflog")
    add_project_flag(sync_parser)
    sync_parser.set_defaults(func=sync_command)

    generate_parser = subparsers.add_parser(
        "generate", help="Turn checkout time into editable log entries"
    )
    generate_parser.add_argument("--today", action="store_true", help="Generate for today")
    generate_parser.add_argument("--week", action="store_true", help="Current week (Mon-Sun)")
    generate_parser.add_argument("--month", action="store_true", help="Current month")
    generate_parser.add_argument("--date", help="Specific date (YYYY-MM-DD)")
    generate_parser.add_argument("--year", type=int, help="Year (with --month)")
    add_project_flag(generate_parser)
    add_yes_flag(generate_parser)
    generate_parser.set_defaults(func=generate_command)

    log_parser = subparsers.add_parser("log", help="Log time manually")
    log_parser.add_argument("message", nargs="?", help="What you worked on")
    log_parser.add_argument("--duration", "-d", help="Duration like 30m, 3h, 3h30m")
    log_parser.add_argument("--from", dest="from_time", help="Start time (e.g. 9am, 14:00)")
    log_parser.add_argument("--to", dest="to_time", help="End time (e.g. 5pm, 17:00)")
    log_parser.add_argument("--date", help="YYYY-MM-DD (default: today)")
    log_parser.add_argument("--task", "-t", help="Task label")
    add_project_flag(log_parser)
    add_yes_flag(log_parser)
    log_parser.set_defaults(func=log_command)

    edit_parser = subparsers.add_parser("edit", help="Edit a log entry")
    edit_parser.add_argument("entry_id")
    edit_parser.add_argument("--duration", "-d")
    edit_parser.add_argument("--from", dest="from_time")
    edit_parser.add_argument("--to", dest="to_time")
    edit_parser.add_argument("--date", help="Move the entry to YYYY-MM-DD")
    edit_parser.add_argument("--task", "-t")
    edit_parser.add_argument("--message", "-m")
    add_project_flag(edit_parser)
    add_yes_flag(edit_parser)
    edit_parser.set_defaults(func=edit_command)

    remove_parser = subparsers.add_parser("remove", help="Remove any entry by ID")
    remove_parser.add_argument("entry_id")
    add_project_flag(remove_parser)
    add_yes_flag(remove_parser)
    remove_parser.set_defaults(func=remove_command)

    history_parser = subparsers.add_parser("history", help="Recent logs and checkouts")
    history_parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_HISTORY_LIMIT,
        help="Number of entries to show, 0 for all (default: 50)",
    )
    add_project_flag(history_parser)
    history_parser.set_defaults(func=history_command)

    report_parser = subparsers.add_parser("report", help="Monthly or weekly timesheet")
    report_parser.add_argument("--month", type=int, help="Month (1-12)")
    report_parser.add_argument("--week", type=int, help="ISO week number")
    report_parser.add_argument("--year", type=int, help="Year")
    report_parser.add_argument("--export", choices=["pdf"], help="Export format")
    report_parser.add_argument("--output", "-o", help="Export file path")
    report_parser.add_argument(
        "--submit", action="store_true", help="Save checkout time and mark the period submitted"
    )
    add_project_flag(report_parser)
    add_yes_flag(report_parser)
    report_parser.set_defaults(func=report_command)

    status_parser = subparsers.add_parser("status", help="Today's tracking status")
    add_project_flag(status_parser)
    status_parser.set_defaults(func=status_command)

    add_schedule_commands(subparsers, "config", "Project schedule")
    add_schedule_commands(subparsers, "defaults", "Default schedule for new projects")

    version_parser = subparsers.add_parser("version", help="Print the version")
    version_parser.set_defaults(func=version_command)

    return parser


def error_message(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        detail = (exc.stderr or "").strip() if isinstance(exc.stderr, str) else ""
        return detail or str(exc)
    return str(exc)


def main(
    argv: Sequence[str] | None = None,
    *,
    prompts: PromptKit | None = None,
    clock: Callable[[], datetime] | None = None,
    home: Path | None = None,
    cwd: Path | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")

    args.prompts = prompts or PromptKit.interactive()
    if getattr(args, "yes", False):
        args.prompts = args.prompts.always_yes()
    args.now = (clock or local_now)()
    args.home = home or Path.home()
    args.cwd = cwd or Path.cwd()
    args.repo = find_repo(args.cwd)
    try:
        return args.func(args)
    except (HourgitError, ValueError, OSError, subprocess.CalledProcessError) as exc:
        print(f"error: {error_message(exc)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
