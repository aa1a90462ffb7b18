from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from .schedule import ScheduleEntry

TYPE_LOG = "log"
TYPE_CHECKOUT = "checkout"
TYPE_SUBMIT = "submit"
TYPE_GENERATED_DAY = "generated_day"

SOURCE_MANUAL = "manual"
SOURCE_GENERATE = "generate"
SOURCE_CHECKOUT_GENERATED = "checkout-generated"


@dataclass(frozen=True)
class LogEntry:
    id: str
    start: datetime
    minutes: int
    message: str
    created_at: datetime
    task: str = ""
    source: str = ""

    @property
    def task_key(self) -> str:
        return self.task or self.message


@dataclass(frozen=True)
class CheckoutEntry:
    id: str
    timestamp: datetime
    previous: str
    next: str
    commit_ref: str = ""


@dataclass(frozen=True)
class SubmitEntry:
    id: str
    from_date: date
    to_date: date
    created_at: datetime

    def covers(self, start: date, end: date) -> bool:
        return self.from_date <= end and start <= self.to_date


@dataclass(frozen=True)
class GeneratedDayEntry:
    id: str
    date: str


@dataclass(frozen=True)
class FoundEntry:
    slug: str
    kind: str
    summary: str
    entry: LogEntry | CheckoutEntry | SubmitEntry | GeneratedDayEntry


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    slug: str
    repos: tuple[str, ...] = ()
    schedules: tuple[ScheduleEntry, ...] = ()


@dataclass(frozen=True)
class Registry:
    projects: tuple[Project, ...] = ()
    defaults: tuple[ScheduleEntry, ...] = ()
    last_update_check: datetime | None = None
    latest_version: str | None = None


@dataclass(frozen=True)
class RepoMarker:
    project: str
    project_id: str
    last_sync: datetime | None = None


@dataclass(frozen=True)
class HistoryItem:
    id: str
    kind: str
    when: datetime
    project: str
    detail: str
