from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from collections.abc import Collection, Iterator
from datetime import date, datetime, timezone
from pathlib import Path

from dateutil import parser as date_parser

from .durations import format_minutes
from .errors import InvalidInputError, NotFoundError, StorageError, WrongKindError
from .models import (
    TYPE_CHECKOUT,
    TYPE_GENERATED_DAY,
    TYPE_LOG,
    TYPE_SUBMIT,
    CheckoutEntry,
    FoundEntry,
    GeneratedDayEntry,
    LogEntry,
    SubmitEntry,
)

logger = logging.getLogger(__name__)

HOURGIT_DIR = ".hourgit"
_VALID_ID = re.compile(r"^[0-9a-f]{7}$")


def hourgit_dir(home: Path) -> Path:
    return home / HOURGIT_DIR


def log_dir(home: Path, slug: str) -> Path:
    return hourgit_dir(home) / slug


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> datetime:
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def write_json_atomic(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, indent=2))
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _record_type(payload: object) -> str | None:
    if not isinstance(payload, dict):
        return None
    kind = payload.get("type")
    if kind is None or kind == "":
        # Records written before the type field existed are logs.
        return TYPE_LOG
    return kind if isinstance(kind, str) else None


def _log_to_payload(entry: LogEntry) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": entry.id,
        "type": TYPE_LOG,
        "start": format_timestamp(entry.start),
        "minutes": entry.minutes,
        "message": entry.message,
    }
    if entry.task:
        payload["task"] = entry.task
    if entry.source:
        payload["source"] = entry.source
    payload["created_at"] = format_timestamp(entry.created_at)
    return payload


def _log_from_payload(payload: dict) -> LogEntry:
    return LogEntry(
        id=str(payload["id"]),
        start=parse_timestamp(payload["start"]),
        minutes=int(payload["minutes"]),
        message=str(payload.get("message") or ""),
        task=str(payload.get("task") or ""),
        source=str(payload.get("source") or ""),
        created_at=parse_timestamp(payload.get("created_at") or payload["start"]),
    )


def _checkout_to_payload(entry: CheckoutEntry) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": entry.id,
        "type": TYPE_CHECKOUT,
        "timestamp": format_timestamp(entry.timestamp),
        "previous": entry.previous,
        "next": entry.next,
    }
    if entry.commit_ref:
        payload["commit_ref"] = entry.commit_ref
    return payload


def _checkout_from_payload(payload: dict) -> CheckoutEntry:
    return CheckoutEntry(
        id=str(payload["id"]),
        timestamp=parse_timestamp(payload["timestamp"]),
        previous=str(payload.get("previous") or ""),
        next=str(payload.get("next") or ""),
        commit_ref=str(payload.get("commit_ref") or ""),
    )


def _submit_to_payload(entry: SubmitEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "type": TYPE_SUBMIT,
        "from": format_timestamp(datetime.combine(entry.from_date, datetime.min.time())),
        "to": format_timestamp(datetime.combine(entry.to_date, datetime.min.time())),
        "created_at": format_timestamp(entry.created_at),
    }


def _submit_from_payload(payload: dict) -> SubmitEntry:
    return SubmitEntry(
        id=str(payload["id"]),
        from_date=parse_timestamp(payload["from"]).date(),
        to_date=parse_timestamp(payload["to"]).date(),
        created_at=parse_timestamp(payload["created_at"]),
    )


def _generated_day_to_payload(entry: GeneratedDayEntry) -> dict[str, object]:
    return {"id": entry.id, "type": TYPE_GENERATED_DAY, "date": entry.date}


def _generated_day_from_payload(payload: dict) -> GeneratedDayEntry:
    day = str(payload["date"])
    date.fromisoformat(day)
    return GeneratedDayEntry(id=str(payload["id"]), date=day)


_DECODERS = {
    TYPE_LOG: _log_from_payload,
    TYPE_CHECKOUT: _checkout_from_payload,
    TYPE_SUBMIT: _submit_from_payload,
    TYPE_GENERATED_DAY: _generated_day_from_payload,
}


class EntryStore:
    """One JSON file per record under ``<home>/.hourgit/<slug>/<id>``."""

    def __init__(self, home: Path) -> None:
        self.home = home

    @property
    def root(self) -> Path:
        return hourgit_dir(self.home)

    def entry_path(self, slug: str, entry_id: str) -> Path:
        if not _VALID_ID.match(entry_id):
            raise InvalidInputError(f"invalid entry ID '{entry_id}'")
        return log_dir(self.home, slug) / entry_id

    def _write(self, slug: str, entry_id: str, payload: dict[str, object]) -> None:
        write_json_atomic(self.entry_path(slug, entry_id), payload)

    def _load_one(self, slug: str, entry_id: str) -> dict | None:
        path = self.entry_path(slug, entry_id)
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageError(f"entry '{entry_id}' is corrupted: {exc}") from exc

    def _scan(self, slug: str, kind: str) -> Iterator[object]:
        directory = log_dir(self.home, slug)
        if not directory.is_dir():
            return
        decode = _DECODERS[kind]
        for path in sorted(directory.iterdir()):
            if not path.is_file() or not _VALID_ID.match(path.name):
                continue
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.debug("Skipping unreadable record %s", path)
                continue
            if _record_type(payload) != kind:
                continue
            try:
                yield decode(payload)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed %s record %s", kind, path)

    def write_log(self, slug: str, entry: LogEntry) -> None:
        self._write(slug, entry.id, _log_to_payload(entry))

    def read_log(self, slug: str, entry_id: str) -> LogEntry:
        payload = self._load_one(slug, entry_id)
        if payload is None or _record_type(payload) != TYPE_LOG:
            raise NotFoundError(f"entry '{entry_id}' not found")
        try:
            return _log_from_payload(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"entry '{entry_id}' is corrupted: {exc}") from exc

    def read_all_logs(self, slug: str) -> list[LogEntry]:
        return list(self._scan(slug, TYPE_LOG))

    def is_checkout(self, slug: str, entry_id: str) -> bool:
        try:
            payload = self._load_one(slug, entry_id)
        except (InvalidInputError, StorageError):
            return False
        return payload is not None and _record_type(payload) == TYPE_CHECKOUT

    def write_checkout(self, slug: str, entry: CheckoutEntry) -> None:
        self._write(slug, entry.id, _checkout_to_payload(entry))

    def read_checkout(self, slug: str, entry_id: str) -> CheckoutEntry:
        payload = self._load_one(slug, entry_id)
        if payload is None or _record_type(payload) != TYPE_CHECKOUT:
            raise NotFoundError(f"checkout entry '{entry_id}' not found")
        try:
            return _checkout_from_payload(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"entry '{entry_id}' is corrupted: {exc}") from exc

    def read_all_checkouts(self, slug: str) -> list[CheckoutEntry]:
        return list(self._scan(slug, TYPE_CHECKOUT))

    def write_submit(self, slug: str, entry: SubmitEntry) -> None:
        self._write(slug, entry.id, _submit_to_payload(entry))

    def read_all_submits(self, slug: str) -> list[SubmitEntry]:
        return list(self._scan(slug, TYPE_SUBMIT))

    def write_generated_day(self, slug: str, entry: GeneratedDayEntry) -> None:
        self._write(slug, entry.id, _generated_day_to_payload(entry))

    def read_all_generated_days(self, slug: str) -> list[GeneratedDayEntry]:
        return list(self._scan(slug, TYPE_GENERATED_DAY))

    def delete_generated_days_by_date(self, slug: str, dates: Collection[str]) -> int:
        removed = 0
        for entry in self.read_all_generated_days(slug):
            if entry.date in dates:
                self.delete(slug, entry.id)
                removed += 1
        return removed

    def delete(self, slug: str, entry_id: str) -> None:
        path = self.entry_path(slug, entry_id)
        if not path.is_file():
            raise NotFoundError(f"entry '{entry_id}' not found")
        path.unlink()

    def project_slugs(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(path.name for path in self.root.iterdir() if path.is_dir())

    def find_log_across_projects(self, entry_id: str) -> tuple[str, LogEntry]:
        slugs = self.project_slugs()
        for slug in slugs:
            try:
                return slug, self.read_log(slug, entry_id)
            except NotFoundError:
                continue
        for slug in slugs:
            if self.is_checkout(slug, entry_id):
                raise WrongKindError(
                    f"entry '{entry_id}' is a checkout entry and cannot be edited"
                )
        raise NotFoundError(f"entry '{entry_id}' not found")

    def find_any(self, slug: str, entry_id: str) -> FoundEntry | None:
        payload = self._load_one(slug, entry_id)
        if payload is None:
            return None
        kind = _record_type(payload)
        decode = _DECODERS.get(kind or "")
        if decode is None:
            return None
        try:
            entry = decode(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"entry '{entry_id}' is corrupted: {exc}") from exc
        return FoundEntry(slug=slug, kind=kind, summary=describe(entry), entry=entry)

    def find_any_across_projects(self, entry_id: str) -> FoundEntry:
        for slug in self.project_slugs():
            found = self.find_any(slug, entry_id)
            if found is not None:
                return found
        raise NotFoundError(f"entry '{entry_id}' not found")


def describe(entry: LogEntry | CheckoutEntry | SubmitEntry | GeneratedDayEntry) -> str:
    if isinstance(entry, LogEntry):
        task = f" [{entry.task}]" if entry.task else ""
        return f"{format_minutes(entry.minutes)}{task} {entry.message}"
    if isinstance(entry, CheckoutEntry):
        return f"{entry.previous} -> {entry.next}"
    if isinstance(entry, SubmitEntry):
        return f"submitted {entry.from_date.isoformat()} to {entry.to_date.isoformat()}"
    return f"generated {entry.date}"
