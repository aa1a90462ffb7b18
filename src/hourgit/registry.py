from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from pathlib import Path

from .errors import InvalidInputError, NotFoundError, PreconditionError, StorageError
from .ids import id_fresh, slugify
from .models import Project, Registry, RepoMarker
from .schedule import ScheduleEntry, default_schedules, schedule_from_dict, schedule_to_dict
from .storage import format_timestamp, hourgit_dir, log_dir, parse_timestamp, write_json_atomic

logger = logging.getLogger(__name__)

HOOK_MARKER = "# Installed by hourgit"
HOOK_BODY = f"""{HOOK_MARKER}
# Records branch switches so hourgit can attribute time to branches.
if [ "$3" = "1" ]; then
    hourgit checkout --prev "$(git rev-parse --abbrev-ref @{{-1}} 2>/dev/null)" \\
        --next "$(git rev-parse --abbrev-ref HEAD 2>/dev/null)" >/dev/null 2>&1 || true
fi
"""
HOOK_SCRIPT = f"#!/bin/sh\n{HOOK_BODY}"


def registry_path(home: Path) -> Path:
    return hourgit_dir(home) / "projects.json"


def marker_path(repo: Path) -> Path:
    return repo / ".git" / ".hourgit"


def hook_path(repo: Path) -> Path:
    return repo / ".git" / "hooks" / "post-checkout"


def _project_from_payload(payload: dict) -> Project:
    return Project(
        id=str(payload["id"]),
        name=str(payload["name"]),
        slug=str(payload.get("slug") or slugify(str(payload["name"]))),
        repos=tuple(payload.get("repos") or ()),
        schedules=tuple(schedule_from_dict(item) for item in payload.get("schedules") or ()),
    )


def _project_to_payload(project: Project) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": project.id,
        "name": project.name,
        "slug": project.slug,
        "repos": list(project.repos),
    }
    if project.schedules:
        payload["schedules"] = [schedule_to_dict(item) for item in project.schedules]
    return payload


def load_registry(home: Path) -> Registry:
    path = registry_path(home)
    if not path.exists():
        return Registry(defaults=tuple(default_schedules()))
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        projects = tuple(_project_from_payload(item) for item in data.get("projects") or ())
        defaults = tuple(schedule_from_dict(item) for item in data.get("defaults") or ())
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError, InvalidInputError) as exc:
        raise StorageError(f"cannot read {path}: {exc}") from exc
    last_check = data.get("last_update_check")
    return Registry(
        projects=projects,
        defaults=defaults or tuple(default_schedules()),
        last_update_check=parse_timestamp(last_check) if last_check else None,
        latest_version=data.get("latest_version"),
    )


def save_registry(home: Path, registry: Registry) -> None:
    payload: dict[str, object] = {
        "projects": [_project_to_payload(item) for item in registry.projects],
        "defaults": [schedule_to_dict(item) for item in registry.defaults],
    }
    if registry.last_update_check is not None:
        payload["last_update_check"] = format_timestamp(registry.last_update_check)
    if registry.latest_version:
        payload["latest_version"] = registry.latest_version
    logger.debug("Writing registry with %d project(s)", len(registry.projects))
    write_json_atomic(registry_path(home), payload)


def find_project(registry: Registry, name: str) -> Project | None:
    for project in registry.projects:
        if project.name == name:
            return project
    return None


def find_project_by_id(registry: Registry, project_id: str) -> Project | None:
    for project in registry.projects:
        if project.id == project_id:
            return project
    return None


def find_project_by_slug(registry: Registry, slug: str) -> Project | None:
    for project in registry.projects:
        if project.slug == slug:
            return project
    return None


def find_project_by_repo(registry: Registry, repo: Path) -> Project | None:
    target = str(repo)
    for project in registry.projects:
        if target in project.repos:
            return project
    return None


def resolve_project(registry: Registry, identifier: str) -> Project | None:
    return find_project_by_id(registry, identifier) or find_project(registry, identifier)


def get_schedules(registry: Registry, project: Project | None = None) -> list[ScheduleEntry]:
    if project is not None:
        current = find_project_by_id(registry, project.id) or project
        if current.schedules:
            return list(current.schedules)
    return list(registry.defaults) or default_schedules()


def _replace_project(registry: Registry, updated: Project) -> Registry:
    projects = tuple(updated if item.id == updated.id else item for item in registry.projects)
    return replace(registry, projects=projects)


def create_project(home: Path, name: str) -> Project:
    name = name.strip()
    if not name or not slugify(name):
        raise InvalidInputError("project name must contain at least one letter or digit")
    registry = load_registry(home)
    existing = find_project(registry, name)
    if existing is not None:
        raise PreconditionError(f"project '{name}' already exists ({existing.id})")
    project = Project(id=id_fresh(name), name=name, slug=slugify(name))
    log_dir(home, project.slug).mkdir(parents=True, exist_ok=True)
    save_registry(home, replace(registry, projects=registry.projects + (project,)))
    return project


def set_schedules(home: Path, project: Project, schedules: Sequence[ScheduleEntry]) -> Project:
    registry = load_registry(home)
    current = find_project_by_id(registry, project.id)
    if current is None:
        raise NotFoundError(f"project '{project.name}' not found")
    updated = replace(current, schedules=tuple(schedules))
    save_registry(home, _replace_project(registry, updated))
    return updated


def set_defaults(home: Path, schedules: Sequence[ScheduleEntry]) -> None:
    registry = load_registry(home)
    save_registry(home, replace(registry, defaults=tuple(schedules)))


def read_marker(repo: Path) -> RepoMarker | None:
    path = marker_path(repo)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StorageError(f"cannot read {path}: {exc}") from exc
    last_sync = data.get("last_sync")
    return RepoMarker(
        project=str(data.get("project") or ""),
        project_id=str(data.get("project_id") or ""),
        last_sync=parse_timestamp(last_sync) if last_sync else None,
    )


def write_marker(repo: Path, marker: RepoMarker) -> None:
    payload: dict[str, object] = {"project": marker.project, "project_id": marker.project_id}
    if marker.last_sync is not None:
        payload["last_sync"] = format_timestamp(marker.last_sync)
    write_json_atomic(marker_path(repo), payload)


def remove_marker(repo: Path) -> None:
    marker_path(repo).unlink(missing_ok=True)


def find_repo(start: Path) -> Path | None:
    for candidate in (start, *start.parents):
        if (candidate / ".git").is_dir():
            return candidate
    return None


def is_initialized(repo: Path) -> bool:
    path = hook_path(repo)
    return path.is_file() and HOOK_MARKER in path.read_text(encoding="utf-8")


def install_hook(repo: Path, *, force: bool = False, merge: bool = False) -> None:
    if not (repo / ".git").is_dir():
        raise PreconditionError("not a git repository")
    path = hook_path(repo)
    if path.exists():
        content = path.read_text(encoding="utf-8")
        if HOOK_MARKER in content:
            raise PreconditionError("hourgit is already initialized")
        if not force and not merge:
            raise PreconditionError(
                "post-checkout hook already exists (use --force to overwrite or --merge to append)"
            )
        script = f"{content.rstrip()}\n\n{HOOK_BODY}" if merge else HOOK_SCRIPT
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        script = HOOK_SCRIPT
    path.write_text(script, encoding="utf-8")
    path.chmod(0o755)


def remove_hook(repo: Path) -> None:
    path = hook_path(repo)
    if not path.exists():
        return
    content = path.read_text(encoding="utf-8")
    index = content.find(HOOK_MARKER)
    if index == -1:
        return
    before = content[:index].rstrip(" \t\n")
    if not before or before.strip() == "#!/bin/sh":
        path.unlink()
        return
    path.write_text(before + "\n", encoding="utf-8")


def assign_repo(
    home: Path,
    repo: Path,
    identifier: str,
    *,
    force: bool = False,
    confirm_create: Callable[[str], bool],
) -> tuple[Project | None, str]:
    """Assign ``repo`` to a project, creating the project after confirmation.

    Returns ``(project, status)`` where status is one of ``assigned``,
    ``created``, ``unchanged`` or ``declined`` (project is None for the latter).
    Raises PreconditionError when the repo is not initialized or is assigned
    elsewhere without ``force``.
    """
    if not is_initialized(repo):
        raise PreconditionError("hourgit is not initialized (run 'hourgit init' first)")
    marker = read_marker(repo)
    registry = load_registry(home)
    project = resolve_project(registry, identifier)
    created = False
    if marker is not None and marker.project and project is not None:
        if marker.project_id == project.id or marker.project == project.name:
            return project, "unchanged"
    if marker is not None and marker.project:
        if not force:
            raise PreconditionError(
                f"repository is already assigned to project '{marker.project}' "
                "(use --force to reassign)"
            )
        previous = find_project_by_id(registry, marker.project_id) or find_project(
            registry, marker.project
        )
        if previous is not None:
            trimmed = tuple(item for item in previous.repos if item != str(repo))
            save_registry(home, _replace_project(registry, replace(previous, repos=trimmed)))
    if project is None:
        if not confirm_create(identifier):
            return None, "declined"
        project = create_project(home, identifier)
        created = True
    registry = load_registry(home)
    current = find_project_by_id(registry, project.id)
    if current is None:
        raise NotFoundError(f"project '{project.name}' not found in registry")
    if str(repo) not in current.repos:
        current = replace(current, repos=current.repos + (str(repo),))
        save_registry(home, _replace_project(registry, current))
    log_dir(home, current.slug).mkdir(parents=True, exist_ok=True)
    last_sync = marker.last_sync if marker is not None and marker.project_id == current.id else None
    write_marker(repo, RepoMarker(project=current.name, project_id=current.id, last_sync=last_sync))
    return current, "created" if created else "assigned"


def remove_project(home: Path, identifier: str) -> Project:
    registry = load_registry(home)
    removed = None
    for project in registry.projects:
        if project.id == identifier or project.name == identifier:
            removed = project
            break
    if removed is None:
        raise NotFoundError(f"project '{identifier}' not found")
    for repo in removed.repos:
        repo_path = Path(repo)
        try:
            remove_marker(repo_path)
            remove_hook(repo_path)
        except OSError as exc:
            logger.debug("Cleanup of %s failed: %s", repo_path, exc)
    remaining = tuple(item for item in registry.projects if item.id != removed.id)
    save_registry(home, replace(registry, projects=remaining))
    return removed


def resolve_context(home: Path, repo: Path | None, identifier: str | None) -> Project:
    """Active project from an explicit identifier, else from the repo marker."""
    registry = load_registry(home)
    if identifier:
        project = resolve_project(registry, identifier)
        if project is None:
            raise NotFoundError(f"project '{identifier}' not found")
        return project
    if repo is not None:
        marker = read_marker(repo)
        if marker is not None:
            project = (
                find_project_by_id(registry, marker.project_id)
                or find_project(registry, marker.project)
                or find_project_by_repo(registry, repo)
            )
            if project is None:
                raise NotFoundError(
                    f"project '{marker.project}' from repo config not found in registry"
                )
            return project
    raise PreconditionError("no project found (use --project or run from inside an assigned repo)")
