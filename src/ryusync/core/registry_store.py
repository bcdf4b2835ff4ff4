from __future__ import annotations

import json
import logging
import os
from pathlib import Path
import tempfile

from ryusync.config.settings import DLC_FILENAME, UPDATES_FILENAME
from ryusync.core.models import DlcContainer, DlcContentEntry, UpdatesRegistry
from ryusync.core.title_id import format_title_id

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())


class MalformedRegistryError(ValueError):
    """Raised when a registry file exists but does not hold the expected JSON."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


def registry_dir_for(games_root: Path, title_id: int | str) -> Path:
    name = format_title_id(title_id) if isinstance(title_id, int) else title_id.strip().lower()
    return Path(games_root) / name


def updates_path(registry_dir: Path) -> Path:
    return Path(registry_dir) / UPDATES_FILENAME


def dlc_path(registry_dir: Path) -> Path:
    return Path(registry_dir) / DLC_FILENAME


def read_updates(registry_dir: Path) -> UpdatesRegistry:
    path = updates_path(registry_dir)
    payload = _load_json(path)
    if payload is None:
        return UpdatesRegistry()
    if not isinstance(payload, dict):
        raise MalformedRegistryError(path, "expected a JSON object")

    selected = payload.get("selected", "")
    paths = payload.get("paths", [])
    if selected is None:
        selected = ""
    if paths is None:
        paths = []
    if not isinstance(selected, str):
        raise MalformedRegistryError(path, "'selected' must be a string")
    if not isinstance(paths, list) or not all(isinstance(value, str) for value in paths):
        raise MalformedRegistryError(path, "'paths' must be a list of strings")
    return UpdatesRegistry(selected=selected, paths=list(paths))


def write_updates(registry_dir: Path, registry: UpdatesRegistry) -> None:
    _write_json(updates_path(registry_dir), registry.to_json())


def delete_updates_if_present(registry_dir: Path) -> bool:
    return _delete_if_present(updates_path(registry_dir))


def read_dlc(registry_dir: Path) -> list[DlcContainer]:
    path = dlc_path(registry_dir)
    payload = _load_json(path)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise MalformedRegistryError(path, "expected a JSON array")

    containers: list[DlcContainer] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict) or not isinstance(item.get("path"), str):
            raise MalformedRegistryError(path, f"container {index} has no 'path'")
        raw_entries = item.get("dlc_nca_list") or []
        if not isinstance(raw_entries, list):
            raise MalformedRegistryError(path, f"container {index} 'dlc_nca_list' must be a list")
        entries = [_parse_dlc_entry(path, index, raw) for raw in raw_entries]
        containers.append(DlcContainer(path=item["path"], dlc_nca_list=entries))
    return containers


def write_dlc(registry_dir: Path, containers: list[DlcContainer]) -> None:
    _write_json(dlc_path(registry_dir), [container.to_json() for container in containers])


def delete_dlc_if_present(registry_dir: Path) -> bool:
    return _delete_if_present(dlc_path(registry_dir))


def _parse_dlc_entry(path: Path, index: int, raw: object) -> DlcContentEntry:
    if not isinstance(raw, dict):
        raise MalformedRegistryError(path, f"container {index} has a non-object content entry")
    entry_path = raw.get("path")
    title_id = raw.get("title_id")
    is_enabled = raw.get("is_enabled", True)
    # bool is an int subclass; a boolean title id is still malformed.
    if not isinstance(entry_path, str) or not isinstance(title_id, int) or isinstance(title_id, bool):
        raise MalformedRegistryError(path, f"container {index} has an invalid content entry")
    if not isinstance(is_enabled, bool):
        raise MalformedRegistryError(path, f"container {index} has a non-boolean 'is_enabled'")
    return DlcContentEntry(path=entry_path, title_id=title_id, is_enabled=is_enabled)


def _load_json(path: Path) -> object | None:
    if not path.exists():
        return None
    try:
        text = path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise MalformedRegistryError(path, f"not valid UTF-8 ({exc})") from exc
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedRegistryError(path, f"invalid JSON ({exc})") from exc


def _write_json(path: Path, payload: object) -> None:
    """Replace `path` in one step so readers never see a half-written file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    log.debug("Wrote %s", path)


def _delete_if_present(path: Path) -> bool:
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    log.debug("Deleted %s", path)
    return True
