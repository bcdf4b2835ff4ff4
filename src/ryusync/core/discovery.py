from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from ryusync.config.settings import BASE_GAME_EXTENSIONS, PACKAGE_EXTENSIONS
from ryusync.core import registry_store
from ryusync.core.archive import ArchiveParseError, list_content_entries
from ryusync.core.models import (
    ContentKind,
    DiscoverResult,
    DlcContainer,
    DlcContentEntry,
    UpdatesRegistry,
    contains_container,
)
from ryusync.core.path_rewriter import is_under
from ryusync.core.registry_store import MalformedRegistryError
from ryusync.core.title_id import TITLE_ID_PATTERN, classify, extract_title_id, extract_version, parse_title_id

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

ProgressCallback = Callable[[str], None]


def find_package_files(installed_folder: Path, base_file_name: str) -> list[Path]:
    """List every package under `installed_folder` except the base game file."""
    base_folded = base_file_name.casefold()
    packages: list[Path] = []
    for path in sorted(Path(installed_folder).rglob("*")):
        if path.suffix.lower() not in PACKAGE_EXTENSIONS or not path.is_file():
            continue
        if path.name.casefold() == base_folded:
            continue
        packages.append(path)
    return packages


def classify_packages(package_files: list[Path], base_title_id: int) -> tuple[list[tuple[str, int]], list[str]]:
    """Split packages into (update path, version) pairs and DLC candidates.

    Anything that is not a recognized update of the base title is treated as
    DLC, including files without a parseable title id.
    """
    updates: list[tuple[str, int]] = []
    dlc: list[str] = []
    for path in package_files:
        title_id = extract_title_id(path.name)
        if title_id is not None and classify(int(title_id, 16), base_title_id) is ContentKind.UPDATE:
            updates.append((str(path), extract_version(path.name)))
            continue
        dlc.append(str(path))
    return updates, dlc


def build_dlc_container(package_path: str | Path, allow_approximate: bool = True) -> DlcContainer | None:
    """Build a registry container by listing the content entries of one package."""
    path = Path(package_path)
    title_id = parse_title_id(path.name, allow_approximate=allow_approximate)
    if title_id is None:
        log.warning("No title ID in DLC filename: %s", path.name)
        return None

    try:
        entries = list_content_entries(path)
    except ArchiveParseError as exc:
        log.warning("Failed to parse DLC package '%s': %s", path.name, exc.reason)
        return None

    if not entries:
        log.warning("No content entries in DLC: %s", path.name)
        return None

    return DlcContainer(
        path=str(package_path),
        dlc_nca_list=[DlcContentEntry(path="/" + name, title_id=title_id.value, is_enabled=True) for name in entries],
    )


def select_latest_update(paths: list[str]) -> str | None:
    """Highest `[vN]` version wins; the earliest path wins a tie."""
    if not paths:
        return None
    return max(paths, key=lambda value: extract_version(_file_name(value)))


def find_base_game_file(folder: Path) -> Path | None:
    """Pick the base game package at the root of a game folder.

    Prefers a `[v0]` file, then a title id ending in `000`, then the largest
    package at the root.
    """
    try:
        root_files = sorted(
            child
            for child in Path(folder).iterdir()
            if child.is_file() and child.suffix.lower() in BASE_GAME_EXTENSIONS
        )
    except OSError as exc:
        log.warning("Cannot list game folder '%s': %s", folder, exc)
        return None
    if not root_files:
        return None

    for child in root_files:
        if "[v0]" in child.name:
            return child
    for child in root_files:
        match = TITLE_ID_PATTERN.search(child.name)
        if match is not None and match.group(1).endswith("000"):
            return child
    return max(root_files, key=lambda child: child.stat().st_size)


class DiscoveryScanner:
    """Adds update and DLC packages that the registry does not know yet."""

    def __init__(self, progress_callback: ProgressCallback | None = None, allow_approximate: bool = True) -> None:
        self._progress_callback = progress_callback
        self.allow_approximate = allow_approximate

    def discover(
        self,
        registry_dir: Path,
        installed_folder: str | Path,
        base_file_name: str,
        base_title_id: int,
    ) -> DiscoverResult:
        result = DiscoverResult()
        installed = str(installed_folder)
        try:
            package_files = find_package_files(Path(installed), base_file_name)
        except OSError as exc:
            result.errors.append(f"[discover] Cannot enumerate '{installed}': {exc}")
            self._emit(result.errors[-1], logging.ERROR)
            return result

        if not package_files:
            self._emit(f"[discover] No update or DLC packages under {installed}")
            return result

        update_candidates, dlc_candidates = classify_packages(package_files, base_title_id)
        self._emit(
            f"[discover] Found {len(update_candidates)} update and {len(dlc_candidates)} DLC candidate(s)"
        )

        if update_candidates:
            try:
                self._merge_updates(registry_dir, installed, update_candidates, result)
            except (MalformedRegistryError, OSError) as exc:
                result.errors.append(f"[discover] Updates registry skipped: {exc}")
                self._emit(result.errors[-1], logging.ERROR)

        if dlc_candidates:
            try:
                self._merge_dlc(registry_dir, dlc_candidates, result)
            except (MalformedRegistryError, OSError) as exc:
                result.errors.append(f"[discover] DLC registry skipped: {exc}")
                self._emit(result.errors[-1], logging.ERROR)

        return result

    def _merge_updates(
        self,
        registry_dir: Path,
        installed_folder: str,
        candidates: list[tuple[str, int]],
        result: DiscoverResult,
    ) -> None:
        registry = registry_store.read_updates(registry_dir)
        added = 0
        for path, _version in candidates:
            if registry.contains(path):
                continue
            registry.paths.append(path)
            added += 1

        selection_changed = False
        if added > 0 or not registry.selected:
            selection_changed = self._select_installed_update(registry, installed_folder)

        if added > 0 or selection_changed:
            registry_store.write_updates(registry_dir, registry)
            self._emit(f"[discover] Added {added} new update path(s); selected: {registry.selected or '(none)'}")
        result.added_updates = added
        result.selected = registry.selected or None

    def _merge_dlc(self, registry_dir: Path, candidates: list[str], result: DiscoverResult) -> None:
        containers = registry_store.read_dlc(registry_dir)
        added = 0
        for path in candidates:
            if contains_container(containers, path):
                continue
            container = build_dlc_container(path, allow_approximate=self.allow_approximate)
            if container is None:
                result.warnings.append(f"[discover] Skipped DLC candidate: {_file_name(path)}")
                continue
            if extract_title_id(_file_name(path)) is None:
                result.approximate_dlc.append(path)
                result.warnings.append(f"[discover] Approximate title ID used for DLC: {_file_name(path)}")
            containers.append(container)
            added += 1

        if added > 0:
            registry_store.write_dlc(registry_dir, containers)
            self._emit(f"[discover] Added {added} new DLC container(s)")
        result.added_dlc = added

    @staticmethod
    def _select_installed_update(registry: UpdatesRegistry, installed_folder: str) -> bool:
        installed_paths = [path for path in registry.paths if is_under(path, installed_folder)]
        latest = select_latest_update(installed_paths)
        if latest is None or latest == registry.selected:
            return False
        registry.selected = latest
        return True

    def _emit(self, message: str, level: int = logging.INFO) -> None:
        log.log(level, message)
        if self._progress_callback is not None:
            self._progress_callback(message)


def _file_name(path: str) -> str:
    return os.path.basename(path.replace("\\", "/"))
