from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from ryusync.config.settings import resolve_games_root
from ryusync.core import registry_store
from ryusync.core.discovery import DiscoveryScanner, select_latest_update
from ryusync.core.models import (
    DeregistrationResult,
    DlcContainer,
    RegistrationResult,
    RewriteResult,
    contains_container,
)
from ryusync.core.path_rewriter import is_under, rewrite_path
from ryusync.core.registry_store import MalformedRegistryError
from ryusync.core.title_id import MissingTitleIdError, format_title_id, require_title_id

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

ProgressCallback = Callable[[str], None]


class RegistryReconciler:
    """Keeps the per-title update/DLC registry in step with installed folders.

    Registration first rewrites entries that Ryujinx already knows to the new
    location, cloning them so resolved content metadata survives, then adds
    packages the registry has never seen. Deregistration drops only entries
    inside the removed folder.
    """

    def __init__(
        self,
        games_root: Path,
        progress_callback: ProgressCallback | None = None,
        allow_approximate: bool = True,
    ) -> None:
        self.games_root = Path(games_root)
        self._progress_callback = progress_callback
        self.allow_approximate = allow_approximate

    def register(
        self,
        source_folder: str | Path,
        installed_folder: str | Path,
        base_file_name: str,
    ) -> RegistrationResult:
        result = RegistrationResult()
        source = os.fspath(source_folder)
        installed = os.fspath(installed_folder)
        try:
            base_title_id = require_title_id(base_file_name)
        except MissingTitleIdError as exc:
            result.error = str(exc)
            self._emit(f"[register] {result.error}", logging.WARNING)
            return result

        try:
            result.base_title_id = format_title_id(base_title_id)
            registry_dir = registry_store.registry_dir_for(self.games_root, base_title_id)
            registry_dir.mkdir(parents=True, exist_ok=True)
            result.registry_dir = registry_dir
            self._emit(f"[register] {base_file_name} -> {registry_dir}")

            result.updates_rewrite = self.rewrite_updates(registry_dir, source, installed)
            result.dlc_rewrite = self.rewrite_dlc(registry_dir, source, installed)
            self._emit(
                f"[rewrite] Rewrote {result.updates_rewrite.count} update path(s)"
                f" and {result.dlc_rewrite.count} DLC path(s)"
            )
            for phase_result in (result.updates_rewrite, result.dlc_rewrite):
                if phase_result.error:
                    result.warnings.append(phase_result.error)

            scanner = DiscoveryScanner(
                progress_callback=self._progress_callback, allow_approximate=self.allow_approximate
            )
            result.discovery = scanner.discover(registry_dir, installed, base_file_name, base_title_id)
            result.warnings.extend(result.discovery.errors)
            result.warnings.extend(result.discovery.warnings)

            self._emit(f"[register] Registration complete for {result.base_title_id}")
        except Exception as exc:  # noqa: BLE001
            result.error = f"Failed to register updates/DLC for '{base_file_name}': {exc}"
            log.exception("[register] %s", result.error)
            if self._progress_callback is not None:
                self._progress_callback(f"[register] {result.error}")
        return result

    def rewrite_updates(self, registry_dir: Path, source_folder: str, installed_folder: str) -> RewriteResult:
        """Add relocated copies of known update paths; select the newest of them."""
        try:
            registry = registry_store.read_updates(registry_dir)
            if not registry.paths:
                return RewriteResult()

            new_paths: list[str] = []
            for old_path in list(registry.paths):
                new_path = rewrite_path(old_path, source_folder, installed_folder)
                if new_path is None or registry.contains(new_path):
                    continue
                if any(existing.casefold() == new_path.casefold() for existing in new_paths):
                    continue
                new_paths.append(new_path)

            if not new_paths:
                return RewriteResult()

            registry.paths.extend(new_paths)
            # Only the freshly rewritten paths compete here; discovery later
            # reconsiders every path under the installed folder.
            registry.selected = select_latest_update(new_paths) or registry.selected
            registry_store.write_updates(registry_dir, registry)
            return RewriteResult(count=len(new_paths))
        except (MalformedRegistryError, OSError) as exc:
            message = f"[rewrite] Updates registry skipped: {exc}"
            self._emit(message, logging.ERROR)
            return RewriteResult(error=message)

    def rewrite_dlc(self, registry_dir: Path, source_folder: str, installed_folder: str) -> RewriteResult:
        """Clone known DLC containers onto the installed folder, keeping their entries."""
        try:
            containers = registry_store.read_dlc(registry_dir)
            if not containers:
                return RewriteResult()

            new_containers: list[DlcContainer] = []
            for existing in containers:
                new_path = rewrite_path(existing.path, source_folder, installed_folder)
                if new_path is None:
                    continue
                if contains_container(containers, new_path) or contains_container(new_containers, new_path):
                    continue
                if not os.path.isfile(new_path):
                    log.debug("Rewritten DLC path does not exist, skipped: %s", new_path)
                    continue
                new_containers.append(existing.clone_to(new_path))

            if not new_containers:
                return RewriteResult()

            containers.extend(new_containers)
            registry_store.write_dlc(registry_dir, containers)
            return RewriteResult(count=len(new_containers))
        except (MalformedRegistryError, OSError) as exc:
            message = f"[rewrite] DLC registry skipped: {exc}"
            self._emit(message, logging.ERROR)
            return RewriteResult(error=message)

    def deregister(self, installed_folder: str | Path, base_file_name: str) -> DeregistrationResult:
        result = DeregistrationResult()
        installed = os.fspath(installed_folder)
        try:
            result.base_title_id = format_title_id(require_title_id(base_file_name))
        except MissingTitleIdError:
            self._emit(f"[deregister] No title ID in '{base_file_name}', nothing to do", logging.DEBUG)
            return result

        try:
            registry_dir = registry_store.registry_dir_for(self.games_root, result.base_title_id)
            if not registry_dir.is_dir():
                self._emit(f"[deregister] No registry at {registry_dir}, nothing to do", logging.DEBUG)
                return result
            result.registry_dir = registry_dir

            try:
                self._deregister_updates(registry_dir, installed, result)
            except (MalformedRegistryError, OSError) as exc:
                result.warnings.append(f"[deregister] Updates registry skipped: {exc}")
                self._emit(result.warnings[-1], logging.ERROR)

            try:
                self._deregister_dlc(registry_dir, installed, result)
            except (MalformedRegistryError, OSError) as exc:
                result.warnings.append(f"[deregister] DLC registry skipped: {exc}")
                self._emit(result.warnings[-1], logging.ERROR)

            self._emit(
                f"[deregister] Removed {result.removed_updates} update path(s) and"
                f" {result.removed_dlc} DLC container(s) for {result.base_title_id}"
            )
        except Exception as exc:  # noqa: BLE001
            result.error = f"Failed to deregister updates/DLC for '{base_file_name}': {exc}"
            log.exception("[deregister] %s", result.error)
            if self._progress_callback is not None:
                self._progress_callback(f"[deregister] {result.error}")
        return result

    def _deregister_updates(self, registry_dir: Path, installed_folder: str, result: DeregistrationResult) -> None:
        if not registry_store.updates_path(registry_dir).exists():
            return
        registry = registry_store.read_updates(registry_dir)
        before = len(registry.paths)
        registry.paths = [path for path in registry.paths if not is_under(path, installed_folder)]
        result.removed_updates = before - len(registry.paths)

        selection_changed = False
        if registry.selected and is_under(registry.selected, installed_folder):
            registry.selected = registry.paths[-1] if registry.paths else ""
            selection_changed = True

        if not registry.paths:
            if registry_store.delete_updates_if_present(registry_dir):
                result.deleted_files.append(registry_store.updates_path(registry_dir))
        elif result.removed_updates > 0 or selection_changed:
            registry_store.write_updates(registry_dir, registry)

    def _deregister_dlc(self, registry_dir: Path, installed_folder: str, result: DeregistrationResult) -> None:
        if not registry_store.dlc_path(registry_dir).exists():
            return
        containers = registry_store.read_dlc(registry_dir)
        kept = [container for container in containers if not is_under(container.path, installed_folder)]
        result.removed_dlc = len(containers) - len(kept)

        if not kept:
            if registry_store.delete_dlc_if_present(registry_dir):
                result.deleted_files.append(registry_store.dlc_path(registry_dir))
        elif result.removed_dlc > 0:
            registry_store.write_dlc(registry_dir, kept)

    def _emit(self, message: str, level: int = logging.INFO) -> None:
        log.log(level, message)
        if self._progress_callback is not None:
            self._progress_callback(message)


def register_updates_and_dlc(
    source_folder: str | Path,
    installed_folder: str | Path,
    base_file_name: str,
    games_root: Path | None = None,
    progress_callback: ProgressCallback | None = None,
    allow_approximate: bool = True,
) -> RegistrationResult:
    """Entry point for install flows once the folder copy has finished.

    Pass `allow_approximate=False` to skip DLC whose filename only carries a
    placeholder title id.
    """
    reconciler = RegistryReconciler(
        resolve_games_root(games_root), progress_callback=progress_callback, allow_approximate=allow_approximate
    )
    return reconciler.register(source_folder, installed_folder, base_file_name)


def deregister_updates_and_dlc(
    installed_folder: str | Path,
    base_file_name: str,
    games_root: Path | None = None,
    progress_callback: ProgressCallback | None = None,
) -> DeregistrationResult:
    """Entry point for uninstall flows, before or after the folder is deleted."""
    reconciler = RegistryReconciler(resolve_games_root(games_root), progress_callback=progress_callback)
    return reconciler.deregister(installed_folder, base_file_name)
