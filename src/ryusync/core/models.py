from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ContentKind(str, Enum):
    BASE = "base"
    UPDATE = "update"
    DLC = "dlc"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class TitleIdMatch:
    """A title id read from a filename.

    `approximate` is set when the id came from the relaxed pattern and a
    placeholder character was replaced with `0`.
    """

    hex: str
    value: int
    approximate: bool = False


@dataclass(slots=True)
class UpdatesRegistry:
    selected: str = ""
    paths: list[str] = field(default_factory=list)

    def contains(self, path: str) -> bool:
        folded = path.casefold()
        return any(existing.casefold() == folded for existing in self.paths)

    def to_json(self) -> dict[str, object]:
        return {"selected": self.selected, "paths": list(self.paths)}


@dataclass(slots=True)
class DlcContentEntry:
    path: str
    title_id: int
    is_enabled: bool = True

    def to_json(self) -> dict[str, object]:
        return {"path": self.path, "title_id": self.title_id, "is_enabled": self.is_enabled}


@dataclass(slots=True)
class DlcContainer:
    path: str
    dlc_nca_list: list[DlcContentEntry] = field(default_factory=list)

    def clone_to(self, new_path: str) -> DlcContainer:
        """Copy this container to `new_path`, keeping every content entry as-is."""
        return DlcContainer(
            path=new_path,
            dlc_nca_list=[
                DlcContentEntry(path=entry.path, title_id=entry.title_id, is_enabled=entry.is_enabled)
                for entry in self.dlc_nca_list
            ],
        )

    def to_json(self) -> dict[str, object]:
        return {"path": self.path, "dlc_nca_list": [entry.to_json() for entry in self.dlc_nca_list]}


def contains_container(containers: list[DlcContainer], path: str) -> bool:
    folded = path.casefold()
    return any(container.path.casefold() == folded for container in containers)


@dataclass(slots=True)
class RewriteResult:
    count: int = 0
    error: str | None = None


@dataclass(slots=True)
class DiscoverResult:
    added_updates: int = 0
    added_dlc: int = 0
    selected: str | None = None
    approximate_dlc: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RegistrationResult:
    base_title_id: str | None = None
    registry_dir: Path | None = None
    updates_rewrite: RewriteResult = field(default_factory=RewriteResult)
    dlc_rewrite: RewriteResult = field(default_factory=RewriteResult)
    discovery: DiscoverResult = field(default_factory=DiscoverResult)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_added(self) -> int:
        return (
            self.updates_rewrite.count
            + self.dlc_rewrite.count
            + self.discovery.added_updates
            + self.discovery.added_dlc
        )


@dataclass(slots=True)
class DeregistrationResult:
    base_title_id: str | None = None
    registry_dir: Path | None = None
    removed_updates: int = 0
    removed_dlc: int = 0
    deleted_files: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
