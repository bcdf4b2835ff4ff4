"""Map registry paths recorded for an old install location onto a new one.

Registry paths may come from another machine or drive, so both `\\` and `/`
are treated as separators regardless of the running OS, and comparisons are
case-insensitive.
"""

from __future__ import annotations

import re

_SEPARATORS = "\\/"


def is_under(path: str, folder: str) -> bool:
    """True when `path` is `folder` itself or lies inside it."""
    root = folder.rstrip(_SEPARATORS)
    if not root:
        return False
    if not path.casefold().startswith(root.casefold()):
        return False
    return len(path) == len(root) or path[len(root)] in _SEPARATORS


def rewrite_by_prefix(old_path: str, source_folder: str, destination_folder: str) -> str | None:
    if not is_under(old_path, source_folder):
        return None
    relative = old_path[len(source_folder.rstrip(_SEPARATORS)):].lstrip(_SEPARATORS)
    return join_path(destination_folder, relative)


def rewrite_by_folder_name(old_path: str, folder_name: str, destination_folder: str) -> str | None:
    """Relocate `old_path` by finding `folder_name` as a segment anywhere in it.

    Recovers entries whose drive or parent directory changed while the game
    folder name stayed the same.
    """
    folder_name = folder_name.strip(_SEPARATORS)
    if not folder_name:
        return None

    escaped = re.escape(folder_name)
    match = re.search(r"[\\/]" + escaped + r"[\\/]", old_path, re.IGNORECASE)
    if match is not None:
        return join_path(destination_folder, old_path[match.end():])

    # The old path is the game folder itself.
    if re.search(r"[\\/]" + escaped + r"$", old_path.rstrip(_SEPARATORS), re.IGNORECASE):
        return destination_folder
    return None


def rewrite_path(old_path: str, source_folder: str, destination_folder: str) -> str | None:
    """Return the relocated path, or None when the entry belongs elsewhere."""
    rewritten = rewrite_by_prefix(old_path, source_folder, destination_folder)
    if rewritten is None:
        rewritten = rewrite_by_folder_name(old_path, folder_name_of(source_folder), destination_folder)
    return rewritten


def folder_name_of(folder: str) -> str:
    trimmed = folder.rstrip(_SEPARATORS)
    return re.split(r"[\\/]", trimmed)[-1] if trimmed else ""


def join_path(root: str, relative: str) -> str:
    if not relative:
        return root
    separator = "\\" if "\\" in root and "/" not in root else "/"
    if len(root) == 2 and root[1] == ":":
        separator = "\\"
    return root.rstrip(_SEPARATORS) + separator + relative
