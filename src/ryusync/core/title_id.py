from __future__ import annotations

import logging
import re

from ryusync.config.settings import DLC_TYPE_BIT, TITLE_FAMILY_MASK, TITLE_TYPE_MASK, UPDATE_TYPE_BITS
from ryusync.core.models import ContentKind, TitleIdMatch

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

# Standard 16-hex-digit title ids, e.g. "[0100152000022000]".
TITLE_ID_PATTERN = re.compile(r"\[([0-9A-Fa-f]{16})\]")
# Non-standard ids with a trailing placeholder, e.g. "[010015200002300x]".
RELAXED_TITLE_ID_PATTERN = re.compile(r"\[([0-9A-Fa-f]{15})[^\[\]\s]\]")
VERSION_PATTERN = re.compile(r"\[v(\d+)\]")


class MissingTitleIdError(ValueError):
    """Raised when a filename carries no parseable title id."""


def extract_title_id(filename: str) -> str | None:
    match = TITLE_ID_PATTERN.search(filename)
    return match.group(1) if match else None


def extract_version(filename: str) -> int:
    match = VERSION_PATTERN.search(filename)
    if match is None:
        return 0
    try:
        return int(match.group(1))
    except ValueError:
        return 0


def parse_title_id(filename: str, allow_approximate: bool = True) -> TitleIdMatch | None:
    """Read a title id from `filename`, falling back to the relaxed pattern.

    The relaxed result is lossy: the placeholder digit is read as `0`, so the
    value may not match the id the package actually carries.
    """
    strict = extract_title_id(filename)
    if strict is not None:
        return TitleIdMatch(hex=strict, value=int(strict, 16))
    if not allow_approximate:
        return None

    relaxed = RELAXED_TITLE_ID_PATTERN.search(filename)
    if relaxed is None:
        return None
    approx_hex = relaxed.group(1) + "0"
    log.info("Using approximate title ID %s for: %s", approx_hex, filename)
    return TitleIdMatch(hex=approx_hex, value=int(approx_hex, 16), approximate=True)


def require_title_id(filename: str) -> int:
    title_id = extract_title_id(filename)
    if title_id is None:
        raise MissingTitleIdError(f"Cannot extract title ID from: {filename}")
    return int(title_id, 16)


def format_title_id(value: int) -> str:
    return f"{value:016x}"


def same_family(title_id: int, base_title_id: int) -> bool:
    return (title_id & TITLE_FAMILY_MASK) == (base_title_id & TITLE_FAMILY_MASK)


def is_update(title_id: int, base_title_id: int) -> bool:
    return same_family(title_id, base_title_id) and (title_id & TITLE_TYPE_MASK) == UPDATE_TYPE_BITS


def is_dlc(title_id: int, base_title_id: int) -> bool:
    return same_family(title_id, base_title_id) and (title_id & DLC_TYPE_BIT) != 0 and title_id != base_title_id


def classify(title_id: int, base_title_id: int) -> ContentKind:
    if title_id == base_title_id and (title_id & TITLE_TYPE_MASK) == 0:
        return ContentKind.BASE
    if is_update(title_id, base_title_id):
        return ContentKind.UPDATE
    if is_dlc(title_id, base_title_id):
        return ContentKind.DLC
    return ContentKind.UNKNOWN
