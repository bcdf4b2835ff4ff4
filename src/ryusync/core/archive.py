"""Read-only listing of PFS0 partition containers (NSP files).

The PFS0 header is stored unencrypted, so entry names can be listed without
any console keys:

    0x00  magic "PFS0"
    0x04  u32 entry count
    0x08  u32 string table size
    0x0C  u32 reserved
    0x10  entry count x 24-byte entries (u64 data offset, u64 size, u32 name offset, u32 reserved)
    ....  string table of NUL-terminated names, followed by the data region
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import struct
from typing import BinaryIO, Iterator

from ryusync.config.settings import CONTENT_ENTRY_EXTENSION, METADATA_ENTRY_MARKER

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())

PFS0_MAGIC = b"PFS0"
_HEADER = struct.Struct("<4sIII")
_ENTRY = struct.Struct("<QQII")
# Guards against reading a huge bogus table from a damaged header.
_MAX_ENTRIES = 0x10000


class ArchiveParseError(Exception):
    """Raised when a package cannot be opened or its header is invalid."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path.name}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True, slots=True)
class PartitionEntry:
    name: str
    offset: int
    size: int


def read_partition_entries(archive_path: Path) -> list[PartitionEntry]:
    archive_path = Path(archive_path)
    try:
        with archive_path.open("rb") as handle:
            file_size = archive_path.stat().st_size
            return _parse_header(handle, archive_path, file_size)
    except OSError as exc:
        raise ArchiveParseError(archive_path, f"read failed: {exc}") from exc


def iter_content_entries(archive_path: Path) -> Iterator[str]:
    """Yield content entry names of one container, skipping metadata entries.

    The header is validated before the first name is produced, so a consumer
    never sees names from a container that turns out to be broken.
    """
    for entry in read_partition_entries(archive_path):
        lowered = entry.name.lower()
        if not lowered.endswith(CONTENT_ENTRY_EXTENSION):
            continue
        if METADATA_ENTRY_MARKER in lowered:
            continue
        yield entry.name


def list_content_entries(archive_path: Path) -> list[str]:
    return list(iter_content_entries(archive_path))


def _parse_header(handle: BinaryIO, archive_path: Path, file_size: int) -> list[PartitionEntry]:
    raw_header = handle.read(_HEADER.size)
    if len(raw_header) < _HEADER.size:
        raise ArchiveParseError(archive_path, "file too short for a PFS0 header")

    magic, entry_count, string_table_size, _reserved = _HEADER.unpack(raw_header)
    if magic != PFS0_MAGIC:
        raise ArchiveParseError(archive_path, f"bad magic {magic!r}")
    if entry_count > _MAX_ENTRIES:
        raise ArchiveParseError(archive_path, f"implausible entry count {entry_count}")

    table_size = entry_count * _ENTRY.size
    header_size = _HEADER.size + table_size + string_table_size
    if header_size > file_size:
        raise ArchiveParseError(archive_path, "header extends past end of file")

    raw_entries = handle.read(table_size)
    string_table = handle.read(string_table_size)
    if len(raw_entries) < table_size or len(string_table) < string_table_size:
        raise ArchiveParseError(archive_path, "truncated header")

    entries: list[PartitionEntry] = []
    for index in range(entry_count):
        offset, size, name_offset, _reserved = _ENTRY.unpack_from(raw_entries, index * _ENTRY.size)
        if name_offset >= string_table_size:
            raise ArchiveParseError(archive_path, f"entry {index} name offset out of range")
        name_end = string_table.find(b"\0", name_offset)
        if name_end < 0:
            raise ArchiveParseError(archive_path, f"entry {index} name is not terminated")
        try:
            name = string_table[name_offset:name_end].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ArchiveParseError(archive_path, f"entry {index} name is not valid UTF-8") from exc
        if not name:
            raise ArchiveParseError(archive_path, f"entry {index} has an empty name")
        if header_size + offset + size > file_size:
            raise ArchiveParseError(archive_path, f"entry '{name}' data extends past end of file")
        entries.append(PartitionEntry(name=name, offset=header_size + offset, size=size))

    log.debug("Read %d partition entries from %s", len(entries), archive_path)
    return entries
