from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from ryusync.config.settings import resolve_games_root
from ryusync.core.archive import ArchiveParseError, list_content_entries
from ryusync.core.discovery import find_base_game_file
from ryusync.core.reconciler import RegistryReconciler
from ryusync.core.title_id import parse_title_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ryusync",
        description="Keep Ryujinx update/DLC registries in sync with installed game folders.",
    )
    parser.add_argument("--games-dir", default=None, help="Ryujinx 'games' registry root (auto-detect if omitted)")
    parser.add_argument("--ryujinx-dir", default=None, help="Ryujinx data or portable install directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register = subparsers.add_parser("register", help="Register updates/DLC after a game folder was copied or moved")
    register.add_argument("source", help="Folder the game was copied from")
    register.add_argument("destination", help="Folder the game now lives in")
    register.add_argument("--base-file", default=None, help="Base game filename (detected from destination if omitted)")
    register.add_argument(
        "--strict-title-ids",
        action="store_true",
        help="Skip DLC whose filename only has a placeholder title ID such as [010015200002300x]",
    )

    deregister = subparsers.add_parser("deregister", help="Drop registry entries inside an uninstalled game folder")
    deregister.add_argument("installed", help="Installed game folder being removed")
    deregister.add_argument("--base-file", default=None, help="Base game filename (detected from folder if omitted)")

    inspect = subparsers.add_parser("inspect", help="List content entries of a package without keys")
    inspect.add_argument("package", help="Path to an NSP file")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "inspect":
        return _inspect(Path(args.package))

    try:
        games_root = resolve_games_root(args.games_dir, args.ryujinx_dir)
    except RuntimeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    reconciler = RegistryReconciler(
        games_root,
        progress_callback=print,
        allow_approximate=not getattr(args, "strict_title_ids", False),
    )

    if args.command == "register":
        base_file = args.base_file or _detect_base_file(Path(args.destination))
        if base_file is None:
            print(f"error: no base game file found in {args.destination}", file=sys.stderr)
            return 1
        result = reconciler.register(args.source, args.destination, base_file)
        for warning in result.warnings:
            print(f"[warn] {warning}")
        return 0 if result.ok else 1

    base_file = args.base_file or _detect_base_file(Path(args.installed))
    if base_file is None:
        print(f"error: no base game file found in {args.installed}; pass --base-file", file=sys.stderr)
        return 1
    result = reconciler.deregister(args.installed, base_file)
    for warning in result.warnings:
        print(f"[warn] {warning}")
    return 0 if result.ok else 1


def _detect_base_file(folder: Path) -> str | None:
    base_game = find_base_game_file(folder)
    return base_game.name if base_game is not None else None


def _inspect(package: Path) -> int:
    title_id = parse_title_id(package.name)
    if title_id is None:
        print("title id: (none)")
    else:
        suffix = " (approximate)" if title_id.approximate else ""
        print(f"title id: {title_id.hex.upper()}{suffix}")
    try:
        entries = list_content_entries(package)
    except ArchiveParseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    for name in entries:
        print(f"  /{name}")
    print(f"{len(entries)} content entr{'y' if len(entries) == 1 else 'ies'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
