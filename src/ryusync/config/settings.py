from __future__ import annotations

import logging
import os
from pathlib import Path
import platform

log = logging.getLogger(__name__)
log.addHandler(logging.NullHandler())


# Per-title registry files kept by Ryujinx under <games root>/<title id>/.
UPDATES_FILENAME = "updates.json"
DLC_FILENAME = "dlc.json"

# Package files considered during discovery.
PACKAGE_EXTENSIONS: tuple[str, ...] = (".nsp",)
# Root-level files that can hold the base game.
BASE_GAME_EXTENSIONS: tuple[str, ...] = (".nsp", ".xci")

# Content entries inside a partition container.
CONTENT_ENTRY_EXTENSION = ".nca"
METADATA_ENTRY_MARKER = "cnmt"

# Title ID layout: top 51 bits are the application family, low 13 bits the type.
TITLE_TYPE_MASK = 0x1FFF
TITLE_FAMILY_MASK = 0xFFFFFFFFFFFFFFFF & ~TITLE_TYPE_MASK
UPDATE_TYPE_BITS = 0x800
DLC_TYPE_BIT = 0x1000

GAMES_DIR_ENV_VAR = "RYUSYNC_GAMES_DIR"
RYUJINX_FLATPAK_ID = "org.ryujinx.Ryujinx"


def default_ryujinx_dir() -> Path | None:
    """Return the per-user Ryujinx data directory for the running OS."""
    system = platform.system()
    home = Path.home()
    if system == "Windows":
        appdata = os.getenv("APPDATA")
        if not appdata:
            log.error("APPDATA environment variable not found on Windows.")
            return None
        return Path(appdata) / "Ryujinx"
    if system == "Linux":
        flatpak_dir = home / ".var" / "app" / RYUJINX_FLATPAK_ID / "config" / "Ryujinx"
        if flatpak_dir.is_dir():
            log.debug("Using Ryujinx Flatpak config directory: %s", flatpak_dir)
            return flatpak_dir
        xdg_config = os.getenv("XDG_CONFIG_HOME")
        config_root = Path(xdg_config) if xdg_config else home / ".config"
        return config_root / "Ryujinx"
    if system == "Darwin":
        return home / "Library" / "Application Support" / "Ryujinx"
    log.error("Unsupported operating system for Ryujinx path detection: %s", system)
    return None


def portable_ryujinx_dir(executable_dir: Path) -> Path | None:
    """Return the data directory of a portable install rooted at `executable_dir`."""
    portable_dir = executable_dir / "portable"
    if portable_dir.is_dir():
        return portable_dir
    if (executable_dir / "portable.ini").is_file():
        return executable_dir
    return None


def resolve_games_root(explicit: Path | str | None = None, ryujinx_dir: Path | str | None = None) -> Path:
    """Resolve the directory that holds one registry folder per base title id.

    Precedence: explicit argument, RYUSYNC_GAMES_DIR, a portable Ryujinx
    install found at `ryujinx_dir`, then the platform default.
    """
    if explicit:
        return Path(explicit).expanduser()

    from_env = os.getenv(GAMES_DIR_ENV_VAR, "").strip()
    if from_env:
        return Path(from_env).expanduser()

    if ryujinx_dir:
        base = Path(ryujinx_dir).expanduser()
        portable = portable_ryujinx_dir(base)
        if portable is not None:
            log.info("Found portable Ryujinx install at: %s", portable)
            return portable / "games"
        return base / "games"

    default_dir = default_ryujinx_dir()
    if default_dir is None:
        raise RuntimeError("Unable to determine the Ryujinx data directory; pass --games-dir explicitly.")
    return default_dir / "games"
