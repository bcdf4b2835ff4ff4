from __future__ import annotations

from pathlib import Path
import sys
import tempfile
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pfs0_builder import write_nsp
from ryusync.core import registry_store
from ryusync.core.discovery import (
    DiscoveryScanner,
    build_dlc_container,
    classify_packages,
    find_base_game_file,
    find_package_files,
    select_latest_update,
)
from ryusync.core.models import DlcContainer, UpdatesRegistry

BASE_NAME = "Foo[0100152000022000][v0].nsp"
BASE_ID = 0x0100152000022000


class DiscoveryTests(unittest.TestCase):
    def test_find_package_files_skips_base_game_case_insensitively(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            (root / BASE_NAME.upper().replace(".NSP", ".nsp")).write_bytes(b"base")
            (root / "upd").mkdir()
            (root / "upd" / "Foo[0100152000022800][v1].NSP").write_bytes(b"u")
            (root / "notes.txt").write_text("x", encoding="utf-8")

            found = find_package_files(root, BASE_NAME)
            self.assertEqual([path.name for path in found], ["Foo[0100152000022800][v1].NSP"])

    def test_classify_packages_treats_unknown_as_dlc(self) -> None:
        files = [
            Path("/g/upd/Foo[0100152000022800][v2].nsp"),
            Path("/g/dlc/Foo[0100152000023001].nsp"),
            Path("/g/dlc/Foo[010015200002300x][DLC].nsp"),
            Path("/g/other/Bar[0100AABBCCDDE800][v1].nsp"),
        ]
        updates, dlc = classify_packages(files, BASE_ID)
        self.assertEqual(updates, [(str(files[0]), 2)])
        self.assertEqual(dlc, [str(files[1]), str(files[2]), str(files[3])])

    def test_build_dlc_container_lists_entries_with_title_id(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            nsp = write_nsp(Path(temp_dir) / "Foo[0100152000023001].nsp", ["a.nca", "b.cnmt.nca"])
            container = build_dlc_container(nsp)
            self.assertIsNotNone(container)
            self.assertEqual(container.path, str(nsp))
            self.assertEqual(len(container.dlc_nca_list), 1)
            entry = container.dlc_nca_list[0]
            self.assertEqual((entry.path, entry.title_id, entry.is_enabled), ("/a.nca", 0x0100152000023001, True))

    def test_build_dlc_container_uses_relaxed_title_id(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            nsp = write_nsp(Path(temp_dir) / "Game[010015200002300x][DLC].nsp", ["c.nca"])
            container = build_dlc_container(nsp)
            self.assertIsNotNone(container)
            self.assertEqual(container.dlc_nca_list[0].title_id, int("0100152000023000", 16))

    def test_build_dlc_container_skips_bad_inputs(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            no_id = write_nsp(root / "Mystery.nsp", ["a.nca"])
            only_meta = write_nsp(root / "Foo[0100152000023002].nsp", ["a.cnmt.nca"])
            broken = root / "Foo[0100152000023003].nsp"
            broken.write_bytes(b"garbage")
            self.assertIsNone(build_dlc_container(no_id))
            self.assertIsNone(build_dlc_container(only_meta))
            self.assertIsNone(build_dlc_container(broken))

    def test_strict_scanner_skips_placeholder_title_ids(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            installed = root / "Foo"
            registry_dir = root / "games" / "0100152000022000"
            registry_dir.mkdir(parents=True)
            nsp = write_nsp(installed / "Game[010015200002300x][DLC].nsp", ["c.nca"])
            self.assertIsNone(build_dlc_container(nsp, allow_approximate=False))

            result = DiscoveryScanner(allow_approximate=False).discover(registry_dir, installed, BASE_NAME, BASE_ID)

            self.assertEqual(result.added_dlc, 0)
            self.assertEqual(result.approximate_dlc, [])
            self.assertEqual(len(result.warnings), 1)
            self.assertFalse((registry_dir / "dlc.json").exists())

    def test_select_latest_update_prefers_highest_version_then_first(self) -> None:
        self.assertEqual(
            select_latest_update(["a[v3].nsp", "b[v5].nsp", "c[v5].nsp", "d.nsp"]),
            "b[v5].nsp",
        )
        self.assertIsNone(select_latest_update([]))

    def test_discover_adds_updates_and_dlc_and_selects_latest(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            installed = root / "lib" / "Foo"
            registry_dir = root / "games" / "0100152000022000"
            registry_dir.mkdir(parents=True)
            installed.mkdir(parents=True)
            (installed / BASE_NAME).write_bytes(b"base")
            (installed / "upd").mkdir()
            (installed / "upd" / "Foo[0100152000022800][v3].nsp").write_bytes(b"u3")
            (installed / "upd" / "Foo[0100152000022800][v5].nsp").write_bytes(b"u5")
            write_nsp(installed / "dlc" / "Foo[0100152000023001].nsp", ["a.nca"])
            (installed / "dlc" / "Foo[0100152000023002].nsp").write_bytes(b"not a pfs0")

            messages: list[str] = []
            result = DiscoveryScanner(progress_callback=messages.append).discover(
                registry_dir, installed, BASE_NAME, BASE_ID
            )

            self.assertEqual(result.added_updates, 2)
            self.assertEqual(result.added_dlc, 1)
            self.assertEqual(len(result.warnings), 1)
            updates = registry_store.read_updates(registry_dir)
            self.assertEqual(updates.selected, str(installed / "upd" / "Foo[0100152000022800][v5].nsp"))
            self.assertEqual(len(updates.paths), 2)
            dlc = registry_store.read_dlc(registry_dir)
            self.assertEqual([container.path for container in dlc], [str(installed / "dlc" / "Foo[0100152000023001].nsp")])
            self.assertTrue(any(message.startswith("[discover]") for message in messages))

    def test_discover_with_nothing_new_does_not_write(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            installed = root / "Foo"
            registry_dir = root / "games" / "0100152000022000"
            registry_dir.mkdir(parents=True)
            update = installed / "Foo[0100152000022800][v1].nsp"
            dlc = write_nsp(installed / "Foo[0100152000023001].nsp", ["a.nca"])
            update.write_bytes(b"u")
            registry_store.write_updates(registry_dir, UpdatesRegistry(selected=str(update), paths=[str(update)]))
            registry_store.write_dlc(registry_dir, [DlcContainer(path=str(dlc).upper())])
            before = {path.name: path.stat().st_mtime_ns for path in registry_dir.iterdir()}

            result = DiscoveryScanner().discover(registry_dir, installed, BASE_NAME, BASE_ID)

            self.assertEqual((result.added_updates, result.added_dlc), (0, 0))
            after = {path.name: path.stat().st_mtime_ns for path in registry_dir.iterdir()}
            self.assertEqual(before, after)

    def test_malformed_dlc_registry_does_not_block_updates(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            installed = root / "Foo"
            registry_dir = root / "games" / "0100152000022000"
            registry_dir.mkdir(parents=True)
            (registry_dir / "dlc.json").write_text("[{broken", encoding="utf-8")
            installed.mkdir()
            (installed / "Foo[0100152000022800][v1].nsp").write_bytes(b"u")
            write_nsp(installed / "Foo[0100152000023001].nsp", ["a.nca"])

            result = DiscoveryScanner().discover(registry_dir, installed, BASE_NAME, BASE_ID)

            self.assertEqual(result.added_updates, 1)
            self.assertEqual(result.added_dlc, 0)
            self.assertEqual(len(result.errors), 1)
            self.assertEqual((registry_dir / "dlc.json").read_text(encoding="utf-8"), "[{broken")

    def test_find_base_game_file_preferences(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            (root / "Foo[0100152000022800][v3].nsp").write_bytes(b"x" * 10)
            (root / "Foo[0100152000022000][v0].nsp").write_bytes(b"x")
            self.assertEqual(find_base_game_file(root).name, "Foo[0100152000022000][v0].nsp")

            other = root / "other"
            other.mkdir()
            (other / "Bar[0100AABBCCDDE800].xci").write_bytes(b"x" * 10)
            (other / "Bar[0100AABBCCDDE000].xci").write_bytes(b"x")
            self.assertEqual(find_base_game_file(other).name, "Bar[0100AABBCCDDE000].xci")

            plain = root / "plain"
            plain.mkdir()
            (plain / "small.nsp").write_bytes(b"x")
            (plain / "large.nsp").write_bytes(b"x" * 100)
            self.assertEqual(find_base_game_file(plain).name, "large.nsp")

            empty = root / "empty"
            empty.mkdir()
            self.assertIsNone(find_base_game_file(empty))


if __name__ == "__main__":
    unittest.main()
