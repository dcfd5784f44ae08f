import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from rpgm_decryptor import codec, keystore
from rpgm_decryptor.constants import MAGIC_HEADER, PNG_HEADER
from rpgm_decryptor.errors import ConfigurationError, NotObfuscatedError
from rpgm_decryptor.file_ops import (get_backup_run_root, get_cached_tree_size,
                                     invalidate_tree_size, iter_asset_files,
                                     resolve_output_path)
from rpgm_decryptor.models import AssetKind
from rpgm_decryptor.processing_engine import (process_game, scan_game,
                                              transform_single_file)

KEY_HEX = "d41d8cd98f00b204e9800998ecf8427e"
KEY = bytes.fromhex(KEY_HEX)
IMAGE = PNG_HEADER + bytes(range(256))
AUDIO = b"OggS\x00\x02" + bytes(range(10)) + b"vorbis" * 20


class GameTestCase(unittest.TestCase):
    """Builds a small game tree in a temporary directory."""

    def setUp(self) -> None:
        self.tmpdir = TemporaryDirectory()
        self.tmp_path = Path(self.tmpdir.name).resolve()
        self.game_root = self.tmp_path / "game"
        self.system_json = self.game_root / "www" / "data" / "System.json"
        self.system_json.parent.mkdir(parents=True)
        self.system_json.write_text(
            json.dumps(
                {
                    "gameTitle": "Test Game",
                    "encryptionKey": KEY_HEX,
                    "hasEncryptedAudio": True,
                    "hasEncryptedImages": True,
                }
            ),
            encoding="utf-8",
        )
        self.printed = []

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _add(self, relative: str, data: bytes) -> Path:
        path = self.game_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def _add_encrypted_assets(self) -> None:
        self._add("www/img/pictures/Actor1.rpgmvp", codec.encrypt(IMAGE, KEY))
        self._add("www/audio/bgm/Theme.rpgmvo", codec.encrypt(AUDIO, KEY))
        self._add("www/img/system/Tiny.rpgmvp", MAGIC_HEADER + b"\x00" * 4)
        self._add("www/img/system/Plain.rpgmvp", IMAGE)
        self._add("www/js/plugins.js", b"var $plugins = [];")

    def _run(self, mode: str, **kwargs):
        doc = keystore.locate_and_load(self.game_root)
        key = keystore.extract_key(doc)
        kwargs.setdefault("num_workers", 4)
        result = process_game(
            self.game_root, doc, key, mode, console_print_func=self.printed.append, **kwargs
        )
        return result, doc

    def _flags(self):
        data = json.loads(self.system_json.read_text(encoding="utf-8"))
        return data.get("hasEncryptedAudio"), data.get("hasEncryptedImages")


class DecryptGameTests(GameTestCase):
    def test_decrypt_next_to_originals(self):
        self._add_encrypted_assets()
        result, doc = self._run("decrypt")

        self.assertTrue(result.success)
        self.assertEqual(result.total_candidates, 4)
        self.assertEqual(result.total_processed, 2)
        self.assertEqual(result.total_too_short, 1)
        self.assertEqual(result.total_skipped_state, 1)
        self.assertEqual(result.file_operation_errors, 0)
        self.assertTrue(result.flags_updated)

        img = self.game_root / "www/img/pictures"
        self.assertEqual((img / "Actor1.png").read_bytes(), IMAGE)
        self.assertTrue((img / "Actor1.rpgmvp").exists())
        self.assertEqual((self.game_root / "www/audio/bgm/Theme.ogg").read_bytes(), AUDIO)
        self.assertFalse((self.game_root / "www/img/system/Tiny.png").exists())
        self.assertEqual(self._flags(), (False, False))
        self.assertFalse(doc.declared_encrypted)

    def test_remove_originals_with_backup(self):
        self._add_encrypted_assets()
        result, _ = self._run("decrypt", remove_originals=True)

        self.assertEqual(result.total_processed, 2)
        original = self.game_root / "www/img/pictures/Actor1.rpgmvp"
        self.assertFalse(original.exists())
        backup = get_backup_run_root(self.game_root) / "www/img/pictures/Actor1.rpgmvp"
        self.assertEqual(backup.read_bytes(), codec.encrypt(IMAGE, KEY))
        # files that failed keep their original
        self.assertTrue((self.game_root / "www/img/system/Tiny.rpgmvp").exists())

    def test_mirrored_output_dir(self):
        self._add_encrypted_assets()
        out = self.tmp_path / "out"
        result, _ = self._run("decrypt", output_dir=out, update_flags=False)

        self.assertEqual(result.total_processed, 2)
        self.assertEqual((out / "www/img/pictures/Actor1.png").read_bytes(), IMAGE)
        self.assertEqual((out / "www/audio/bgm/Theme.ogg").read_bytes(), AUDIO)
        self.assertFalse((self.game_root / "www/img/pictures/Actor1.png").exists())
        self.assertFalse(result.flags_updated)
        self.assertEqual(self._flags(), (True, True))

    def test_flattened_output_dir(self):
        self._add_encrypted_assets()
        out = self.tmp_path / "flat"
        self._run("decrypt", output_dir=out, flatten=True, update_flags=False)
        self.assertEqual((out / "www_img_pictures_Actor1.png").read_bytes(), IMAGE)
        self.assertEqual((out / "www_audio_bgm_Theme.ogg").read_bytes(), AUDIO)

    def test_output_collisions_are_reported(self):
        self._add("www/img/faces/Face.rpgmvp", codec.encrypt(IMAGE, KEY))
        self._add("www/img/faces/Face.png_", codec.encrypt(IMAGE, KEY))
        result, _ = self._run("decrypt")
        self.assertEqual(result.total_candidates, 2)
        self.assertEqual(result.total_processed, 1)
        self.assertEqual(result.file_operation_errors, 1)

    def test_nothing_to_do_leaves_flags(self):
        self._add("www/img/system/Tiny.rpgmvp", MAGIC_HEADER + b"\x00" * 4)
        result, _ = self._run("decrypt")
        self.assertEqual(result.total_processed, 0)
        self.assertFalse(result.flags_updated)
        self.assertEqual(self._flags(), (True, True))

    def test_config_write_failure_is_fatal(self):
        self._add_encrypted_assets()
        doc = keystore.locate_and_load(self.game_root)
        key = keystore.extract_key(doc)
        doc.path = self.tmp_path / "gone" / "System.json"
        result = process_game(
            self.game_root, doc, key, "decrypt", num_workers=2,
            console_print_func=self.printed.append,
        )
        self.assertFalse(result.success)
        self.assertIn("System.json", result.fatal_error)
        self.assertEqual(result.total_processed, 2)

    def test_invalid_layout_arguments(self):
        doc = keystore.locate_and_load(self.game_root)
        key = keystore.extract_key(doc)
        with self.assertRaises(ConfigurationError):
            process_game(self.game_root, doc, key, "decrypt", flatten=True)
        with self.assertRaises(ConfigurationError):
            process_game(
                self.game_root, doc, key, "decrypt",
                output_dir=self.tmp_path / "out", remove_originals=True,
            )


class EncryptGameTests(GameTestCase):
    def test_encrypt_then_decrypt_round_trip(self):
        self._add("www/img/pictures/Actor1.png", IMAGE)
        self._add("www/audio/se/Bell.ogg", AUDIO)

        result, doc = self._run("encrypt", remove_originals=True)
        self.assertEqual(result.total_processed, 2)
        self.assertEqual(self._flags(), (True, True))
        self.assertTrue(doc.declared_encrypted)
        encrypted = self.game_root / "www/img/pictures/Actor1.rpgmvp"
        self.assertEqual(encrypted.read_bytes(), codec.encrypt(IMAGE, KEY))
        self.assertFalse((self.game_root / "www/img/pictures/Actor1.png").exists())

        result, _ = self._run("decrypt", remove_originals=True, create_backup_files=False)
        self.assertEqual(result.total_processed, 2)
        self.assertEqual((self.game_root / "www/img/pictures/Actor1.png").read_bytes(), IMAGE)
        self.assertEqual((self.game_root / "www/audio/se/Bell.ogg").read_bytes(), AUDIO)
        self.assertEqual(self._flags(), (False, False))

    def test_underscored_extensions(self):
        self._add("img/pictures/Actor1.png", IMAGE)
        self._run("encrypt", underscored=True)
        self.assertTrue((self.game_root / "img/pictures/Actor1.png_").is_file())

    def test_icon_directory_stays_plain(self):
        self._add("www/icon/icon.png", IMAGE)
        self._add("icon/icon.png", IMAGE)
        self._add("www/img/icon/Set.png", IMAGE)
        result, _ = self._run("encrypt")
        self.assertEqual(result.total_candidates, 1)
        self.assertEqual(result.total_processed, 1)
        self.assertFalse((self.game_root / "www/icon/icon.rpgmvp").exists())
        self.assertFalse((self.game_root / "icon/icon.rpgmvp").exists())
        self.assertTrue((self.game_root / "www/img/icon/Set.rpgmvp").is_file())

    def test_already_obfuscated_plain_names_are_skipped(self):
        self._add("www/img/pictures/Odd.png", codec.encrypt(IMAGE, KEY))
        result, _ = self._run("encrypt")
        self.assertEqual(result.total_skipped_state, 1)
        self.assertFalse((self.game_root / "www/img/pictures/Odd.rpgmvp").exists())


class ScanAndSingleFileTests(GameTestCase):
    def test_scan_groups_by_kind(self):
        self._add_encrypted_assets()
        self._add("www/movies/Intro.rpgmvm", codec.encrypt(AUDIO, KEY))
        found = scan_game(self.game_root)
        self.assertEqual(len(found[AssetKind.IMAGE]), 3)
        self.assertEqual(len(found[AssetKind.AUDIO]), 1)
        self.assertEqual(len(found[AssetKind.VIDEO]), 1)

    def test_iter_asset_files_is_sorted(self):
        self._add("www/img/b.rpgmvp", b"")
        self._add("www/img/a.rpgmvp", b"")
        names = [p.name for p, _ in iter_asset_files(self.game_root)]
        self.assertEqual(names, ["a.rpgmvp", "b.rpgmvp"])

    def test_decrypt_single_file(self):
        src = self._add("www/img/pictures/Actor1.rpgmvp", codec.encrypt(IMAGE, KEY))
        output = transform_single_file(src, "decrypt", key=keystore.decode_hex_key(KEY_HEX))
        self.assertEqual(output, src.with_suffix(".png"))
        self.assertEqual(output.read_bytes(), IMAGE)

    def test_decrypt_single_plain_file_refused(self):
        src = self._add("www/img/pictures/Actor1.rpgmvp", IMAGE)
        with self.assertRaises(NotObfuscatedError):
            transform_single_file(src, "decrypt", key=keystore.decode_hex_key(KEY_HEX))

    def test_restore_single_image(self):
        src = self._add("www/img/pictures/Actor1.rpgmvp", codec.encrypt(IMAGE, b"\x42\x13"))
        out = self.tmp_path / "restored.png"
        self.assertEqual(transform_single_file(src, "restore", output_path=out), out)
        self.assertEqual(out.read_bytes(), IMAGE)

    def test_restore_rejects_audio(self):
        src = self._add("www/audio/bgm/Theme.rpgmvo", codec.encrypt(AUDIO, KEY))
        with self.assertRaises(ConfigurationError):
            transform_single_file(src, "restore")

    def test_refuses_to_overwrite_input(self):
        src = self._add("www/img/pictures/Actor1.rpgmvp", codec.encrypt(IMAGE, KEY))
        with self.assertRaises(ConfigurationError):
            transform_single_file(
                src, "decrypt", key=keystore.decode_hex_key(KEY_HEX), output_path=src
            )


class FileOpsTests(unittest.TestCase):
    def test_resolve_output_path(self):
        root = Path("/games/demo")
        target = root / "www/img/a.png"
        self.assertEqual(resolve_output_path(target, root), target)
        self.assertEqual(resolve_output_path(target, root, Path("/out")), Path("/out/www/img/a.png"))
        self.assertEqual(
            resolve_output_path(target, root, Path("/out"), flatten=True),
            Path("/out/www_img_a.png"),
        )

    def test_tree_size_is_cached(self):
        with TemporaryDirectory() as tmp:
            folder = Path(tmp)
            (folder / "a.bin").write_bytes(b"x" * 10)
            self.assertEqual(get_cached_tree_size(folder), 10)
            (folder / "b.bin").write_bytes(b"x" * 5)
            self.assertEqual(get_cached_tree_size(folder), 10)
            invalidate_tree_size(folder)
            self.assertEqual(get_cached_tree_size(folder), 15)


if __name__ == "__main__":
    unittest.main()
