# src/rpgm_decryptor/main.py
"""
Main command-line interface for the RPG Maker asset decryptor.
"""
import argparse
import builtins
import logging
import sys
from pathlib import Path
from pprint import pformat
from typing import Callable, List, Optional

from . import constants, keystore
from .errors import ConfigurationError, RpgDecryptorError
from .file_ops import delete_old_log_files, get_cached_tree_size
from .logger_config import setup_logging
from .models import AssetKind, ProcessResult
from .processing_engine import process_game, scan_game, transform_single_file

__version__ = "1.0.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rpgm-decryptor",
        description="Decrypts and re-encrypts RPG Maker MV/MZ game assets.",
        formatter_class=lambda prog: argparse.HelpFormatter(prog, max_help_position=40),
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress console output (logs are still written to file).",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Write debug messages to the log file."
    )
    parser.add_argument(
        "-v", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    # --- Whole game ---
    decrypt_game = commands.add_parser("decrypt-game", help="Decrypt an entire game.")
    decrypt_game.add_argument("game_dir", type=Path, help="The game directory.")
    decrypt_game.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Directory for decrypted files (must not exist). Keeps the game untouched.",
    )
    decrypt_game.add_argument(
        "-f",
        "--flatten",
        action="store_true",
        help="Put all files directly into the output directory.",
    )
    decrypt_game.add_argument(
        "-r",
        "--remove",
        action="store_true",
        help="Remove the encrypted files after decryption.",
    )

    encrypt_game = commands.add_parser("encrypt-game", help="Encrypt an entire game.")
    encrypt_game.add_argument("game_dir", type=Path, help="The game directory.")
    encrypt_game.add_argument(
        "-r",
        "--remove",
        action="store_true",
        help="Remove the plain files after encryption.",
    )
    encrypt_game.add_argument(
        "--underscored",
        action="store_true",
        help="Use the png_/ogg_/m4a_ extensions instead of rpgmvp/rpgmvo/rpgmvm.",
    )

    for sub in (decrypt_game, encrypt_game):
        sub.add_argument(
            "--no-update-flags",
            action="store_false",
            dest="update_flags",
            default=True,
            help="Don't change the encryption flags in System.json.",
        )
        sub.add_argument(
            "--no-backup",
            action="store_false",
            dest="create_backup",
            default=True,
            help="Don't back up files before removing them. RISKY.",
        )
        sub.add_argument(
            "--workers",
            type=int,
            default=constants.DEFAULT_MAX_WORKERS,
            help=f"Number of worker threads (default: {constants.DEFAULT_MAX_WORKERS}).",
        )

    scan = commands.add_parser("scan", help="List the decryptable files of a game.")
    scan.add_argument("game_dir", type=Path, help="The game directory.")

    info = commands.add_parser("info", help="Print information about a game.")
    info.add_argument("game_dir", type=Path, help="The game directory.")

    key = commands.add_parser("key", help="Print the key of a game.")
    key.add_argument("game_dir", type=Path, help="The game directory.")

    # --- Single files ---
    decrypt_file = commands.add_parser("decrypt-file", help="Decrypt a single file with a key.")
    encrypt_file = commands.add_parser("encrypt-file", help="Encrypt a single file with a key.")
    for sub in (decrypt_file, encrypt_file):
        sub.add_argument("file", type=Path, help="The file to transform.")
        sub.add_argument("key", type=str, help="The key as a hex string.")
        sub.add_argument("-o", "--output", type=Path, default=None, help="Output file.")
    encrypt_file.add_argument(
        "--underscored",
        action="store_true",
        help="Use the png_/ogg_/m4a_ extension for the output.",
    )

    restore_img = commands.add_parser(
        "restore-img", help="Recover a single image without a key by rebuilding its header."
    )
    restore_img.add_argument("img", type=Path, help="The encrypted image.")
    restore_img.add_argument("-o", "--output", type=Path, default=None, help="Output file.")

    return parser


def _require_game_dir(path: Path) -> Path:
    game_root = path.resolve()
    if not game_root.is_dir():
        raise ConfigurationError(f"Game directory not found or is not a directory: {game_root}")
    return game_root


def _print_summary(result: ProcessResult, console_printer: Callable) -> None:
    if result.success:
        summary = (
            f"[+] {result.method.capitalize()}ion complete.\n"
            f"  Candidate files: {result.total_candidates}\n"
            f"  Total files processed: {result.total_processed}\n"
            f"  Files skipped (too short): {result.total_too_short}\n"
            f"  Files skipped (already {result.method}ed): {result.total_skipped_state}\n"
            f"  Files skipped (permissions): {result.total_skipped_permissions}\n"
            f"  System.json updated: {'yes' if result.flags_updated else 'no'}\n"
        )
        if result.file_operation_errors > 0:
            summary += f"  File operations with non-fatal errors: {result.file_operation_errors}\n"
        console_printer(summary)
    else:
        console_printer(f"[!!!] {result.method.capitalize()}ion FAILED.")
        if result.fatal_error:
            console_printer(f"  Fatal Error: {result.fatal_error}")


def _run_game_batch(args: argparse.Namespace, console_printer: Callable) -> ProcessResult:
    game_root = _require_game_dir(args.game_dir)
    mode = "decrypt" if args.command == "decrypt-game" else "encrypt"
    output_dir: Optional[Path] = getattr(args, "output", None)
    flatten: bool = getattr(args, "flatten", False)

    if flatten and output_dir is None:
        raise ConfigurationError("--flatten requires --output.")
    if args.remove and output_dir is not None:
        raise ConfigurationError("--remove cannot be combined with --output.")
    if output_dir is not None:
        output_dir = output_dir.resolve()
        if output_dir.exists():
            raise ConfigurationError(f"The output directory '{output_dir}' already exists!")
    update_flags = args.update_flags and output_dir is None
    if args.update_flags and not update_flags:
        logging.info("Output directory given, System.json flags will not be changed.")

    # Config problems abort here, before any asset is touched
    doc = keystore.locate_and_load(game_root)
    key = keystore.extract_key(doc)
    title = keystore.game_title(doc)
    console_printer(f"[*] Loaded game{f' {title!r}' if title else ''} from {game_root}")
    if mode == "decrypt" and not doc.declared_encrypted:
        console_printer("[!] System.json says the game is not encrypted, scanning anyway.")
    elif mode == "encrypt" and doc.declared_encrypted:
        console_printer("[!] System.json says the game is already encrypted, scanning anyway.")

    return process_game(
        game_root=game_root,
        doc=doc,
        key=key,
        mode=mode,
        output_dir=output_dir,
        flatten=flatten,
        remove_originals=args.remove,
        create_backup_files=args.create_backup,
        update_flags=update_flags,
        underscored=getattr(args, "underscored", False),
        num_workers=args.workers,
        console_print_func=console_printer,
    )


def _run_scan(args: argparse.Namespace, console_printer: Callable) -> None:
    game_root = _require_game_dir(args.game_dir)
    console_printer("[*] Scanning...")
    found = scan_game(game_root)
    total = 0
    for kind in AssetKind:
        for path in found[kind]:
            console_printer(f"  {path.relative_to(game_root)}")
        total += len(found[kind])
    console_printer(f"[+] Found {total} encrypted file(s):")
    for kind in AssetKind:
        console_printer(f"  {kind.value}: {len(found[kind])}")
    size_mb = get_cached_tree_size(game_root) / 1024**2
    console_printer(f"[*] Game directory size: {size_mb:.2f}MB")


def _run_info(args: argparse.Namespace, console_printer: Callable) -> None:
    game_root = _require_game_dir(args.game_dir)
    doc = keystore.locate_and_load(game_root)
    key = keystore.extract_key(doc)
    console_printer(f"Found Game: {keystore.game_title(doc) or ''}")
    console_printer(f"\n   Has encrypted audio: {keystore.has_encrypted_audio(doc)}")
    console_printer(f"   Has encrypted imgs: {keystore.has_encrypted_images(doc)}")
    console_printer(f"   Encryption key: {key.text}\n")


def _run_key(args: argparse.Namespace, console_printer: Callable) -> None:
    game_root = _require_game_dir(args.game_dir)
    key = keystore.extract_key(keystore.locate_and_load(game_root))
    console_printer(key.text)


def _run_single_file(args: argparse.Namespace, console_printer: Callable) -> None:
    if args.command == "restore-img":
        source, mode, key = args.img, "restore", None
    else:
        source = args.file
        mode = "decrypt" if args.command == "decrypt-file" else "encrypt"
        key = keystore.decode_hex_key(args.key)
    if not source.is_file():
        raise ConfigurationError(f"File not found: {source}")

    output = transform_single_file(
        source.resolve(),
        mode,
        key=key,
        output_path=args.output,
        underscored=getattr(args, "underscored", False),
    )
    console_printer(f"[+] Writing to {output}")


def run_main(argv: Optional[List[str]] = None) -> int:
    """Parses arguments, dispatches the command and returns the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # --- Setup ---
    log_file_abs_path = setup_logging(verbose=args.debug)

    # Handle quiet mode by replacing builtins.print
    original_print_func: Callable = builtins.print
    console_printer: Callable = original_print_func
    if args.quiet:
        console_printer = lambda *a, **kw: None  # type: ignore
        builtins.print = console_printer

    try:
        delete_old_log_files(console_printer, log_file_abs_path)
    except OSError as e:
        logging.warning(f"Could not complete deletion of old log files: {e}")

    logging.info(f"--- Starting {parser.prog} ---")
    logging.info(f"Version: {__version__}")
    logging.info(f"Arguments: {pformat(vars(args), compact=True)}")
    logging.info(f"Log file for this session: {log_file_abs_path}")

    exit_code = 0
    operation_result: Optional[ProcessResult] = None
    fatal_error: Optional[RpgDecryptorError] = None
    try:
        if args.command in ("decrypt-game", "encrypt-game"):
            operation_result = _run_game_batch(args, console_printer)
        elif args.command == "scan":
            _run_scan(args, console_printer)
        elif args.command == "info":
            _run_info(args, console_printer)
        elif args.command == "key":
            _run_key(args, console_printer)
        else:
            _run_single_file(args, console_printer)
    except RpgDecryptorError as e:
        logging.critical(f"Application error: {e}", exc_info=True)
        fatal_error = e
    finally:
        if args.quiet:
            builtins.print = original_print_func

    # --- Final Summary (printed even in quiet mode) ---
    if fatal_error is not None:
        original_print_func(f"[!!!] {args.command} FAILED.", file=sys.stderr)
        original_print_func(f"  Fatal Error: {fatal_error}", file=sys.stderr)
        exit_code = 1
    elif operation_result is not None:
        _print_summary(operation_result, original_print_func)
        exit_code = 0 if operation_result.success else 1
        original_print_func(f"[*] Log file: {log_file_abs_path.name}")

    logging.info(f"--- {parser.prog} finished (exit code {exit_code}) ---")
    return exit_code


def main() -> None:
    sys.exit(run_main())
