# src/rpgm_decryptor/processing_engine.py
"""
Core processing engine for decrypting and encrypting a game's assets.
Includes worker functions for concurrent file operations.
"""
import concurrent.futures
import logging
from pathlib import Path
from typing import Callable, Dict, List, Literal, Optional, Tuple

from . import codec, keystore
from .constants import DEFAULT_MAX_WORKERS
from .errors import (AlreadyObfuscatedError, BackupRestoreError, CodecError,
                     ConfigWriteError, ConfigurationError, FileOperationError,
                     NotObfuscatedError, TooShortError)
from .file_ops import (backup_file, invalidate_tree_size, iter_asset_files,
                       read_asset, remove_file, resolve_output_path,
                       write_output)
from .keystore import ConfigDocument
from .models import Asset, AssetKind, ProcessResult, SharedKey, WorkerResult

Mode = Literal["encrypt", "decrypt"]


def _transform(asset: Asset, mode: Mode, key: SharedKey) -> Asset:
    if mode == "decrypt":
        return codec.decrypt_asset(asset, key.raw)
    return codec.encrypt_asset(asset, key.raw)


def _expected_output(source: Path, kind: AssetKind, mode: Mode, underscored: bool) -> Path:
    if mode == "decrypt":
        return codec.plain_path(source, kind)
    return codec.obfuscated_path(source, kind, underscored)


# --- Worker Function ---


def _worker_transform_file(
    source_path: Path,  # Absolute path to the asset being read
    output_path: Path,  # Where the transformed bytes go
    processing_root_folder: Path,  # Absolute path to the game directory
    key: SharedKey,
    mode: Mode,
    remove_original: bool,
    do_create_backup: bool,
    console_print_func: Callable = print,
) -> WorkerResult:
    """Worker to decrypt or encrypt a single file."""
    try:
        asset = read_asset(source_path)
        transformed = _transform(asset, mode, key)
        write_output(output_path, transformed.data)

        if remove_original and output_path != source_path:
            if do_create_backup:
                backup_file(source_path, processing_root_folder)  # Raises on error
            remove_file(source_path)

        console_print_func(
            f"[+] {mode.capitalize()}ed: {source_path.relative_to(processing_root_folder)}"
        )
        return WorkerResult(
            status="ok", source_path=source_path, output_path=output_path
        )

    except TooShortError as e:
        logging.warning(f"Skipping {source_path.name}: {e}")
        return WorkerResult(
            status="too_short", source_path=source_path, error_details=str(e)
        )
    except (NotObfuscatedError, AlreadyObfuscatedError) as e:
        logging.warning(f"Skipping {source_path.name}, wrong state for {mode}: {e}")
        return WorkerResult(
            status="skipped_state", source_path=source_path, error_details=str(e)
        )
    except FileOperationError as e:
        if isinstance(e.__cause__, PermissionError):
            logging.warning(f"Permission error during {mode} of {source_path.name}: {e}")
            return WorkerResult(
                status="skipped_permission",
                source_path=source_path,
                error_details=str(e),
            )
        logging.error(f"Error processing {source_path.name} for {mode}: {e}")
        return WorkerResult(
            status="error", source_path=source_path, error_details=str(e)
        )
    except (CodecError, BackupRestoreError) as e:
        logging.error(f"Error processing {source_path.name} for {mode}: {e}")
        return WorkerResult(
            status="error", source_path=source_path, error_details=str(e)
        )
    except Exception as e:  # Catch-all for unexpected
        logging.critical(
            f"Unexpected critical error in {mode} worker for {source_path.name}: {e}",
            exc_info=True,
        )
        return WorkerResult(
            status="error",
            source_path=source_path,
            error_details=f"Unexpected: {e}",
        )


# --- Discovery ---


def scan_game(game_root: Path, plain: bool = False) -> Dict[AssetKind, List[Path]]:
    """Groups the game's asset files by kind."""
    found: Dict[AssetKind, List[Path]] = {kind: [] for kind in AssetKind}
    for path, kind in iter_asset_files(game_root, plain=plain):
        found[kind].append(path)
    logging.info(
        f"Scanned {game_root}: "
        + ", ".join(f"{len(paths)} {kind.value}" for kind, paths in found.items())
    )
    return found


def _plan_outputs(
    game_root: Path,
    mode: Mode,
    output_dir: Optional[Path],
    flatten: bool,
    underscored: bool,
    result: ProcessResult,
    console_print_func: Callable,
) -> List[Tuple[Path, Path]]:
    """Pairs every candidate with its output path, dropping layout collisions."""
    planned: List[Tuple[Path, Path]] = []
    claimed: Dict[Path, Path] = {}
    for source, kind in iter_asset_files(game_root, plain=(mode == "encrypt")):
        result.total_candidates += 1
        try:
            output = resolve_output_path(
                _expected_output(source, kind, mode, underscored),
                game_root,
                output_dir,
                flatten,
            )
        except FileOperationError as e:
            logging.error(f"Cannot place output for {source}: {e}")
            result.file_operation_errors += 1
            continue
        if output in claimed:
            logging.error(
                f"Output path collision: {source} and {claimed[output]} both map to {output}"
            )
            console_print_func(
                f"[!] Skipping {source.relative_to(game_root)}: output {output.name} already claimed"
            )
            result.file_operation_errors += 1
            continue
        claimed[output] = source
        planned.append((source, output))
    return planned


# --- Main Processing Function ---
def process_game(
    game_root: Path,
    doc: ConfigDocument,
    key: SharedKey,
    mode: Mode,
    output_dir: Optional[Path] = None,
    flatten: bool = False,
    remove_originals: bool = False,
    create_backup_files: bool = True,
    update_flags: bool = True,
    underscored: bool = False,
    num_workers: int = DEFAULT_MAX_WORKERS,
    console_print_func: Callable = print,
) -> ProcessResult:
    """
    Decrypts or encrypts every asset of a game using multiple threads, then
    flips the System.json flags once all files are done.

    The document and key are only read while workers run.
    """
    result = ProcessResult(method=mode)

    if flatten and output_dir is None:
        raise ConfigurationError("Flattening requires an output directory.")
    if remove_originals and output_dir is not None:
        raise ConfigurationError("Removing originals cannot be combined with an output directory.")

    if remove_originals:
        if not create_backup_files:
            logging.warning("Backups are OFF while removing originals. This is risky.")
        console_print_func(
            f"[{'+' if create_backup_files else '!'}] Backups are {'ON' if create_backup_files else 'OFF'}"
        )
    console_print_func(f"[*] Using up to {num_workers} worker threads.")

    # Phase 1: Discover and plan (sequentially)
    files_for_processing = _plan_outputs(
        game_root, mode, output_dir, flatten, underscored, result, console_print_func
    )
    if not files_for_processing:
        logging.warning(f"No files found to {mode}.")
        console_print_func(f"[*] No files eligible for {mode}ion.")
        return result

    console_print_func(
        f"[*] Identified {len(files_for_processing)} files for {mode}ion."
    )

    # Phase 2: Process files concurrently
    with concurrent.futures.ThreadPoolExecutor(max_workers=num_workers) as executor:
        futures_map: Dict[concurrent.futures.Future[WorkerResult], Path] = {
            executor.submit(
                _worker_transform_file,
                source,
                output,
                game_root,
                key,
                mode,
                remove_originals,
                create_backup_files,
                console_print_func,
            ): source
            for source, output in files_for_processing
        }
        for future in concurrent.futures.as_completed(futures_map):
            worker_res = future.result()
            if worker_res.status == "ok":
                result.total_processed += 1
            elif worker_res.status == "too_short":
                result.total_too_short += 1
                console_print_func(
                    f"[!] Too short, skipped: {worker_res.source_path.relative_to(game_root)}"
                )
            elif worker_res.status == "skipped_state":
                result.total_skipped_state += 1
            elif worker_res.status == "skipped_permission":
                result.total_skipped_permissions += 1
            elif worker_res.status == "error":
                result.file_operation_errors += 1
                console_print_func(
                    f"[!] Failed: {worker_res.source_path} - {worker_res.error_details}"
                )

    invalidate_tree_size(game_root)
    if output_dir is not None:
        invalidate_tree_size(output_dir)

    # Phase 3: All workers are done, update System.json exactly once
    if not update_flags:
        logging.info("Leaving System.json encryption flags untouched as per settings.")
    elif result.total_processed == 0:
        logging.warning(f"No files were {mode}ed, leaving System.json untouched.")
        console_print_func(f"[!] No files were {mode}ed.")
    else:
        try:
            keystore.set_flags(doc, mode == "encrypt")
            keystore.persist(doc)
            result.flags_updated = True
            console_print_func(
                f"[*] Updated encryption flags in {doc.path.name} to {mode == 'encrypt'}"
            )
        except ConfigWriteError as e:
            logging.critical(
                f"CRITICAL: Failed to update System.json: {e}", exc_info=True
            )
            result.success = False
            result.fatal_error = str(e)

    return result


# --- Single Files ---


def transform_single_file(
    source_path: Path,
    mode: Literal["encrypt", "decrypt", "restore"],
    key: Optional[SharedKey] = None,
    output_path: Optional[Path] = None,
    underscored: bool = False,
) -> Path:
    """
    Decrypts, encrypts or key-lessly restores one file and writes the result.
    Returns the output path. Errors propagate to the caller.
    """
    asset = read_asset(source_path)
    if mode == "restore":
        if asset.kind is not AssetKind.IMAGE:
            raise ConfigurationError(
                f"{source_path.name} is not an image; only images can be restored without a key."
            )
        transformed = codec.restore_asset(asset)
    else:
        if key is None:
            raise ConfigurationError(f"A key is required to {mode} a file.")
        transformed = _transform(asset, mode, key)

    if output_path is None:
        output_path = codec.target_path(transformed, underscored)
    if output_path.resolve() == source_path.resolve():
        raise ConfigurationError(f"Refusing to overwrite the input file {source_path}")

    write_output(output_path, transformed.data)
    logging.info(f"{mode.capitalize()} of {source_path} written to {output_path}")
    return output_path
