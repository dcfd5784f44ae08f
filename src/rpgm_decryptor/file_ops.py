# src/rpgm_decryptor/file_ops.py
"""
File system operations: asset discovery, reading and writing, output path
layout, backups, tree size calculation, log deletion.
"""
import logging
import shutil
from pathlib import Path
from threading import Lock
from typing import Iterator, List, Optional, Tuple

from cachetools import LRUCache

from .codec import asset_from_bytes, classify, classify_plain
from .constants import (BACKUP_DIR_NAME, LOG_FILE_BASENAME,
                        TREE_SIZE_CACHE_MAXSIZE, UNENCRYPTED_ASSET_DIRS)
from .errors import (BackupRestoreError, ClassificationError,
                     FileOperationError)
from .models import Asset, AssetKind

# --- Cache for Tree Sizes ---
tree_size_cache: LRUCache = LRUCache(maxsize=TREE_SIZE_CACHE_MAXSIZE)
_cache_lock: Lock = Lock()


def get_cached_tree_size(folder: Path) -> int:
    """Calculates and caches the total size of files under a folder."""
    # Ensure folder is absolute for consistent cache keys
    abs_folder = folder.resolve()
    with _cache_lock:
        if abs_folder in tree_size_cache:
            return tree_size_cache[abs_folder]

    total_size = 0
    try:
        for entry in abs_folder.rglob("*"):
            if entry.is_file():
                try:
                    total_size += entry.stat().st_size
                except OSError:  # includes broken symlinks
                    logging.warning(
                        f"Skipping size calculation for {entry.name} (permission/OS/not found)."
                    )
    except OSError as e:
        logging.warning(f"Cannot access folder {abs_folder} for size calculation: {e}")
        return 0

    with _cache_lock:
        tree_size_cache[abs_folder] = total_size
    return total_size


def invalidate_tree_size(folder: Path) -> None:
    with _cache_lock:
        tree_size_cache.pop(folder.resolve(), None)


# --- Discovery ---
def _in_unencrypted_dir(path: Path, game_root: Path) -> bool:
    parts = path.relative_to(game_root).parts
    if parts and parts[0] == "www":
        parts = parts[1:]
    return len(parts) > 1 and parts[0] in UNENCRYPTED_ASSET_DIRS


def iter_asset_files(
    game_root: Path, plain: bool = False
) -> Iterator[Tuple[Path, AssetKind]]:
    """
    Yields (path, kind) for every asset file under game_root, in path order.
    With plain=True, already decrypted files (ogg/m4a/png) are yielded instead,
    except those in directories the engine never reads encrypted (icon/).
    """
    classifier = classify_plain if plain else classify
    try:
        entries: List[Path] = sorted(game_root.rglob("*"), key=lambda p: str(p))
    except OSError as e:
        raise FileOperationError(
            f"Failed to scan {game_root}: {e}", filepath=str(game_root)
        ) from e

    for entry in entries:
        kind = classifier(entry)
        if kind is None:
            continue
        if plain and _in_unencrypted_dir(entry, game_root):
            logging.debug(f"Leaving {entry} unencrypted")
            continue
        try:
            if not entry.is_file():
                continue
        except OSError as e:
            logging.warning(f"Cannot stat {entry}: {e}, skipping.")
            continue
        yield entry, kind


# --- Reading and Writing ---
def read_asset(path: Path) -> Asset:
    """Reads a file into an Asset."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise FileOperationError(f"Failed to read {path.name}: {e}", filepath=str(path)) from e
    try:
        return asset_from_bytes(path, data)
    except ClassificationError as e:
        raise FileOperationError(str(e), filepath=str(path)) from e


def write_output(path: Path, data: bytes) -> None:
    """Writes transformed bytes, creating parent directories as needed."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise FileOperationError(f"Failed to write {path.name}: {e}", filepath=str(path)) from e
    logging.debug(f"Wrote {len(data)} bytes to {path}")


def remove_file(path: Path) -> None:
    try:
        path.unlink()
    except OSError as e:
        raise FileOperationError(f"Failed to delete {path.name}: {e}", filepath=str(path)) from e
    logging.info(f"Deleted original file: {path}")


# --- Output Layout ---
def resolve_output_path(
    target: Path,
    game_root: Path,
    output_dir: Optional[Path] = None,
    flatten: bool = False,
) -> Path:
    """
    Maps the path a transformed asset would have next to its original onto
    the requested output layout.

    - no output_dir: next to the original
    - output_dir: mirrors the directory structure below game_root
    - output_dir + flatten: single directory, separators replaced by "_"
    """
    if output_dir is None:
        return target
    try:
        relative = target.relative_to(game_root)
    except ValueError as e:
        raise FileOperationError(
            f"{target} is not inside the game directory {game_root}",
            filepath=str(target),
        ) from e
    if flatten:
        return output_dir / "_".join(relative.parts)
    return output_dir / relative


# --- Backups ---
def get_backup_run_root(game_root: Path) -> Path:
    """Returns the root directory for backups of a specific game directory."""
    return game_root.parent / BACKUP_DIR_NAME / game_root.name


def _get_backup_path_for_file(file_path: Path, game_root: Path) -> Path:
    """
    Backups are stored under `game_root.parent / .bak / game_root.name / ...`
    so they are never picked up by a later scan of the game directory.
    """
    try:
        relative_to_root: Path = file_path.relative_to(game_root)
    except ValueError:
        logging.error(
            f"Cannot determine relative path for backup of {file_path} against {game_root}"
        )
        raise BackupRestoreError(f"Cannot create relative backup path for {file_path}")
    return get_backup_run_root(game_root) / relative_to_root


def backup_file(file_to_backup: Path, game_root: Path) -> Path:
    """Copies a file into the backup tree before it is removed. Returns the backup path."""
    backup_target_path = _get_backup_path_for_file(file_to_backup, game_root)
    logging.debug(f"Attempting to backup {file_to_backup.name} to {backup_target_path}")
    try:
        backup_target_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(file_to_backup, backup_target_path)  # Preserves metadata
    except OSError as e:
        logging.warning(f"Backup failed for {file_to_backup.name}: {e}")
        raise FileOperationError(
            f"Backup error for {file_to_backup.name}: {e}",
            filepath=str(file_to_backup),
        ) from e
    logging.info(f"Backed up {file_to_backup.name} -> {backup_target_path}")
    return backup_target_path


# --- Logs ---
def delete_old_log_files(
    console_print_func=print, current_log_file_path: Optional[Path] = None
) -> None:
    """Deletes old log files from the CWD, keeping the current session's log."""
    cwd = Path.cwd()
    current_log_name = current_log_file_path.name if current_log_file_path else None
    deleted_count = 0
    errors_count = 0

    logging.info(
        f"Checking for old log files (basename: '{LOG_FILE_BASENAME}') in {cwd}"
    )
    if not current_log_name:
        logging.warning("Current log file path not set, cannot safely delete old logs.")
        return

    for entry in cwd.iterdir():
        if (
            entry.is_file()
            and entry.name.startswith(LOG_FILE_BASENAME)
            and entry.name.lower().endswith(".log")
            and entry.name != current_log_name
        ):
            try:
                entry.unlink()
                logging.info(f"Deleted old log file: {entry.name}")
                deleted_count += 1
            except OSError as e:
                logging.error(f"Failed to delete old log file {entry.name}: {e}")
                errors_count += 1

    if deleted_count > 0:
        console_print_func(f"[*] Deleted {deleted_count} old log file(s).")
    if errors_count > 0:
        console_print_func(
            f"[!] Failed to delete {errors_count} old log file(s). Check logs."
        )
