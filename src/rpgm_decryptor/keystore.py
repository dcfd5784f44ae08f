# src/rpgm_decryptor/keystore.py
"""
Access to the game's System.json: locating and parsing it, extracting the
shared XOR key, reading and flipping the declared-encryption flags, and
writing the document back.
"""
import json
import logging
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .constants import (ENCRYPTION_KEY_FIELD, GAME_TITLE_FIELD,
                        HAS_ENCRYPTED_AUDIO_FIELD, HAS_ENCRYPTED_IMAGES_FIELD,
                        SYSTEM_JSON_PATHS, UTF8_BOM)
from .errors import (ConfigInvalid, ConfigNotFound, ConfigWriteError,
                     InvalidKeyError, KeyDecodeError, KeyFieldInvalidType,
                     KeyFieldMissing)
from .models import SharedKey

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(slots=True)
class ConfigDocument:
    """A loaded System.json and where it came from."""

    data: Dict[str, Any] = field(repr=False)
    path: Path
    declared_encrypted: bool = field(default=False)


# --- Loading ---
def load_document(path: Path) -> ConfigDocument:
    """Parses a System.json file at an explicit path."""
    logging.info(f"Loading System.json from: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigInvalid(f"Failed to read {path}: {e}", cause=e) from e

    try:
        data = json.loads(text.lstrip(UTF8_BOM))
    except json.JSONDecodeError as e:
        raise ConfigInvalid(f"Failed parsing JSON in {path.name}: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise ConfigInvalid(
            f"{path.name} must contain a JSON object, found {type(data).__name__}"
        )

    doc = ConfigDocument(data=data, path=path)
    doc.declared_encrypted = is_declared_encrypted(doc)
    return doc


def find_document(root_dir: Union[str, Path]) -> Optional[Path]:
    """Returns the first existing candidate System.json under root_dir."""
    root = Path(root_dir)
    for relative in SYSTEM_JSON_PATHS:
        candidate = root / relative
        if candidate.is_file():
            return candidate
    return None


def locate_and_load(root_dir: Union[str, Path]) -> ConfigDocument:
    """
    Loads System.json from a game root, trying the www/data layout before
    the flat data layout.

    Raises:
        ConfigNotFound if neither candidate exists.
        ConfigInvalid if the file cannot be read or parsed.
    """
    path = find_document(root_dir)
    if path is None:
        raise ConfigNotFound(root_dir)
    return load_document(path)


# --- Key ---
def decode_hex_key(text: str) -> SharedKey:
    """
    Decodes a hex key string. Odd lengths and non-hex characters (including
    whitespace and a "0x" prefix) are rejected.
    """
    if not text:
        raise InvalidKeyError("Encryption key must not be empty")
    for position, char in enumerate(text):
        if char not in _HEX_DIGITS:
            raise KeyDecodeError(text, position, f"invalid hex character {char!r}")
    if len(text) % 2:
        raise KeyDecodeError(text, len(text), "odd number of hex digits")
    return SharedKey(raw=bytes.fromhex(text), text=text)


def extract_key(doc: ConfigDocument) -> SharedKey:
    """
    Reads and decodes the shared key.

    Raises:
        KeyFieldMissing, KeyFieldInvalidType, KeyDecodeError, InvalidKeyError.
    """
    if ENCRYPTION_KEY_FIELD not in doc.data:
        raise KeyFieldMissing(ENCRYPTION_KEY_FIELD)
    value = doc.data[ENCRYPTION_KEY_FIELD]
    if not isinstance(value, str):
        raise KeyFieldInvalidType(ENCRYPTION_KEY_FIELD, "string", value)
    key = decode_hex_key(value)
    logging.info(f"Loaded {len(key)}-byte encryption key from {doc.path.name}")
    return key


# --- Flags ---
def _read_flag(doc: ConfigDocument, field_name: str) -> bool:
    value = doc.data.get(field_name, False)
    if not isinstance(value, bool):
        raise KeyFieldInvalidType(field_name, "boolean", value)
    return value


def has_encrypted_audio(doc: ConfigDocument) -> bool:
    return _read_flag(doc, HAS_ENCRYPTED_AUDIO_FIELD)


def has_encrypted_images(doc: ConfigDocument) -> bool:
    return _read_flag(doc, HAS_ENCRYPTED_IMAGES_FIELD)


def is_declared_encrypted(doc: ConfigDocument) -> bool:
    """True if either flag is set. Missing flags count as False."""
    # both flags are type-checked before combining
    audio = has_encrypted_audio(doc)
    images = has_encrypted_images(doc)
    return audio or images


def set_flags(doc: ConfigDocument, value: bool) -> None:
    """Sets both encryption flags in memory. Call persist() afterwards."""
    doc.data[HAS_ENCRYPTED_AUDIO_FIELD] = bool(value)
    doc.data[HAS_ENCRYPTED_IMAGES_FIELD] = bool(value)
    doc.declared_encrypted = bool(value)
    logging.info(f"Set encryption flags in {doc.path.name} to {bool(value)}")


def persist(doc: ConfigDocument) -> None:
    """
    Rewrites the whole document to its origin path.

    Raises:
        ConfigWriteError if serialization or the write fails.
    """
    logging.info(f"Writing System.json to: {doc.path}")
    try:
        serialized = json.dumps(doc.data, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ConfigWriteError(
            f"Failed to serialize {doc.path.name}: {e}", filepath=str(doc.path)
        ) from e
    try:
        doc.path.write_text(serialized, encoding="utf-8")
    except OSError as e:
        raise ConfigWriteError(
            f"Failed to write {doc.path}: {e}. Declared encryption flags may not match the files on disk.",
            filepath=str(doc.path),
        ) from e


def game_title(doc: ConfigDocument) -> Optional[str]:
    title = doc.data.get(GAME_TITLE_FIELD)
    return title if isinstance(title, str) else None
