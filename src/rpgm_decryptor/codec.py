# src/rpgm_decryptor/codec.py
"""
Byte-level transforms for RPG Maker obfuscated assets, plus extension based
classification and path derivation.

Obfuscated file layout:

    | magic header (16 bytes) | inner header XOR key (16 bytes) | payload |

Plain file layout:

    | inner header (16 bytes) | payload |

Nothing in this module performs I/O. Inputs are never modified; every
transform builds a fresh buffer, so a failure leaves the caller holding
its original bytes.
"""
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from .constants import HEADER_LENGTH, MAGIC_HEADER, MIN_OBFUSCATED_LENGTH, PNG_HEADER
from .errors import (AlreadyObfuscatedError, ClassificationError,
                     InvalidKeyError, NotObfuscatedError, TooShortError)
from .models import Asset, AssetKind, EncodingState

PathLike = Union[str, Path]

_OBFUSCATED_EXTENSIONS: Dict[str, AssetKind] = {
    ext: kind
    for kind in AssetKind
    for ext in (kind.obfuscated_extension, kind.underscored_extension)
}
_PLAIN_EXTENSIONS: Dict[str, AssetKind] = {k.plain_extension: k for k in AssetKind}


# --- Classification ---
def _extension(path: PathLike) -> str:
    return Path(path).suffix[1:]


def classify(path: PathLike) -> Optional[AssetKind]:
    """Returns the kind of an obfuscated asset path, or None if unrecognized."""
    return _OBFUSCATED_EXTENSIONS.get(_extension(path))


def classify_plain(path: PathLike) -> Optional[AssetKind]:
    """Returns the kind of an already decrypted asset path (ogg/m4a/png)."""
    return _PLAIN_EXTENSIONS.get(_extension(path))


def plain_path(path: PathLike, kind: AssetKind) -> Path:
    return Path(path).with_suffix(f".{kind.plain_extension}")


def obfuscated_path(path: PathLike, kind: AssetKind, underscored: bool = False) -> Path:
    ext = kind.underscored_extension if underscored else kind.obfuscated_extension
    return Path(path).with_suffix(f".{ext}")


# --- Primitives ---
def xor(data: bytes, key: bytes) -> bytes:
    """XORs data against a repeating key. Applying it twice restores the input."""
    if not key:
        raise InvalidKeyError("Encryption key must not be empty")
    key_len = len(key)
    return bytes(b ^ key[i % key_len] for i, b in enumerate(data))


def has_magic_header(buffer: bytes) -> bool:
    return bytes(buffer[:HEADER_LENGTH]) == MAGIC_HEADER


# --- Buffer transforms ---
def decrypt(buffer: bytes, key: bytes) -> bytes:
    """
    Strips the magic header and recovers the inner header.

    Raises:
        TooShortError if the buffer is 32 bytes or shorter.
        InvalidKeyError if the key is empty.
    """
    if len(buffer) <= MIN_OBFUSCATED_LENGTH:
        raise TooShortError(len(buffer), MIN_OBFUSCATED_LENGTH, exclusive=True)
    if not key:
        raise InvalidKeyError("Encryption key must not be empty")

    body = bytes(buffer[HEADER_LENGTH:])
    return xor(body[:HEADER_LENGTH], key) + body[HEADER_LENGTH:]


def encrypt(buffer: bytes, key: bytes) -> bytes:
    """
    Obscures the inner header and prepends the magic header.

    Raises:
        TooShortError if the buffer is shorter than 16 bytes.
        AlreadyObfuscatedError if the buffer already starts with the magic header.
        InvalidKeyError if the key is empty.
    """
    if len(buffer) < HEADER_LENGTH:
        raise TooShortError(len(buffer), HEADER_LENGTH)
    if has_magic_header(buffer):
        raise AlreadyObfuscatedError("Buffer already carries the magic header")
    if not key:
        raise InvalidKeyError("Encryption key must not be empty")

    data = bytes(buffer)
    return MAGIC_HEADER + xor(data[:HEADER_LENGTH], key) + data[HEADER_LENGTH:]


def restore_image(buffer: bytes) -> bytes:
    """
    Rebuilds a PNG without the key by splicing a known-good header over the
    obscured one. Only images have a predictable enough header for this.

    Raises:
        TooShortError if the buffer is 32 bytes or shorter.
    """
    if len(buffer) <= MIN_OBFUSCATED_LENGTH:
        raise TooShortError(len(buffer), MIN_OBFUSCATED_LENGTH, exclusive=True)
    return PNG_HEADER + bytes(buffer[MIN_OBFUSCATED_LENGTH:])


# --- Asset transforms ---
def asset_from_bytes(path: PathLike, data: bytes) -> Asset:
    """
    Builds an Asset from a path and its contents. The kind comes from the
    extension; the state comes from the magic header.
    """
    path = Path(path)
    kind = classify(path) or classify_plain(path)
    if kind is None:
        raise ClassificationError(f"Unrecognized asset extension: {path.name}")
    state = EncodingState.OBFUSCATED if has_magic_header(data) else EncodingState.RAW
    return Asset(path=path, kind=kind, state=state, data=data)


def target_path(asset: Asset, underscored: bool = False) -> Path:
    """Path the asset's current bytes belong at, derived from its origin path."""
    if asset.state is EncodingState.RAW:
        return plain_path(asset.path, asset.kind)
    return obfuscated_path(asset.path, asset.kind, underscored)


def decrypt_asset(asset: Asset, key: bytes) -> Asset:
    if asset.state is not EncodingState.OBFUSCATED:
        raise NotObfuscatedError(f"{asset.path.name} is not obfuscated")
    data = decrypt(asset.data, key)
    logging.debug(f"Decrypted {asset.path.name} ({asset.size} -> {len(data)} bytes)")
    return Asset(path=asset.path, kind=asset.kind, state=EncodingState.RAW, data=data)


def encrypt_asset(asset: Asset, key: bytes) -> Asset:
    if asset.state is not EncodingState.RAW:
        raise AlreadyObfuscatedError(f"{asset.path.name} is already obfuscated")
    data = encrypt(asset.data, key)
    logging.debug(f"Encrypted {asset.path.name} ({asset.size} -> {len(data)} bytes)")
    return Asset(
        path=asset.path, kind=asset.kind, state=EncodingState.OBFUSCATED, data=data
    )


def restore_asset(asset: Asset) -> Asset:
    """Key-less recovery of an obfuscated image. Other kinds are a caller bug."""
    if asset.kind is not AssetKind.IMAGE:
        raise ValueError(f"Key-less restore only supports images, got {asset.kind.value}")
    if asset.state is not EncodingState.OBFUSCATED:
        raise NotObfuscatedError(f"{asset.path.name} is not obfuscated")
    data = restore_image(asset.data)
    logging.debug(f"Restored image header of {asset.path.name}")
    return Asset(path=asset.path, kind=asset.kind, state=EncodingState.RAW, data=data)
