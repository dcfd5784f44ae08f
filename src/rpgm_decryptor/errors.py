# src/rpgm_decryptor/errors.py
"""
Custom exception classes for the RPG Maker asset decryptor.
"""
from pathlib import Path
from typing import Optional, Union


class RpgDecryptorError(Exception):
    """Base class for exceptions in this application."""

    pass


# --- Codec errors (per-file, never fatal to a batch) ---


class CodecError(RpgDecryptorError):
    """Errors raised by the byte-level asset transforms."""

    pass


class TooShortError(CodecError):
    """The buffer is too small for the requested header operation."""

    def __init__(self, length: int, required: int, exclusive: bool = False):
        bound = f"more than {required}" if exclusive else f"at least {required}"
        super().__init__(f"Buffer of {length} bytes is too short (need {bound} bytes)")
        self.length = length
        self.required = required


class InvalidKeyError(CodecError):
    """The key cannot be used for XOR (it is empty)."""

    pass


class AlreadyObfuscatedError(CodecError):
    """Encrypt was asked to wrap a buffer that already carries the magic header."""

    pass


class NotObfuscatedError(CodecError):
    """Decrypt was asked to unwrap a buffer without the magic header."""

    pass


class ClassificationError(CodecError):
    """The path's extension does not belong to any known asset kind."""

    pass


# --- Configuration document errors (fatal to the whole run) ---


class ConfigError(RpgDecryptorError):
    """Errors related to the game's System.json document."""

    pass


class ConfigNotFound(ConfigError):
    """Neither candidate System.json location exists."""

    def __init__(self, root_dir: Union[str, Path]):
        super().__init__(
            f"System.json not found under {root_dir}. Make sure the directory is a game root."
        )
        self.root_dir = root_dir


class ConfigInvalid(ConfigError):
    """The document could not be read or parsed."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class KeyFieldMissing(ConfigError):
    """A required field is absent from the document."""

    def __init__(self, field_name: str):
        super().__init__(f"The field '{field_name}' was not present in System.json")
        self.field_name = field_name


class KeyFieldInvalidType(ConfigError):
    """A field is present but holds a value of the wrong JSON type."""

    def __init__(self, field_name: str, expected: str, found: object):
        super().__init__(
            f"The field '{field_name}' in System.json must be a {expected}, found {type(found).__name__}"
        )
        self.field_name = field_name
        self.expected = expected


class KeyDecodeError(ConfigError):
    """The key string is not valid even-length hex."""

    def __init__(self, text: str, position: int, reason: str):
        super().__init__(f"Invalid hex key at position {position}: {reason}")
        self.text = text
        self.position = position


class ConfigWriteError(ConfigError):
    """Writing the document back failed; declared flags no longer match the files."""

    def __init__(self, message: str, filepath: Optional[str] = None):
        super().__init__(message)
        self.filepath = filepath


# --- Ambient errors ---


class FileOperationError(RpgDecryptorError):
    """Errors during file system operations (read, write, move, etc.)."""

    def __init__(self, message: str, filepath: str = None):
        super().__init__(message)
        self.filepath = filepath

    def __str__(self):
        if self.filepath:
            return f"{super().__str__()} (File: {self.filepath})"
        return super().__str__()


class BackupRestoreError(RpgDecryptorError):
    """Errors during backup processes."""

    pass


class ConfigurationError(RpgDecryptorError):
    """Errors related to invalid user configuration or arguments."""

    pass
