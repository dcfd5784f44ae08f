# src/rpgm_decryptor/models.py
"""
Enums and dataclasses for the RPG Maker asset decryptor.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from .constants import EXTENSION_TABLE


class AssetKind(Enum):
    """Kind of game asset, derived from the file extension."""

    AUDIO = "audio"
    VIDEO = "video"
    IMAGE = "image"

    @property
    def obfuscated_extension(self) -> str:
        return EXTENSION_TABLE[self.value][0]

    @property
    def underscored_extension(self) -> str:
        return EXTENSION_TABLE[self.value][1]

    @property
    def plain_extension(self) -> str:
        return EXTENSION_TABLE[self.value][2]


class EncodingState(Enum):
    """Whether an asset's bytes carry the magic header and obscured inner header."""

    RAW = "raw"
    OBFUSCATED = "obfuscated"

    @property
    def opposite(self) -> "EncodingState":
        if self is EncodingState.RAW:
            return EncodingState.OBFUSCATED
        return EncodingState.RAW


@dataclass(frozen=True, slots=True)
class Asset:
    """
    A single asset file held in memory.

    Instances are immutable: the transforms in `codec` return a new Asset
    tagged with the opposite state and never touch the input.
    """

    path: Path
    kind: AssetKind
    state: EncodingState
    data: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            # bytearray/memoryview would let callers mutate a "finished" asset
            object.__setattr__(self, "data", bytes(self.data))

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class SharedKey:
    """The game's XOR key in both of its representations."""

    raw: bytes = field(repr=False)
    text: str

    def __len__(self) -> int:
        return len(self.raw)


@dataclass(kw_only=True, slots=True, eq=False)
class ProcessResult:
    """Represents the result of a batch encryption or decryption."""

    method: Literal["encrypt", "decrypt"] = field(default="decrypt")
    total_candidates: int = field(default=0)
    total_processed: int = field(default=0)
    total_too_short: int = field(default=0, repr=False)
    total_skipped_state: int = field(default=0, repr=False)
    total_skipped_permissions: int = field(default=0, repr=False)
    file_operation_errors: int = field(
        default=0, repr=False
    )  # Count of non-fatal individual file errors
    flags_updated: bool = field(default=False)
    success: bool = field(default=True)
    fatal_error: Optional[str] = field(
        default=None, repr=False
    )  # For process-halting errors

    def __post_init__(self) -> None:
        if self.fatal_error is not None:
            self.fatal_error = (
                f"Process completed with fatal errors: {self.fatal_error}"
            )

    @property
    def total_skipped(self) -> int:
        return (
            self.total_too_short
            + self.total_skipped_state
            + self.total_skipped_permissions
        )


@dataclass(slots=True)
class WorkerResult:
    """Result of a single-file transform attempted by a worker."""

    status: Literal["ok", "too_short", "skipped_state", "skipped_permission", "error"]
    source_path: Path
    output_path: Optional[Path] = None
    error_details: Optional[str] = None
