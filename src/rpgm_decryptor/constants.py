# src/rpgm_decryptor/constants.py
"""
Global constants for the RPG Maker asset decryptor.
"""
import os
from typing import Dict, Tuple

# Asset Format
HEADER_LENGTH: int = 16
MAGIC_HEADER: bytes = bytes(
    [0x52, 0x50, 0x47, 0x4D, 0x56, 0x00, 0x00, 0x00,
     0x00, 0x03, 0x01, 0x00, 0x00, 0x00, 0x00, 0x00]
)  # "RPGMV" + version bytes
PNG_HEADER: bytes = bytes(
    [0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A,
     0x00, 0x00, 0x00, 0x0D, 0x49, 0x48, 0x44, 0x52]
)  # PNG signature + IHDR chunk length and type
MIN_OBFUSCATED_LENGTH: int = 2 * HEADER_LENGTH  # buffers must be strictly longer

# Extension table: kind name -> (obfuscated, underscored, plain)
EXTENSION_TABLE: Dict[str, Tuple[str, str, str]] = {
    "audio": ("rpgmvo", "ogg_", "ogg"),
    "video": ("rpgmvm", "m4a_", "m4a"),
    "image": ("rpgmvp", "png_", "png"),
}

# System.json
SYSTEM_JSON_PATHS: Tuple[str, ...] = ("www/data/System.json", "data/System.json")
ENCRYPTION_KEY_FIELD: str = "encryptionKey"
HAS_ENCRYPTED_AUDIO_FIELD: str = "hasEncryptedAudio"
HAS_ENCRYPTED_IMAGES_FIELD: str = "hasEncryptedImages"
GAME_TITLE_FIELD: str = "gameTitle"
UTF8_BOM: str = "\ufeff"

# Application Defaults
DEFAULT_MAX_WORKERS: int = (os.cpu_count() or 1) * 2

# Logging
LOG_FILE_BASENAME: str = "rpgm_decryptor"
LOG_FILE_TIMESTAMP_FORMAT: str = "%Y%m%d_%H%M%S"
LOG_FORMAT: str = (
    "%(asctime)s.%(msecs)d - %(levelname)s - %(threadName)s - (%(funcName)s.%(lineno)s): %(message)s"
)
LOG_DATE_FORMAT: str = "%d-%b-%y %H:%M:%S"

# Directories the engine always reads unencrypted (relative to the www/ or game root)
UNENCRYPTED_ASSET_DIRS: Tuple[str, ...] = ("icon",)

# Backups
BACKUP_DIR_NAME: str = ".bak"

# Cache
TREE_SIZE_CACHE_MAXSIZE: int = 10_000
