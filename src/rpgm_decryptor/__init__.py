"""Decrypts and re-encrypts RPG Maker MV/MZ game assets."""
