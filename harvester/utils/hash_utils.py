"""Hashing utilities"""
import hashlib
import json
from typing import Any


def hash_string(text: str) -> str:
    """
    Convert a string to its MD5 hex digest

    Args:
        text: string to hash

    Returns:
        MD5 hex digest
    """
    return hashlib.md5(text.encode()).hexdigest()


def quick_hash(data: Any, length: int = 16) -> str:
    """
    Short, stable hash of any JSON-serialisable value

    Keys are sorted before hashing so that two mappings with the same content
    but different insertion order hash identically.

    Args:
        data: JSON-serialisable value
        length: number of hex characters to keep

    Returns:
        truncated MD5 hex digest
    """
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hash_string(canonical)[:length]
