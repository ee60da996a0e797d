"""
Utility functions for file system operations, identifiers and links.

This module provides helper functions for:
- Ensuring directory creation
- Checking that a file identifier can name a single stored blob
- Building the public link of a publication
- Generating bearer tokens for the uploading system
"""

from __future__ import annotations

import secrets
from pathlib import Path
from urllib.parse import quote

PUBLICATIONS_PATH = "/publications"

# Characters that would let a file identifier escape the content root
_FORBIDDEN_ID_CHARACTERS = ("/", "\\", "\x00")


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def is_storable_identifier(file_id: str) -> bool:
    """
    Check that a file identifier maps to exactly one blob under the content root.

    Example:
        >>> is_storable_identifier("a1b2-c3")
        True
        >>> is_storable_identifier("../etc/passwd")
        False
    """
    if file_id in {".", ".."}:
        return False
    return not any(char in file_id for char in _FORBIDDEN_ID_CHARACTERS)


def build_public_link(base_url: str, file_id: str) -> str:
    """
    Build the public link for a file identifier.

    The link depends only on the base URL and the file identifier, so it
    stays the same for every content version uploaded under that identifier.

    Example:
        >>> build_public_link("https://forms.example.com/", "f 1")
        "https://forms.example.com/publications/f%201"
    """
    return f"{base_url.rstrip('/')}{PUBLICATIONS_PATH}/{quote(file_id, safe='')}"


def generate_token(length: int = 32) -> str:
    """Return a random hex token of ``2 * length`` characters."""
    return secrets.token_hex(length)
