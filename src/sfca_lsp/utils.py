"""
LSP Utilities.

Helper functions for URI handling and path normalization.
"""

import urllib.parse
from pathlib import Path


def uri_to_path(uri: str) -> Path:
    """
    Convert an LSP URI to a local file system path.

    Handles decoding (e.g., %20 -> space) and file:// stripping.

    Args:
        uri: The URI string (e.g., 'file:///Users/marcus/code/my%20app.cls').

    Returns:
        Path: The corresponding absolute Path object.
    """
    parsed = urllib.parse.urlparse(uri)
    # unquote handles %20 and other encoded characters
    path_str = urllib.parse.unquote(parsed.path)
    return Path(path_str).resolve()


def path_to_uri(path: str | Path) -> str:
    """Convert a file system path to a file:// URI."""
    return Path(path).resolve().as_uri()


def file_key(path: str | Path) -> str:
    """Normalize a path into the key the diagnostic store files things under."""
    return str(Path(path).resolve())
