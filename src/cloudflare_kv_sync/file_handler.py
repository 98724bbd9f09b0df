"""File handler module: vault-relative paths and encoding-aware read/write.

Provides the file I/O used by the document store, the sync cache and the
error log. All functions are synchronous; the engine calls them through
``run_sync()``.
"""

import os
import tempfile
from pathlib import Path, PurePosixPath

from charset_normalizer import from_bytes

# =============================================================================
# Path handling
# =============================================================================


def resolve_in_root(root: Path, rel_path: str) -> Path:
    """Resolve a vault-relative POSIX path against *root*.

    Args:
        root: Vault root directory.
        rel_path: Document path as stored in the sync cache.

    Returns:
        Absolute path under *root*.

    Raises:
        ValueError: If the path is absolute or escapes *root*.
    """
    pure = PurePosixPath(rel_path)
    if pure.is_absolute():
        raise ValueError(f"Document path must be relative: {rel_path}")
    root_resolved = root.resolve()
    resolved = (root_resolved / Path(*pure.parts)).resolve()
    if not resolved.is_relative_to(root_resolved):
        raise ValueError(
            f"Document path is outside the vault: {rel_path}"
        )
    return resolved


def to_relative(root: Path, path: Path) -> str:
    """Return *path* as a POSIX path relative to *root*."""
    return path.resolve().relative_to(root.resolve()).as_posix()


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


def write_file_atomic(path: Path, content: str) -> None:
    """Write UTF-8 *content* via a temp file and ``os.replace()``.

    Readers never observe a partially written file. Creates the parent
    directory if needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
