"""Document store: the engine's read/write view of the vault.

The engine only depends on the ``DocumentStore`` protocol. The shipped
implementation, ``VaultDocumentStore``, treats every ``*.md`` file under a
root directory as a document, addressed by its POSIX path relative to
the root (``posts/hello.md``). Hidden directories such as ``.kv_sync/``
and explicitly excluded files such as the error log are not documents.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from cloudflare_kv_sync.file_handler import (
    read_file_with_encoding,
    resolve_in_root,
    to_relative,
    write_file,
)

from .metadata import (
    DocumentMetadata,
    FrontmatterError,
    extract_metadata,
    parse_frontmatter,
    set_frontmatter_field,
)

if TYPE_CHECKING:
    from cloudflare_kv_sync.config_schema import SyncSettings

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIX = ".md"


class DocumentStore(Protocol):
    """What the sync engine needs from the document corpus."""

    def list_paths(self) -> list[str]: ...

    def exists(self, path: str) -> bool: ...

    def read(self, path: str) -> str: ...

    def set_field(self, path: str, field: str, value: Any) -> None: ...


class VaultDocumentStore:
    """Markdown files under *root*.

    Args:
        root: Vault root directory.
        exclude: Relative paths that are never treated as documents.
    """

    def __init__(self, root: Path, exclude: Iterable[str] = ()) -> None:
        self.root = root
        self.exclude = frozenset(exclude)

    def is_document(self, path: str) -> bool:
        """Whether *path* (relative) names something this store manages."""
        if not path.endswith(DOCUMENT_SUFFIX) or path in self.exclude:
            return False
        return not any(part.startswith(".") for part in path.split("/"))

    def list_paths(self) -> list[str]:
        """All document paths, sorted."""
        if not self.root.is_dir():
            return []
        paths = []
        for file_path in self.root.rglob(f"*{DOCUMENT_SUFFIX}"):
            if not file_path.is_file():
                continue
            rel = to_relative(self.root, file_path)
            if self.is_document(rel):
                paths.append(rel)
        return sorted(paths)

    def exists(self, path: str) -> bool:
        if not self.is_document(path):
            return False
        try:
            return resolve_in_root(self.root, path).is_file()
        except ValueError:
            return False

    def _document_path(self, path: str) -> Path:
        if not self.is_document(path):
            raise ValueError(f"Not a syncable document: {path}")
        return resolve_in_root(self.root, path)

    def read(self, path: str) -> str:
        content, _ = read_file_with_encoding(self._document_path(path))
        return content

    def set_field(self, path: str, field: str, value: Any) -> None:
        """Rewrite one frontmatter field of the document at *path*."""
        abs_path = self._document_path(path)
        content, encoding = read_file_with_encoding(abs_path)
        write_file(
            abs_path, set_frontmatter_field(content, field, value), encoding
        )
        logger.debug("Set %s in %s", field, path)


@dataclass(frozen=True)
class Document:
    """A point-in-time snapshot of one document.

    Attributes:
        path: Document path.
        content: Full raw text, frontmatter included.
        metadata: Coerced frontmatter, or ``None`` when there is none.
        parse_error: Why the frontmatter could not be read, if it could not.
    """

    path: str
    content: str
    metadata: DocumentMetadata | None
    parse_error: str | None = None


def load_document(
    store: DocumentStore, path: str, settings: SyncSettings
) -> Document:
    """Read *path* from *store* and extract its metadata.

    Invalid YAML is not fatal: the document is treated as having no
    metadata and the problem is carried in ``parse_error``.
    """
    content = store.read(path)
    try:
        fields = parse_frontmatter(content)
    except FrontmatterError as exc:
        return Document(
            path=path,
            content=content,
            metadata=None,
            parse_error=f"Error parsing frontmatter in {path}: {exc}",
        )
    metadata = extract_metadata(
        fields,
        sync_key=settings.sync_key,
        id_key=settings.id_key,
        collection_key=settings.collection_key,
    )
    return Document(path=path, content=content, metadata=metadata)
