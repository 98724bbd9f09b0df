"""Frontmatter parsing, coercion and KV key construction.

Everything here is pure: documents come in as text, metadata goes out as
a strict ``DocumentMetadata`` record. Loose YAML values are coerced at
this boundary so the reconciler never has to look at raw frontmatter.
"""

from __future__ import annotations

import re
import uuid
from typing import Any

import yaml
from pydantic import BaseModel

_FRONTMATTER_PATTERN = re.compile(r"\A---\n(.*?)\n---", re.DOTALL)
# Same block, located in untouched text (BOM, CRLF).
_RAW_FRONTMATTER_PATTERN = re.compile(r"\A\ufeff?---\r?\n.*?\r?\n---", re.DOTALL)


class FrontmatterError(ValueError):
    """The frontmatter block exists but is not valid YAML."""


class DocumentMetadata(BaseModel):
    """Frontmatter of one document after boundary coercion.

    Attributes:
        sync_enabled: The sync flag, ``True`` only for ``true``/``"true"``.
        id: Trimmed, non-empty identifier, or ``None``.
        collection: Trimmed, non-empty collection, or ``None``.
    """

    sync_enabled: bool = False
    id: str | None = None
    collection: str | None = None

    model_config = {"frozen": True}

    @property
    def remote_key(self) -> str | None:
        """The KV key this metadata maps to, or ``None`` without an id."""
        return build_remote_key(self.id, self.collection)


# ------------------------------------------------------------------
# Coercion
# ------------------------------------------------------------------


def coerce_bool(value: Any) -> bool:
    """Return ``True`` only for ``True`` or a case-insensitive ``"true"``."""
    if value is True:
        return True
    if isinstance(value, str):
        return value.lower() == "true"
    return False


def coerce_string(value: Any) -> str | None:
    """Return the trimmed string, or ``None`` for blanks and non-strings."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# ------------------------------------------------------------------
# Key builder
# ------------------------------------------------------------------


def build_remote_key(doc_id: Any, collection: Any = None) -> str | None:
    """Build the KV key for a document.

    ``collection/id`` when the collection is non-empty, else ``id``.
    Non-string values count as absent.

    Returns:
        The key, or ``None`` when there is no usable id.
    """
    key_id = coerce_string(doc_id)
    if key_id is None:
        return None
    prefix = coerce_string(collection)
    return f"{prefix}/{key_id}" if prefix else key_id


# ------------------------------------------------------------------
# Frontmatter
# ------------------------------------------------------------------


def _normalise(text: str) -> str:
    return text.lstrip("\ufeff").replace("\r\n", "\n")


def parse_frontmatter(text: str) -> dict[str, Any] | None:
    """Parse the leading ``---`` block of *text*.

    Returns:
        The frontmatter mapping, or ``None`` when there is no block or
        the block does not parse to a mapping (empty, list, scalar).

    Raises:
        FrontmatterError: If the block is not valid YAML.
    """
    match = _FRONTMATTER_PATTERN.match(_normalise(text))
    if not match:
        return None
    try:
        raw = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise FrontmatterError(str(exc)) from exc
    if isinstance(raw, dict):
        return raw
    return None


def extract_metadata(
    fields: dict[str, Any] | None,
    sync_key: str = "kv_sync",
    id_key: str = "id",
    collection_key: str = "collection",
) -> DocumentMetadata | None:
    """Coerce a raw frontmatter mapping into ``DocumentMetadata``.

    ``None`` in, ``None`` out: "no metadata" stays distinct from an
    empty mapping, which yields a record with sync disabled.
    """
    if fields is None:
        return None
    return DocumentMetadata(
        sync_enabled=coerce_bool(fields.get(sync_key)),
        id=coerce_string(fields.get(id_key)),
        collection=coerce_string(fields.get(collection_key)),
    )


def set_frontmatter_field(text: str, field: str, value: Any) -> str:
    """Return *text* with one frontmatter field set to *value*.

    Other fields keep their order. A document without frontmatter gets a
    new block holding just *field*. Everything outside the block, a BOM
    and the line endings included, is left as it was.

    Raises:
        FrontmatterError: If the existing block is not valid YAML.
    """
    match = _RAW_FRONTMATTER_PATTERN.match(text)
    fields = parse_frontmatter(text) if match else None
    if fields is None:
        fields = {}
    fields[field] = value

    bom = "\ufeff" if text.startswith("\ufeff") else ""
    newline = "\r\n" if "\r\n" in text else "\n"
    block = yaml.safe_dump(
        fields, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    header = bom + "---\n" + block + "---"
    if newline != "\n":
        header = header.replace("\n", newline)
    if match:
        return header + text[match.end():]
    return header + newline + text[len(bom):]


def generate_id() -> str:
    """Return a fresh random identifier (canonical UUID4 string)."""
    return str(uuid.uuid4())
