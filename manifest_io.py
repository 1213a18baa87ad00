"""Read and write Cargo.toml manifests as format-preserving tomlkit documents.

Nothing in here raises for I/O or parse problems: callers get a
``(value, error)`` pair and decide whether to skip the file.
"""

from pathlib import Path
from typing import Optional, Tuple

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.toml_document import TOMLDocument


def read_manifest(path: Path) -> Tuple[Optional[TOMLDocument], Optional[str]]:
    """Parse a manifest, returning (document, None) or (None, error)"""
    try:
        text = Path(path).read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        return None, f"could not read {path}: {e}"

    try:
        return tomlkit.parse(text), None
    except TOMLKitError as e:
        return None, f"could not parse {path}: {e}"


def render_manifest(document: TOMLDocument) -> str:
    return tomlkit.dumps(document)


def write_manifest(path: Path, document: TOMLDocument, original: Optional[str] = None) -> Tuple[bool, Optional[str]]:
    """Serialize and write a manifest back to disk.

    When ``original`` is given and the serialized text matches it, the file is
    left alone. Returns (written, error).
    """
    text = render_manifest(document)
    if original is not None and text == original:
        return False, None

    try:
        Path(path).write_text(text, encoding='utf-8')
    except OSError as e:
        return False, f"failed to write to {path}: {e}"

    return True, None
