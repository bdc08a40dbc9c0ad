from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import yaml

from loxtree.lox_ast import Stmt
from loxtree.lox_transformer import LoxTransformer, TreeFormatError


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        return data.decode(encoding or 'utf-8', errors='replace')
    return data


def detect_format(path: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml'.
    Uses the file suffix first; falls back to simple data sniffing if provided.
    """
    suffix = Path(path).suffix.lower() if path else ""
    if suffix == '.json':
        return 'json'
    if suffix in ('.yaml', '.yml'):
        return 'yaml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
        return 'yaml'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                fmt: Optional[str] = None,
                path: Optional[str] = None) -> Any:
    """
    Convert document text into plain Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, uses the path suffix, then sniffing.
    JSON text that fails to parse is retried as YAML, which is a superset.
    """
    text = _norm_text(data)
    f = fmt or detect_format(path, text)
    try:
        if f == 'json':
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return yaml.safe_load(text)
        if f == 'yaml':
            return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise TreeFormatError(f"Malformed tree document: {e}") from e
    raise ValueError(f"Unsupported document format: {fmt!r}")


def serialize(value: Any, *, fmt: str, pretty: bool = True) -> str:
    """
    Convert plain Python structures into text.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    if f == 'json':
        return json.dumps(value, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(value, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def load_tree(data: bytes | bytearray | str,
              *,
              fmt: Optional[str] = None,
              path: Optional[str] = None,
              transformer: Optional[LoxTransformer] = None) -> List[Stmt]:
    """Parses a tree document and transforms it into statements."""
    document = deserialize(data, fmt=fmt, path=path)
    return (transformer or LoxTransformer()).transform(document)


def load_tree_file(path: str | Path, *, transformer: Optional[LoxTransformer] = None) -> List[Stmt]:
    path = Path(path)
    return load_tree(path.read_bytes(), path=str(path), transformer=transformer)


def dump_tree(statements: List[Stmt], *, fmt: str = 'yaml', transformer: Optional[LoxTransformer] = None) -> str:
    """Writes statements back out as a tree document."""
    document = (transformer or LoxTransformer()).to_tree(statements)
    return serialize(document, fmt=fmt)


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "load_tree",
    "load_tree_file",
    "dump_tree",
]
