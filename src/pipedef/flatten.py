# flatten.py
"""
Flatten a document into (pointer, type, value) rows.

Handy for grepping a pipeline definition or diffing two of them: every node
gets one row keyed by its JSON pointer, the same pointers validation
diagnostics use.
"""
from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Iterable, List, Optional, Tuple

from .errors import pointer

COLUMNS = ("path", "type", "value", "index")


@dataclass(frozen=True)
class Row:
    pointer: str
    type: str
    value: str
    index: Optional[int] = None


def type_name(value: Any) -> str:
    if isinstance(value, dict):
        return "Map"
    if isinstance(value, list):
        return "Array"
    if value is None:
        return "Null"
    if isinstance(value, bool):
        return "Bool"
    if isinstance(value, (int, float)):
        return "Number"
    return "String"


def display_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return ""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _row(path: str, value: Any, index: Optional[int]) -> Row:
    return Row(pointer=path, type=type_name(value), value=display_value(value), index=index)


def flatten(document: Any, index: Optional[int] = None) -> List[Row]:
    """
    Walk the document breadth first.

    Containers are listed when discovered (before their children are
    visited); scalars are listed when visited. The root itself is only
    listed when it is a scalar.
    """
    rows: List[Row] = []
    queue: Deque[Tuple[Any, str]] = deque([(document, "")])

    while queue:
        value, path = queue.popleft()
        if isinstance(value, dict):
            children = ((k, v) for k, v in value.items())
        elif isinstance(value, list):
            children = enumerate(value)
        else:
            rows.append(_row(path, value, index))
            continue

        for key, child in children:
            child_path = path + pointer(key)
            if isinstance(child, (dict, list)):
                rows.append(_row(child_path, child, index))
            queue.append((child, child_path))

    return rows


def flatten_documents(documents: Iterable[Any], start: int = 0) -> List[Row]:
    """Flatten a multi-document stream, numbering documents from `start`."""
    rows: List[Row] = []
    for i, doc in enumerate(documents, start=start):
        rows.extend(flatten(doc, index=i))
    return rows


def filter_rows(rows: Iterable[Row], pattern: str = ".*", column: str = "value") -> List[Row]:
    if column not in COLUMNS:
        raise ValueError(f"Unknown column {column!r}; expected one of {COLUMNS}")
    rx = re.compile(pattern)
    out = []
    for r in rows:
        if column == "path":
            text = r.pointer
        elif column == "index":
            text = "" if r.index is None else str(r.index)
        else:
            text = getattr(r, column)
        if rx.search(text):
            out.append(r)
    return out


def format_rows(
    rows: Iterable[Row],
    *,
    separator: str = ", ",
    guard: str = '"',
    right_guard: Optional[str] = None,
    show_type: bool = True,
    header: bool = False,
    with_index: bool = False,
) -> List[str]:
    """Render rows as delimited lines, e.g. "/stages/0/stage", "String", "compile"."""
    rg = guard if right_guard is None else right_guard

    def _line(fields: List[str]) -> str:
        return separator.join(f"{guard}{f}{rg}" for f in fields)

    def _fields(idx: str, path: str, typ: str, value: str) -> List[str]:
        fields = [idx] if with_index else []
        fields.append(path)
        if show_type:
            fields.append(typ)
        fields.append(value)
        return fields

    lines: List[str] = []
    if header:
        lines.append(_line(_fields("index", "path", "type", "value")))
    for r in rows:
        idx = "" if r.index is None else str(r.index)
        lines.append(_line(_fields(idx, r.pointer, r.type, r.value)))
    return lines
